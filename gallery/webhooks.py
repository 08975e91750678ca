"""
Normalization of upstream deletion notifications.

Cloudinary notifications come in several shapes: a batch with a ``resources``
list, a single ``public_id`` at the top level, or a nested ``resource`` object.
All of them are reduced to a list of asset ids whose records get purged.
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from gallery.db import ImageStore
from gallery.errors import Unauthorized

logger = logging.getLogger(__name__)

DELETE_NOTIFICATION = "delete"


@dataclass
class WebhookResult:
    asset_ids: list[str] = field(default_factory=list)
    acted: bool = False
    purged: int = 0


def authenticate(token: Optional[str], expected: Optional[str]) -> None:
    if not expected or token is None:
        raise Unauthorized("Unauthorized")
    if not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        raise Unauthorized("Unauthorized")


def _public_id(entry: Any) -> Optional[str]:
    if not isinstance(entry, dict):
        return None
    value = entry.get("public_id")
    if isinstance(value, str) and value:
        return value
    return None


def extract_asset_ids(payload: Any) -> list[str]:
    """Return asset ids in payload order; duplicates are kept."""
    if not isinstance(payload, dict):
        return []

    resources = payload.get("resources")
    if isinstance(resources, list):
        return [pid for pid in map(_public_id, resources) if pid]

    top_level = _public_id(payload)
    if top_level:
        return [top_level]

    nested = _public_id(payload.get("resource"))
    if nested:
        return [nested]
    return []


def is_delete_notification(payload: Any) -> bool:
    if not isinstance(payload, dict):
        return False
    kind = payload.get("notification_type")
    return isinstance(kind, str) and kind.lower() == DELETE_NOTIFICATION


def should_purge(
    payload: Any, asset_ids: list[str], require_delete_type: bool = False
) -> bool:
    if require_delete_type:
        return is_delete_notification(payload) and bool(asset_ids)
    return is_delete_notification(payload) or bool(asset_ids)


def process_notification(
    payload: Any,
    *,
    token: Optional[str],
    expected_token: Optional[str],
    images: ImageStore,
    require_delete_type: bool = False,
) -> WebhookResult:
    authenticate(token, expected_token)

    result = WebhookResult(asset_ids=extract_asset_ids(payload))
    result.acted = should_purge(payload, result.asset_ids, require_delete_type)
    if result.acted and result.asset_ids:
        result.purged = images.delete_by_asset_ids(result.asset_ids)
        logger.info(
            "Webhook purged %d images for %d asset ids",
            result.purged,
            len(result.asset_ids),
        )
    return result
