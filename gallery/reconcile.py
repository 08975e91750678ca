"""
Reconciliation of image records against the asset provider.

Listing images doubles as self-healing: every record is checked against the
provider (or, for legacy records without an asset id, against its URL) and the
records whose asset has vanished are evicted from the metadata store.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Optional, Union
from urllib.parse import urlparse

import requests

from gallery.assets import AssetStore
from gallery.db import ImageRecord, ImageStore
from gallery.errors import (
    ReconcileError,
    RecordNotFound,
    UpstreamUnavailable,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ByAssetId:
    asset_id: str


@dataclass(frozen=True)
class ByUrl:
    url: str


@dataclass(frozen=True)
class Unverifiable:
    pass


ExistenceCheck = Union[ByAssetId, ByUrl, Unverifiable]


def existence_check_for(record: ImageRecord) -> ExistenceCheck:
    if record.asset_id:
        return ByAssetId(record.asset_id)
    if record.url:
        return ByUrl(record.url)
    return Unverifiable()


class HttpUrlProbe:
    """
    Reports whether a URL answers with a non-error status.

    Without an explicit session every probe goes through ``requests.head``,
    which opens and closes its own connection pool, so one probe can be
    shared by concurrent checks.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.timeout = timeout
        self.session = session

    def __call__(self, url: str) -> bool:
        try:
            parsed = urlparse(url or "")
        except ValueError:
            logger.debug("Unparseable image url %r", url)
            return False
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            logger.debug("Malformed image url %r", url)
            return False

        http = self.session or requests
        try:
            response = http.head(url, allow_redirects=True, timeout=self.timeout)
            if response.status_code == 405:
                # Some hosts refuse HEAD outright.
                response = http.get(
                    url, allow_redirects=True, timeout=self.timeout, stream=True
                )
                response.close()
        except (requests.RequestException, ValueError) as exc:
            logger.debug("Probe of %s failed: %s", url, exc)
            return False
        return response.status_code < 400


class ExistenceChecker:
    def __init__(self, assets: AssetStore, probe: Callable[[str], bool]):
        self.assets = assets
        self.probe = probe

    def check_exists(self, check: ExistenceCheck) -> bool:
        if isinstance(check, ByAssetId):
            try:
                return bool(self.assets.exists(check.asset_id))
            except Exception as exc:
                logger.debug("Asset %s lookup failed: %s", check.asset_id, exc)
                return False
        if isinstance(check, ByUrl):
            return self.probe(check.url)
        return False


@dataclass
class ReconcileReport:
    valid: list[ImageRecord] = field(default_factory=list)
    orphaned_ids: list[str] = field(default_factory=list)
    deleted_count: int = 0


class Reconciler:
    def __init__(
        self,
        images: ImageStore,
        assets: AssetStore,
        checker: Optional[ExistenceChecker] = None,
        max_workers: int = 1,
    ):
        self.images = images
        self.assets = assets
        self.checker = checker or ExistenceChecker(assets, HttpUrlProbe())
        self.max_workers = max(1, max_workers)

    def _run_checks(self, checks: list[ExistenceCheck]) -> list[bool]:
        if self.max_workers == 1 or len(checks) < 2:
            return [self.checker.check_exists(check) for check in checks]
        # map() yields in submission order, so the partition matches the
        # sequential one.
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            return list(executor.map(self.checker.check_exists, checks))

    def list_valid(self) -> ReconcileReport:
        """
        Return the records whose asset still exists and evict the rest.

        Raises UpstreamUnavailable if the records cannot be fetched and
        ReconcileError if orphans were found but their deletion failed.
        """
        try:
            records = self.images.find_all()
        except Exception as exc:
            logger.exception("Error fetching images")
            raise UpstreamUnavailable("Failed to fetch images") from exc

        results = self._run_checks([existence_check_for(r) for r in records])

        report = ReconcileReport()
        for record, exists in zip(records, results):
            if exists:
                report.valid.append(record)
            else:
                report.orphaned_ids.append(record.id)

        if report.orphaned_ids:
            try:
                report.deleted_count = self.images.delete_by_ids(report.orphaned_ids)
            except Exception as exc:
                logger.exception(
                    "Failed to evict %d orphaned images", len(report.orphaned_ids)
                )
                raise ReconcileError(
                    "Failed to process images",
                    details={"orphanedIds": list(report.orphaned_ids)},
                ) from exc

        logger.info(
            "Reconciled %d images: %d valid, %d orphaned, %d deleted",
            len(records),
            len(report.valid),
            len(report.orphaned_ids),
            report.deleted_count,
        )
        return report

    def delete_one(self, image_id: str) -> ImageRecord:
        record = self.images.find_by_id(image_id)
        if record is None:
            raise RecordNotFound("Image not found")

        if record.asset_id:
            try:
                self.assets.delete(record.asset_id)
            except Exception as exc:
                logger.exception("Failed to delete asset %s", record.asset_id)
                raise UpstreamUnavailable("Failed to delete image") from exc

        self.images.delete_by_id(image_id)
        return record
