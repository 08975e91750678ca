"""
HTTP routes for the gallery API.
"""

from __future__ import annotations

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool

from gallery.assets import ALLOWED_FORMATS, AssetStore, file_extension
from gallery.config import Settings, get_settings
from gallery.db import ImageStore
from gallery.dependencies import get_asset_store, get_image_store, get_reconciler
from gallery.errors import GalleryError, MalformedInput
from gallery.reconcile import Reconciler
from gallery.schemas import (
    DeleteResponse,
    HealthResponse,
    ImageResponse,
    UploadResponse,
    WebhookAck,
)
from gallery.webhooks import authenticate, process_notification

logger = logging.getLogger(__name__)

router = APIRouter()


def _store_upload(
    data: bytes,
    filename: str,
    content_type: Optional[str],
    images: ImageStore,
    assets: AssetStore,
) -> UploadResponse:
    try:
        stored = assets.store(data, filename=filename, content_type=content_type)
    except Exception as exc:
        logger.exception("Upload error")
        raise GalleryError("Upload failed") from exc

    try:
        record = images.insert(name=filename, url=stored.url, asset_id=stored.asset_id)
    except Exception as exc:
        logger.exception("Failed to save image record for %s", stored.asset_id)
        try:
            assets.delete(stored.asset_id)
        except Exception:
            logger.exception("Could not roll back asset %s", stored.asset_id)
        raise GalleryError("Upload failed") from exc

    return UploadResponse(url=stored.url, id=record.id, publicId=stored.asset_id)


@router.post("/upload", response_model=UploadResponse)
async def upload(
    image: UploadFile = File(...),
    images: ImageStore = Depends(get_image_store),
    assets: AssetStore = Depends(get_asset_store),
):
    filename = image.filename or ""
    if file_extension(filename) not in ALLOWED_FORMATS:
        raise MalformedInput(
            "Unsupported image format",
            details={"allowedFormats": list(ALLOWED_FORMATS)},
        )
    data = await image.read()
    if not data:
        raise MalformedInput("Empty file")

    return await run_in_threadpool(
        _store_upload, data, filename, image.content_type, images, assets
    )


@router.get("/images", response_model=list[ImageResponse])
def list_images(reconciler: Reconciler = Depends(get_reconciler)):
    report = reconciler.list_valid()
    return [ImageResponse(**record.as_dict()) for record in report.valid]


@router.delete("/images/{image_id}", response_model=DeleteResponse)
def delete_image(image_id: str, reconciler: Reconciler = Depends(get_reconciler)):
    reconciler.delete_one(image_id)
    return DeleteResponse(message="Image deleted successfully")


@router.post("/webhooks/cloudinary", response_model=WebhookAck)
async def cloudinary_webhook(
    request: Request,
    token: Optional[str] = Query(None),
    images: ImageStore = Depends(get_image_store),
    settings: Settings = Depends(get_settings),
):
    authenticate(token, settings.cloudinary_webhook_token)

    body = await request.body()
    try:
        payload = json.loads(body) if body else {}
    except ValueError as exc:
        raise MalformedInput("Invalid JSON payload") from exc

    try:
        await run_in_threadpool(
            process_notification,
            payload,
            token=token,
            expected_token=settings.cloudinary_webhook_token,
            images=images,
            require_delete_type=settings.webhook_require_delete_type,
        )
    except GalleryError:
        raise
    except Exception as exc:
        logger.exception("Webhook processing failed")
        raise GalleryError("Webhook processing failed") from exc
    return WebhookAck()


@router.get("/health", response_model=HealthResponse)
def health(images: ImageStore = Depends(get_image_store)):
    try:
        db_ok = images.ping()
    except Exception:
        logger.exception("Metadata store health check failed")
        db_ok = False
    return HealthResponse(status="ok", db=db_ok)
