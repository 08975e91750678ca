"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging

from fastapi import Depends

from gallery.assets import (
    AssetStore,
    CloudinaryAssetStore,
    InMemoryAssetStore,
    S3AssetStore,
)
from gallery.config import Settings, get_settings
from gallery.db import ImageStore, InMemoryImageStore, SqlImageStore
from gallery.reconcile import ExistenceChecker, HttpUrlProbe, Reconciler

logger = logging.getLogger(__name__)

_image_store: ImageStore | None = None
_asset_store: AssetStore | None = None
_url_probe: HttpUrlProbe | None = None


def get_image_store() -> ImageStore:
    """
    Return a singleton image store so records persist across requests.
    """
    global _image_store
    if _image_store:
        return _image_store

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        logger.warning("DATABASE_URL not set; using in-memory image store")
        _image_store = InMemoryImageStore()
    else:
        _image_store = SqlImageStore(settings.database_url)
    return _image_store


def _build_asset_store(settings: Settings) -> AssetStore:
    if settings.use_in_memory_backends:
        return InMemoryAssetStore(folder=settings.upload_folder)

    if settings.asset_provider == "s3":
        if not settings.s3_bucket:
            logger.warning("S3_BUCKET not set; using in-memory asset store")
            return InMemoryAssetStore(folder=settings.upload_folder)
        return S3AssetStore(
            bucket=settings.s3_bucket,
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint,
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            public_base_url=settings.s3_public_base_url,
            folder=settings.upload_folder,
        )

    if settings.asset_provider != "cloudinary":
        raise ValueError(f"Unknown asset provider: {settings.asset_provider}")
    if not settings.cloud_name:
        logger.warning("CLOUD_NAME not set; using in-memory asset store")
        return InMemoryAssetStore(folder=settings.upload_folder)
    return CloudinaryAssetStore(
        cloud_name=settings.cloud_name,
        api_key=settings.api_key or "",
        api_secret=settings.api_secret or "",
        folder=settings.upload_folder,
    )


def get_asset_store() -> AssetStore:
    global _asset_store
    if _asset_store:
        return _asset_store
    _asset_store = _build_asset_store(get_settings())
    return _asset_store


def get_url_probe() -> HttpUrlProbe:
    global _url_probe
    if _url_probe:
        return _url_probe
    _url_probe = HttpUrlProbe(timeout=get_settings().probe_timeout)
    return _url_probe


def get_reconciler(
    images: ImageStore = Depends(get_image_store),
    assets: AssetStore = Depends(get_asset_store),
    probe: HttpUrlProbe = Depends(get_url_probe),
    settings: Settings = Depends(get_settings),
) -> Reconciler:
    return Reconciler(
        images,
        assets,
        checker=ExistenceChecker(assets, probe),
        max_workers=settings.reconcile_max_workers,
    )
