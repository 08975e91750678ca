"""
Asset store abstraction for Cloudinary, S3-compatible buckets and in-memory testing.
"""

from __future__ import annotations

import io
import logging
import os
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol

import boto3
import cloudinary
import cloudinary.api
import cloudinary.uploader
from botocore.config import Config
from botocore.exceptions import ClientError
from cloudinary.exceptions import NotFound as CloudinaryNotFound

from gallery.errors import AssetNotFound, UpstreamUnavailable

logger = logging.getLogger(__name__)

ALLOWED_FORMATS = ("jpg", "jpeg", "png")
MAX_DIMENSION = 800


@dataclass(frozen=True)
class StoredAsset:
    url: str
    asset_id: str


class AssetStore(Protocol):
    """Defines the operations the API needs from the asset provider."""

    def exists(self, asset_id: str) -> bool:
        """Return True if the asset exists, raise AssetNotFound otherwise."""
        ...

    def delete(self, asset_id: str) -> None:
        ...

    def store(
        self, data: bytes, *, filename: str, content_type: str | None = None
    ) -> StoredAsset:
        ...


def file_extension(filename: str) -> str:
    return os.path.splitext(filename or "")[1].lstrip(".").lower()


@dataclass
class InMemoryAssetStore:
    """Test double for asset provider interactions."""

    base_url: str = "https://example.test/assets"
    folder: str = "gallery"
    stored_objects: dict = field(default_factory=dict)

    def exists(self, asset_id: str) -> bool:
        if asset_id not in self.stored_objects:
            raise AssetNotFound(f"Asset {asset_id} not found")
        return True

    def delete(self, asset_id: str) -> None:
        self.stored_objects.pop(asset_id, None)

    def store(
        self, data: bytes, *, filename: str, content_type: str | None = None
    ) -> StoredAsset:
        asset_id = f"{self.folder}/{uuid.uuid4().hex}"
        self.stored_objects[asset_id] = data
        ext = file_extension(filename) or "bin"
        return StoredAsset(url=f"{self.base_url}/{asset_id}.{ext}", asset_id=asset_id)


@dataclass
class CloudinaryAssetStore:
    """
    Cloudinary-backed asset store.

    Credentials are passed on every call instead of through
    ``cloudinary.config()`` so that several stores can coexist in one process.
    """

    cloud_name: str
    api_key: str
    api_secret: str
    folder: str = "gallery"

    def _credentials(self) -> dict:
        return {
            "cloud_name": self.cloud_name,
            "api_key": self.api_key,
            "api_secret": self.api_secret,
        }

    def exists(self, asset_id: str) -> bool:
        # The Admin API reports a missing resource by raising, never by a flag.
        try:
            cloudinary.api.resource(asset_id, **self._credentials())
        except CloudinaryNotFound as exc:
            raise AssetNotFound(f"Asset {asset_id} not found") from exc
        return True

    def delete(self, asset_id: str) -> None:
        result = cloudinary.uploader.destroy(asset_id, **self._credentials())
        outcome = (result or {}).get("result")
        if outcome not in ("ok", "not found"):
            raise UpstreamUnavailable(
                f"Cloudinary refused to delete {asset_id}",
                details={"result": outcome},
            )

    def store(
        self, data: bytes, *, filename: str, content_type: str | None = None
    ) -> StoredAsset:
        result = cloudinary.uploader.upload(
            io.BytesIO(data),
            folder=self.folder,
            allowed_formats=list(ALLOWED_FORMATS),
            transformation=[
                {"width": MAX_DIMENSION, "height": MAX_DIMENSION, "crop": "limit"}
            ],
            **self._credentials(),
        )
        return StoredAsset(
            url=result.get("secure_url") or result["url"],
            asset_id=result["public_id"],
        )


@dataclass
class S3AssetStore:
    """
    S3-compatible asset store. The object key doubles as the asset id.
    """

    bucket: str
    region: str
    endpoint: Optional[str]
    access_key_id: str
    secret_access_key: str
    public_base_url: Optional[str] = None
    folder: str = "gallery"

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )

    def _public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        if self.endpoint:
            return f"{self.endpoint.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def exists(self, asset_id: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=asset_id)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in ("404", "NoSuchKey", "NotFound"):
                raise AssetNotFound(f"Asset {asset_id} not found") from exc
            raise
        return True

    def delete(self, asset_id: str) -> None:
        self._client.delete_object(Bucket=self.bucket, Key=asset_id)

    def store(
        self, data: bytes, *, filename: str, content_type: str | None = None
    ) -> StoredAsset:
        ext = file_extension(filename)
        key = f"{self.folder}/{uuid.uuid4().hex}"
        if ext:
            key = f"{key}.{ext}"
        self._client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type or "application/octet-stream",
        )
        return StoredAsset(url=self._public_url(key), asset_id=key)
