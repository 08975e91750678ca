"""
Pydantic schemas for the gallery API.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel


class UploadResponse(BaseModel):
    url: str
    id: str
    publicId: str


class ImageResponse(BaseModel):
    id: str
    name: Optional[str] = None
    url: Optional[str] = None
    assetId: Optional[str] = None


class DeleteResponse(BaseModel):
    message: str


class WebhookAck(BaseModel):
    ok: Literal[True] = True


class HealthResponse(BaseModel):
    status: Literal["ok"]
    db: bool
