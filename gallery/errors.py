"""
Error taxonomy and the FastAPI handlers that turn it into responses.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class GalleryError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class UpstreamUnavailable(GalleryError):
    """The metadata store or the asset provider could not be reached."""


class NotFound(GalleryError):
    status_code = status.HTTP_404_NOT_FOUND


class RecordNotFound(NotFound):
    pass


class AssetNotFound(NotFound):
    pass


class Unauthorized(GalleryError):
    status_code = status.HTTP_401_UNAUTHORIZED


class MalformedInput(GalleryError):
    status_code = status.HTTP_400_BAD_REQUEST


class ReconcileError(GalleryError):
    """
    Raised when orphans were detected but could not be evicted.

    ``details["orphanedIds"]`` lists the records whose deletion was not
    confirmed.
    """


async def gallery_error_handler(request: Request, exc: GalleryError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, **exc.details},
    )


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "Internal server error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GalleryError, gallery_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
