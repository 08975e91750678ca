"""
FastAPI application entry point for the gallery backend.
"""

from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gallery.config import get_settings
from gallery.errors import register_exception_handlers
from gallery.routes import router


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Gallery Backend", version="0.1.0")
    origins = [
        o.strip() for o in settings.cors_allow_origins.split(",") if o.strip()
    ] or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()


def main() -> None:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
