"""FastAPI application entrypoint for edumart."""

import logging

from fastapi import FastAPI

from .api.v1.router import api_router
from .core.config import get_settings


def create_app() -> FastAPI:
    """Instantiate and configure the FastAPI application."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = FastAPI(title="Edumart Points & Entitlements API", version="0.1.0")
    app.include_router(api_router, prefix="/api/v1")
    return app


app = create_app()
