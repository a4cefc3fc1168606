"""FastAPI server for the Odoo / Infraspeak sync.

Receives Infraspeak webhooks and starts sync workflows on Temporal.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from api.routes import health, webhooks
from core.observability.logging import configure_logging


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    configure_logging()
    logger.info("Sync API starting up...")

    yield

    logger.info("Sync API shutting down...")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="OdooSpeak Sync API",
        description="Webhook receiver and manual triggers for the Odoo / Infraspeak stock and cost sync",
        version=health.VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.include_router(health.router, tags=["Health"])
    app.include_router(webhooks.router, tags=["Sync"])

    return app


# Default app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:app", host="0.0.0.0", port=8000, reload=True)
