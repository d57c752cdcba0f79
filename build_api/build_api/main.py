"""FastAPI application entry-point for the remote-build endpoint."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from build_api import __version__
from build_api.config import load_api_settings
from build_api.dependencies import dispose_builder, get_builder
from build_api.middleware.logging import RequestLoggingMiddleware
from build_api.routers import health, remote_build

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup / shutdown lifecycle.

    On startup:
    - Switch to JSON logging when requested.
    - Create the scenario builder (loads ``SCENARIODB_*`` settings).

    On shutdown:
    - Release the builder's database connections.
    """
    settings = load_api_settings()

    if settings.structured_logging:
        from build_api.middleware.json_formatter import install_json_logging

        install_json_logging(logging.DEBUG if settings.debug else logging.INFO)
        logger.info("Structured JSON logging enabled")

    builder = get_builder()
    logger.info(
        "Remote-build endpoint ready for project %r (%s)",
        builder.settings.project_name,
        builder.settings.driver.value,
    )

    yield

    dispose_builder()
    logger.info("Application shutdown complete")


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Construct and configure the FastAPI application."""
    app = FastAPI(
        title="scenariodb build API",
        description="Builds test databases on behalf of other scenariodb installations.",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(remote_build.router)
    app.include_router(health.router)

    return app


# Module-level application instance used by ``uvicorn build_api.main:app``.
app = create_app()
