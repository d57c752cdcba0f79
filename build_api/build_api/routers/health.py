"""Health-check endpoint."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from build_api import __version__
from build_api.dependencies import BuilderDep

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(builder: BuilderDep) -> dict[str, Any]:
    """Report liveness and which project this endpoint builds for."""
    settings = builder.settings
    return {
        "status": "healthy",
        "version": __version__,
        "project": settings.project_name,
        "driver": settings.driver.value,
    }
