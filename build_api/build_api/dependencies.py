"""FastAPI dependency injection for settings and the scenario builder."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends
from scenario_engine.builder import ScenarioBuilder
from scenario_engine.config import Settings, load_settings
from scenario_engine.remote.handler import RemoteBuildHandler

from build_api.config import APISettings, load_api_settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

_settings_cache: APISettings | None = None


def get_settings() -> APISettings:
    """Return the cached :class:`APISettings` singleton."""
    global _settings_cache  # noqa: PLW0603
    if _settings_cache is None:
        _settings_cache = load_api_settings()
    return _settings_cache


SettingsDep = Annotated[APISettings, Depends(get_settings)]

# ---------------------------------------------------------------------------
# Scenario builder
# ---------------------------------------------------------------------------

_builder: ScenarioBuilder | None = None


def init_builder(settings: Settings | None = None) -> ScenarioBuilder:
    """Create and cache the process-wide builder."""
    global _builder  # noqa: PLW0603
    _builder = ScenarioBuilder(settings or load_settings(), log=logging.getLogger("build_api.builds"))
    return _builder


def dispose_builder() -> None:
    """Release the builder's connections (call during shutdown)."""
    global _builder  # noqa: PLW0603
    if _builder is not None:
        _builder.reset()
        _builder = None


def get_builder() -> ScenarioBuilder:
    """Return the builder, creating it on first use."""
    if _builder is None:
        return init_builder()
    return _builder


BuilderDep = Annotated[ScenarioBuilder, Depends(get_builder)]


def get_handler(builder: BuilderDep, settings: SettingsDep) -> RemoteBuildHandler:
    return RemoteBuildHandler(builder, session_driver=settings.session_driver)


HandlerDep = Annotated[RemoteBuildHandler, Depends(get_handler)]
