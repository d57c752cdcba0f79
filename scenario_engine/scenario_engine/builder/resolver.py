"""Merge global settings, test overrides and a scenario into ResolvedSettings."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from scenario_engine.config import Settings
from scenario_engine.errors import ConfigError
from scenario_engine.models.resolved import ResolvedSettings
from scenario_engine.models.scenario import ScenarioSpec
from scenario_engine.remote.payload import RemoteBuildPayload

logger = logging.getLogger(__name__)

# Settings fields copied into every ResolvedSettings.
_INHERITED_FIELDS = frozenset(Settings.model_fields) & frozenset(ResolvedSettings.model_fields)

# Fields a test may override.  Everything else is fixed by the build itself.
_OVERRIDABLE_FIELDS = frozenset(ResolvedSettings.model_fields) - {
    "scenario",
    "precalculated_build_checksum",
    "is_remote_build",
}


class SettingsResolver:
    """Produces the effective settings of one build.

    Precedence, lowest first: global :class:`Settings`, test overrides, the
    scenario itself.
    """

    def __init__(self, settings: Settings, *, log: logging.Logger | None = None) -> None:
        self._settings = settings
        self._log = log or logger

    @property
    def settings(self) -> Settings:
        return self._settings

    def _base_values(self) -> dict[str, Any]:
        values = self._settings.model_dump(include=set(_INHERITED_FIELDS))
        for key, value in values.items():
            if isinstance(value, Path):
                values[key] = str(value)
        return values

    def resolve(
        self,
        spec: ScenarioSpec | None = None,
        overrides: Mapping[str, Any] | None = None,
        *,
        test_name: str = "",
    ) -> ResolvedSettings:
        """Resolve the settings for building *spec*.

        Raises
        ------
        ConfigError
            If an override is unknown or the merged settings are invalid.
        """
        values = self._base_values()
        for key, value in (overrides or {}).items():
            if key not in _OVERRIDABLE_FIELDS:
                raise ConfigError(f"Unknown setting {key!r} cannot be overridden")
            values[key] = str(value) if isinstance(value, Path) else value
        if test_name:
            values["test_name"] = test_name
        values["scenario"] = spec or ScenarioSpec()
        return self._finalise(values)

    def resolve_remote(self, payload: RemoteBuildPayload) -> ResolvedSettings:
        """Resolve the settings of a build requested by another installation.

        Connection details come from this installation; the build recipe and
        reuse flags come from the payload.
        """
        values = self._base_values()
        values.update(payload.settings_overrides())
        values["is_remote_build"] = True
        values["remote_build_url"] = None
        return self._finalise(values)

    def _finalise(self, values: dict[str, Any]) -> ResolvedSettings:
        if values.get("is_browser_test") and values.get("reuse_transaction"):
            # The application under test uses its own connection, so a
            # wrapping transaction opened here would be invisible to it.
            self._log.debug("Transaction reuse is turned off for browser tests")
            values["reuse_transaction"] = False
        try:
            return ResolvedSettings(**values)
        except ValidationError as exc:
            raise ConfigError(f"Invalid settings: {exc}") from exc
