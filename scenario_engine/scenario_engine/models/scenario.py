"""Scenario models describing what a test database must contain.

A :class:`ScenarioSpec` is created once per build request and is frozen, so
the fingerprints computed from it cannot drift while the build is running.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ScenarioSpec(BaseModel):
    """Immutable recipe for one test database."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    pre_data_imports: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Files imported before migrations, keyed by driver name.",
    )
    migrations: bool | str = Field(
        default=True,
        description="False disables migrations, True uses the default directory, a string names a directory.",
    )
    seeders: list[str] = Field(
        default_factory=list,
        description="Seeders to run after migrations, in order.",
    )
    checksum_paths: list[str] = Field(
        default_factory=list,
        description="Extra files or directories whose content affects the built database.",
    )

    @field_validator("pre_data_imports", mode="before")
    @classmethod
    def normalise_imports(cls, v: Any) -> Any:
        """Accept a bare path per driver and drop empty entries."""
        if not isinstance(v, dict):
            return v
        normalised: dict[str, list[str]] = {}
        for driver, paths in v.items():
            if paths is None:
                paths = []
            elif isinstance(paths, str):
                paths = [paths]
            normalised[driver] = [p for p in paths if isinstance(p, str) and p.strip()]
        return normalised

    @field_validator("migrations", mode="before")
    @classmethod
    def blank_migrations_disable(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return False
        return v

    @field_validator("seeders", "checksum_paths", mode="before")
    @classmethod
    def drop_blank_entries(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = [v]
        if isinstance(v, list):
            return [item for item in v if not isinstance(item, str) or item.strip()]
        return v

    def pick_pre_data_imports(self, driver: str) -> list[str]:
        """Return the pre-data import files that apply to *driver*."""
        return list(self.pre_data_imports.get(driver, []))

    def seeders_to_run(self) -> list[str]:
        """Seeders only run when migrations do."""
        return list(self.seeders) if self.migrations else []
