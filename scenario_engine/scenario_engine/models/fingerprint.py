"""Fingerprint value object and the name-part helpers derived from it."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

# Placeholder used in names when the build checksum is turned off.
NULL_BUILD_PART = "xxxxxx"

BUILD_PART_LENGTH = 6
SCENARIO_PART_LENGTH = 12


class BuildFingerprint(BaseModel):
    """The three checksums that identify a build.

    ``None`` means the corresponding cache mode is disabled.
    """

    model_config = ConfigDict(frozen=True)

    build_checksum: str | None = None
    scenario_checksum: str | None = None
    snapshot_checksum: str | None = None

    @property
    def build_part(self) -> str:
        if not self.build_checksum:
            return NULL_BUILD_PART
        return self.build_checksum[:BUILD_PART_LENGTH]

    @property
    def scenario_part(self) -> str:
        return (self.scenario_checksum or "")[:SCENARIO_PART_LENGTH]

    @property
    def snapshot_part(self) -> str:
        return (self.snapshot_checksum or "")[:SCENARIO_PART_LENGTH]
