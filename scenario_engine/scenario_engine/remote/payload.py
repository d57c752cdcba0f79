"""Versioned wire format of a remote-build request.

The payload is an explicit schema: decoding rejects unknown fields, and the
protocol version is checked before anything else is read, so two
installations that disagree on the format fail loudly instead of building
the wrong database.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from scenario_engine.config import DriverName, SnapshotPolicy
from scenario_engine.constants import REMOTE_PROTOCOL_VERSION
from scenario_engine.errors import PayloadDecodeError, RemoteVersionMismatch
from scenario_engine.models.resolved import ResolvedSettings
from scenario_engine.models.scenario import ScenarioSpec

# ResolvedSettings fields that travel with the request.  Connection details
# (URLs, paths, client executables) always come from the receiving side.
PAYLOAD_FIELDS = (
    "project_name",
    "test_name",
    "connection",
    "driver",
    "database",
    "database_modifier",
    "database_prefix",
    "snapshot_prefix",
    "scenario",
    "migrations_path",
    "check_for_source_changes",
    "checksum_paths",
    "scenario_test_dbs",
    "reuse_transaction",
    "reuse_journal",
    "verify_structure",
    "verify_data",
    "force_rebuild",
    "use_snapshots_when_reusing_db",
    "use_snapshots_when_not_reusing_db",
    "is_browser_test",
    "session_driver",
)


class RemoteBuildPayload(BaseModel):
    """Everything the remote side needs to rebuild the caller's settings."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    protocol_version: int = Field(default=REMOTE_PROTOCOL_VERSION)

    project_name: str = ""
    test_name: str = ""
    connection: str = "default"
    driver: DriverName
    database: str = Field(..., min_length=1)
    database_modifier: str = ""
    database_prefix: str = "test_"
    snapshot_prefix: str = "snapshot."

    scenario: ScenarioSpec = Field(default_factory=ScenarioSpec)
    migrations_path: str = "database/migrations"
    check_for_source_changes: bool = True
    checksum_paths: list[str] = Field(default_factory=list)
    precalculated_build_checksum: str | None = None

    scenario_test_dbs: bool = True
    reuse_transaction: bool = True
    reuse_journal: bool = False
    verify_structure: bool = False
    verify_data: bool = False
    force_rebuild: bool = False
    use_snapshots_when_reusing_db: SnapshotPolicy = SnapshotPolicy.NEVER
    use_snapshots_when_not_reusing_db: SnapshotPolicy = SnapshotPolicy.AFTER_SEEDERS

    is_browser_test: bool = False
    session_driver: str | None = None

    @classmethod
    def from_settings(cls, settings: ResolvedSettings, build_checksum: str | None) -> RemoteBuildPayload:
        values = {name: getattr(settings, name) for name in PAYLOAD_FIELDS}
        return cls(precalculated_build_checksum=build_checksum, **values)

    def encode(self) -> str:
        return self.model_dump_json()

    def settings_overrides(self) -> dict[str, Any]:
        """The payload as ResolvedSettings keyword arguments."""
        values = {name: getattr(self, name) for name in PAYLOAD_FIELDS}
        values["precalculated_build_checksum"] = self.precalculated_build_checksum
        return values


def decode_payload(body: bytes | str) -> RemoteBuildPayload:
    """Parse and validate a remote-build request body.

    Raises
    ------
    RemoteVersionMismatch
        If the body carries a different protocol version.
    PayloadDecodeError
        If the body is not a valid payload.
    """
    try:
        data = json.loads(body)
    except (ValueError, UnicodeDecodeError) as exc:
        raise PayloadDecodeError(f"The remote-build payload is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise PayloadDecodeError("The remote-build payload must be a JSON object")

    version = data.get("protocol_version")
    if version != REMOTE_PROTOCOL_VERSION:
        raise RemoteVersionMismatch(version, REMOTE_PROTOCOL_VERSION)

    try:
        return RemoteBuildPayload.model_validate(data)
    except ValidationError as exc:
        raise PayloadDecodeError(f"The remote-build payload is invalid: {exc}") from exc
