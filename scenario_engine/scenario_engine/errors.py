"""Typed errors raised at the scenario engine's component boundaries.

Every failure that reaches a caller is one of the classes below, so test
harnesses can tell a misconfiguration apart from a dirty database or an
unreachable remote builder without parsing messages.
"""

from __future__ import annotations


class ScenarioDBError(Exception):
    """Base class for all scenario engine errors."""


class ConfigError(ScenarioDBError):
    """Raised for invalid or missing paths and invalid settings combinations."""

    @classmethod
    def path_missing(cls, path: str, kind: str) -> ConfigError:
        return cls(f"The {kind} path {path!r} does not exist")

    @classmethod
    def directory_not_allowed(cls, path: str, kind: str) -> ConfigError:
        return cls(f"The {kind} path {path!r} is a directory, a file is required")


class OwnershipConflict(ScenarioDBError):
    """A candidate database belongs to a different project."""

    def __init__(self, database: str, owner: str, requested_by: str) -> None:
        self.database = database
        self.owner = owner
        self.requested_by = requested_by
        super().__init__(
            f"Database {database!r} belongs to project {owner!r} and cannot be "
            f"reused or removed by project {requested_by!r}"
        )


class ReuseViolation(ScenarioDBError):
    """A test committed the transaction that was meant to wrap and discard it."""

    def __init__(self, test_name: str, database: str) -> None:
        self.test_name = test_name
        self.database = database
        label = test_name or "The previous"
        super().__init__(
            f"{label} test committed the wrapping transaction on database {database!r}; "
            "its contents can no longer be trusted and it will be rebuilt"
        )


class RemoteBuildFailed(ScenarioDBError):
    """The remote builder could not be reached or reported a failure."""

    def __init__(
        self,
        connection: str,
        url: str,
        status_code: int | None = None,
        remote_message: str | None = None,
    ) -> None:
        self.connection = connection
        self.url = url
        self.status_code = status_code
        self.remote_message = remote_message
        detail = remote_message or "Unknown error"
        status = f" ({status_code})" if status_code else ""
        super().__init__(
            f"The remote database for connection {connection!r} could not be built "
            f"by {url}{status} - {detail}"
        )


class PayloadDecodeError(ConfigError):
    """A remote-build payload could not be read."""


class RemoteVersionMismatch(PayloadDecodeError):
    """The remote-build payload was produced by an incompatible protocol version."""

    def __init__(self, received: object, expected: int) -> None:
        self.received = received
        self.expected = expected
        super().__init__(
            f"Remote-build protocol version mismatch: received {received!r}, expected {expected}. "
            "Make sure both installations run the same scenariodb version"
        )


class DriverUnsupported(ScenarioDBError):
    """The requested operation is not implemented for the database engine."""

    def __init__(self, driver: str, operation: str) -> None:
        self.driver = driver
        self.operation = operation
        super().__init__(f"{driver} databases do not support {operation}")


class BuildError(ScenarioDBError):
    """A driver, migration or seeder step failed while building a database."""
