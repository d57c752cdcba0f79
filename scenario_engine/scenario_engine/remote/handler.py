"""Receiving side of a remote build.

The handler decodes the request, rebuilds the caller's settings on top of
this installation's own connection details, and runs the normal build and
reuse pipeline.  It never opens a wrapping transaction: the caller wraps
the database itself once it knows the name.
"""

from __future__ import annotations

import logging

from scenario_engine.builder.orchestrator import ScenarioBuilder
from scenario_engine.errors import ConfigError
from scenario_engine.remote.client import RemoteBuildResult
from scenario_engine.remote.payload import decode_payload

logger = logging.getLogger(__name__)


class RemoteBuildHandler:
    """Turns a remote-build request body into a built database.

    Parameters
    ----------
    builder:
        The builder of this installation.
    session_driver:
        The session driver the application here uses.  Browser tests must use
        the same one, or the browser's session would not be readable.
    """

    def __init__(
        self,
        builder: ScenarioBuilder,
        *,
        session_driver: str | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self._builder = builder
        self._session_driver = session_driver
        self._log = log or logger

    def handle(self, body: bytes | str) -> RemoteBuildResult:
        """Build the database described by *body*.

        Raises
        ------
        PayloadDecodeError
            If *body* is not a valid payload (including version mismatches).
        ConfigError
            If the payload's settings cannot be used here.
        ScenarioDBError
            If the build fails.
        """
        payload = decode_payload(body)
        if (
            payload.is_browser_test
            and self._session_driver
            and payload.session_driver
            and payload.session_driver != self._session_driver
        ):
            raise ConfigError(
                f"The remote uses the {self._session_driver!r} session driver but the browser test "
                f"expects {payload.session_driver!r}"
            )

        self._log.info(
            "Remote build requested for %s (project %r, test %r)",
            payload.database,
            payload.project_name,
            payload.test_name,
        )
        handle = self._builder.build_for_remote(payload)
        return RemoteBuildResult(database=handle.name, build_checksum=handle.fingerprint.build_checksum)
