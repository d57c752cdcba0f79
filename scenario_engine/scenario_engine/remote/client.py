"""HTTP client that delegates a build to another scenariodb installation.

Used when the process running the tests cannot build the database itself,
e.g. browser tests driving a separately running application server.  The
whole build happens remotely; this side only learns the database's name.
"""

from __future__ import annotations

import logging
import time

import httpx
from pydantic import BaseModel

from scenario_engine.constants import BUILD_CHECKSUM_HEADER, REMOTE_BUILD_PATH, REMOTE_MESSAGE_LIMIT
from scenario_engine.errors import DriverUnsupported, RemoteBuildFailed
from scenario_engine.models.resolved import ResolvedSettings
from scenario_engine.remote.payload import RemoteBuildPayload

logger = logging.getLogger(__name__)


class RemoteBuildResult(BaseModel):
    """What a remote build reports back."""

    database: str
    build_checksum: str | None = None


def remote_build_endpoint(base_url: str) -> str:
    return f"{base_url.rstrip('/')}{REMOTE_BUILD_PATH}"


def truncate_message(message: str, limit: int = REMOTE_MESSAGE_LIMIT) -> str:
    message = message.strip()
    if len(message) <= limit:
        return message
    return message[:limit] + "…"


class RemoteBuildClient:
    """Sends remote-build requests and remembers each remote's build checksum.

    Parameters
    ----------
    transport:
        Optional httpx transport, used by tests to stand in for the network.
    """

    def __init__(
        self,
        *,
        transport: httpx.BaseTransport | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self._transport = transport
        self._log = log or logger
        self._remote_build_checksums: dict[str, str] = {}

    def reset(self) -> None:
        """Forget every remembered remote build checksum."""
        self._remote_build_checksums.clear()

    def remembered_build_checksum(self, base_url: str) -> str | None:
        return self._remote_build_checksums.get(base_url)

    def build(
        self,
        settings: ResolvedSettings,
        *,
        build_checksum: str | None,
        supports_remote_build: bool = True,
    ) -> RemoteBuildResult:
        """Ask the remote installation to build the database for *settings*.

        Parameters
        ----------
        settings:
            The resolved settings of the local build.
        build_checksum:
            Build checksum sent along so the remote side skips hashing files.
        supports_remote_build:
            Whether the driver's databases can be used by this process after a
            remote build.

        Raises
        ------
        DriverUnsupported
            Before any request is made, if the driver cannot be built remotely.
        RemoteBuildFailed
            If the remote cannot be reached, times out or reports a failure.
        """
        if not supports_remote_build:
            raise DriverUnsupported(settings.driver.value, "remote builds")
        base_url = settings.remote_build_url or ""
        url = remote_build_endpoint(base_url)

        checksum = self._remote_build_checksums.get(base_url) or build_checksum
        payload = RemoteBuildPayload.from_settings(settings, checksum)

        start = time.monotonic()
        try:
            with httpx.Client(timeout=settings.remote_build_timeout, transport=self._transport) as client:
                response = client.post(
                    url,
                    content=payload.encode(),
                    headers={"Content-Type": "application/json", "Accept": "text/plain"},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 404:
                message = f"The remote-build endpoint was not found at {url}, is scenariodb installed there?"
            else:
                message = truncate_message(exc.response.text) or "Unknown error"
            raise RemoteBuildFailed(settings.connection, url, status, message) from exc
        except httpx.ConnectError as exc:
            raise RemoteBuildFailed(settings.connection, url, None, f"Could not connect to {url}") from exc
        except httpx.TimeoutException as exc:
            raise RemoteBuildFailed(
                settings.connection,
                url,
                None,
                f"No response within {settings.remote_build_timeout}s",
            ) from exc
        except httpx.HTTPError as exc:
            raise RemoteBuildFailed(settings.connection, url, None, truncate_message(str(exc))) from exc

        database = response.text.strip()
        if response.status_code != 200 or not database:
            raise RemoteBuildFailed(
                settings.connection,
                url,
                response.status_code,
                "The remote did not return a database name",
            )

        remote_checksum = response.headers.get(BUILD_CHECKSUM_HEADER) or None
        if remote_checksum:
            self._remote_build_checksums[base_url] = remote_checksum
        self._log.info(
            "Remote build of %s by %s finished (%.3fs)",
            database,
            base_url,
            time.monotonic() - start,
        )
        return RemoteBuildResult(database=database, build_checksum=remote_checksum)
