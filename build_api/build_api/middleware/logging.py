"""Access log for the build API.

One record per request on the ``build_api.access`` logger.  Remote builds
can take minutes, so the record carries the duration and, for build
requests, what the router stored on ``request.state.remote_build``: the
database that was handed out and the leading part of its build checksum,
or the class of the error that stopped the build.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("build_api.access")

CORRELATION_HEADER: str = "X-Correlation-ID"


def _level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request and tag it with a correlation id.

    The id comes from the ``X-Correlation-ID`` header when the caller sends
    one, so a test run can follow its builds across both installations.  It
    is stored on ``request.state`` and echoed on the response.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER, "") or uuid.uuid4().hex
        request.state.correlation_id = correlation_id

        start = time.monotonic()
        response: Response | None = None
        try:
            response = await call_next(request)
            response.headers[CORRELATION_HEADER] = correlation_id
            return response
        finally:
            status_code = response.status_code if response is not None else 500
            entry: dict[str, Any] = {
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "duration_ms": round((time.monotonic() - start) * 1000, 2),
                "correlation_id": correlation_id,
                "client": request.client.host if request.client else None,
                "request_bytes": int(request.headers.get("content-length") or 0),
            }
            remote_build = getattr(request.state, "remote_build", None)
            if remote_build:
                entry["remote_build"] = remote_build
            logger.log(
                _level_for(status_code),
                "%s %s %d",
                request.method,
                request.url.path,
                status_code,
                extra={"request": entry},
            )
