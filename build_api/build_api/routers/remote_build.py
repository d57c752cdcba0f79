"""Remote-build endpoint.

Another installation (typically the test runner driving a browser) posts its
resolved build settings here; this process builds or reuses the database and
answers with its name as plain text.

* 200 -- body is the database name, ``X-ScenarioDB-Build-Checksum`` carries
  the build checksum that was used.
* 400 -- the payload could not be decoded or has a different protocol version.
* 500 -- the build failed; body is a short message.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse
from scenario_engine.constants import BUILD_CHECKSUM_HEADER, REMOTE_BUILD_PATH
from scenario_engine.errors import PayloadDecodeError, ScenarioDBError
from scenario_engine.remote.client import truncate_message
from starlette.concurrency import run_in_threadpool

from build_api.dependencies import HandlerDep

logger = logging.getLogger(__name__)

router = APIRouter(tags=["remote-build"])


@router.post(REMOTE_BUILD_PATH, response_class=PlainTextResponse)
async def remote_build(request: Request, handler: HandlerDep) -> PlainTextResponse:
    """Build the database described by the request body."""
    body = await request.body()
    try:
        # Builds block on file hashing, migrations and client tools.
        result = await run_in_threadpool(handler.handle, body)
    except PayloadDecodeError as exc:
        logger.warning("Rejected remote-build request: %s", exc)
        request.state.remote_build = {"error": type(exc).__name__}
        return PlainTextResponse(str(exc), status_code=400)
    except ScenarioDBError as exc:
        logger.error("Remote build failed: %s", exc)
        request.state.remote_build = {"error": type(exc).__name__}
        return PlainTextResponse(truncate_message(str(exc)), status_code=500)

    request.state.remote_build = {
        "database": result.database,
        "build_checksum": (result.build_checksum or "")[:12] or None,
    }
    headers = {BUILD_CHECKSUM_HEADER: result.build_checksum} if result.build_checksum else {}
    return PlainTextResponse(result.database, headers=headers)
