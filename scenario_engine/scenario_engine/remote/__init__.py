"""Remote-build protocol.

:class:`~scenario_engine.remote.handler.RemoteBuildHandler` depends on the
builder and is imported from its own module.
"""

from scenario_engine.remote.client import RemoteBuildClient, RemoteBuildResult, truncate_message
from scenario_engine.remote.payload import RemoteBuildPayload, decode_payload

__all__ = [
    "RemoteBuildClient",
    "RemoteBuildPayload",
    "RemoteBuildResult",
    "decode_payload",
    "truncate_message",
]
