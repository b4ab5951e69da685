"""Structural types for the external protocol runtime.

toolrpc does not frame messages or correlate requests; an externally
supplied runtime does.  These Protocols name the handful of operations
the transport layer and the hosting server call on it.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from io import IOBase
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    import falcon.asgi

__all__ = [
    "HttpProtocolTransport",
    "ProtocolServer",
    "ProtocolTransport",
    "RequestHandler",
]

type RequestHandler = Callable[[dict[str, Any]], Awaitable[Any]]
"""Async callback the runtime invokes with a request's ``params``."""


@runtime_checkable
class ProtocolTransport(Protocol):
    """A runtime-side transport bound to a server by ``connect``."""

    async def close(self) -> None:
        """Release the transport."""
        ...


@runtime_checkable
class HttpProtocolTransport(ProtocolTransport, Protocol):
    """A runtime transport that consumes already-parsed HTTP request bodies."""

    async def handle_request(
        self,
        req: falcon.asgi.Request,
        resp: falcon.asgi.Response,
        payload: Any,
    ) -> None:
        """Process one request; the response is written through *resp*."""
        ...


@runtime_checkable
class ProtocolServer(Protocol):
    """The runtime's server object."""

    async def connect(self, transport: ProtocolTransport) -> None:
        """Bind the server to *transport*."""
        ...

    def stream_transport(self, reader: IOBase, writer: IOBase) -> ProtocolTransport:
        """Create a transport speaking over a pair of byte streams."""
        ...

    def http_transport(self, *, json_response: bool) -> HttpProtocolTransport:
        """Create a transport fed by the HTTP listener."""
        ...

    def set_request_handler(self, method: str, handler: RequestHandler) -> None:
        """Route requests for *method* to *handler*."""
        ...
