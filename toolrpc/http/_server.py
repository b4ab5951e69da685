"""HTTP transport adapter: a falcon ASGI listener served by uvicorn.

The listener accepts ``POST`` on exactly one path.  Everything else is a
bodiless 404.  Request bodies are buffered, parsed as JSON and forwarded
to the runtime's HTTP transport handle, which writes the response.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import socket
from http import HTTPStatus
from types import MappingProxyType
from typing import Any, ClassVar

import falcon
import falcon.asgi
import uvicorn

from toolrpc.http._common import (
    INTERNAL_SERVER_ERROR,
    INVALID_JSON,
    TRANSPORT_NOT_INITIALIZED,
    _HttpTransportError,
    _logger,
    _response_committed,
    _set_empty_response,
    _set_error_response,
)
from toolrpc.rpc import (
    HttpOptions,
    HttpProtocolTransport,
    ProtocolServer,
    ProtocolTransport,
    TransportKind,
    TransportStatus,
)
from toolrpc.rpc._debug import wire_http_logger

__all__ = ["HttpTransport", "make_asgi_app"]


def _bind_socket(host: str, port: int) -> socket.socket:
    """Bind a listening-ready TCP socket; raises ``OSError`` on failure."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


class _EndpointSink:
    """Catch-all falcon sink implementing the listener's routing rules."""

    __slots__ = ("_path", "_transport")

    def __init__(self, transport: HttpTransport, path: str) -> None:
        self._transport = transport
        self._path = path

    async def on_request(self, req: falcon.asgi.Request, resp: falcon.asgi.Response, **kwargs: Any) -> None:
        """Route, parse and forward one request."""
        if req.method != "POST" or req.path != self._path:
            if wire_http_logger.isEnabledFor(logging.DEBUG):
                wire_http_logger.debug("Rejected %s %s (404)", req.method, req.path)
            _set_empty_response(resp, status_code=HTTPStatus.NOT_FOUND)
            return

        try:
            payload = await self._read_payload(req)
            handle = self._transport.protocol_handle
            if handle is None:
                raise _HttpTransportError(
                    TRANSPORT_NOT_INITIALIZED,
                    "HTTP transport has no protocol handle; start the transport first",
                    status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
                )
        except _HttpTransportError as e:
            _set_error_response(resp, e.error, e.message, status_code=e.status_code)
            return

        try:
            await handle.handle_request(req, resp, payload)
        except Exception as exc:
            _logger.error(
                "Error handling HTTP request: %s",
                exc,
                exc_info=True,
                extra={"path": req.path, "error_type": type(exc).__name__},
            )
            if _response_committed(resp):
                return
            _set_error_response(resp, INTERNAL_SERVER_ERROR, str(exc), status_code=HTTPStatus.INTERNAL_SERVER_ERROR)

    @staticmethod
    async def _read_payload(req: falcon.asgi.Request) -> Any:
        body = await req.stream.read()
        if wire_http_logger.isEnabledFor(logging.DEBUG):
            wire_http_logger.debug("POST %s body=%d bytes", req.path, len(body))
        try:
            return json.loads(body)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise _HttpTransportError(INVALID_JSON, str(exc), status_code=HTTPStatus.BAD_REQUEST) from exc


def make_asgi_app(transport: HttpTransport) -> falcon.asgi.App:
    """Create the falcon ASGI application backing *transport*'s listener."""
    options = transport.options
    app = falcon.asgi.App()
    app.add_sink(_EndpointSink(transport, options.path).on_request, prefix="/")
    _logger.info(
        "ASGI app created (path=%s)",
        options.path,
        extra={"path": options.path, "json_response": options.json_response},
    )
    return app


class HttpTransport:
    """Adapter serving the runtime over a single-path HTTP endpoint.

    ``create_protocol_handle`` obtains the runtime's HTTP transport; the
    listener forwards parsed request bodies to it.  ``start`` connects the
    runtime and then serves the ASGI app with ``uvicorn.Server`` on the
    configured host and port.  ``listener`` exposes that server object so
    a hosting process can coordinate shutdown.
    """

    __slots__ = ("_app", "_handle", "_listener", "_options", "_port", "_running", "_serve_task", "_socket")

    description: ClassVar[str] = "HTTP transport accepting POST requests on a single path"

    def __init__(self, options: HttpOptions | None = None) -> None:
        """Initialize with listener *options* (defaults when omitted)."""
        self._options = options or HttpOptions()
        self._handle: HttpProtocolTransport | None = None
        self._listener: uvicorn.Server | None = None
        self._serve_task: asyncio.Task[None] | None = None
        self._socket: socket.socket | None = None
        self._port: int | None = None
        self._running = False
        self._app = make_asgi_app(self)

    @property
    def kind(self) -> str:
        """Always ``"http"``."""
        return TransportKind.HTTP

    @property
    def options(self) -> HttpOptions:
        """Listener settings."""
        return self._options

    @property
    def app(self) -> falcon.asgi.App:
        """The ASGI application the listener serves."""
        return self._app

    @property
    def listener(self) -> uvicorn.Server | None:
        """The running uvicorn server, or ``None`` when stopped."""
        return self._listener

    @property
    def protocol_handle(self) -> HttpProtocolTransport | None:
        """The runtime transport requests are forwarded to."""
        return self._handle

    @property
    def is_running(self) -> bool:
        """Whether ``start`` succeeded and ``stop`` has not run since."""
        return self._running

    @property
    def url(self) -> str:
        """Endpoint URL; reflects the bound port once listening."""
        port = self._port if self._port is not None else self._options.port
        return f"http://{self._options.host}:{port}{self._options.path}"

    async def create_protocol_handle(self, server: ProtocolServer) -> ProtocolTransport:
        """Obtain the runtime's HTTP transport and route requests to it."""
        handle = server.http_transport(json_response=self._options.json_response)
        self._handle = handle
        return handle

    async def start(self, server: ProtocolServer, handle: ProtocolTransport) -> None:
        """Connect *server* to *handle*, then start listening.

        Raises:
            ConnectionError: The runtime refused the connection or the
                listener could not bind.

        """
        try:
            await server.connect(handle)
        except Exception as exc:
            raise ConnectionError(f"Failed to connect HTTP transport: {exc}") from exc
        try:
            await self._start_listener()
        except OSError as exc:
            raise ConnectionError(
                f"Failed to listen on {self._options.host}:{self._options.port}: {exc}"
            ) from exc
        self._running = True
        _logger.info("HTTP transport listening on %s", self.url, extra={"url": self.url})

    async def _start_listener(self) -> None:
        sock = _bind_socket(self._options.host, self._options.port)
        self._socket = sock
        self._port = sock.getsockname()[1]
        listener = uvicorn.Server(uvicorn.Config(self._app, log_level="warning", lifespan="off"))
        self._listener = listener
        self._serve_task = asyncio.create_task(listener.serve(sockets=[sock]))
        while not listener.started:
            if self._serve_task.done():
                self._serve_task.result()
                raise OSError("listener exited during startup")
            await asyncio.sleep(0.01)

    async def _stop_listener(self) -> None:
        listener, task, sock = self._listener, self._serve_task, self._socket
        self._listener = None
        self._serve_task = None
        self._socket = None
        self._port = None
        try:
            if listener is not None and task is not None:
                listener.should_exit = True
                await task
        finally:
            if sock is not None:
                with contextlib.suppress(OSError):
                    sock.close()

    async def stop(self, handle: ProtocolTransport | None) -> None:
        """Close *handle* and shut the listener down; failures are logged and swallowed."""
        try:
            if handle is not None:
                await handle.close()
        except Exception:
            _logger.warning("Error closing HTTP protocol transport", exc_info=True)
        try:
            await self._stop_listener()
        except Exception:
            _logger.warning("Error shutting down HTTP listener", exc_info=True)
        finally:
            self._handle = None
            self._running = False
        _logger.info("HTTP transport stopped")

    def status(self) -> TransportStatus:
        """Report status with listener configuration and liveness details."""
        return TransportStatus(
            kind=self.kind,
            is_running=self._running,
            details=MappingProxyType(
                {
                    "transport_type": TransportKind.HTTP.value,
                    "description": self.description,
                    "config": self._options.to_json(),
                    "has_listener": self._listener is not None,
                    "has_transport": self._handle is not None,
                    "url": self.url,
                }
            ),
        )
