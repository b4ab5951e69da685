"""Shared test fixtures for toolrpc tests.

The protocol runtime is external to toolrpc, so tests drive transports
through small fakes that record what the transport layer asks of them.
"""

from __future__ import annotations

import io
from collections.abc import AsyncIterator, Iterator
from typing import Any

import falcon.asgi
import pytest

from toolrpc.rpc import (
    Dispatcher,
    MetadataRegistry,
    PipeTransport,
    ProtocolServer,
    ProtocolTransport,
    TransportManager,
    TransportStatus,
    number,
    string,
)

# ---------------------------------------------------------------------------
# Fake protocol runtime
# ---------------------------------------------------------------------------


class FakeStreamHandle:
    """Runtime transport over a pair of byte streams."""

    def __init__(self, reader: Any, writer: Any, *, fail_close: bool = False) -> None:
        self.reader = reader
        self.writer = writer
        self.fail_close = fail_close
        self.closed = False

    async def close(self) -> None:
        """Close, or raise when configured to."""
        if self.fail_close:
            raise RuntimeError("close exploded")
        self.closed = True


async def _partial_body() -> AsyncIterator[bytes]:
    yield b"partial"


class FakeHttpHandle:
    """Runtime HTTP transport that echoes JSON payloads back."""

    def __init__(self, *, json_response: bool, fail_close: bool = False) -> None:
        self.json_response = json_response
        self.fail_close = fail_close
        self.closed = False
        self.requests: list[Any] = []
        self.error: Exception | None = None
        self.stream_before_error = False

    async def handle_request(self, req: falcon.asgi.Request, resp: falcon.asgi.Response, payload: Any) -> None:
        """Record *payload* and answer with an echo, or fail when configured to."""
        self.requests.append(payload)
        if self.stream_before_error:
            resp.stream = _partial_body()
        if self.error is not None:
            raise self.error
        request_id = payload.get("id") if isinstance(payload, dict) else None
        resp.media = {"jsonrpc": "2.0", "id": request_id, "result": {"echo": payload}}

    async def close(self) -> None:
        """Close, or raise when configured to."""
        if self.fail_close:
            raise RuntimeError("close exploded")
        self.closed = True


class FakeRuntime:
    """Records connects, created handles and installed request handlers."""

    def __init__(self, *, fail_connect: bool = False, fail_close: bool = False) -> None:
        self.fail_connect = fail_connect
        self.fail_close = fail_close
        self.connected: list[ProtocolTransport] = []
        self.handles: list[Any] = []
        self.handlers: dict[str, Any] = {}

    async def connect(self, transport: ProtocolTransport) -> None:
        """Bind, or refuse when configured to."""
        if self.fail_connect:
            raise RuntimeError("connect refused")
        self.connected.append(transport)

    def stream_transport(self, reader: Any, writer: Any) -> FakeStreamHandle:
        """Create a stream handle."""
        handle = FakeStreamHandle(reader, writer, fail_close=self.fail_close)
        self.handles.append(handle)
        return handle

    def http_transport(self, *, json_response: bool) -> FakeHttpHandle:
        """Create an HTTP handle."""
        handle = FakeHttpHandle(json_response=json_response, fail_close=self.fail_close)
        self.handles.append(handle)
        return handle

    def set_request_handler(self, method: str, handler: Any) -> None:
        """Remember *handler* for *method*."""
        self.handlers[method] = handler


# ---------------------------------------------------------------------------
# Fake transport adapter
# ---------------------------------------------------------------------------


class RecordingTransport:
    """Transport adapter that records lifecycle calls and fails on demand."""

    def __init__(
        self,
        kind: str = "fake",
        *,
        fail_create: bool = False,
        fail_start: bool = False,
        fail_stop: bool = False,
    ) -> None:
        self._kind = kind
        self.fail_create = fail_create
        self.fail_start = fail_start
        self.fail_stop = fail_stop
        self.calls: list[str] = []
        self.running = False

    @property
    def kind(self) -> str:
        """Configured kind."""
        return self._kind

    async def create_protocol_handle(self, server: ProtocolServer) -> ProtocolTransport:
        """Create a stream handle on *server*."""
        self.calls.append("create")
        if self.fail_create:
            raise RuntimeError("no handle for you")
        return server.stream_transport(io.BytesIO(), io.BytesIO())

    async def start(self, server: ProtocolServer, handle: ProtocolTransport) -> None:
        """Connect, or fail when configured to."""
        self.calls.append("start")
        if self.fail_start:
            raise RuntimeError("bind failed")
        await server.connect(handle)
        self.running = True

    async def stop(self, handle: ProtocolTransport | None) -> None:
        """Record the stop and close *handle*; raises when configured to."""
        self.calls.append("stop")
        self.running = False
        if self.fail_stop:
            raise RuntimeError("stop exploded")
        if handle is not None:
            await handle.close()

    def status(self) -> TransportStatus:
        """Report the running flag."""
        return TransportStatus(kind=self._kind, is_running=self.running, details={"description": "recording"})


# ---------------------------------------------------------------------------
# Sample service
# ---------------------------------------------------------------------------


def make_calculator(registry: MetadataRegistry) -> type:
    """Build a calculator service class marked on *registry*."""

    class Calculator:
        """Arithmetic procedures."""

        @registry.procedure("Add two numbers")
        @registry.param("a", number("First addend"))
        @registry.param("b", number("Second addend"))
        def add(self, a: float, b: float) -> float:
            return a + b

        @registry.procedure("Greet someone")
        @registry.param("name", string())
        @registry.param("punctuation", string(required=False))
        async def greet(self, name: str, punctuation: str = "!") -> str:
            return f"Hello, {name}{punctuation}"

        @registry.procedure("Always fails")
        def explode(self) -> None:
            raise ZeroDivisionError("boom")

        def helper(self) -> int:
            return 1

    return Calculator


def pipe_factory_with_streams(descriptor: Any) -> PipeTransport:
    """Pipe factory that never touches the real stdin/stdout."""
    return PipeTransport(io.BytesIO(), io.BytesIO())


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def registry() -> MetadataRegistry:
    """A fresh, empty registry per test."""
    return MetadataRegistry()


@pytest.fixture
def calculator(registry: MetadataRegistry) -> type:
    """The sample calculator class, marked on ``registry``."""
    return make_calculator(registry)


@pytest.fixture
def dispatcher(registry: MetadataRegistry, calculator: type) -> Dispatcher:
    """A dispatcher with the calculator registered."""
    d = Dispatcher(registry)
    d.register(calculator)
    return d


@pytest.fixture
def runtime() -> FakeRuntime:
    """A well-behaved fake runtime."""
    return FakeRuntime()


@pytest.fixture
def manager() -> Iterator[TransportManager]:
    """A manager whose pipe factory uses in-memory streams."""
    m = TransportManager()
    m.register_transport_type("pipe", pipe_factory_with_streams)
    yield m
