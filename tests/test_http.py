# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Tests for the HTTP transport adapter.

Routing and error bodies are exercised in-process through
``make_test_client``; one class starts a real uvicorn listener on an
ephemeral port and talks to it with httpx.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import Iterator

import falcon.testing
import httpx
import pytest

from toolrpc.http import HttpTransport, make_test_client, post_json
from toolrpc.rpc import (
    HttpDescriptor,
    HttpOptions,
    TransportManager,
    TransportStartError,
)

from .conftest import FakeHttpHandle, FakeRuntime

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def transport() -> HttpTransport:
    """An HTTP transport that has not been given a protocol handle yet."""
    return HttpTransport(HttpOptions(path="/mcp"))


@pytest.fixture
def handle(transport: HttpTransport, runtime: FakeRuntime) -> FakeHttpHandle:
    """The runtime handle requests are forwarded to."""
    created = asyncio.run(transport.create_protocol_handle(runtime))
    assert isinstance(created, FakeHttpHandle)
    return created


@pytest.fixture
def client(transport: HttpTransport) -> Iterator[falcon.testing.TestClient]:
    """In-process client for the transport's ASGI app."""
    yield make_test_client(transport)


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


class TestRouting:
    """Only POST on the configured path reaches the runtime."""

    @pytest.mark.parametrize("method", ["GET", "PUT", "DELETE", "PATCH"])
    def test_other_methods_are_404(
        self, client: falcon.testing.TestClient, handle: FakeHttpHandle, method: str
    ) -> None:
        """Non-POST requests on the endpoint path get a bodiless 404."""
        result = client.simulate_request(method, "/mcp")
        assert result.status_code == 404
        assert result.content == b""
        assert handle.requests == []

    @pytest.mark.parametrize("path", ["/", "/other", "/mcp/extra"])
    def test_other_paths_are_404(self, client: falcon.testing.TestClient, handle: FakeHttpHandle, path: str) -> None:
        """POSTs to any other path get a bodiless 404."""
        result = post_json(client, path, {"jsonrpc": "2.0", "id": 1, "method": "ping"})
        assert result.status_code == 404
        assert result.content == b""
        assert handle.requests == []

    def test_custom_path(self, runtime: FakeRuntime) -> None:
        """The endpoint path comes from the options."""
        transport = HttpTransport(HttpOptions(path="/rpc"))
        asyncio.run(transport.create_protocol_handle(runtime))
        client = make_test_client(transport)
        assert post_json(client, "/rpc", {"id": 1}).status_code == 200
        assert post_json(client, "/mcp", {"id": 1}).status_code == 404


# ---------------------------------------------------------------------------
# Forwarding and error bodies
# ---------------------------------------------------------------------------


class TestForwarding:
    """Parsed bodies are handed to the runtime, which writes the response."""

    def test_payload_forwarded(self, client: falcon.testing.TestClient, handle: FakeHttpHandle) -> None:
        """The parsed JSON body reaches the handle and its response is returned."""
        payload = {"jsonrpc": "2.0", "id": 7, "method": "tools/list"}
        result = post_json(client, "/mcp", payload)
        assert result.status_code == 200
        assert handle.requests == [payload]
        assert result.json == {"jsonrpc": "2.0", "id": 7, "result": {"echo": payload}}

    def test_batch_payload_forwarded(self, client: falcon.testing.TestClient, handle: FakeHttpHandle) -> None:
        """Any JSON value is forwarded, not just objects."""
        post_json(client, "/mcp", [{"id": 1}, {"id": 2}])
        assert handle.requests == [[{"id": 1}, {"id": 2}]]

    def test_json_response_flag(self, runtime: FakeRuntime) -> None:
        """The runtime handle is created with the configured json_response mode."""
        streaming = HttpTransport(HttpOptions(json_response=False))
        created = asyncio.run(streaming.create_protocol_handle(runtime))
        assert isinstance(created, FakeHttpHandle)
        assert created.json_response is False
        assert streaming.protocol_handle is created

    @pytest.mark.parametrize("body", [b"{not json", b"", b"\xff\xfe\x00"])
    def test_malformed_json(self, client: falcon.testing.TestClient, handle: FakeHttpHandle, body: bytes) -> None:
        """An unparseable body is a 400 with error 'Invalid JSON'."""
        result = client.simulate_post("/mcp", body=body, headers={"Content-Type": "application/json"})
        assert result.status_code == 400
        assert result.json["error"] == "Invalid JSON"
        assert result.json["message"]
        assert handle.requests == []

    def test_no_protocol_handle(self, client: falcon.testing.TestClient) -> None:
        """Requests before a handle exists are a 500 'Transport not initialized'."""
        result = post_json(client, "/mcp", {"id": 1})
        assert result.status_code == 500
        assert result.json["error"] == "Transport not initialized"

    def test_handler_failure(
        self, client: falcon.testing.TestClient, handle: FakeHttpHandle, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A raising runtime handler is a 500 'Internal server error' carrying the message."""
        handle.error = RuntimeError("kaboom")
        with caplog.at_level(logging.ERROR, logger="toolrpc.http"):
            result = post_json(client, "/mcp", {"id": 1})
        assert result.status_code == 500
        assert result.json == {"error": "Internal server error", "message": "kaboom"}
        record = next(r for r in caplog.records if r.name == "toolrpc.http")
        assert record.exc_info is not None

    def test_failure_after_stream_attached(self, client: falcon.testing.TestClient, handle: FakeHttpHandle) -> None:
        """Once the runtime attached a response stream, an error does not replace it."""
        handle.stream_before_error = True
        handle.error = RuntimeError("late failure")
        result = post_json(client, "/mcp", {"id": 1})
        assert result.status_code == 200
        assert result.content == b"partial"


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


class TestStatus:
    """status() details."""

    def test_not_started(self, transport: HttpTransport) -> None:
        """Before start there is no listener or handle."""
        status = transport.status()
        assert status.kind == "http"
        assert not status.is_running
        assert status.details["transport_type"] == "http"
        assert status.details["config"] == {"port": 8000, "host": "127.0.0.1", "path": "/mcp", "json_response": True}
        assert status.details["has_listener"] is False
        assert status.details["has_transport"] is False
        assert status.details["url"] == "http://127.0.0.1:8000/mcp"

    def test_handle_reported(self, transport: HttpTransport, handle: FakeHttpHandle) -> None:
        """has_transport flips once a handle was created."""
        assert transport.status().details["has_transport"] is True

    def test_options_validated(self) -> None:
        """Port range and path shape are checked when options are built."""
        with pytest.raises(ValueError, match="port"):
            HttpOptions(port=70000)
        with pytest.raises(ValueError, match="path"):
            HttpOptions(path="mcp")


# ---------------------------------------------------------------------------
# Real listener
# ---------------------------------------------------------------------------


class TestListener:
    """start()/stop() with a uvicorn listener on an ephemeral port."""

    def test_serve_and_stop(self, runtime: FakeRuntime) -> None:
        """A started transport answers POSTs over TCP and releases the port on stop."""
        manager = TransportManager()
        transport = manager.create_transport(HttpDescriptor(options=HttpOptions(port=0)))
        assert isinstance(transport, HttpTransport)

        async def scenario() -> None:
            manager.set_current(transport)
            await manager.start_current(runtime)
            status = transport.status()
            assert status.is_running
            assert status.details["has_listener"] is True
            assert transport.listener is not None
            assert not transport.url.endswith(":0/mcp")
            async with httpx.AsyncClient() as http:
                ok = await http.post(transport.url, json={"jsonrpc": "2.0", "id": 3, "method": "ping"})
                assert ok.status_code == 200
                assert ok.json()["id"] == 3
                bad = await http.post(transport.url, content=b"{nope")
                assert bad.status_code == 400
                assert bad.json()["error"] == "Invalid JSON"
                missing = await http.get(transport.url)
                assert missing.status_code == 404
            await manager.stop_current()

        asyncio.run(scenario())
        assert runtime.handles[0].closed
        assert transport.listener is None
        assert not transport.is_running
        assert transport.status().details["has_transport"] is False

    def test_connect_failure(self) -> None:
        """A refused runtime connect never opens a listener."""
        runtime = FakeRuntime(fail_connect=True)
        transport = HttpTransport(HttpOptions(port=0))

        async def scenario() -> None:
            handle = await transport.create_protocol_handle(runtime)
            with pytest.raises(ConnectionError, match="Failed to connect HTTP transport"):
                await transport.start(runtime, handle)

        asyncio.run(scenario())
        assert transport.listener is None

    def test_port_in_use(self, runtime: FakeRuntime) -> None:
        """A bind failure surfaces as TransportStartError and releases the handle."""
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("127.0.0.1", 0))
        blocker.listen(1)
        port = blocker.getsockname()[1]
        manager = TransportManager()
        try:
            manager.set_current(manager.create_transport(HttpDescriptor(options=HttpOptions(port=port))))
            with pytest.raises(TransportStartError, match="Failed to listen on 127.0.0.1"):
                asyncio.run(manager.start_current(runtime))
        finally:
            blocker.close()
        assert runtime.handles[0].closed
        assert not manager.is_running
