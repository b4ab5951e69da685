"""Serve tools over HTTP with a minimal JSON-RPC runtime.

toolrpc leaves message framing to a protocol runtime.  ``MiniRuntime``
below is just enough of one to answer ``tools/list`` and ``tools/call``
requests posted as JSON to the HTTP endpoint.

Requires ``pip install toolrpc[test]`` (for the ``httpx`` client).

Run::

    python examples/http_server.py
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import falcon.asgi
import httpx

from toolrpc import HttpDescriptor, HttpOptions, MetadataRegistry, ToolServer, enum, number

# ---------------------------------------------------------------------------
# 1. A tiny runtime: dispatches JSON-RPC requests to installed handlers
# ---------------------------------------------------------------------------


class _MiniHttpHandle:
    def __init__(self, runtime: MiniRuntime) -> None:
        self._runtime = runtime

    async def handle_request(self, req: falcon.asgi.Request, resp: falcon.asgi.Response, payload: Any) -> None:
        request_id = payload.get("id")
        handler = self._runtime.handlers.get(payload.get("method"))
        if handler is None:
            resp.media = {"jsonrpc": "2.0", "id": request_id, "error": {"code": -32601, "message": "Method not found"}}
            return
        result = await handler(payload.get("params") or {})
        resp.media = {"jsonrpc": "2.0", "id": request_id, "result": result}

    async def close(self) -> None:
        pass


class MiniRuntime:
    """HTTP-only runtime answering requests from installed handlers."""

    def __init__(self) -> None:
        self.handlers: dict[str, Any] = {}

    async def connect(self, transport: Any) -> None:
        pass

    def stream_transport(self, reader: Any, writer: Any) -> Any:
        raise NotImplementedError("MiniRuntime only speaks HTTP")

    def http_transport(self, *, json_response: bool) -> _MiniHttpHandle:
        return _MiniHttpHandle(self)

    def set_request_handler(self, method: str, handler: Any) -> None:
        self.handlers[method] = handler


# ---------------------------------------------------------------------------
# 2. The tools
# ---------------------------------------------------------------------------

tools = MetadataRegistry()


class Converter:
    """Unit conversions."""

    @tools.procedure("Convert a temperature")
    @tools.param("value", number("Temperature to convert"))
    @tools.param("to", enum(["celsius", "fahrenheit"], "Target unit"))
    def convert(self, value: float, to: str) -> dict[str, Any]:
        converted = (value - 32) * 5 / 9 if to == "celsius" else value * 9 / 5 + 32
        return {"value": round(converted, 1), "unit": to}


# ---------------------------------------------------------------------------
# 3. Serve on an ephemeral port and call it
# ---------------------------------------------------------------------------


async def _run() -> None:
    server = ToolServer(MiniRuntime(), registry=tools, name="converter")
    server.register(Converter)
    await server.run(HttpDescriptor(options=HttpOptions(port=0)))
    try:
        url = server.transport_status().details["url"]  # type: ignore[union-attr]
        print(f"Serving converter on {url}")
        async with httpx.AsyncClient() as client:
            listed = await client.post(url, json={"jsonrpc": "2.0", "id": 1, "method": "tools/list"})
            print("tools:", [t["name"] for t in listed.json()["result"]["tools"]])

            called = await client.post(
                url,
                json={
                    "jsonrpc": "2.0",
                    "id": 2,
                    "method": "tools/call",
                    "params": {"name": "convert", "arguments": {"value": 212, "to": "celsius"}},
                },
            )
            print(json.loads(called.json()["result"]["content"][0]["text"]))  # {'value': 100.0, 'unit': 'celsius'}

            rejected = await client.post(url, content=b"{not json")
            print("bad body ->", rejected.status_code, rejected.json()["error"])  # 400 Invalid JSON
    finally:
        await server.stop()


def main() -> None:
    """Run the example."""
    asyncio.run(_run())


if __name__ == "__main__":
    main()
