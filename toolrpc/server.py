"""Hosting facade: one dispatcher, one transport manager, one runtime.

:class:`ToolServer` wires the pieces together the way a service process
uses them::

    tools = MetadataRegistry()
    ...
    server = ToolServer(runtime, registry=tools)
    server.register(Calculator)
    await server.run(ServeConfig.from_env())

The runtime receives ``tools/list`` and ``tools/call`` handlers; calls
are answered with text content, and failures become ``isError`` results
rather than protocol errors.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from toolrpc.config import ServeConfig
from toolrpc.rpc import (
    Dispatcher,
    DispatcherStats,
    ManagerStats,
    MetadataRegistry,
    ProtocolServer,
    TransportDescriptor,
    TransportManager,
    TransportStatus,
)

__all__ = ["ToolServer"]

_logger = logging.getLogger("toolrpc.server")

LIST_METHOD = "tools/list"
CALL_METHOD = "tools/call"


def _text_content(text: str, *, is_error: bool = False) -> dict[str, Any]:
    return {"content": [{"type": "text", "text": text}], "isError": is_error}


class ToolServer:
    """Exposes registered procedures as tools over a swappable transport."""

    __slots__ = ("_dispatcher", "_handlers_installed", "_lock", "_manager", "_name", "_runtime")

    def __init__(
        self,
        runtime: ProtocolServer,
        *,
        registry: MetadataRegistry | None = None,
        manager: TransportManager | None = None,
        name: str = "toolrpc",
    ) -> None:
        """Initialize around *runtime*.

        Args:
            runtime: The protocol runtime's server object.
            registry: Registry the service classes were marked on; a new
                empty one when omitted.
            manager: Transport manager; a default one when omitted.
            name: Server name used in log records.

        """
        self._runtime = runtime
        self._dispatcher = Dispatcher(registry if registry is not None else MetadataRegistry())
        self._manager = manager if manager is not None else TransportManager()
        self._name = name
        self._lock = asyncio.Lock()
        self._handlers_installed = False

    @property
    def name(self) -> str:
        """Server name."""
        return self._name

    @property
    def dispatcher(self) -> Dispatcher:
        """The procedure dispatcher."""
        return self._dispatcher

    @property
    def manager(self) -> TransportManager:
        """The transport manager."""
        return self._manager

    @property
    def registry(self) -> MetadataRegistry:
        """The metadata registry service classes are read from."""
        return self._dispatcher.registry

    # -- tools ----------------------------------------------------------------

    def register(self, service: type | object) -> list[str]:
        """Register a service class or instance; returns the names added."""
        return self._dispatcher.register(service)

    def list_tools(self) -> list[dict[str, Any]]:
        """Return ``{name, description, inputSchema}`` for every procedure."""
        return [
            {"name": d["name"], "description": d["description"], "inputSchema": d["parameters"]}
            for d in self._dispatcher.list_procedures()
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
        """Execute procedure *name* and wrap the outcome as text content.

        String results are returned verbatim; anything else is encoded as
        indented JSON.  Any failure, including lookup and validation
        errors, yields ``isError: true`` with ``Error: <message>`` text.
        """
        try:
            result = await self._dispatcher.execute(name, arguments or {})
        except Exception as exc:
            _logger.debug("Tool '%s' failed: %s", name, exc, extra={"procedure": name, "server": self._name})
            return _text_content(f"Error: {exc}", is_error=True)
        text = result if isinstance(result, str) else json.dumps(result, indent=2, default=str)
        return _text_content(text)

    def tool_stats(self) -> DispatcherStats:
        """Return dispatcher statistics."""
        return self._dispatcher.stats()

    async def _handle_list(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"tools": self.list_tools()}

    async def _handle_call(self, params: dict[str, Any]) -> dict[str, Any]:
        return await self.call_tool(params.get("name", ""), params.get("arguments"))

    def _install_handlers(self) -> None:
        if self._handlers_installed:
            return
        self._runtime.set_request_handler(LIST_METHOD, self._handle_list)
        self._runtime.set_request_handler(CALL_METHOD, self._handle_call)
        self._handlers_installed = True

    # -- transport lifecycle ----------------------------------------------------

    async def _start(self, descriptor: TransportDescriptor) -> None:
        transport = self._manager.create_transport(descriptor)
        self._manager.set_current(transport)
        await self._manager.start_current(self._runtime)

    async def run(self, config: ServeConfig | TransportDescriptor | None = None) -> None:
        """Install request handlers and start the configured transport.

        Raises:
            TransportBusyError: A transport is already running; use
                :meth:`switch_transport` or :meth:`stop` first.

        """
        if isinstance(config, TransportDescriptor):
            descriptor = config
        else:
            descriptor = (config or ServeConfig()).to_descriptor()
        async with self._lock:
            self._install_handlers()
            await self._start(descriptor)
        _logger.info(
            "%s serving %d tool(s) over %s",
            self._name,
            len(self._dispatcher),
            descriptor.kind,
            extra={"server": self._name, "transport": descriptor.kind},
        )

    async def switch_transport(self, descriptor: TransportDescriptor) -> None:
        """Stop the current transport (if any), then start *descriptor*'s.

        Runs under the server's lock, so overlapping switches are applied
        one after another.
        """
        async with self._lock:
            self._install_handlers()
            previous = self._manager.stats().current_kind
            await self._manager.stop_current()
            await self._start(descriptor)
        _logger.info(
            "Switched transport %s -> %s",
            previous or "none",
            descriptor.kind,
            extra={"server": self._name, "transport": descriptor.kind},
        )

    async def stop(self) -> None:
        """Stop the running transport; a no-op when none is running."""
        async with self._lock:
            await self._manager.stop_current()

    @property
    def is_running(self) -> bool:
        """Whether a transport is running."""
        return self._manager.is_running

    def transport_status(self) -> TransportStatus | None:
        """Status of the current transport, or ``None``."""
        return self._manager.status()

    def transport_stats(self) -> ManagerStats:
        """Transport manager statistics."""
        return self._manager.stats()
