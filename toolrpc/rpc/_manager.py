"""Transport manager: kind-to-factory registry and the single current-transport slot.

The manager holds at most one transport and the runtime handle bound to
it.  A transport that is ``starting`` or ``running`` can neither be
replaced nor started a second time; callers stop it first.  Each
operation leaves the slot either empty or holding a well-defined
transport, and a failed start never leaves a half-bound handle behind.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass

from toolrpc.rpc._common import (
    NoActiveTransportError,
    TransportBusyError,
    TransportCreationError,
    TransportStartError,
    UnsupportedTransportError,
    _logger,
)
from toolrpc.rpc._debug import wire_transport_logger
from toolrpc.rpc._runtime import ProtocolServer, ProtocolTransport
from toolrpc.rpc._transport import (
    PipeTransport,
    Transport,
    TransportDescriptor,
    TransportKind,
    TransportState,
    TransportStatus,
)

__all__ = ["ManagerStats", "TransportFactory", "TransportManager"]

type TransportFactory = Callable[[TransportDescriptor], Transport]
"""Builds a transport adapter from its descriptor."""

_BUSY_STATES = frozenset({TransportState.STARTING, TransportState.RUNNING})


@dataclass(frozen=True)
class ManagerStats:
    """Snapshot of the manager.

    Attributes:
        registered_kinds: Kinds with a factory, sorted.
        current_kind: Kind of the transport in the slot, if any.
        is_running: Whether that transport reports itself running.

    """

    registered_kinds: tuple[str, ...]
    current_kind: str | None
    is_running: bool


def _pipe_factory(descriptor: TransportDescriptor) -> Transport:
    return PipeTransport()


def _http_factory(descriptor: TransportDescriptor) -> Transport:
    from toolrpc.http._server import HttpTransport

    return HttpTransport(descriptor.options)


class TransportManager:
    """Creates transports by kind and governs the one that is current."""

    __slots__ = ("_current", "_factories", "_handle", "_reset_tasks", "_state")

    def __init__(self) -> None:
        """Initialize with the built-in ``pipe`` and ``http`` factories."""
        self._factories: dict[str, TransportFactory] = {
            TransportKind.PIPE: _pipe_factory,
            TransportKind.HTTP: _http_factory,
        }
        self._current: Transport | None = None
        self._handle: ProtocolTransport | None = None
        self._state = TransportState.IDLE
        self._reset_tasks: set[asyncio.Task[None]] = set()

    # -- factory registry -----------------------------------------------------

    def register_transport_type(self, kind: str, factory: TransportFactory) -> None:
        """Add or replace the factory for *kind*."""
        if kind in self._factories:
            _logger.debug("Replacing transport factory for '%s'", kind)
        self._factories[kind] = factory

    def registered_kinds(self) -> list[str]:
        """Return every kind with a factory, sorted."""
        return sorted(str(k) for k in self._factories)

    def is_registered(self, kind: str) -> bool:
        """Whether a factory exists for *kind*."""
        return kind in self._factories

    def create_transport(self, descriptor: TransportDescriptor) -> Transport:
        """Build a transport for *descriptor* without touching the slot.

        Raises:
            UnsupportedTransportError: No factory for ``descriptor.kind``.
            TransportCreationError: The factory raised.

        """
        factory = self._factories.get(descriptor.kind)
        if factory is None:
            raise UnsupportedTransportError(descriptor.kind, self.registered_kinds())
        try:
            transport = factory(descriptor)
        except Exception as exc:
            raise TransportCreationError(descriptor.kind, exc) from exc
        if wire_transport_logger.isEnabledFor(logging.DEBUG):
            wire_transport_logger.debug("Created %s transport: %s", descriptor.kind, type(transport).__name__)
        return transport

    # -- current slot -----------------------------------------------------------

    @property
    def state(self) -> TransportState:
        """Lifecycle state of the slot."""
        return self._state

    @property
    def is_running(self) -> bool:
        """Whether the current transport is running."""
        return self._state is TransportState.RUNNING

    def _ensure_not_busy(self) -> None:
        if self._current is not None and self._state in _BUSY_STATES:
            raise TransportBusyError(self._current.kind, self._state.value)

    def set_current(self, transport: Transport) -> None:
        """Put *transport* in the slot.

        Raises:
            TransportBusyError: The current transport is starting or running.

        """
        self._ensure_not_busy()
        self._current = transport
        self._handle = None
        self._state = TransportState.IDLE

    def get_current(self) -> Transport | None:
        """Return the transport in the slot, if any."""
        return self._current

    async def start_current(self, server: ProtocolServer) -> None:
        """Create a runtime handle for the current transport and bind it.

        Raises:
            NoActiveTransportError: The slot is empty.
            TransportBusyError: The current transport is already starting
                or running.
            TransportStartError: Creating or binding the handle failed; the
                handle is released and the slot returns to ``idle``.

        Cancelling the call (for example from ``asyncio.wait_for``) releases
        the handle the same way before the cancellation propagates.

        """
        transport = self._current
        if transport is None:
            raise NoActiveTransportError()
        self._ensure_not_busy()

        self._state = TransportState.STARTING
        handle: ProtocolTransport | None = None
        try:
            handle = await transport.create_protocol_handle(server)
            self._handle = handle
            await transport.start(server, handle)
        except asyncio.CancelledError:
            _logger.warning("Start of %s transport was cancelled", transport.kind, extra={"transport": transport.kind})
            await self._abandon_start(transport, handle)
            raise
        except Exception as exc:
            await self._abandon_start(transport, handle)
            _logger.error("Failed to start %s transport: %s", transport.kind, exc, extra={"transport": transport.kind})
            raise TransportStartError(transport.kind, exc) from exc

        self._state = TransportState.RUNNING
        _logger.info("Transport '%s' started", transport.kind, extra={"transport": transport.kind})

    async def _abandon_start(self, transport: Transport, handle: ProtocolTransport | None) -> None:
        """Return the slot to ``idle`` and release *handle* best-effort."""
        self._handle = None
        self._state = TransportState.IDLE
        if handle is not None:
            with contextlib.suppress(Exception):
                await transport.stop(handle)

    async def stop_current(self) -> None:
        """Stop the running transport and clear the slot.

        A no-op when nothing is running.  Stop failures are logged and
        swallowed; the slot is cleared regardless.

        Raises:
            TransportBusyError: The current transport is still starting.

        """
        transport = self._current
        if transport is None or self._state is TransportState.IDLE:
            return
        if self._state is TransportState.STARTING:
            raise TransportBusyError(transport.kind, self._state.value)
        if self._state is not TransportState.RUNNING:
            return

        self._state = TransportState.STOPPING
        try:
            await transport.stop(self._handle)
        except Exception:
            _logger.warning("Error stopping %s transport", transport.kind, exc_info=True, extra={"transport": transport.kind})
        finally:
            self._current = None
            self._handle = None
            self._state = TransportState.STOPPED
        _logger.info("Transport '%s' stopped", transport.kind, extra={"transport": transport.kind})

    def status(self) -> TransportStatus | None:
        """Return the current transport's status, or ``None`` if the slot is empty."""
        if self._current is None:
            return None
        return self._current.status()

    def stats(self) -> ManagerStats:
        """Return registered kinds and the state of the slot."""
        return ManagerStats(
            registered_kinds=tuple(self.registered_kinds()),
            current_kind=self._current.kind if self._current is not None else None,
            is_running=self.is_running,
        )

    def reset(self) -> asyncio.Task[None] | None:
        """Clear the slot immediately and stop the old transport in the background.

        Returns:
            The background stop task, or ``None`` when there was nothing to
            stop (or no event loop is running to stop it on).

        """
        transport, handle = self._current, self._handle
        self._current = None
        self._handle = None
        self._state = TransportState.IDLE
        if transport is None:
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            _logger.warning("reset() without a running event loop; %s transport was not stopped", transport.kind)
            return None
        task = loop.create_task(self._stop_quietly(transport, handle))
        self._reset_tasks.add(task)
        task.add_done_callback(self._reset_tasks.discard)
        return task

    async def _stop_quietly(self, transport: Transport, handle: ProtocolTransport | None) -> None:
        try:
            await transport.stop(handle)
        except Exception:
            _logger.warning("Error stopping %s transport during reset", transport.kind, exc_info=True)
