"""Transport descriptors, the adapter lifecycle interface and the pipe adapter."""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from io import IOBase
from types import MappingProxyType
from typing import Any, ClassVar, Protocol, runtime_checkable

from toolrpc.rpc._common import _logger
from toolrpc.rpc._debug import wire_transport_logger
from toolrpc.rpc._runtime import ProtocolServer, ProtocolTransport

__all__ = [
    "HttpDescriptor",
    "HttpOptions",
    "PipeDescriptor",
    "PipeTransport",
    "Transport",
    "TransportDescriptor",
    "TransportKind",
    "TransportState",
    "TransportStatus",
]


class TransportKind(StrEnum):
    """Built-in transport kinds."""

    PIPE = "pipe"
    HTTP = "http"


class TransportState(StrEnum):
    """Lifecycle state of the manager's current transport."""

    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


# ---------------------------------------------------------------------------
# Descriptors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HttpOptions:
    """Listener settings for the HTTP transport.

    Attributes:
        port: TCP port; ``0`` picks an ephemeral port.
        host: Interface to bind.
        path: The single path that accepts ``POST`` requests.
        json_response: Ask the runtime for immediate JSON responses
            instead of a streamed reply.

    """

    port: int = 8000
    host: str = "127.0.0.1"
    path: str = "/mcp"
    json_response: bool = True

    def __post_init__(self) -> None:
        """Validate field values."""
        if not 0 <= self.port <= 65535:
            raise ValueError(f"port must be in 0..65535, got {self.port}")
        if not self.path.startswith("/"):
            raise ValueError(f"path must start with '/', got {self.path!r}")

    def to_json(self) -> dict[str, Any]:
        """Return the options as a plain dict."""
        return {"port": self.port, "host": self.host, "path": self.path, "json_response": self.json_response}


@dataclass(frozen=True)
class TransportDescriptor:
    """Request for a transport; ``kind`` selects the registered factory.

    Use :class:`PipeDescriptor` or :class:`HttpDescriptor` for the
    built-in kinds; custom kinds pass their own settings in ``options``.
    """

    kind: str
    options: Any = None


@dataclass(frozen=True)
class PipeDescriptor(TransportDescriptor):
    """Descriptor for the stdin/stdout transport."""

    kind: str = TransportKind.PIPE


@dataclass(frozen=True)
class HttpDescriptor(TransportDescriptor):
    """Descriptor for the HTTP transport."""

    kind: str = TransportKind.HTTP
    options: HttpOptions = field(default_factory=HttpOptions)


# ---------------------------------------------------------------------------
# Adapter lifecycle interface
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransportStatus:
    """Status report of one transport adapter."""

    kind: str
    is_running: bool
    details: Mapping[str, Any] = field(default_factory=dict)


@runtime_checkable
class Transport(Protocol):
    """Uniform lifecycle every transport adapter implements.

    ``stop`` is best-effort: internal failures are logged, never raised.
    """

    @property
    def kind(self) -> str:
        """Transport kind this adapter implements."""
        ...

    async def create_protocol_handle(self, server: ProtocolServer) -> ProtocolTransport:
        """Ask the runtime for the transport handle this adapter drives."""
        ...

    async def start(self, server: ProtocolServer, handle: ProtocolTransport) -> None:
        """Bind *handle* to *server* and begin serving."""
        ...

    async def stop(self, handle: ProtocolTransport | None) -> None:
        """Release *handle* and any adapter resources."""
        ...

    def status(self) -> TransportStatus:
        """Report kind, running flag and adapter details."""
        ...


# ---------------------------------------------------------------------------
# Pipe adapter
# ---------------------------------------------------------------------------


class PipeTransport:
    """Adapter serving the runtime over the process's stdin/stdout.

    The runtime's stream transport is given a buffered binary reader over
    stdin and an unbuffered binary writer over stdout.  Both use
    ``closefd=False`` so the original descriptors stay open after stop.
    Tests inject their own streams.
    """

    __slots__ = ("_reader", "_running", "_writer")

    description: ClassVar[str] = "Standard input/output stream transport"

    def __init__(self, reader: IOBase | None = None, writer: IOBase | None = None) -> None:
        """Initialize, optionally with explicit streams instead of stdio."""
        self._reader = reader
        self._writer = writer
        self._running = False

    @property
    def kind(self) -> str:
        """Always ``"pipe"``."""
        return TransportKind.PIPE

    @property
    def is_running(self) -> bool:
        """Whether ``start`` succeeded and ``stop`` has not run since."""
        return self._running

    def _streams(self) -> tuple[IOBase, IOBase]:
        if self._reader is not None and self._writer is not None:
            return self._reader, self._writer
        if sys.stdin.isatty() or sys.stdout.isatty():
            _logger.warning(
                "stdin/stdout is a terminal; this process expects protocol messages on its standard streams "
                "and is meant to be launched by a client"
            )
        reader = self._reader or os.fdopen(sys.stdin.fileno(), "rb", closefd=False)
        writer = self._writer or os.fdopen(sys.stdout.fileno(), "wb", buffering=0, closefd=False)
        return reader, writer

    async def create_protocol_handle(self, server: ProtocolServer) -> ProtocolTransport:
        """Wrap the standard streams in the runtime's stream transport."""
        reader, writer = self._streams()
        handle = server.stream_transport(reader, writer)
        if wire_transport_logger.isEnabledFor(logging.DEBUG):
            wire_transport_logger.debug("pipe: created handle %s", type(handle).__name__)
        return handle

    async def start(self, server: ProtocolServer, handle: ProtocolTransport) -> None:
        """Connect *server* to *handle*.

        Raises:
            ConnectionError: The runtime refused the connection.

        """
        try:
            await server.connect(handle)
        except Exception as exc:
            raise ConnectionError(f"Failed to connect stdio transport: {exc}") from exc
        self._running = True
        _logger.info("Pipe transport started")

    async def stop(self, handle: ProtocolTransport | None) -> None:
        """Close *handle*; failures are logged and swallowed."""
        try:
            if handle is not None:
                await handle.close()
        except Exception:
            _logger.warning("Error closing pipe transport", exc_info=True)
        finally:
            self._running = False
        if wire_transport_logger.isEnabledFor(logging.DEBUG):
            wire_transport_logger.debug("pipe: stopped")

    def status(self) -> TransportStatus:
        """Report status; the pipe has no network details."""
        return TransportStatus(
            kind=self.kind,
            is_running=self._running,
            details=MappingProxyType({"transport_type": TransportKind.PIPE.value, "description": self.description}),
        )
