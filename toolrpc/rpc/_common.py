"""Loggers, errors, and small result types shared by the RPC core."""

from __future__ import annotations

import logging
from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Loggers
# ---------------------------------------------------------------------------

_logger = logging.getLogger("toolrpc.rpc")
_access_logger = logging.getLogger("toolrpc.access")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ToolRpcError(Exception):
    """Base class for every typed failure raised by toolrpc."""


class NotFoundError(ToolRpcError, LookupError):
    """No executor is registered under the requested procedure name.

    Attributes:
        procedure: The name that was looked up.

    """

    def __init__(self, procedure: str) -> None:
        """Initialize with the missing procedure name."""
        super().__init__(f"Procedure '{procedure}' not found")
        self.procedure = procedure


class ValidationError(ToolRpcError, ValueError):
    """One or more arguments were rejected before the handler ran.

    Attributes:
        procedure: The procedure whose arguments were rejected.
        errors: Every per-parameter failure message, in detection order.

    """

    def __init__(self, procedure: str, errors: tuple[str, ...] | list[str]) -> None:
        """Initialize with the procedure name and collected messages."""
        self.procedure = procedure
        self.errors = tuple(errors)
        super().__init__(f"Validation failed for '{procedure}': {'; '.join(self.errors)}")


class TransportError(ToolRpcError):
    """Base class for transport lifecycle failures."""


class UnsupportedTransportError(TransportError):
    """No factory is registered for the requested transport kind."""

    def __init__(self, kind: str, available: list[str] | tuple[str, ...] = ()) -> None:
        """Initialize with the unknown kind and the known ones."""
        self.kind = kind
        msg = f"Unsupported transport type: '{kind}'"
        if available:
            msg += f". Available types: {sorted(available)}"
        super().__init__(msg)


class TransportCreationError(TransportError):
    """A transport factory raised while constructing a transport."""

    def __init__(self, kind: str, cause: BaseException) -> None:
        """Initialize with the kind and the factory's exception."""
        self.kind = kind
        super().__init__(f"Failed to create {kind} transport: {cause}")


class TransportStartError(TransportError):
    """Binding a transport to the protocol runtime failed."""

    def __init__(self, kind: str, cause: BaseException) -> None:
        """Initialize with the kind and the underlying failure."""
        self.kind = kind
        super().__init__(f"Failed to start {kind} transport: {cause}")


class NoActiveTransportError(TransportError):
    """A start was requested with no current transport set."""

    def __init__(self) -> None:
        """Initialize with a fixed message."""
        super().__init__("No transport set. Create and set a transport first.")


class TransportBusyError(TransportError):
    """The current transport is starting or running and must be stopped first."""

    def __init__(self, kind: str, state: str) -> None:
        """Initialize with the kind and state of the blocking transport."""
        self.kind = kind
        self.state = state
        super().__init__(f"Transport '{kind}' is {state}; stop it before starting another")


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating an argument mapping against a procedure.

    Attributes:
        is_valid: ``True`` when ``errors`` is empty.
        errors: Every failure message collected, never just the first.

    """

    is_valid: bool
    errors: tuple[str, ...] = ()
