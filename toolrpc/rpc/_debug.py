"""Debug logging infrastructure for dispatch and transport diagnostics.

Provides logger instances under the ``toolrpc.wire.*`` hierarchy and
formatting helpers for argument mappings.  Enabling
``logging.getLogger("toolrpc.wire").setLevel(logging.DEBUG)`` shows every
dispatched call, transport lifecycle step and HTTP request.

Formatting helpers return ``str`` and never log directly.  They are
meant to be called inside ``isEnabledFor`` guards so there is no
overhead when debug logging is disabled.

Separately, setting ``TOOLRPC_DISPATCH_DEBUG=1`` routes a structlog
console trace of each dispatch to stderr.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping
from typing import Any

import structlog

# ---------------------------------------------------------------------------
# Logger hierarchy: toolrpc.wire.*
# ---------------------------------------------------------------------------

wire_dispatch_logger = logging.getLogger("toolrpc.wire.dispatch")
"""Procedure lookup, validation and invocation."""

wire_transport_logger = logging.getLogger("toolrpc.wire.transport")
"""Transport lifecycle (create, start, stop)."""

wire_http_logger = logging.getLogger("toolrpc.wire.http")
"""HTTP listener requests / responses."""

# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

_MAX_VALUE_LEN = 80
"""Maximum repr length for individual values in fmt_args."""


def fmt_args(args: Mapping[str, Any] | None) -> str:
    """Format an argument mapping compactly.

    Returns:
        ``"{a=2, b='x'}"`` with long reprs truncated, or ``"{}"``.

    """
    if not args:
        return "{}"
    parts: list[str] = []
    for k, v in args.items():
        r = repr(v)
        if len(r) > _MAX_VALUE_LEN:
            r = r[:_MAX_VALUE_LEN] + "..."
        parts.append(f"{k}={r}")
    return "{" + ", ".join(parts) + "}"


# ---------------------------------------------------------------------------
# structlog dispatch trace - enable with TOOLRPC_DISPATCH_DEBUG=1
# ---------------------------------------------------------------------------

_DISPATCH_DEBUG = os.environ.get("TOOLRPC_DISPATCH_DEBUG", "").lower() in ("1", "true", "yes")
_dispatch_log: structlog.stdlib.BoundLogger | None = None


def _get_dispatch_log() -> structlog.stdlib.BoundLogger:
    """Get or create the dispatch trace logger, configured to write to stderr."""
    global _dispatch_log
    if _dispatch_log is None:
        structlog.configure(
            processors=[
                structlog.processors.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.dev.ConsoleRenderer(colors=False),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(0),
            logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        )
        _dispatch_log = structlog.get_logger().bind(component="dispatch")
    return _dispatch_log


def trace_dispatch(event: str, **fields: Any) -> None:
    """Emit a structlog trace line when ``TOOLRPC_DISPATCH_DEBUG`` is set."""
    if _DISPATCH_DEBUG:
        _get_dispatch_log().debug(event, **fields)
