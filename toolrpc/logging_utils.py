# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Log record rendering for toolrpc.

Provides :class:`ToolrpcJsonFormatter`, a :class:`logging.Formatter`
subclass that serializes log records as single-line JSON objects.  Every
``extra`` field attached to a record (such as the ``procedure``,
``status`` and ``duration_ms`` fields on ``toolrpc.access`` records) is
included automatically.

This module is **not** auto-imported by ``toolrpc``; import it explicitly::

    from toolrpc.logging_utils import ToolrpcJsonFormatter

``configure_logging`` is the one-call setup the CLI uses.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import IO

__all__ = ["ToolrpcJsonFormatter", "configure_logging"]

# Attributes present on every LogRecord; whatever else is set on a record came from ``extra``.
_BUILTIN_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

# Keys the formatter writes itself; ``extra`` fields with these names are dropped.
_OWN_KEYS = frozenset({"timestamp", "level", "logger", "message", "exception", "stack_info"})


def _extra_fields(record: logging.LogRecord) -> dict[str, object]:
    skip = _BUILTIN_ATTRS | _OWN_KEYS
    return {key: value for key, value in vars(record).items() if key not in skip}


class ToolrpcJsonFormatter(logging.Formatter):
    """Render each record as one line of JSON.

    The ``timestamp`` (ISO 8601, UTC), ``level``, ``logger`` and ``message``
    keys come first and win over ``extra`` fields of the same name.
    Tracebacks are rendered under ``exception``; values JSON cannot encode
    are written as their ``str()``.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Serialize *record* to a JSON object string."""
        payload: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_extra_fields(record))
        if record.exc_info is not None and record.exc_info[1] is not None:
            payload["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack_info"] = self.formatStack(record.stack_info)
        return json.dumps(payload, default=str)


def configure_logging(*, level: int = logging.INFO, json_format: bool = False, stream: IO[str] | None = None) -> logging.Handler:
    """Attach one stream handler to the ``toolrpc`` logger.

    Args:
        level: Level for the ``toolrpc`` logger and the handler.
        json_format: Use :class:`ToolrpcJsonFormatter` instead of plain text.
        stream: Destination; ``sys.stderr`` when omitted.

    Returns:
        The installed handler, so callers can remove it again.

    """
    handler = logging.StreamHandler(stream)
    handler.setLevel(level)
    if json_format:
        handler.setFormatter(ToolrpcJsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    logger = logging.getLogger("toolrpc")
    logger.addHandler(handler)
    logger.setLevel(level)
    return handler
