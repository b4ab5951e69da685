"""Shared logger, error bodies and exception for the HTTP transport layer."""

from __future__ import annotations

import logging
from http import HTTPStatus

import falcon
import falcon.asgi

_logger = logging.getLogger("toolrpc.http")

INVALID_JSON = "Invalid JSON"
TRANSPORT_NOT_INITIALIZED = "Transport not initialized"
INTERNAL_SERVER_ERROR = "Internal server error"


class _HttpTransportError(Exception):
    """Internal exception for listener-level errors with status codes."""

    __slots__ = ("error", "message", "status_code")

    def __init__(self, error: str, message: str, *, status_code: HTTPStatus) -> None:
        super().__init__(message)
        self.error = error
        self.message = message
        self.status_code = status_code


def _set_error_response(resp: falcon.asgi.Response, error: str, message: str, *, status_code: HTTPStatus) -> None:
    """Write a ``{error, message}`` JSON body with *status_code*."""
    resp.status = status_code
    resp.content_type = falcon.MEDIA_JSON
    resp.media = {"error": error, "message": message}


def _set_empty_response(resp: falcon.asgi.Response, *, status_code: HTTPStatus) -> None:
    """Write a bodiless response with *status_code*."""
    resp.status = status_code
    resp.data = b""


def _response_committed(resp: falcon.asgi.Response) -> bool:
    """Whether the runtime already handed the response a streaming body.

    Once a stream or SSE source is attached the status line and headers
    belong to that stream, so an error must not replace them.
    """
    return resp.stream is not None or getattr(resp, "sse", None) is not None
