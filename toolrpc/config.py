"""Serving configuration, optionally read from ``TOOLRPC_*`` environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from toolrpc.rpc import HttpDescriptor, HttpOptions, PipeDescriptor, TransportDescriptor, TransportKind

__all__ = ["ENV_PREFIX", "ServeConfig"]

ENV_PREFIX = "TOOLRPC_"

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off"})


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean (1/0, true/false, yes/no, on/off), got {raw!r}")


@dataclass(frozen=True)
class ServeConfig:
    """How the hosting server exposes its procedures.

    Attributes:
        transport: ``"pipe"`` or ``"http"``.
        port: HTTP port.
        host: HTTP bind address.
        path: HTTP endpoint path.
        json_response: Ask the runtime for immediate JSON responses.

    """

    transport: str = TransportKind.PIPE
    port: int = 8000
    host: str = "127.0.0.1"
    path: str = "/mcp"
    json_response: bool = True

    def __post_init__(self) -> None:
        """Validate the transport kind and the HTTP settings."""
        if self.transport not in (TransportKind.PIPE, TransportKind.HTTP):
            raise ValueError(f"transport must be 'pipe' or 'http', got {self.transport!r}")
        self.http_options()

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ServeConfig:
        """Build a config from ``TOOLRPC_TRANSPORT``, ``_PORT``, ``_HOST``, ``_PATH`` and ``_JSON_RESPONSE``.

        Unset variables keep their defaults.

        Raises:
            ValueError: A variable is set to an unusable value.

        """
        env = os.environ if environ is None else environ
        kwargs: dict[str, object] = {}
        if (raw := env.get(f"{ENV_PREFIX}TRANSPORT")) is not None:
            kwargs["transport"] = raw.strip().lower()
        if (raw := env.get(f"{ENV_PREFIX}PORT")) is not None:
            try:
                kwargs["port"] = int(raw)
            except ValueError:
                raise ValueError(f"{ENV_PREFIX}PORT must be an integer, got {raw!r}") from None
        if (raw := env.get(f"{ENV_PREFIX}HOST")) is not None:
            kwargs["host"] = raw
        if (raw := env.get(f"{ENV_PREFIX}PATH")) is not None:
            kwargs["path"] = raw
        if (raw := env.get(f"{ENV_PREFIX}JSON_RESPONSE")) is not None:
            kwargs["json_response"] = _parse_bool(f"{ENV_PREFIX}JSON_RESPONSE", raw)
        for field_name, value in kwargs.items():
            # Each value alone against the defaults.
            try:
                cls(**{field_name: value})  # type: ignore[arg-type]
            except ValueError as exc:
                raise ValueError(f"{ENV_PREFIX}{field_name.upper()} is invalid: {exc}") from exc
        return cls(**kwargs)  # type: ignore[arg-type]

    def http_options(self) -> HttpOptions:
        """Return the HTTP listener options this config describes."""
        return HttpOptions(port=self.port, host=self.host, path=self.path, json_response=self.json_response)

    def to_descriptor(self) -> TransportDescriptor:
        """Return the transport descriptor for the configured kind."""
        if self.transport == TransportKind.HTTP:
            return HttpDescriptor(options=self.http_options())
        return PipeDescriptor()
