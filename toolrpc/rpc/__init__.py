# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Schema-validated procedure dispatch with swappable transports.

Defining procedures
-------------------
Methods are marked on a :class:`MetadataRegistry`.  Each positional
parameter becomes one property of the procedure's JSON-Schema input; a
parameter marker may supply an explicit fragment, a primitive helper
(``string``, ``number``, ...) or a pydantic-compatible validation rule.
Unmarked parameters are inferred from their type hints.

Dispatch
--------
A :class:`Dispatcher` turns registered classes into a name-keyed table of
executors.  ``validate`` reports every argument problem at once;
``execute`` raises ``NotFoundError`` or ``ValidationError`` before the
handler runs and lets the handler's own exceptions through unchanged.

Transports
----------
A :class:`TransportManager` maps transport kinds to factories and owns
the single current transport::

    idle --start_current--> starting --> running --stop_current--> stopped
                               |
                               +-- failure --> idle (handle released)

A running transport must be stopped before another is set or started.
"""

from toolrpc.rpc._common import (
    NoActiveTransportError,
    NotFoundError,
    ToolRpcError,
    TransportBusyError,
    TransportCreationError,
    TransportError,
    TransportStartError,
    UnsupportedTransportError,
    ValidationError,
    ValidationResult,
)
from toolrpc.rpc._manager import ManagerStats, TransportFactory, TransportManager
from toolrpc.rpc._registry import (
    MetadataRegistry,
    ProcedureStub,
    array,
    boolean,
    enum,
    integer,
    number,
    object_,
    string,
)
from toolrpc.rpc._runtime import HttpProtocolTransport, ProtocolServer, ProtocolTransport, RequestHandler
from toolrpc.rpc._server import Dispatcher, DispatcherStats
from toolrpc.rpc._transport import (
    HttpDescriptor,
    HttpOptions,
    PipeDescriptor,
    PipeTransport,
    Transport,
    TransportDescriptor,
    TransportKind,
    TransportState,
    TransportStatus,
)
from toolrpc.rpc._types import (
    ParamConfig,
    ParameterDescriptor,
    ParameterSchema,
    ProcedureDescriptor,
    ProcedureExecutor,
    build_parameters,
    compile_parameter_schema,
)

__all__ = [
    "Dispatcher",
    "DispatcherStats",
    "HttpDescriptor",
    "HttpOptions",
    "HttpProtocolTransport",
    "ManagerStats",
    "MetadataRegistry",
    "NoActiveTransportError",
    "NotFoundError",
    "ParamConfig",
    "ParameterDescriptor",
    "ParameterSchema",
    "PipeDescriptor",
    "PipeTransport",
    "ProcedureDescriptor",
    "ProcedureExecutor",
    "ProcedureStub",
    "ProtocolServer",
    "ProtocolTransport",
    "RequestHandler",
    "ToolRpcError",
    "Transport",
    "TransportBusyError",
    "TransportCreationError",
    "TransportDescriptor",
    "TransportError",
    "TransportFactory",
    "TransportKind",
    "TransportManager",
    "TransportStartError",
    "TransportState",
    "TransportStatus",
    "UnsupportedTransportError",
    "ValidationError",
    "ValidationResult",
    "array",
    "boolean",
    "build_parameters",
    "compile_parameter_schema",
    "enum",
    "integer",
    "number",
    "object_",
    "string",
]
