# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Schema-validated tool dispatch over swappable pipe and HTTP transports."""

import logging

from toolrpc.config import ServeConfig
from toolrpc.introspect import ProcedureDescription, ServiceDescription, describe
from toolrpc.rpc import (
    Dispatcher,
    DispatcherStats,
    HttpDescriptor,
    HttpOptions,
    ManagerStats,
    MetadataRegistry,
    NoActiveTransportError,
    NotFoundError,
    ParamConfig,
    PipeDescriptor,
    PipeTransport,
    ProtocolServer,
    ProtocolTransport,
    ToolRpcError,
    Transport,
    TransportBusyError,
    TransportCreationError,
    TransportDescriptor,
    TransportError,
    TransportKind,
    TransportManager,
    TransportStartError,
    TransportState,
    TransportStatus,
    UnsupportedTransportError,
    ValidationError,
    ValidationResult,
    array,
    boolean,
    enum,
    integer,
    number,
    object_,
    string,
)
from toolrpc.server import ToolServer
from toolrpc.utils import infer_type_schema

__all__ = [
    "Dispatcher",
    "DispatcherStats",
    "HttpDescriptor",
    "HttpOptions",
    "ManagerStats",
    "MetadataRegistry",
    "NoActiveTransportError",
    "NotFoundError",
    "ParamConfig",
    "PipeDescriptor",
    "PipeTransport",
    "ProcedureDescription",
    "ProtocolServer",
    "ProtocolTransport",
    "ServeConfig",
    "ServiceDescription",
    "ToolRpcError",
    "ToolServer",
    "Transport",
    "TransportBusyError",
    "TransportCreationError",
    "TransportDescriptor",
    "TransportError",
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
    "describe",
    "enum",
    "infer_type_schema",
    "integer",
    "number",
    "object_",
    "string",
]

logging.getLogger("toolrpc").addHandler(logging.NullHandler())
