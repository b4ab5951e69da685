"""Type-hint helpers shared by the schema compiler and the CLI."""

from __future__ import annotations

from enum import Enum
from types import UnionType
from typing import Annotated, Any, Literal, Union, get_args, get_origin

__all__ = [
    "JsonSchema",
    "infer_type_schema",
]

type JsonSchema = dict[str, Any]
"""A JSON-Schema fragment (one parameter's entry under ``properties``)."""

_DEFAULT_SCHEMA_TYPE = "string"

_PRIMITIVE_SCHEMA_TYPES: dict[type, str] = {
    bool: "boolean",
    int: "integer",
    float: "number",
    str: "string",
    dict: "object",
    list: "array",
}


def _is_optional_type(python_type: Any) -> tuple[Any, bool]:
    """Check if a type is Optional (X | None) and extract the inner type.

    Args:
        python_type: The type annotation to check.

    Returns:
        Tuple of (inner_type, is_nullable). If nullable, inner_type is the
        non-None type. If not nullable, inner_type is the original type.

    """
    origin = get_origin(python_type)
    args = get_args(python_type)

    # Handle X | None (UnionType) or Optional[X] (Union[X, None])
    if origin is UnionType or origin is Union:
        non_none_types = [t for t in args if t is not type(None)]
        if len(non_none_types) == 1 and len(args) == 2:
            return non_none_types[0], True

    return python_type, False


def _literal_schema(values: tuple[Any, ...] | list[Any]) -> JsonSchema:
    """Build an ``enum`` fragment, typed when every value shares one JSON type."""
    schema: JsonSchema = {"enum": list(values)}
    kinds = {_PRIMITIVE_SCHEMA_TYPES.get(type(v)) for v in values}
    if len(kinds) == 1 and None not in kinds:
        schema = {"type": kinds.pop(), **schema}
    return schema


def _infer_fragment(python_type: Any) -> JsonSchema | None:
    """Infer a fragment for a recognised hint, or ``None`` when unrecognised."""
    inner_type, _ = _is_optional_type(python_type)
    if inner_type is not python_type:
        return _infer_fragment(inner_type)

    if get_origin(python_type) is Annotated:
        return _infer_fragment(get_args(python_type)[0])

    # NewType - unwrap to underlying type
    if hasattr(python_type, "__supertype__"):
        return _infer_fragment(python_type.__supertype__)

    if isinstance(python_type, type) and issubclass(python_type, Enum):
        return _literal_schema([member.value for member in python_type])

    origin = get_origin(python_type)
    args = get_args(python_type)

    if origin is Literal:
        return _literal_schema(args)

    if origin is list or python_type is list:
        items = _infer_fragment(args[0]) if args else None
        return {"type": "array", "items": items or {"type": _DEFAULT_SCHEMA_TYPE}}

    if origin is dict:
        return {"type": "object"}

    if isinstance(python_type, type):
        schema_type = _PRIMITIVE_SCHEMA_TYPES.get(python_type)
        if schema_type is not None:
            return {"type": schema_type}
    return None


def infer_type_schema(python_type: Any) -> JsonSchema:
    """Infer a JSON-Schema fragment from a Python type annotation.

    Supports:
    - Basic types: str, int, float, bool, dict, list
    - Generic types: list[T] (items inferred from T), dict[K, V]
    - Literal and Enum: ``enum`` of the allowed values
    - Optional, Annotated and NewType: unwrapped to the underlying type

    Anything else (including a missing annotation) maps to
    ``{"type": "string"}``.

    Args:
        python_type: Python type annotation.

    Returns:
        A new fragment dict owned by the caller.

    """
    return _infer_fragment(python_type) or {"type": _DEFAULT_SCHEMA_TYPE}
