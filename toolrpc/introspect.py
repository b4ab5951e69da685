"""Introspection of a dispatcher's procedure table.

``describe()`` returns a :class:`ServiceDescription` built from the
dispatcher's executors: one :class:`ProcedureDescription` per procedure
with its input schema, source class and a compact signature.  The CLI's
``describe`` command prints it as text or JSON.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from toolrpc.rpc import Dispatcher, ProcedureExecutor

__all__ = [
    "ProcedureDescription",
    "ServiceDescription",
    "describe",
]


def _type_name(fragment: Mapping[str, Any]) -> str:
    """Short human-readable name for a schema fragment.

    Examples: ``number``, ``array[string]``, ``'a' | 'b'``.
    """
    if "enum" in fragment:
        return " | ".join(repr(v) for v in fragment["enum"])
    if isinstance(fragment.get("$ref"), str):
        return fragment["$ref"].rsplit("/", 1)[-1]
    schema_type = fragment.get("type")
    if schema_type == "array":
        items = fragment.get("items")
        return f"array[{_type_name(items)}]" if isinstance(items, Mapping) else "array"
    if isinstance(schema_type, str):
        return schema_type
    if isinstance(schema_type, list):
        return " | ".join(str(t) for t in schema_type)
    if "anyOf" in fragment:
        return " | ".join(_type_name(f) for f in fragment["anyOf"] if isinstance(f, Mapping))
    return "any"


@dataclass(frozen=True)
class ProcedureDescription:
    """Description of one procedure.

    Attributes:
        name: Procedure name.
        description: Human-readable description.
        source: Class the handler was registered from.
        parameters: The procedure's JSON-Schema input.
        param_types: Parameter name to short type name, in order.
        required: Names of required parameters.

    """

    name: str
    description: str
    source: str
    parameters: Mapping[str, Any] = field(default_factory=dict)
    param_types: Mapping[str, str] = field(default_factory=dict)
    required: tuple[str, ...] = ()

    @property
    def signature(self) -> str:
        """Compact signature, optional parameters marked with ``?``."""
        params = ", ".join(
            f"{name}{'' if name in self.required else '?'}: {type_name}" for name, type_name in self.param_types.items()
        )
        return f"{self.name}({params})"

    def to_json(self) -> dict[str, Any]:
        """Return a JSON-serializable dict."""
        return {
            "name": self.name,
            "description": self.description,
            "source": self.source,
            "parameters": dict(self.parameters),
        }


@dataclass(frozen=True)
class ServiceDescription:
    """Description of every procedure a dispatcher serves."""

    procedures: Mapping[str, ProcedureDescription] = field(default_factory=dict)

    def to_json(self) -> dict[str, Any]:
        """Return a JSON-serializable dict keyed by procedure name."""
        return {"procedures": {name: pd.to_json() for name, pd in sorted(self.procedures.items())}}

    def __str__(self) -> str:
        """Return a human-readable summary of the service."""
        lines: list[str] = [f"Procedures: {len(self.procedures)}", ""]
        for _, pd in sorted(self.procedures.items()):
            lines.append(f"  {pd.signature}")
            lines.append(f"    source: {pd.source}")
            if pd.description:
                lines.append(f"    doc: {pd.description.strip()}")
            lines.append("")
        return "\n".join(lines)


def _describe_executor(executor: ProcedureExecutor) -> ProcedureDescription:
    schema = executor.descriptor.parameters
    return ProcedureDescription(
        name=executor.descriptor.name,
        description=executor.descriptor.description,
        source=executor.source,
        parameters=schema.to_json(),
        param_types=MappingProxyType({name: _type_name(fragment) for name, fragment in schema.properties.items()}),
        required=schema.required,
    )


def describe(dispatcher: Dispatcher) -> ServiceDescription:
    """Describe every procedure registered on *dispatcher*."""
    return ServiceDescription(
        procedures=MappingProxyType(
            {name: _describe_executor(executor) for name, executor in dispatcher.executors().items()}
        )
    )
