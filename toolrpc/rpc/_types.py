"""Procedure descriptors and the parameter schema compiler.

Turns a marked method's signature plus its parameter markers into an
ordered tuple of :class:`ParameterDescriptor` and one normalized
:class:`ParameterSchema`.  Validation rules are ``pydantic.TypeAdapter``
instances; their JSON schema doubles as the advertised fragment.
"""

from __future__ import annotations

import copy
import inspect
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Literal, get_type_hints

from pydantic import PydanticSchemaGenerationError, PydanticUserError, TypeAdapter

from toolrpc.utils import JsonSchema, _infer_fragment, _is_optional_type

__all__ = [
    "NO_DEFAULT",
    "ParamConfig",
    "ParameterDescriptor",
    "ParameterSchema",
    "ProcedureDescriptor",
    "ProcedureExecutor",
    "build_parameters",
    "compile_parameter_schema",
]

NO_DEFAULT: Any = inspect.Parameter.empty
"""Sentinel for a parameter whose signature declares no default."""

_UNSUPPORTED_PARAM_KINDS: dict[inspect._ParameterKind, str] = {
    inspect.Parameter.KEYWORD_ONLY: "keyword-only",
    inspect.Parameter.VAR_KEYWORD: "**kwargs",
}

_FRAGMENT_TYPES: dict[str, Any] = {
    "string": str,
    "number": float,
    "integer": int,
    "boolean": bool,
    "object": dict[str, Any],
}


# ---------------------------------------------------------------------------
# Parameter configuration (what a marker records)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ParamConfig:
    """Metadata attached to one positional parameter.

    Attributes:
        schema: Explicit JSON-Schema fragment.  Wins over anything
            derived from ``rule`` or the type hint.
        rule: Validation rule: a type pydantic can build a validator for,
            or a ready ``TypeAdapter``.
        required: Explicit required flag; ``None`` derives it.
        description: Added to the fragment as ``description``.
        name: Overrides the signature name (used for ``*args`` slots).

    """

    schema: Mapping[str, Any] | None = None
    rule: Any = None
    required: bool | None = None
    description: str | None = None
    name: str | None = None


def coerce_config(config: Any) -> ParamConfig:
    """Normalize any accepted marker config into a :class:`ParamConfig`."""
    if config is None:
        return ParamConfig()
    if isinstance(config, ParamConfig):
        return config
    if isinstance(config, Mapping):
        return ParamConfig(schema=dict(config))
    return ParamConfig(rule=config)


# ---------------------------------------------------------------------------
# Descriptors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ParameterDescriptor:
    """One formal parameter of a procedure.

    Attributes:
        index: Zero-based position in the handler call (``self`` excluded).
        name: Argument key callers use.
        required: Whether a non-null value must be supplied.
        schema: JSON-Schema fragment advertised for this parameter.
        rule: Validator, or ``None`` for presence-only checking.
        default: Value passed when an optional argument is omitted.
        defs: Shared definitions the fragment refers to with
            ``#/$defs/...``; hoisted to the root of the procedure schema.

    """

    index: int
    name: str
    required: bool
    schema: Mapping[str, Any]
    rule: TypeAdapter[Any] | None = field(default=None, repr=False, compare=False)
    default: Any = field(default=NO_DEFAULT, repr=False, compare=False)
    defs: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)


@dataclass(frozen=True)
class ParameterSchema:
    """Object schema describing every parameter of one procedure."""

    properties: Mapping[str, Mapping[str, Any]]
    required: tuple[str, ...] = ()
    type: str = "object"
    defs: Mapping[str, Any] = field(default_factory=dict)

    def to_json(self) -> JsonSchema:
        """Return a plain, independently mutable JSON-Schema dict."""
        schema: JsonSchema = {
            "type": self.type,
            "properties": copy.deepcopy({k: dict(v) for k, v in self.properties.items()}),
            "required": list(self.required),
        }
        if self.defs:
            schema["$defs"] = copy.deepcopy(dict(self.defs))
        return schema


@dataclass(frozen=True)
class ProcedureDescriptor:
    """Public view of a registered procedure."""

    name: str
    description: str
    parameters: ParameterSchema

    def to_json(self) -> dict[str, Any]:
        """Return the ``{name, description, parameters}`` view."""
        return {"name": self.name, "description": self.description, "parameters": self.parameters.to_json()}


@dataclass(frozen=True)
class ProcedureExecutor:
    """Everything the dispatcher needs to validate and run one procedure.

    Attributes:
        descriptor: Public name, description and schema.
        handler: Bound method invoked with positional arguments.
        parameters: Descriptors ordered by ``index``.
        source: Name of the class the handler came from.

    """

    descriptor: ProcedureDescriptor
    handler: Callable[..., Any] = field(repr=False)
    parameters: tuple[ParameterDescriptor, ...] = ()
    source: str = ""

    @property
    def validators(self) -> Mapping[str, TypeAdapter[Any]]:
        """Parameter name to validation rule, for parameters that have one."""
        return MappingProxyType({p.name: p.rule for p in self.parameters if p.rule is not None})


# ---------------------------------------------------------------------------
# Schema compiler
# ---------------------------------------------------------------------------


def compile_parameter_schema(descriptors: Sequence[ParameterDescriptor]) -> ParameterSchema:
    """Merge parameter descriptors into one object schema.

    Descriptors are visited in ``index`` order, so ``properties`` follows
    declaration order.  Two descriptors resolving to the same name
    overwrite each other; the compiler does not detect this.
    """
    properties: dict[str, Mapping[str, Any]] = {}
    required: list[str] = []
    defs: dict[str, Any] = {}
    for descriptor in sorted(descriptors, key=lambda d: d.index):
        properties[descriptor.name] = MappingProxyType(dict(descriptor.schema))
        defs.update(descriptor.defs)
        if descriptor.required and descriptor.name not in required:
            required.append(descriptor.name)
    return ParameterSchema(
        properties=MappingProxyType(properties), required=tuple(required), defs=MappingProxyType(defs)
    )


def _fragment_rule(fragment: Mapping[str, Any]) -> Any:
    """Derive a validation rule from a bare JSON-Schema fragment, or ``None``."""
    if "enum" in fragment:
        return Literal[tuple(fragment["enum"])]
    schema_type = fragment.get("type")
    if schema_type == "array":
        items = fragment.get("items")
        item_rule = _fragment_rule(items) if isinstance(items, Mapping) else None
        return list[item_rule] if item_rule is not None else list[Any]
    return _FRAGMENT_TYPES.get(schema_type) if isinstance(schema_type, str) else None


def _adapter(rule: Any) -> TypeAdapter[Any]:
    if isinstance(rule, TypeAdapter):
        return rule
    return TypeAdapter(rule)


def _try_adapter(hint: Any) -> TypeAdapter[Any] | None:
    """Build a validator for an inferred hint, or ``None`` if pydantic cannot."""
    try:
        return TypeAdapter(hint)
    except (PydanticSchemaGenerationError, PydanticUserError):
        return None


def _resolve_parameter(
    index: int,
    name: str,
    hint: Any,
    default: Any,
    config: ParamConfig | None,
) -> ParameterDescriptor:
    """Resolve fragment, rule and required flag for one parameter."""
    fragment: JsonSchema | None = None
    rule: TypeAdapter[Any] | None = None
    optional_rule = False

    if config is not None and config.rule is not None:
        rule_type = config.rule
        if not isinstance(rule_type, TypeAdapter):
            rule_type, optional_rule = _is_optional_type(rule_type)
        rule = _adapter(rule_type)
        fragment = rule.json_schema()

    if config is not None and config.schema is not None:
        fragment = dict(config.schema)
        if rule is None:
            derived = _fragment_rule(fragment)
            rule = TypeAdapter(derived) if derived is not None else None

    hint_inner, optional_hint = _is_optional_type(hint)
    if fragment is None:
        inferred = _infer_fragment(hint_inner) if hint is not NO_DEFAULT else None
        if inferred is None:
            fragment = {"type": "string"}
        else:
            fragment = inferred
            rule = _try_adapter(hint_inner)

    defs = fragment.pop("$defs", {})
    if config is not None and config.description:
        fragment["description"] = config.description

    if config is not None and config.required is not None:
        required = config.required
    else:
        required = not (optional_rule or optional_hint or default is not NO_DEFAULT)

    return ParameterDescriptor(
        index=index,
        name=name,
        required=required,
        schema=MappingProxyType(fragment),
        rule=rule,
        default=default,
        defs=MappingProxyType(dict(defs)),
    )


def build_parameters(func: Callable[..., Any], markers: Mapping[int, ParamConfig]) -> tuple[ParameterDescriptor, ...]:
    """Build ordered parameter descriptors for a marked method.

    Every positional parameter of the signature (``self`` excluded)
    becomes a descriptor.  Markers beyond the fixed positional
    parameters address ``*args`` slots and are named ``arg{index}``
    unless the marker supplies a name.

    Raises:
        TypeError: Listing every unsupported parameter or stray marker.

    """
    qualname = getattr(func, "__qualname__", repr(func))
    try:
        hints = get_type_hints(func, include_extras=True)
    except (NameError, AttributeError) as exc:
        raise TypeError(f"Failed to resolve type hints for {qualname}(): {exc}") from exc

    sig = inspect.signature(func)
    errors: list[str] = []
    positional: list[inspect.Parameter] = []
    var_positional: inspect.Parameter | None = None
    for pname, param in sig.parameters.items():
        if pname == "self":
            continue
        label = _UNSUPPORTED_PARAM_KINDS.get(param.kind)
        if label is not None:
            errors.append(f"  - '{pname}' is {label}")
        elif param.kind is inspect.Parameter.VAR_POSITIONAL:
            var_positional = param
        else:
            positional.append(param)

    count = max([len(positional), *(i + 1 for i in markers)])
    descriptors: list[ParameterDescriptor] = []
    for index in range(count):
        config = markers.get(index)
        if index < len(positional):
            param = positional[index]
            name, hint, default = param.name, hints.get(param.name, NO_DEFAULT), param.default
        elif var_positional is not None:
            name, hint, default = f"arg{index}", hints.get(var_positional.name, NO_DEFAULT), NO_DEFAULT
        else:
            if config is not None:
                errors.append(f"  - marker at index {index} has no matching parameter")
            continue
        if config is not None and config.name:
            name = config.name
        try:
            descriptors.append(_resolve_parameter(index, name, hint, default, config))
        except (PydanticSchemaGenerationError, PydanticUserError) as exc:
            errors.append(f"  - '{name}' has an unusable validation rule: {exc}")

    if errors:
        detail = "\n".join(errors)
        raise TypeError(f"{qualname}() has parameters that cannot be exposed as a procedure:\n{detail}")
    return tuple(descriptors)
