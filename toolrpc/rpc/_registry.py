"""Metadata registry: marks methods as procedures and records parameter markers.

A :class:`MetadataRegistry` is a plain object, so independent registries
(one per service module, one per test) never see each other's entries::

    tools = MetadataRegistry()

    class Calculator:
        @tools.procedure("Add two numbers")
        @tools.param("a", number("First addend"))
        @tools.param("b", number("Second addend"))
        def add(self, a: float, b: float) -> float:
            return a + b

Decorators run inside the class body before the class exists, so entries
are keyed by the function object and resolved against a class later by
walking its MRO.  Parameter markers are keyed by index, which makes the
bottom-up evaluation order of stacked decorators irrelevant.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Literal

from toolrpc.rpc._common import _logger
from toolrpc.rpc._types import ParamConfig, coerce_config

__all__ = [
    "MetadataRegistry",
    "ProcedureStub",
    "array",
    "boolean",
    "enum",
    "integer",
    "number",
    "object_",
    "string",
]


# ---------------------------------------------------------------------------
# Primitive parameter helpers
# ---------------------------------------------------------------------------


def string(description: str | None = None, *, required: bool | None = None) -> ParamConfig:
    """String parameter."""
    return ParamConfig(schema={"type": "string"}, rule=str, required=required, description=description)


def number(description: str | None = None, *, required: bool | None = None) -> ParamConfig:
    """Floating point parameter (integers are accepted)."""
    return ParamConfig(schema={"type": "number"}, rule=float, required=required, description=description)


def integer(description: str | None = None, *, required: bool | None = None) -> ParamConfig:
    """Integer parameter."""
    return ParamConfig(schema={"type": "integer"}, rule=int, required=required, description=description)


def boolean(description: str | None = None, *, required: bool | None = None) -> ParamConfig:
    """Boolean parameter."""
    return ParamConfig(schema={"type": "boolean"}, rule=bool, required=required, description=description)


def object_(description: str | None = None, *, required: bool | None = None) -> ParamConfig:
    """JSON object parameter, passed to the handler as a ``dict``."""
    return ParamConfig(schema={"type": "object"}, rule=dict[str, Any], required=required, description=description)


def array(
    items: ParamConfig | Mapping[str, Any] | None = None,
    description: str | None = None,
    *,
    required: bool | None = None,
) -> ParamConfig:
    """Array parameter; items default to strings."""
    item_config = coerce_config(items) if items is not None else string()
    item_schema = dict(item_config.schema) if item_config.schema is not None else {"type": "string"}
    item_rule = item_config.rule if item_config.rule is not None else Any
    return ParamConfig(
        schema={"type": "array", "items": item_schema},
        rule=list[item_rule],
        required=required,
        description=description,
    )


def enum(values: Sequence[Any], description: str | None = None, *, required: bool | None = None) -> ParamConfig:
    """Parameter restricted to a fixed set of values."""
    if not values:
        raise ValueError("enum() requires at least one value")
    choices = tuple(values)
    schema: dict[str, Any] = {"enum": list(choices)}
    if all(isinstance(v, str) for v in choices):
        schema = {"type": "string", **schema}
    return ParamConfig(schema=schema, rule=Literal[choices], required=required, description=description)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


@dataclass
class _Entry:
    """Mutable per-function record; ``marked`` is False until a procedure marker arrives."""

    marked: bool = False
    name: str | None = None
    description: str = ""
    params: dict[int, ParamConfig] = field(default_factory=dict)


@dataclass(frozen=True)
class ProcedureStub:
    """A marked method as seen from one class.

    Attributes:
        method_name: Attribute name on the class.
        name: Procedure name callers use.
        description: Human-readable description.
        function: The undecorated function object.
        params: Parameter markers keyed by index.

    """

    method_name: str
    name: str
    description: str
    function: Callable[..., Any] = field(repr=False)
    params: Mapping[int, ParamConfig] = field(default_factory=dict, repr=False)


def _underlying(attr: Any) -> Any:
    """Return the plain function behind staticmethod/classmethod wrappers."""
    if isinstance(attr, (staticmethod, classmethod)):
        return attr.__func__
    return attr


def _positional_names(func: Callable[..., Any]) -> list[str]:
    """Positional parameter names of *func*, ``self`` excluded."""
    return [
        name
        for name, p in inspect.signature(func).parameters.items()
        if name != "self" and p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    ]


class MetadataRegistry:
    """Collects procedure and parameter markers for service classes."""

    __slots__ = ("_entries",)

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._entries: dict[Callable[..., Any], _Entry] = {}

    def __len__(self) -> int:
        """Number of functions carrying a procedure marker."""
        return sum(1 for e in self._entries.values() if e.marked)

    def _entry(self, func: Callable[..., Any]) -> _Entry:
        return self._entries.setdefault(func, _Entry())

    def _function(self, cls: type, method_name: str) -> Callable[..., Any]:
        try:
            attr = inspect.getattr_static(cls, method_name)
        except AttributeError:
            raise AttributeError(f"{cls.__name__} has no method '{method_name}'") from None
        func = _underlying(attr)
        if not inspect.isfunction(func):
            raise TypeError(f"{cls.__name__}.{method_name} is not callable")
        return func

    # -- programmatic marking ------------------------------------------------

    def mark_procedure(
        self,
        cls: type,
        method_name: str,
        description: str = "",
        *,
        name: str | None = None,
    ) -> None:
        """Mark ``cls.method_name`` as a procedure; marking twice overwrites."""
        self._mark(self._function(cls, method_name), description, name)

    def mark_parameter(self, cls: type, method_name: str, index: int, config: Any = None) -> None:
        """Record a parameter marker at zero-based *index* (``self`` excluded).

        *config* may be a JSON-Schema fragment ``dict``, a
        :class:`ParamConfig` from one of the helpers, or a validation rule.
        """
        if index < 0:
            raise ValueError(f"Parameter index must be non-negative, got {index}")
        self._entry(self._function(cls, method_name)).params[index] = coerce_config(config)

    def _mark(self, func: Callable[..., Any], description: str, name: str | None) -> None:
        entry = self._entry(func)
        if not description:
            doc = inspect.getdoc(func) or ""
            description = doc.split("\n\n", 1)[0].replace("\n", " ")
        entry.marked = True
        entry.name = name
        entry.description = description

    # -- decorator forms -----------------------------------------------------

    def procedure[F: Callable[..., Any]](self, description: str = "", *, name: str | None = None) -> Callable[[F], F]:
        """Mark the decorated method as a procedure.

        Args:
            description: Shown to callers; defaults to the docstring summary.
            name: Procedure name; defaults to the method name.

        """

        def decorate(func: F) -> F:
            self._mark(_underlying(func), description, name)
            return func

        return decorate

    def param[F: Callable[..., Any]](
        self,
        target: str | int,
        config: Any = None,
        *,
        required: bool | None = None,
        description: str | None = None,
        name: str | None = None,
    ) -> Callable[[F], F]:
        """Attach a parameter marker to the decorated method.

        Args:
            target: Parameter name, or zero-based index with ``self``
                excluded.  Indexes past the fixed parameters address
                ``*args`` slots.
            config: Fragment ``dict``, helper ``ParamConfig`` or rule.
            required: Overrides the derived required flag.
            description: Overrides the config's description.
            name: Argument key for ``*args`` slots.

        """

        def decorate(func: F) -> F:
            fn = _underlying(func)
            if isinstance(target, int):
                if target < 0:
                    raise ValueError(f"Parameter index must be non-negative, got {target}")
                index = target
            else:
                names = _positional_names(fn)
                if target not in names:
                    raise TypeError(f"{fn.__qualname__}() has no positional parameter '{target}'")
                index = names.index(target)
            base = coerce_config(config)
            overrides = {
                k: v
                for k, v in (("required", required), ("description", description), ("name", name))
                if v is not None
            }
            self._entry(fn).params[index] = replace(base, **overrides)
            return func

        return decorate

    # -- lookup ---------------------------------------------------------------

    def procedures(self, cls: type) -> Mapping[str, ProcedureStub]:
        """Return the marked methods visible on *cls*, keyed by attribute name.

        Subclass attributes shadow base-class ones, so overriding a marked
        method without re-marking it removes the procedure.
        """
        found: dict[str, ProcedureStub] = {}
        for klass in reversed(cls.__mro__):
            for attr_name, attr in vars(klass).items():
                func = _underlying(attr)
                if not inspect.isfunction(func):
                    continue
                entry = self._entries.get(func)
                if entry is None or not entry.marked:
                    found.pop(attr_name, None)
                    continue
                found[attr_name] = ProcedureStub(
                    method_name=attr_name,
                    name=entry.name or attr_name,
                    description=entry.description,
                    function=func,
                    params=MappingProxyType(dict(entry.params)),
                )
        if not found:
            _logger.debug("No procedures marked on %s", cls.__name__)
        return MappingProxyType(found)
