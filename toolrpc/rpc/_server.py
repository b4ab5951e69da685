"""Dispatcher: procedure table, validation and invocation."""

from __future__ import annotations

import inspect
import json
import logging
import time
from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Literal

import pydantic

from toolrpc.rpc._common import (
    NotFoundError,
    ValidationError,
    ValidationResult,
    _access_logger,
    _logger,
)
from toolrpc.rpc._debug import fmt_args, trace_dispatch, wire_dispatch_logger
from toolrpc.rpc._registry import MetadataRegistry
from toolrpc.rpc._types import (
    NO_DEFAULT,
    ProcedureDescriptor,
    ProcedureExecutor,
    build_parameters,
    compile_parameter_schema,
)

__all__ = ["Dispatcher", "DispatcherStats"]


@dataclass(frozen=True)
class DispatcherStats:
    """Snapshot of the procedure table.

    Attributes:
        total: Number of registered procedures.
        names: Procedure names in table order.
        by_source: Procedure count per source class name.

    """

    total: int
    names: tuple[str, ...] = ()
    by_source: Mapping[str, int] = field(default_factory=dict)


def _log_method_error(source: str, procedure: str, exc: BaseException) -> str:
    """Log a procedure handler error and return the exception class name.

    Returns:
        The exception class name (for use as ``error_type``).

    """
    error_type = type(exc).__name__
    _logger.error(
        "Error in %s.%s: %s",
        source,
        procedure,
        exc,
        exc_info=True,
        extra={"procedure": procedure, "source": source, "error_type": error_type},
    )
    return error_type


def _emit_access_log(
    source: str,
    procedure: str,
    duration_ms: float,
    status: Literal["ok", "error"],
    error_type: str = "",
) -> None:
    """Emit a structured access log record for a completed call."""
    if not _access_logger.isEnabledFor(logging.INFO):
        return
    try:
        _access_logger.info(
            "%s.%s %s",
            source,
            procedure,
            status,
            extra={
                "procedure": procedure,
                "source": source,
                "duration_ms": round(duration_ms, 2),
                "status": status,
                "error_type": error_type,
            },
        )
    except Exception:
        _logger.debug("Access log emission failed", exc_info=True)


def _format_rule_errors(name: str, exc: pydantic.ValidationError) -> list[str]:
    messages: list[str] = []
    for err in exc.errors(include_url=False):
        loc = ".".join(str(part) for part in err.get("loc", ()))
        label = f"{name}.{loc}" if loc else name
        messages.append(f"Parameter {label}: {err['msg']}")
    return messages


def _validate_strict(rule: pydantic.TypeAdapter[Any], value: Any) -> Any:
    """Validate *value* as the JSON it arrived as, with no type coercion.

    JSON strictness rejects ``"2"`` for a number or ``"no"`` for a boolean,
    while still accepting enum values and integers for ``number``.  Values
    JSON cannot encode (objects passed in-process) are checked in strict
    Python mode instead.
    """
    try:
        encoded = json.dumps(value, allow_nan=False)
    except (TypeError, ValueError):
        return rule.validate_python(value, strict=True)
    return rule.validate_json(encoded, strict=True)


def _bind_arguments(executor: ProcedureExecutor, args: Mapping[str, Any]) -> tuple[list[Any], list[str]]:
    """Validate *args* and scatter them into a positional list.

    Returns:
        ``(positional, errors)``; ``positional`` is only meaningful when
        ``errors`` is empty.

    """
    errors: list[str] = []
    positional: list[Any] = [None] * len(executor.parameters)
    for param in executor.parameters:
        value = args.get(param.name)
        if value is None:
            if param.required:
                errors.append(f"Missing required parameter: {param.name}")
            positional[param.index] = None if param.default is NO_DEFAULT else param.default
            continue
        if param.rule is None:
            positional[param.index] = value
            continue
        try:
            positional[param.index] = _validate_strict(param.rule, value)
        except pydantic.ValidationError as exc:
            errors.extend(_format_rule_errors(param.name, exc))
    known = {p.name for p in executor.parameters}
    errors.extend(f"Unknown parameter: {key}" for key in args if key not in known)
    return positional, errors


class Dispatcher:
    """Maps procedure names to executors and runs them.

    Service classes are registered against a :class:`MetadataRegistry`;
    every method marked there becomes a procedure.  Names are unique
    across the whole table: registering a second procedure under an
    existing name replaces the first (last registration wins, with a
    warning logged).
    """

    __slots__ = ("_executors", "_registry")

    def __init__(self, registry: MetadataRegistry) -> None:
        """Initialize with the registry whose markers ``register`` reads."""
        self._registry = registry
        self._executors: dict[str, ProcedureExecutor] = {}

    @property
    def registry(self) -> MetadataRegistry:
        """The metadata registry this dispatcher reads."""
        return self._registry

    def __len__(self) -> int:
        """Number of registered procedures."""
        return len(self._executors)

    def __contains__(self, name: object) -> bool:
        """Whether a procedure is registered under *name*."""
        return name in self._executors

    def register(self, service: type | object) -> list[str]:
        """Register every marked method of *service*.

        Args:
            service: A class (instantiated with no arguments) or an
                already constructed instance.

        Returns:
            The procedure names added by this call.

        Raises:
            TypeError: If any marked method cannot be exposed; nothing
                from *service* is registered in that case.

        """
        instance = service() if isinstance(service, type) else service
        cls = type(instance)
        stubs = self._registry.procedures(cls)

        errors: list[str] = []
        built: list[ProcedureExecutor] = []
        for stub in stubs.values():
            try:
                params = build_parameters(stub.function, stub.params)
            except TypeError as exc:
                errors.append(str(exc))
                continue
            descriptor = ProcedureDescriptor(
                name=stub.name,
                description=stub.description,
                parameters=compile_parameter_schema(params),
            )
            built.append(
                ProcedureExecutor(
                    descriptor=descriptor,
                    handler=getattr(instance, stub.method_name),
                    parameters=params,
                    source=cls.__name__,
                )
            )
        if errors:
            raise TypeError(f"{cls.__name__} has procedures that cannot be registered:\n" + "\n".join(errors))

        if not built:
            _logger.warning("%s has no marked procedures", cls.__name__, extra={"source": cls.__name__})
        for executor in built:
            name = executor.descriptor.name
            previous = self._executors.get(name)
            if previous is not None:
                _logger.warning(
                    "Procedure '%s' from %s replaces the one registered by %s",
                    name,
                    executor.source,
                    previous.source,
                    extra={"procedure": name, "source": executor.source, "replaced_source": previous.source},
                )
            self._executors[name] = executor
        _logger.info(
            "Registered %d procedure(s) from %s",
            len(built),
            cls.__name__,
            extra={"source": cls.__name__, "procedures": [e.descriptor.name for e in built]},
        )
        return [e.descriptor.name for e in built]

    # -- queries -------------------------------------------------------------

    def list_procedures(self) -> list[dict[str, Any]]:
        """Return ``{name, description, parameters}`` for every procedure."""
        return [executor.descriptor.to_json() for executor in self._executors.values()]

    def get_procedure(self, name: str) -> ProcedureDescriptor | None:
        """Return the descriptor registered under *name*, if any."""
        executor = self._executors.get(name)
        return executor.descriptor if executor is not None else None

    def procedure_names(self) -> list[str]:
        """Return registered names in table order."""
        return list(self._executors)

    def executors(self) -> Mapping[str, ProcedureExecutor]:
        """Read-only view of the executor table."""
        return MappingProxyType(self._executors)

    def stats(self) -> DispatcherStats:
        """Return the table size and a per-source breakdown."""
        return DispatcherStats(
            total=len(self._executors),
            names=tuple(self._executors),
            by_source=MappingProxyType(dict(Counter(e.source for e in self._executors.values()))),
        )

    # -- calls ---------------------------------------------------------------

    def validate(self, name: str, args: Mapping[str, Any] | None = None) -> ValidationResult:
        """Check *args* against procedure *name* without calling it.

        An unknown name is reported as an invalid result rather than
        raised, so callers can surface every problem the same way.
        """
        executor = self._executors.get(name)
        if executor is None:
            return ValidationResult(is_valid=False, errors=(f"Procedure '{name}' not found",))
        _, errors = _bind_arguments(executor, args or {})
        return ValidationResult(is_valid=not errors, errors=tuple(errors))

    async def execute(self, name: str, args: Mapping[str, Any] | None = None) -> Any:
        """Validate *args* and invoke procedure *name*.

        Sync and async handlers are both supported; an awaitable result
        is awaited.  The handler's return value is passed through as-is.

        Raises:
            NotFoundError: No procedure is registered under *name*.
            ValidationError: The arguments were rejected; carries every
                failure message.

        Exceptions raised by the handler propagate unchanged.

        """
        args = args or {}
        executor = self._executors.get(name)
        if executor is None:
            if wire_dispatch_logger.isEnabledFor(logging.DEBUG):
                wire_dispatch_logger.debug("Lookup miss: procedure=%s known=%s", name, sorted(self._executors))
            raise NotFoundError(name)

        if wire_dispatch_logger.isEnabledFor(logging.DEBUG):
            wire_dispatch_logger.debug("Dispatch: procedure=%s source=%s args=%s", name, executor.source, fmt_args(args))
        trace_dispatch("dispatch", procedure=name, source=executor.source, args=fmt_args(args))

        start = time.monotonic()
        positional, errors = _bind_arguments(executor, args)
        if errors:
            _emit_access_log(executor.source, name, (time.monotonic() - start) * 1000, "error", "ValidationError")
            raise ValidationError(name, errors)

        try:
            result = executor.handler(*positional)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            error_type = _log_method_error(executor.source, name, exc)
            _emit_access_log(executor.source, name, (time.monotonic() - start) * 1000, "error", error_type)
            raise

        duration_ms = (time.monotonic() - start) * 1000
        _emit_access_log(executor.source, name, duration_ms, "ok")
        trace_dispatch("complete", procedure=name, duration_ms=round(duration_ms, 2))
        return result
