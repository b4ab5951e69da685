"""Command-line interface for toolrpc services.

Loads a :class:`~toolrpc.rpc.Dispatcher` or :class:`~toolrpc.server.ToolServer`
from a ``module:attribute`` target and inspects, validates or calls its
procedures in-process.  ``serve`` runs a ``ToolServer`` target.

Usage::

    toolrpc --target myapp.tools:server describe
    toolrpc --target myapp.tools:server call add a=1 b=2
    toolrpc --target myapp.tools:server validate add --json '{"a": 1}'
    TOOLRPC_TRANSPORT=http toolrpc --target myapp.tools:server serve

"""

from __future__ import annotations

import asyncio
import importlib
import json
import logging
import sys
from collections.abc import Mapping
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Annotated, Any

import typer

from toolrpc.config import ServeConfig
from toolrpc.introspect import describe as describe_dispatcher
from toolrpc.logging_utils import configure_logging
from toolrpc.rpc import Dispatcher, ToolRpcError, ValidationError
from toolrpc.server import ToolServer

# ---------------------------------------------------------------------------
# Output format enum
# ---------------------------------------------------------------------------


class OutputFormat(StrEnum):
    """Output format for CLI commands."""

    auto = "auto"
    json = "json"
    table = "table"


class LogFormat(StrEnum):
    """Format of log records written to stderr with ``--verbose``."""

    text = "text"
    json = "json"


# ---------------------------------------------------------------------------
# CLI config
# ---------------------------------------------------------------------------


@dataclass
class _CliConfig:
    """Holds resolved CLI options."""

    target: str | None = None
    format: OutputFormat = OutputFormat.auto
    verbose: bool = False


app = typer.Typer(
    name="toolrpc",
    help="Inspect, call and serve toolrpc procedures.",
    add_completion=False,
    no_args_is_help=True,
)


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def _main(
    ctx: typer.Context,
    target: Annotated[
        str | None,
        typer.Option("--target", "-t", help="module:attribute of a Dispatcher or ToolServer", envvar="TOOLRPC_TARGET"),
    ] = None,
    fmt: Annotated[OutputFormat, typer.Option("--format", "-f", help="Output format")] = OutputFormat.auto,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Write toolrpc log records to stderr")] = False,
    log_format: Annotated[LogFormat, typer.Option("--log-format", help="Log record format")] = LogFormat.text,
) -> None:
    """Configure target, output and logging options."""
    if verbose:
        configure_logging(level=logging.INFO, json_format=log_format == LogFormat.json)
    ctx.obj = _CliConfig(target=target, format=fmt, verbose=verbose)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_target(target: str | None) -> object:
    """Import ``module:attribute`` and return the attribute.

    Raises:
        typer.BadParameter: Missing or malformed target, or nothing found there.

    """
    if not target:
        raise typer.BadParameter("--target is required (module:attribute)")
    module_name, sep, attr_path = target.partition(":")
    if not sep or not module_name or not attr_path:
        raise typer.BadParameter(f"Expected module:attribute, got: {target}")
    try:
        obj: object = importlib.import_module(module_name)
        for part in attr_path.split("."):
            obj = getattr(obj, part)
    except (ImportError, AttributeError) as e:
        raise typer.BadParameter(f"Cannot load {target}: {e}") from e
    return obj


def _load_dispatcher(config: _CliConfig) -> Dispatcher:
    obj = _load_target(config.target)
    if isinstance(obj, ToolServer):
        return obj.dispatcher
    if isinstance(obj, Dispatcher):
        return obj
    raise typer.BadParameter(f"Expected a Dispatcher or ToolServer, got {type(obj).__name__} from {config.target}")


def _coerce_value(value_str: str, fragment: Mapping[str, Any]) -> object:
    """Coerce a string value to the type its schema fragment declares.

    Args:
        value_str: Raw string from a CLI key=value arg.
        fragment: The parameter's JSON-Schema fragment.

    Returns:
        Coerced Python value; unparseable values are passed through as
        strings so validation can report them.

    """
    schema_type = fragment.get("type")
    try:
        if schema_type == "integer":
            return int(value_str)
        if schema_type == "number":
            return float(value_str)
    except ValueError:
        return value_str
    if schema_type == "boolean":
        lowered = value_str.lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
        return value_str
    if schema_type == "string":
        return value_str
    try:
        return json.loads(value_str)
    except ValueError:
        return value_str


def _parse_key_value_args(args: list[str], properties: Mapping[str, Mapping[str, Any]]) -> dict[str, object]:
    """Parse key=value args using schema-driven type coercion.

    Raises:
        typer.BadParameter: If a key is not in the schema or format is invalid.

    """
    result: dict[str, object] = {}
    for arg in args:
        if "=" not in arg:
            raise typer.BadParameter(f"Expected key=value, got: {arg}")
        key, value = arg.split("=", 1)
        if key not in properties:
            available = ", ".join(sorted(properties))
            raise typer.BadParameter(f"Unknown parameter '{key}'. Available: {available}")
        result[key] = _coerce_value(value, properties[key])
    return result


def _resolve_arguments(
    dispatcher: Dispatcher, procedure: str, args: list[str] | None, json_input: str | None
) -> dict[str, object]:
    """Resolve a procedure name and its arguments, exiting on unknown names."""
    descriptor = dispatcher.get_procedure(procedure)
    if descriptor is None:
        available = ", ".join(sorted(dispatcher.procedure_names()))
        typer.echo(f"Error: Unknown procedure '{procedure}'. Available: {available}", err=True)
        raise typer.Exit(1)
    if json_input and args:
        raise typer.BadParameter("--json and key=value args are mutually exclusive")
    if json_input:
        try:
            parsed = json.loads(json_input)
        except ValueError as e:
            raise typer.BadParameter(f"--json is not valid JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise typer.BadParameter("--json must be a JSON object")
        return parsed
    if args:
        return _parse_key_value_args(args, descriptor.parameters.properties)
    return {}


def _format_table(rows: list[dict[str, object]]) -> str:
    """Format rows as a simple column-aligned text table.

    Args:
        rows: List of dicts (all with the same keys).

    Returns:
        A formatted table string.

    """
    if not rows:
        return "(empty)"
    columns = list(rows[0].keys())
    widths = {col: len(col) for col in columns}
    str_rows: list[dict[str, str]] = []
    for row in rows:
        sr: dict[str, str] = {}
        for col in columns:
            s = str(row.get(col, ""))
            sr[col] = s
            widths[col] = max(widths[col], len(s))
        str_rows.append(sr)

    lines: list[str] = []
    lines.append("  ".join(col.ljust(widths[col]) for col in columns))
    lines.append("  ".join("-" * widths[col] for col in columns))
    lines.extend("  ".join(sr[col].ljust(widths[col]) for col in columns) for sr in str_rows)
    return "\n".join(lines)


def _print_json(data: object) -> None:
    """Print compact JSON to stdout."""
    typer.echo(json.dumps(data, default=str))


def _wants_table(config: _CliConfig) -> bool:
    return config.format == OutputFormat.table or (config.format == OutputFormat.auto and sys.stdout.isatty())


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def describe(ctx: typer.Context) -> None:
    """List the target's procedures and their parameters."""
    config: _CliConfig = ctx.obj
    desc = describe_dispatcher(_load_dispatcher(config))
    if _wants_table(config):
        typer.echo(str(desc))
    else:
        _print_json(desc.to_json())


@app.command()
def call(
    ctx: typer.Context,
    procedure: Annotated[str, typer.Argument(help="Procedure name to call")],
    args: Annotated[list[str] | None, typer.Argument(help="key=value parameters")] = None,
    json_input: Annotated[str | None, typer.Option("--json", "-j", help="JSON object of arguments")] = None,
) -> None:
    """Call a procedure and print its result."""
    config: _CliConfig = ctx.obj
    dispatcher = _load_dispatcher(config)
    kwargs = _resolve_arguments(dispatcher, procedure, args, json_input)
    try:
        result = asyncio.run(dispatcher.execute(procedure, kwargs))
    except ValidationError as e:
        for message in e.errors:
            typer.echo(f"Error: {message}", err=True)
        raise typer.Exit(1) from None
    except ToolRpcError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None
    except Exception as e:
        typer.echo(f"Error: {type(e).__name__}: {e}", err=True)
        raise typer.Exit(1) from None

    if isinstance(result, str) and config.format != OutputFormat.json:
        typer.echo(result)
    elif _wants_table(config) and isinstance(result, list) and result and all(isinstance(r, dict) for r in result):
        typer.echo(_format_table(result))
    else:
        _print_json(result)


@app.command()
def validate(
    ctx: typer.Context,
    procedure: Annotated[str, typer.Argument(help="Procedure name to validate against")],
    args: Annotated[list[str] | None, typer.Argument(help="key=value parameters")] = None,
    json_input: Annotated[str | None, typer.Option("--json", "-j", help="JSON object of arguments")] = None,
) -> None:
    """Validate arguments without calling the procedure; exits 1 when invalid."""
    config: _CliConfig = ctx.obj
    dispatcher = _load_dispatcher(config)
    kwargs = _resolve_arguments(dispatcher, procedure, args, json_input)
    result = dispatcher.validate(procedure, kwargs)
    if config.format == OutputFormat.json:
        _print_json({"is_valid": result.is_valid, "errors": list(result.errors)})
    elif result.is_valid:
        typer.echo("valid")
    else:
        for message in result.errors:
            typer.echo(f"Error: {message}", err=True)
    if not result.is_valid:
        raise typer.Exit(1)


async def _serve_until_stopped(server: ToolServer, config: ServeConfig, stop_event: asyncio.Event) -> None:
    await server.run(config)
    try:
        await stop_event.wait()
    finally:
        await server.stop()


@app.command()
def serve(
    ctx: typer.Context,
    transport: Annotated[str | None, typer.Option("--transport", help="pipe or http (default: TOOLRPC_TRANSPORT)")] = None,
    port: Annotated[int | None, typer.Option("--port", help="HTTP port (default: TOOLRPC_PORT)")] = None,
    host: Annotated[str | None, typer.Option("--host", help="HTTP host (default: TOOLRPC_HOST)")] = None,
) -> None:
    """Run a ToolServer target until interrupted."""
    config: _CliConfig = ctx.obj
    server = _load_target(config.target)
    if not isinstance(server, ToolServer):
        raise typer.BadParameter(f"Expected a ToolServer, got {type(server).__name__} from {config.target}")
    try:
        base = ServeConfig.from_env()
        overrides = {k: v for k, v in (("transport", transport), ("port", port), ("host", host)) if v is not None}
        serve_config = replace(base, **overrides)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e

    try:
        asyncio.run(_serve_until_stopped(server, serve_config, asyncio.Event()))
    except KeyboardInterrupt:
        typer.echo("Stopped", err=True)
    except ToolRpcError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None
