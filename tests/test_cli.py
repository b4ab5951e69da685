# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Tests for the toolrpc CLI."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import pytest
from typer.testing import CliRunner

from toolrpc import cli as cli_module
from toolrpc.cli import _coerce_value, _format_table, app

from . import fixture_service

runner = CliRunner()

_DISPATCHER = "tests.fixture_service:dispatcher"
_SERVER = "tests.fixture_service:server"


def _invoke(args: list[str], target: str = _DISPATCHER, **kwargs: Any) -> Any:
    """Invoke the CLI app against *target*.

    Returns ``Any`` because typer has no type stubs for the result.
    """
    return runner.invoke(app, ["--target", target, *args], **kwargs)


# ---------------------------------------------------------------------------
# Targets
# ---------------------------------------------------------------------------


class TestTargets:
    """--target resolution."""

    def test_missing_target(self) -> None:
        """Commands need a target."""
        result = runner.invoke(app, ["describe"], env={"TOOLRPC_TARGET": None})
        assert result.exit_code == 2
        assert "--target is required" in result.output

    def test_malformed_target(self) -> None:
        """A target without a colon is rejected."""
        result = _invoke(["describe"], target="tests.fixture_service")
        assert result.exit_code == 2
        assert "Expected module:attribute" in result.output

    @pytest.mark.parametrize("target", ["no_such_module_xyz:thing", "tests.fixture_service:missing"])
    def test_unloadable_target(self, target: str) -> None:
        """Import and attribute errors are reported as bad parameters."""
        result = _invoke(["describe"], target=target)
        assert result.exit_code == 2
        assert "Cannot load" in result.output

    def test_wrong_type(self) -> None:
        """The target must be a Dispatcher or ToolServer."""
        result = _invoke(["describe"], target="tests.fixture_service:not_a_target")
        assert result.exit_code == 2
        assert "Expected a Dispatcher" in result.output

    def test_target_from_environment(self) -> None:
        """TOOLRPC_TARGET supplies the target."""
        result = runner.invoke(app, ["--format", "json", "describe"], env={"TOOLRPC_TARGET": _SERVER})
        assert result.exit_code == 0, result.output
        assert "add" in json.loads(result.output)["procedures"]


# ---------------------------------------------------------------------------
# describe
# ---------------------------------------------------------------------------


class TestDescribe:
    """The describe command."""

    def test_describe_json(self) -> None:
        """JSON output lists every procedure with its schema and source."""
        result = _invoke(["--format", "json", "describe"])
        assert result.exit_code == 0, result.output
        procedures = json.loads(result.output)["procedures"]
        assert sorted(procedures) == ["add", "fail", "greet", "repeat", "total"]
        assert procedures["add"]["source"] == "Fixture"
        assert procedures["add"]["parameters"]["required"] == ["a", "b"]

    def test_describe_auto_is_compact_json(self) -> None:
        """CliRunner is not a TTY, so auto format prints one JSON line."""
        result = _invoke(["describe"], target=_SERVER)
        assert result.exit_code == 0
        assert "\n" not in result.output.strip()
        json.loads(result.output)

    def test_describe_table(self) -> None:
        """Table output shows compact signatures."""
        result = _invoke(["--format", "table", "describe"])
        assert result.exit_code == 0
        assert "Procedures: 5" in result.output
        assert "add(a: number, b: number)" in result.output
        assert "repeat(word: string, times: integer, upper?: boolean)" in result.output
        assert "total(values: array[number])" in result.output
        assert "doc: Sum a list of numbers" in result.output


# ---------------------------------------------------------------------------
# call
# ---------------------------------------------------------------------------


class TestCall:
    """The call command."""

    def test_key_value_args(self) -> None:
        """key=value args are coerced by schema type."""
        result = _invoke(["call", "add", "a=1", "b=2.5"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == 3.5

    def test_json_args(self) -> None:
        """--json passes an argument object."""
        result = _invoke(["call", "add", "--json", '{"a": 1, "b": 2}'])
        assert result.exit_code == 0
        assert json.loads(result.output) == 3.0

    def test_string_result_verbatim(self) -> None:
        """String results print as-is unless JSON is forced."""
        assert _invoke(["call", "greet", "name=World"]).output.strip() == "Hello, World!"
        forced = _invoke(["--format", "json", "call", "greet", "name=World"])
        assert json.loads(forced.output) == "Hello, World!"

    def test_array_arg(self) -> None:
        """Array parameters take a JSON value."""
        result = _invoke(["call", "total", "values=[1, 2.5]"])
        assert result.exit_code == 0
        assert json.loads(result.output) == 3.5

    def test_table_output(self) -> None:
        """A list of dicts renders as a table."""
        result = _invoke(["--format", "table", "call", "repeat", "word=hi", "times=2", "upper=true"])
        assert result.exit_code == 0, result.output
        lines = result.output.strip().splitlines()
        assert lines[0].split() == ["index", "word"]
        assert set(lines[1].replace(" ", "")) == {"-"}
        assert lines[2].split() == ["0", "HI"]

    def test_validation_errors(self) -> None:
        """Each validation message is printed and the exit code is 1."""
        result = _invoke(["call", "add", "a=x"])
        assert result.exit_code == 1
        assert "Error: Parameter a: " in result.output
        assert "Error: Missing required parameter: b" in result.output

    def test_unknown_procedure(self) -> None:
        """An unknown name lists the available procedures."""
        result = _invoke(["call", "nonexistent"])
        assert result.exit_code == 1
        assert "Unknown procedure 'nonexistent'" in result.output
        assert "add, fail, greet, repeat, total" in result.output

    def test_handler_failure(self) -> None:
        """A raising handler exits 1 with its type and message."""
        result = _invoke(["call", "fail"])
        assert result.exit_code == 1
        assert "Error: RuntimeError: intentional failure" in result.output

    @pytest.mark.parametrize(
        ("args", "message"),
        [
            (["call", "add", "c=1"], "Unknown parameter 'c'"),
            (["call", "add", "a"], "Expected key=value"),
            (["call", "add", "--json", "[1]"], "must be a JSON object"),
            (["call", "add", "--json", "{"], "is not valid JSON"),
            (["call", "add", "a=1", "--json", "{}"], "mutually exclusive"),
        ],
    )
    def test_bad_arguments(self, args: list[str], message: str) -> None:
        """Malformed arguments are usage errors."""
        result = _invoke(args)
        assert result.exit_code == 2
        assert message in result.output


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------


class TestValidate:
    """The validate command."""

    def test_valid(self) -> None:
        """Good arguments print 'valid'."""
        result = _invoke(["validate", "add", "a=1", "b=2"])
        assert result.exit_code == 0
        assert result.output.strip() == "valid"

    def test_invalid(self) -> None:
        """Bad arguments print every error and exit 1."""
        result = _invoke(["validate", "add", "a=1"])
        assert result.exit_code == 1
        assert "Error: Missing required parameter: b" in result.output

    def test_json_format(self) -> None:
        """--format json prints the result object."""
        result = _invoke(["--format", "json", "validate", "add", "--json", "{}"])
        assert result.exit_code == 1
        assert json.loads(result.output) == {
            "is_valid": False,
            "errors": ["Missing required parameter: a", "Missing required parameter: b"],
        }

    def test_does_not_call(self) -> None:
        """Validating a failing procedure does not run it."""
        result = _invoke(["validate", "fail"])
        assert result.exit_code == 0


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


class _PreSetEvent(asyncio.Event):
    """An event that is already set, so serve returns right after starting."""

    def __init__(self) -> None:
        super().__init__()
        self.set()


class TestServe:
    """The serve command."""

    def test_serve_pipe(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """serve starts the configured transport and stops it on the way out."""
        monkeypatch.setattr(cli_module.asyncio, "Event", _PreSetEvent)
        before = len(fixture_service.runtime.handles)
        result = _invoke(["serve", "--transport", "pipe"], target=_SERVER)
        assert result.exit_code == 0, result.output
        handles = fixture_service.runtime.handles[before:]
        assert len(handles) == 1
        assert handles[0].closed
        assert not fixture_service.server.is_running

    def test_requires_server(self) -> None:
        """A bare dispatcher cannot be served."""
        result = _invoke(["serve"], target=_DISPATCHER)
        assert result.exit_code == 2
        assert "Expected a ToolServer" in result.output

    def test_bad_environment(self) -> None:
        """Invalid TOOLRPC_* settings are usage errors."""
        result = _invoke(["serve"], target=_SERVER, env={"TOOLRPC_PORT": "eighty"})
        assert result.exit_code == 2
        assert "TOOLRPC_PORT must be an integer" in result.output

    def test_start_failure(self) -> None:
        """A transport that fails to start exits 1 with the reason."""
        result = _invoke(["serve", "--transport", "pipe"], target="tests.fixture_service:broken_server")
        assert result.exit_code == 1
        assert "Error: Failed to start pipe transport" in result.output


# ---------------------------------------------------------------------------
# Logging options
# ---------------------------------------------------------------------------


class TestLoggingOptions:
    """--verbose and --log-format."""

    def test_verbose_configures_logging(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """--verbose installs a handler with the requested format."""
        calls: list[dict[str, Any]] = []
        monkeypatch.setattr(cli_module, "configure_logging", lambda **kw: calls.append(kw))
        result = _invoke(["--verbose", "--log-format", "json", "describe"])
        assert result.exit_code == 0
        assert calls == [{"level": logging.INFO, "json_format": True}]

    def test_quiet_by_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Without --verbose no handler is installed."""
        calls: list[dict[str, Any]] = []
        monkeypatch.setattr(cli_module, "configure_logging", lambda **kw: calls.append(kw))
        _invoke(["describe"])
        assert calls == []


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    """Argument coercion and table formatting."""

    @pytest.mark.parametrize(
        ("raw", "fragment", "expected"),
        [
            ("3", {"type": "integer"}, 3),
            ("3.5", {"type": "number"}, 3.5),
            ("yes", {"type": "boolean"}, True),
            ("0", {"type": "boolean"}, False),
            ("maybe", {"type": "boolean"}, "maybe"),
            ("abc", {"type": "integer"}, "abc"),
            ("42", {"type": "string"}, "42"),
            ('{"k": 1}', {"type": "object"}, {"k": 1}),
            ("not json", {"enum": ["x"]}, "not json"),
        ],
    )
    def test_coerce_value(self, raw: str, fragment: dict[str, Any], expected: object) -> None:
        """Values are converted according to the schema type."""
        assert _coerce_value(raw, fragment) == expected

    def test_format_table_empty(self) -> None:
        """No rows renders a placeholder."""
        assert _format_table([]) == "(empty)"
