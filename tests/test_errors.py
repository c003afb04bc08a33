"""Tests for the error taxonomy and helpers."""

from __future__ import annotations

import httpx
import pytest

from toolcall_runtime.core.errors import (
    BatchError,
    BatchExecutionError,
    InvalidToolArgumentsError,
    LoopDetectedError,
    RemoteCallError,
    ResultOrderingError,
    ToolCallError,
    ToolExecutionError,
    ToolNotFoundError,
    ToolRuntimeError,
    ToolSpawnError,
    describe_transport_error,
)
from toolcall_runtime.core.utils import _compact_json, _truncate, normalize_env_name, to_json_value


class TestTaxonomy:
    @pytest.mark.parametrize(
        "error",
        [
            ToolNotFoundError("x"),
            InvalidToolArgumentsError("x", "raw"),
            ToolSpawnError("x", "missing"),
            ToolExecutionError("x", stdout="", stderr=""),
            RemoteCallError("x", "down"),
        ],
    )
    def test_per_call_errors(self, error):
        assert isinstance(error, ToolCallError)
        assert error.to_output()["error"] is True

    @pytest.mark.parametrize("error", [LoopDetectedError(), BatchExecutionError("x"), ResultOrderingError(1)])
    def test_batch_errors(self, error):
        assert isinstance(error, BatchError)
        assert not isinstance(error, ToolCallError)
        assert isinstance(error, ToolRuntimeError)

    def test_messages(self):
        assert ToolSpawnError("fetch", "No such file").to_output() == {
            "error": True,
            "message": "Unable to run fetch, No such file",
        }
        assert str(InvalidToolArgumentsError("t", {"a": 1})) == 'The call \'t\' has invalid arguments: {"a": 1}'


class TestDescribeTransportError:
    def test_plain_exception(self):
        assert describe_transport_error(OSError("refused")) == "OSError: refused"
        assert describe_transport_error(TimeoutError()) == "TimeoutError"

    def test_non_exception(self):
        assert describe_transport_error("reason") == "reason"

    def test_nested_group(self):
        inner = ExceptionGroup("inner", [ConnectionResetError("reset")])
        assert describe_transport_error(ExceptionGroup("outer", [inner])) == "ConnectionResetError: reset"

    def test_http_error(self):
        request = httpx.Request("GET", "http://h")
        error = httpx.ReadTimeout("slow", request=request)
        assert describe_transport_error(error) == "HTTP transport error: ReadTimeout: slow"


class TestUtils:
    def test_compact_json(self):
        assert _compact_json({"a": [1, 2], "b": "é"}) == '{"a":[1,2],"b":"é"}'

    def test_normalize_env_name(self):
        assert normalize_env_name("my-var.name") == "MY_VAR_NAME"

    def test_truncate(self):
        assert _truncate("abc", 5) == "abc"
        assert _truncate("abcdef", 3) == "abc... [3 more chars]"

    def test_to_json_value(self):
        from mcp.types import TextContent

        assert to_json_value(TextContent(type="text", text="x")) == {"type": "text", "text": "x"}
        assert to_json_value({"k": 1}) == {"k": 1}
