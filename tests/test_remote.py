"""Tests for the remote protocol client layer.

This test module covers:
- Server config file parsing (stdio / sse discriminated on "protocol")
- ServerConnection lifecycle, cleanup on failed connect, tool pagination
- McpToolAdapter argument forwarding, annotations and error wrapping
- McpAdapter ordered startup, all-or-nothing failure, reverse-order close
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional

import httpx
import pytest
from mcp.types import CallToolResult, ListToolsResult, TextContent, Tool as McpTool, ToolAnnotations

from toolcall_runtime.core.errors import RemoteCallError, ServerConfigError, ServerConnectionError
from toolcall_runtime.remote import client as client_module
from toolcall_runtime.remote.client import (
    ConnectionState,
    McpAdapter,
    McpConfig,
    ServerConnection,
    SseServerConfig,
    StdioServerConfig,
)
from toolcall_runtime.remote.remote_tool import McpToolAdapter


def _tool(name: str, *, read_only: Optional[bool] = None, description: Optional[str] = None) -> McpTool:
    annotations = ToolAnnotations(readOnlyHint=read_only) if read_only is not None else None
    return McpTool(
        name=name,
        description=description,
        inputSchema={"type": "object", "properties": {"q": {"type": "string"}}},
        annotations=annotations,
    )


class FakeSession:
    """Stands in for a connected ClientSession."""

    def __init__(self, pages: Optional[list[list[McpTool]]] = None, *, fail_with: Optional[BaseException] = None):
        self.pages = pages or [[]]
        self.fail_with = fail_with
        self.calls: list[tuple[str, Any]] = []
        self.cursors: list[Optional[str]] = []

    async def list_tools(self, cursor: Optional[str] = None) -> ListToolsResult:
        self.cursors.append(cursor)
        index = int(cursor) if cursor else 0
        next_cursor = str(index + 1) if index + 1 < len(self.pages) else None
        return ListToolsResult(tools=self.pages[index], nextCursor=next_cursor)

    async def call_tool(self, name: str, arguments: Optional[dict[str, Any]] = None) -> CallToolResult:
        self.calls.append((name, arguments))
        if self.fail_with is not None:
            raise self.fail_with
        return CallToolResult(content=[TextContent(type="text", text=f"{name} ok")])


# -----------------------------------------------------------------------------
# Config
# -----------------------------------------------------------------------------

class TestMcpConfig:
    def test_parses_both_protocols_in_order(self, tmp_path: Path):
        path = tmp_path / "mcp.json"
        path.write_text(
            json.dumps(
                {
                    "mcpServers": {
                        "web": {"protocol": "sse", "url": "http://localhost:8931/sse"},
                        "fs": {"protocol": "stdio", "command": "fs-server", "args": ["--root", "/"], "env": {"A": "1"}},
                    }
                }
            ),
            encoding="utf-8",
        )
        config = McpConfig.load(path)
        assert list(config.servers) == ["web", "fs"]
        assert config.servers["web"] == SseServerConfig(url="http://localhost:8931/sse")
        fs = config.servers["fs"]
        assert isinstance(fs, StdioServerConfig)
        assert (fs.command, fs.args, fs.env) == ("fs-server", ["--root", "/"], {"A": "1"})

    def test_missing_servers_key_means_none(self, tmp_path: Path):
        path = tmp_path / "mcp.json"
        path.write_text("{}", encoding="utf-8")
        assert McpConfig.load(path).servers == {}

    def test_unknown_protocol_rejected(self, tmp_path: Path):
        path = tmp_path / "mcp.json"
        path.write_text('{"mcpServers": {"x": {"protocol": "ws", "url": "ws://h"}}}', encoding="utf-8")
        with pytest.raises(ServerConfigError):
            McpConfig.load(path)

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ServerConfigError):
            McpConfig.load(tmp_path / "absent.json")

    def test_stdio_parameters(self):
        params = StdioServerConfig(command="srv", args=["-v"]).to_parameters()
        assert params.command == "srv"
        assert params.args == ["-v"]
        assert params.env is None

    def test_stdio_env_is_only_the_configured_overlay(self, monkeypatch):
        """Parent variables are not copied in; the SDK adds its safe defaults itself."""
        monkeypatch.setenv("TOOLCALL_PARENT_ONLY", "secret")
        params = StdioServerConfig(command="srv", env={"K": "V"}).to_parameters()
        assert params.env == {"K": "V"}
        assert StdioServerConfig(command="srv").to_parameters().env is None


# -----------------------------------------------------------------------------
# McpToolAdapter
# -----------------------------------------------------------------------------

class TestMcpToolAdapter:
    @pytest.mark.asyncio
    async def test_object_arguments_forwarded(self):
        session = FakeSession()
        adapter = McpToolAdapter(_tool("search"), session)  # type: ignore[arg-type]
        result = await adapter.call({"q": "foo"})
        assert session.calls == [("search", {"q": "foo"})]
        assert isinstance(result, CallToolResult)
        assert result.content[0].text == "search ok"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("args", ["foo", None, 3, ["q"]])
    async def test_non_object_arguments_sent_as_none(self, args):
        session = FakeSession()
        await McpToolAdapter(_tool("search"), session).call(args)  # type: ignore[arg-type]
        assert session.calls == [("search", None)]

    @pytest.mark.asyncio
    async def test_transport_failure_wrapped(self):
        request = httpx.Request("POST", "http://srv/messages")
        error = httpx.ConnectError("refused", request=request)
        adapter = McpToolAdapter(_tool("search"), FakeSession(fail_with=error))  # type: ignore[arg-type]
        with pytest.raises(RemoteCallError) as excinfo:
            await adapter.call({})
        assert "search" in str(excinfo.value)
        assert "ConnectError" in str(excinfo.value)
        assert excinfo.value.__cause__ is error

    def test_metadata(self):
        adapter = McpToolAdapter(_tool("search", read_only=True, description="Find"), FakeSession())  # type: ignore[arg-type]
        assert adapter.name == "search"
        assert adapter.description == "Find"
        assert adapter.parameters["properties"] == {"q": {"type": "string"}}
        assert adapter.annotations == {"readOnlyHint": True}
        assert adapter.concurrent is True
        assert adapter.to_spec()["name"] == "search"

    def test_concurrency_requires_read_only_hint(self):
        assert McpToolAdapter(_tool("a"), FakeSession()).concurrent is False  # type: ignore[arg-type]
        assert McpToolAdapter(_tool("b", read_only=False), FakeSession()).concurrent is False  # type: ignore[arg-type]
        assert McpToolAdapter(_tool("c"), FakeSession()).description == ""  # type: ignore[arg-type]


# -----------------------------------------------------------------------------
# ServerConnection
# -----------------------------------------------------------------------------

class _RecordingTransport:
    def __init__(self) -> None:
        self.entered = 0
        self.exited = 0

    def factory(self):
        @asynccontextmanager
        async def _transport():
            self.entered += 1
            try:
                yield ("read-stream", "write-stream")
            finally:
                self.exited += 1

        return _transport()


def _fake_client_session(session: FakeSession, *, fail_initialize: bool = False):
    class _FakeClientSession:
        def __init__(self, read_stream, write_stream) -> None:
            assert (read_stream, write_stream) == ("read-stream", "write-stream")

        async def __aenter__(self):
            return self

        async def __aexit__(self, *exc_info):
            return None

        async def initialize(self):
            if fail_initialize:
                raise RuntimeError("handshake rejected")

        async def list_tools(self, cursor=None):
            return await session.list_tools(cursor)

        async def call_tool(self, name, arguments=None):
            return await session.call_tool(name, arguments)

    return _FakeClientSession


class TestServerConnection:
    @pytest.mark.asyncio
    async def test_connect_list_close(self, monkeypatch):
        transport = _RecordingTransport()
        pages = [[_tool("a"), _tool("b")], [_tool("c")]]
        fake = FakeSession(pages)
        monkeypatch.setattr(ServerConnection, "_open_transport", lambda self: transport.factory())
        monkeypatch.setattr(client_module, "ClientSession", _fake_client_session(fake))

        connection = ServerConnection("fs", StdioServerConfig(command="fs-server"))
        assert connection.state is ConnectionState.DISCONNECTED
        await connection.connect()
        assert connection.state is ConnectionState.CONNECTED

        tools = await connection.list_tools()
        assert [t.name for t in tools] == ["a", "b", "c"]
        assert fake.cursors == [None, "1"]

        await connection.close()
        assert connection.state is ConnectionState.CLOSED
        assert transport.exited == 1
        await connection.close()
        assert transport.exited == 1

    @pytest.mark.asyncio
    async def test_failed_handshake_releases_transport(self, monkeypatch):
        transport = _RecordingTransport()
        monkeypatch.setattr(ServerConnection, "_open_transport", lambda self: transport.factory())
        monkeypatch.setattr(client_module, "ClientSession", _fake_client_session(FakeSession(), fail_initialize=True))

        connection = ServerConnection("fs", StdioServerConfig(command="fs-server"))
        with pytest.raises(ServerConnectionError) as excinfo:
            await connection.connect()
        assert "Failed to connect to server 'fs'" in str(excinfo.value)
        assert "handshake rejected" in str(excinfo.value)
        assert connection.state is ConnectionState.CLOSED
        assert transport.entered == transport.exited == 1

    @pytest.mark.asyncio
    async def test_closed_connection_refuses_connect(self, monkeypatch):
        connection = ServerConnection("fs", StdioServerConfig(command="fs-server"))
        await connection.close()
        with pytest.raises(ServerConnectionError):
            await connection.connect()

    @pytest.mark.asyncio
    async def test_list_tools_requires_connection(self):
        connection = ServerConnection("fs", SseServerConfig(url="http://h/sse"))
        with pytest.raises(ServerConnectionError):
            await connection.list_tools()

    def test_describe_http_status_error(self):
        request = httpx.Request("GET", "http://h/sse")
        response = httpx.Response(503, request=request)
        error = httpx.HTTPStatusError("unavailable", request=request, response=response)
        wrapped = ServerConnectionError("web", BaseExceptionGroup("tg", [error]))
        assert str(wrapped) == "Failed to connect to server 'web': HTTP 503 from http://h/sse"


# -----------------------------------------------------------------------------
# McpAdapter
# -----------------------------------------------------------------------------

class _ConnectionFakes:
    """Patches ServerConnection with per-server canned behaviour."""

    def __init__(self, monkeypatch, tools: dict[str, list[McpTool]], failing: tuple[str, ...] = ()):
        self.connected: list[str] = []
        self.closed: list[str] = []
        fakes = self

        async def connect(self):
            if self.name in failing:
                self.state = ConnectionState.CLOSED
                raise ServerConnectionError(self.name, "boom")
            fakes.connected.append(self.name)
            self.session = FakeSession([tools.get(self.name, [])])
            self.state = ConnectionState.CONNECTED
            return self.session

        async def close(self):
            if self.state is ConnectionState.CONNECTED:
                fakes.closed.append(self.name)
            self.state = ConnectionState.CLOSED

        monkeypatch.setattr(ServerConnection, "connect", connect)
        monkeypatch.setattr(ServerConnection, "close", close)


def _config(*names: str) -> McpConfig:
    return McpConfig(servers={name: StdioServerConfig(command=name) for name in names})


class TestMcpAdapter:
    @pytest.mark.asyncio
    async def test_flattens_tools_later_server_wins(self, monkeypatch):
        fakes = _ConnectionFakes(
            monkeypatch,
            {"one": [_tool("search"), _tool("read")], "two": [_tool("search", description="second")]},
        )
        async with await McpAdapter.init(_config("one", "two")) as adapter:
            assert fakes.connected == ["one", "two"]
            assert list(adapter.clients) == ["one", "two"]
            assert sorted(adapter.toolset.names()) == ["read", "search"]
            winner = adapter.toolset.get("search")
            assert isinstance(winner, McpToolAdapter)
            assert winner.server_name == "two"
            result = await adapter.toolset.call("read", {"q": "x"})
            assert result.content[0].text == "read ok"
        assert fakes.closed == ["two", "one"]
        assert adapter.clients == {}

    @pytest.mark.asyncio
    async def test_failure_closes_already_connected(self, monkeypatch):
        fakes = _ConnectionFakes(monkeypatch, {"one": [_tool("a")]}, failing=("two",))
        with pytest.raises(ServerConnectionError):
            await McpAdapter.init(_config("one", "two", "three"))
        assert fakes.connected == ["one"]
        assert fakes.closed == ["one"]

    @pytest.mark.asyncio
    async def test_no_servers(self):
        adapter = await McpAdapter.init(McpConfig())
        assert len(adapter.toolset) == 0
        await adapter.aclose()

    @pytest.mark.asyncio
    async def test_from_path(self, monkeypatch, tmp_path: Path):
        fakes = _ConnectionFakes(monkeypatch, {"fs": [_tool("ls")]})
        path = tmp_path / "mcp.json"
        path.write_text('{"mcpServers": {"fs": {"protocol": "stdio", "command": "fs"}}}', encoding="utf-8")
        adapter = await McpAdapter.from_path(path)
        try:
            assert adapter.toolset.names() == ["ls"]
        finally:
            await adapter.aclose()
        assert fakes.closed == ["fs"]
