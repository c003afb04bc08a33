"""Remote protocol client layer.

This module handles remote tool servers:
- Server config file parsing (stdio child process or SSE endpoint per server)
- ServerConnection: one transport + protocol session with explicit lifecycle
- McpAdapter: connects every configured server, owns the connections, and
  flattens all discovered tools into one ToolSet

Startup is all-or-nothing: the first server that fails to connect aborts
initialization and every connection opened so far is closed.
"""

from __future__ import annotations

import enum
import logging
from contextlib import AsyncExitStack
from pathlib import Path
from typing import Annotated, Any, AsyncContextManager, Literal, Optional, Union

from mcp import ClientSession, StdioServerParameters
from mcp.client.sse import sse_client
from mcp.client.stdio import stdio_client
from mcp.types import Tool as McpTool
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..core.errors import ServerConfigError, ServerConnectionError
from ..core.timing_logger import timed, timing_scope
from ..tools.tool_registry import ToolSet
from .remote_tool import McpToolAdapter

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------

class StdioServerConfig(BaseModel):
    """Server started as a child process speaking over stdin/stdout."""

    model_config = ConfigDict(frozen=True)

    protocol: Literal["stdio"] = "stdio"
    command: str
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)

    @timed
    def to_parameters(self) -> StdioServerParameters:
        # env overlays the SDK's default safe environment, not the full parent environment;
        # None leaves that default untouched.
        return StdioServerParameters(command=self.command, args=list(self.args), env=dict(self.env) or None)


class SseServerConfig(BaseModel):
    """Server reached through a long-lived SSE stream."""

    model_config = ConfigDict(frozen=True)

    protocol: Literal["sse"] = "sse"
    url: str


ServerConfig = Annotated[Union[StdioServerConfig, SseServerConfig], Field(discriminator="protocol")]


class McpConfig(BaseModel):
    """Remote server config file: ``{"mcpServers": {name: server}}``.

    Servers keep their file order; it is the connection order.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    servers: dict[str, ServerConfig] = Field(default_factory=dict, alias="mcpServers")

    @classmethod
    @timed
    def load(cls, path: Path) -> McpConfig:
        try:
            content = Path(path).read_text(encoding="utf-8")
            return cls.model_validate_json(content)
        except (OSError, ValidationError) as exc:
            raise ServerConfigError(path, exc) from exc


# -----------------------------------------------------------------------------
# Connections
# -----------------------------------------------------------------------------

class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


class ServerConnection:
    """An open transport and protocol session for one configured server.

    Lifecycle: DISCONNECTED -> CONNECTING -> CONNECTED -> CLOSED. A failed
    connect ends in CLOSED; there is no reconnect on the same instance.

    The transport contexts are entered on an AsyncExitStack and must be closed
    from the task that opened them.
    """

    def __init__(self, name: str, config: Union[StdioServerConfig, SseServerConfig]) -> None:
        self.name = name
        self.config = config
        self.state = ConnectionState.DISCONNECTED
        self.session: Optional[ClientSession] = None
        self._stack: Optional[AsyncExitStack] = None

    @timed
    def _open_transport(self) -> AsyncContextManager[Any]:
        if isinstance(self.config, StdioServerConfig):
            # stderr is inherited so server diagnostics reach the console.
            return stdio_client(self.config.to_parameters())
        return sse_client(self.config.url)

    @timed
    async def connect(self) -> ClientSession:
        """Open the transport and run the protocol handshake.

        Raises:
            ServerConnectionError: on any failure; partially opened resources
                are released first.
        """
        if self.state is not ConnectionState.DISCONNECTED:
            raise ServerConnectionError(self.name, f"cannot connect a {self.state.value} connection")
        self.state = ConnectionState.CONNECTING
        stack = AsyncExitStack()
        try:
            with timing_scope(f"remote_connect:{self.name}"):
                read_stream, write_stream = await stack.enter_async_context(self._open_transport())
                session = await stack.enter_async_context(ClientSession(read_stream, write_stream))
                await session.initialize()
        except Exception as exc:
            self.state = ConnectionState.CLOSED
            await self._release(stack)
            raise ServerConnectionError(self.name, exc) from exc

        self._stack = stack
        self.session = session
        self.state = ConnectionState.CONNECTED
        return session

    @timed
    async def list_tools(self) -> list[McpTool]:
        """Enumerate every tool the server exposes, following pagination cursors."""
        if self.session is None or self.state is not ConnectionState.CONNECTED:
            raise ServerConnectionError(self.name, f"connection is {self.state.value}")
        tools: list[McpTool] = []
        cursor: Optional[str] = None
        try:
            while True:
                result = await (self.session.list_tools(cursor=cursor) if cursor else self.session.list_tools())
                tools.extend(result.tools)
                cursor = result.nextCursor
                if not cursor:
                    break
        except Exception as exc:
            raise ServerConnectionError(self.name, exc) from exc
        return tools

    @timed
    async def close(self) -> None:
        if self.state is ConnectionState.CLOSED:
            return
        stack, self._stack = self._stack, None
        self.session = None
        self.state = ConnectionState.CLOSED
        if stack is not None:
            await stack.aclose()

    async def _release(self, stack: AsyncExitStack) -> None:
        try:
            await stack.aclose()
        except Exception:
            LOGGER.debug("Cleanup after failed connect to %s raised", self.name, exc_info=True)

    def __repr__(self) -> str:
        return f"ServerConnection(name={self.name!r}, state={self.state.value})"


# -----------------------------------------------------------------------------
# Adapter
# -----------------------------------------------------------------------------

class McpAdapter:
    """Owns one live connection per configured server and the flattened ToolSet.

    Use as an async context manager so connections are always torn down:

        async with await McpAdapter.init(config) as adapter:
            await adapter.toolset.call("search", {"q": "foo"})
    """

    def __init__(self) -> None:
        self.clients: dict[str, ServerConnection] = {}
        self.toolset = ToolSet()

    @classmethod
    @timed
    async def init(cls, config: McpConfig) -> McpAdapter:
        """Connect every server in configuration order and collect its tools.

        When two servers expose the same tool name, the later server wins.

        Raises:
            ServerConnectionError: for the first server that fails; nothing
                stays connected.
        """
        adapter = cls()
        try:
            for name, server_config in config.servers.items():
                connection = ServerConnection(name, server_config)
                adapter.clients[name] = connection
                session = await connection.connect()
                tools = await connection.list_tools()
                adapter.toolset.add(McpToolAdapter(tool, session, server_name=name) for tool in tools)
                LOGGER.info("Connected to server %s (%d tools)", name, len(tools))
        except BaseException:
            await adapter.aclose()
            raise
        return adapter

    @classmethod
    @timed
    async def from_path(cls, path: Path) -> McpAdapter:
        return await cls.init(McpConfig.load(path))

    @timed
    async def aclose(self) -> None:
        """Close every connection, most recently opened first."""
        for name in reversed(list(self.clients)):
            connection = self.clients[name]
            try:
                await connection.close()
            except Exception:
                LOGGER.warning("Failed to close server %s", name, exc_info=True)
        self.clients.clear()

    async def __aenter__(self) -> McpAdapter:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
