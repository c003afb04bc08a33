"""Remote tool subsystem.

This package connects to external tool servers over the model context
protocol:
- client: server config, per-server connections, and the McpAdapter owning them
- remote_tool: McpToolAdapter exposing each remote tool as a local Tool
"""

from .client import (
    ConnectionState,
    McpAdapter,
    McpConfig,
    ServerConfig,
    ServerConnection,
    SseServerConfig,
    StdioServerConfig,
)
from .remote_tool import McpToolAdapter

__all__ = [
    "ConnectionState",
    "McpAdapter",
    "McpConfig",
    "ServerConfig",
    "ServerConnection",
    "SseServerConfig",
    "StdioServerConfig",
    "McpToolAdapter",
]
