"""Remote tool adapter.

Wraps one tool exposed by a connected protocol server, plus the session it
came from, behind the local ``Tool`` interface.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from mcp import ClientSession
from mcp.types import CallToolResult, Tool as McpTool

from ..core.errors import RemoteCallError, describe_transport_error
from ..core.timing_logger import timed, timing_scope
from ..tools.base import Tool

LOGGER = logging.getLogger(__name__)


class McpToolAdapter(Tool):
    """A remote tool callable through its owning server session."""

    def __init__(self, tool: McpTool, session: ClientSession, server_name: Optional[str] = None) -> None:
        self.tool = tool
        self.session = session
        self.server_name = server_name

    @property
    def name(self) -> str:
        return self.tool.name

    @property
    def description(self) -> str:
        return self.tool.description or ""

    @property
    def parameters(self) -> dict[str, Any]:
        return dict(self.tool.inputSchema or {})

    @property
    def annotations(self) -> dict[str, Any]:
        if self.tool.annotations is None:
            return {}
        return self.tool.annotations.model_dump(exclude_none=True)

    @property
    def concurrent(self) -> bool:
        # Only tools the server marks read-only may run alongside other calls.
        return self.annotations.get("readOnlyHint") is True

    @timed
    async def call(self, args: Any) -> CallToolResult:
        """Forward ``args`` as named arguments; non-object input sends no arguments.

        The server's result is returned unchanged.

        Raises:
            RemoteCallError: the request failed at the protocol or transport level.
        """
        arguments = args if isinstance(args, dict) else None
        LOGGER.debug("Remote call %s on %s", self.tool.name, self.server_name or "-")
        try:
            with timing_scope(f"remote_call:{self.tool.name}"):
                return await self.session.call_tool(self.tool.name, arguments)
        except Exception as exc:
            raise RemoteCallError(self.tool.name, describe_transport_error(exc)) from exc

    def __repr__(self) -> str:
        return f"McpToolAdapter(name={self.tool.name!r}, server={self.server_name!r})"

