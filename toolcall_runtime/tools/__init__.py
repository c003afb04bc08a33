"""Tool execution subsystem.

This package contains tool-related functionality:
- types: ToolCall, ToolResult, FunctionDeclaration and JsonSchema models
- declarations: loading and lookup of statically declared local tools
- resolver: tool name (+ active agent) -> execution spec
- local_executor: running a resolved spec as a child process
- base: the Tool capability interface and its local implementation
- tool_registry: ToolSet, collision handling, and spec building
- tool_executor: the batch dispatcher

The tool subsystem covers the life of a call batch from deduplication
through execution and ordered result assembly.
"""

from .base import LocalTool, Tool
from .declarations import FunctionStore, load_declarations
from .local_executor import eval_local_call
from .resolver import Agent, ToolCallConfig
from .tool_executor import ToolDispatcher, eval_tool_calls
from .tool_registry import ToolSet, _dedupe_tools, build_tool_specs, local_toolset
from .types import FunctionDeclaration, JsonSchema, ToolCall, ToolResult

__all__ = [
    "LocalTool",
    "Tool",
    "FunctionStore",
    "load_declarations",
    "eval_local_call",
    "Agent",
    "ToolCallConfig",
    "ToolDispatcher",
    "eval_tool_calls",
    "ToolSet",
    "_dedupe_tools",
    "build_tool_specs",
    "local_toolset",
    "FunctionDeclaration",
    "JsonSchema",
    "ToolCall",
    "ToolResult",
]
