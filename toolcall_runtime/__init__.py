"""Tool-call runtime for LLM agents.

This package provides the tool invocation core of an agent runtime:
- Infrastructure modules: config, errors, logging, timing
- Tool subsystem: declarations, resolver, local executor, registry, dispatcher
- Remote subsystem: protocol server connections and remote tool adapters

Typical use:

    config = RuntimeConfig()
    functions = FunctionStore.init(config.functions_file())
    async with await McpAdapter.from_path(config.mcp_config_path()) as adapter:
        results = await eval_tool_calls(
            calls, config=config, functions=functions, toolset=adapter.toolset
        )
"""

from importlib.metadata import PackageNotFoundError, version as _get_version

try:
    __version__ = _get_version("toolcall-runtime")
except PackageNotFoundError:
    __version__ = "0.1.0"  # Fallback if not installed as package

from .core.config import RuntimeConfig
from .core.errors import (
    BatchError,
    ToolCallError,
    ToolRuntimeError,
)
from .core.logging_system import BatchLogger
from .remote import McpAdapter, McpConfig, McpToolAdapter
from .tools import (
    Agent,
    FunctionStore,
    Tool,
    ToolCall,
    ToolDispatcher,
    ToolResult,
    ToolSet,
    build_tool_specs,
    eval_tool_calls,
)

__all__ = [
    "__version__",
    "RuntimeConfig",
    "BatchError",
    "ToolCallError",
    "ToolRuntimeError",
    "BatchLogger",
    "McpAdapter",
    "McpConfig",
    "McpToolAdapter",
    "Agent",
    "FunctionStore",
    "Tool",
    "ToolCall",
    "ToolDispatcher",
    "ToolResult",
    "ToolSet",
    "build_tool_specs",
    "eval_tool_calls",
]
