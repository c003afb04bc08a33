"""Tool registry building.

This module handles tool lookup and spec management:
- ToolSet: flattened name -> Tool table (last registration wins)
- local_toolset: wrap global local declarations as Tools
- build_tool_specs: model-facing function specs for local + remote tools
- _dedupe_tools: remove duplicate spec definitions (last write wins)

Name collisions are resolved silently by last-write-wins; there is no
namespacing by origin.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from ..core.config import RuntimeConfig
from ..core.errors import ToolNotFoundError
from ..core.timing_logger import timed
from .base import LocalTool, Tool
from .declarations import FunctionStore

LOGGER = logging.getLogger(__name__)


class ToolSet:
    """Name-keyed tool table. Built once, read concurrently without locking."""

    def __init__(self, tools: Optional[Iterable[Tool]] = None) -> None:
        self._tools: dict[str, Tool] = {}
        if tools is not None:
            self.add(tools)

    @timed
    def add(self, tools: Iterable[Tool]) -> None:
        for tool in tools:
            previous = self._tools.get(tool.name)
            if previous is not None and previous is not tool:
                LOGGER.debug("Tool %s replaced by a later registration (%r -> %r)", tool.name, previous, tool)
            self._tools[tool.name] = tool

    @timed
    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def tools(self) -> list[Tool]:
        return list(self._tools.values())

    def names(self) -> list[str]:
        return list(self._tools)

    @timed
    async def call(self, name: str, args: Any) -> Any:
        """Find and call a tool."""
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return await tool.call(args)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)


@timed
def local_toolset(functions: FunctionStore, config: RuntimeConfig) -> ToolSet:
    """Wrap every global declaration as a LocalTool."""
    return ToolSet(LocalTool(declaration, config) for declaration in functions.declarations())


@timed
def _dedupe_tools(tools: Optional[list[dict[str, Any]]]) -> list[dict[str, Any]]:
    """(Internal) Deduplicate a spec list by ("function", name); later entries win.

    Non-dict entries and entries without a name are dropped.
    """
    if not tools:
        return []
    canonical: dict[tuple[str, str], dict[str, Any]] = {}
    for spec in tools:
        if not isinstance(spec, dict):
            continue
        name = spec.get("name")
        if not isinstance(name, str) or not name:
            continue
        canonical[(spec.get("type") or "function", name)] = spec
    return list(canonical.values())


@timed
def build_tool_specs(
    functions: Optional[FunctionStore] = None,
    toolset: Optional[ToolSet] = None,
    *,
    agent_functions: Optional[FunctionStore] = None,
) -> list[dict[str, Any]]:
    """Build the function spec list exposed to the model.

    Order: remote tools, global declarations, active-agent declarations.
    Later sources win on a name collision, matching the order in which the
    dispatcher resolves a call (agent, then global, then remote).
    """
    specs: list[dict[str, Any]] = []
    if toolset is not None:
        specs.extend(tool.to_spec() for tool in toolset.tools())
    if functions is not None:
        specs.extend(declaration.to_spec() for declaration in functions.declarations())
    if agent_functions is not None:
        specs.extend(declaration.to_spec() for declaration in agent_functions.declarations())
    return _dedupe_tools(specs)
