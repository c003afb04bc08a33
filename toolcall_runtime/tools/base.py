"""Tool capability interface.

Local declarations and remote protocol tools are both exposed to the rest of
the runtime as a ``Tool``: name, description, parameter schema, annotations,
and an async ``call``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..core.config import RuntimeConfig
from ..core.timing_logger import timed
from .local_executor import eval_local_call
from .resolver import ToolCallConfig
from .types import FunctionDeclaration, ToolCall


class Tool(ABC):
    """A callable capability exposed to the model."""

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def description(self) -> str: ...

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]: ...

    @property
    def annotations(self) -> dict[str, Any]:
        return {}

    @property
    def concurrent(self) -> bool:
        """Whether the dispatcher may run this tool in parallel with others."""
        return False

    @abstractmethod
    async def call(self, args: Any) -> Any: ...

    @timed
    def to_spec(self) -> dict[str, Any]:
        return {
            "type": "function",
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class LocalTool(Tool):
    """A global local declaration behind the Tool interface."""

    def __init__(self, declaration: FunctionDeclaration, config: RuntimeConfig) -> None:
        self.declaration = declaration
        self.config = config

    @property
    def name(self) -> str:
        return self.declaration.name

    @property
    def description(self) -> str:
        return self.declaration.description

    @property
    def parameters(self) -> dict[str, Any]:
        return self.declaration.parameters.to_dict()

    @property
    def concurrent(self) -> bool:
        return self.declaration.allow_concurrency

    @timed
    async def call(self, args: Any) -> Any:
        spec = ToolCallConfig.from_declaration(self.declaration)
        return await eval_local_call(ToolCall(name=self.name, arguments=args), spec, self.config)
