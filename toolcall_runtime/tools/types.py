"""Provider-neutral models for tool declarations, calls and results.

All models are pydantic so declaration files and provider payloads are parsed
the same way the runtime configuration is.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..core.config import DONE_SENTINEL
from ..core.errors import ToolCallError
from ..core.timing_logger import timed

__all__ = ["JsonSchema", "FunctionDeclaration", "ToolCall", "ToolResult"]


class JsonSchema(BaseModel):
    """Recursive JSON-schema subset used to describe tool parameters to the model.

    Only parsed structurally; arguments are never validated against it.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type_value: Optional[Union[str, list[str]]] = Field(default=None, alias="type")
    description: Optional[str] = None
    properties: Optional[dict[str, JsonSchema]] = None
    items: Optional[JsonSchema] = None
    any_of: Optional[list[JsonSchema]] = Field(default=None, alias="anyOf")
    enum_value: Optional[list[Any]] = Field(default=None, alias="enum")
    default: Optional[Any] = None
    required: Optional[list[str]] = None

    @timed
    def is_empty_properties(self) -> bool:
        return not self.properties

    @timed
    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class FunctionDeclaration(BaseModel):
    """A statically declared local tool. Immutable once loaded."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    parameters: JsonSchema
    # Marks functions an agent executes through its own executable; never sent to the model.
    agent: bool = Field(default=False, exclude=True)
    allow_concurrency: bool = False

    @timed
    def to_spec(self) -> dict[str, Any]:
        """Return the model-facing function tool spec."""
        return {
            "type": "function",
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters.to_dict(),
        }


class ToolCall(BaseModel):
    """A request emitted by the model to invoke a tool."""

    name: str
    arguments: Any = None
    id: Optional[str] = None

    @staticmethod
    @timed
    def dedup(calls: list[ToolCall]) -> list[ToolCall]:
        """Keep only the last occurrence of every call id.

        Calls without an id are always kept. Relative order of the survivors
        is preserved.
        """
        kept: list[ToolCall] = []
        seen_ids: set[str] = set()
        for call in reversed(calls):
            if call.id is None:
                kept.append(call)
            elif call.id not in seen_ids:
                seen_ids.add(call.id)
                kept.append(call)
        kept.reverse()
        return kept


class ToolResult(BaseModel):
    """A call paired with its output. ``output`` is never omitted."""

    call: ToolCall
    output: Any

    @classmethod
    @timed
    def from_eval(cls, call: ToolCall, value: Any = None, error: Optional[BaseException] = None) -> ToolResult:
        """Build the result of one evaluated call.

        A JSON null becomes the ``"DONE"`` sentinel; a per-call error becomes
        its structured error payload.
        """
        if error is not None:
            if isinstance(error, ToolCallError):
                output: Any = error.to_output()
            else:
                output = {"error": True, "message": str(error)}
        elif value is None:
            output = DONE_SENTINEL
        else:
            output = value
        return cls(call=call, output=output)

    @timed
    def is_empty(self) -> bool:
        """True when the output carries nothing worth reporting to the model."""
        return self.output is None or self.output == DONE_SENTINEL
