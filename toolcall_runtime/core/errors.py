"""Error taxonomy for tool-call execution.

This module defines every error the runtime raises:
- Per-call errors (ToolCallError subclasses): converted to structured JSON
  output by the dispatcher and returned to the model as data
- Batch errors: abort the whole tool-calling turn
- Startup errors: declaration/config loading and remote server connection

Per-call errors expose ``to_output()`` which renders the payload stored in the
call's ToolResult.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx

from .timing_logger import timed

LOGGER = logging.getLogger(__name__)


class ToolRuntimeError(RuntimeError):
    """Base class for every error raised by the tool-call runtime."""


# -----------------------------------------------------------------------------
# Per-call errors
# -----------------------------------------------------------------------------

class ToolCallError(ToolRuntimeError):
    """A single call failed; siblings in the batch are unaffected."""

    @timed
    def to_output(self) -> dict[str, Any]:
        return {"error": True, "message": str(self)}


class ToolNotFoundError(ToolCallError):
    """The requested name resolves neither to an agent nor to a global tool."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Function not found: {name}")


class InvalidToolArgumentsError(ToolCallError):
    """Call arguments are neither a JSON object nor a string holding one."""

    def __init__(self, call_name: str, raw_arguments: Any) -> None:
        self.call_name = call_name
        self.raw_arguments = raw_arguments
        super().__init__(f"The call '{call_name}' has invalid arguments: {_render_raw(raw_arguments)}")


class ToolSpawnError(ToolCallError):
    """The tool executable could not be started."""

    def __init__(self, cmd_name: str, reason: Any) -> None:
        self.cmd_name = cmd_name
        super().__init__(f"Unable to run {cmd_name}, {reason}")


class ToolExecutionError(ToolCallError):
    """The tool process exited with a non-zero status."""

    def __init__(self, cmd_name: str, *, stdout: str, stderr: str, returncode: Optional[int] = None) -> None:
        self.cmd_name = cmd_name
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode
        super().__init__(f"Tool '{cmd_name}' exited with status {returncode}")

    @timed
    def to_output(self) -> dict[str, Any]:
        return {"error": True, "stdout": self.stdout, "stderr": self.stderr}


class RemoteCallError(ToolCallError):
    """A remote tool call failed at the protocol or transport level."""

    def __init__(self, tool_name: str, reason: Any) -> None:
        self.tool_name = tool_name
        super().__init__(f"Remote tool '{tool_name}' failed: {reason}")


# -----------------------------------------------------------------------------
# Batch errors
# -----------------------------------------------------------------------------

class BatchError(ToolRuntimeError):
    """The whole batch is aborted."""


class LoopDetectedError(BatchError):
    def __init__(self) -> None:
        super().__init__("The request was aborted because an infinite loop of function calls was detected.")


class BatchExecutionError(BatchError):
    """A concurrent task terminated abnormally (not a tool reporting failure)."""

    def __init__(self, reason: Any) -> None:
        super().__init__(f"A concurrent tool call task failed: {reason}")


class ResultOrderingError(BatchError):
    """A batch position was left without a result. Indicates a bug."""

    def __init__(self, index: int) -> None:
        self.index = index
        super().__init__(f"Failed to reconstruct tool call results in order (missing position {index})")


# -----------------------------------------------------------------------------
# Startup errors
# -----------------------------------------------------------------------------

class DeclarationLoadError(ToolRuntimeError):
    def __init__(self, path: Any) -> None:
        self.path = path
        super().__init__(f"Failed to load functions at {path}")


class ServerConfigError(ToolRuntimeError):
    def __init__(self, path: Any, reason: Any) -> None:
        self.path = path
        super().__init__(f"Failed to load remote server config at {path}: {reason}")


class ServerConnectionError(ToolRuntimeError):
    """A configured remote server could not be connected or initialized."""

    def __init__(self, server_name: str, reason: Any) -> None:
        self.server_name = server_name
        super().__init__(f"Failed to connect to server '{server_name}': {describe_transport_error(reason)}")


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _render_raw(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return repr(value)


@timed
def describe_transport_error(exc: Any) -> str:
    """Return a concise description of a transport failure.

    anyio task groups used by the protocol transports wrap the real failure in
    an ExceptionGroup; the first leaf is reported.
    """
    if not isinstance(exc, BaseException):
        return str(exc)
    while isinstance(exc, BaseExceptionGroup) and exc.exceptions:
        exc = exc.exceptions[0]
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code} from {exc.request.url}"
    if isinstance(exc, httpx.HTTPError):
        return f"HTTP transport error: {exc.__class__.__name__}: {exc}"
    message = str(exc)
    return f"{exc.__class__.__name__}: {message}" if message else exc.__class__.__name__
