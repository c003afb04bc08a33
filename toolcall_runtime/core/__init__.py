"""Core infrastructure module.

Foundation services required by all domains:
- Runtime configuration (RuntimeConfig)
- Error taxonomy
- Per-batch logging
- Timing instrumentation
- Pure utility functions
"""

from .config import DONE_SENTINEL, LOGGER, RuntimeConfig
from .errors import (
    BatchError,
    BatchExecutionError,
    DeclarationLoadError,
    InvalidToolArgumentsError,
    LoopDetectedError,
    RemoteCallError,
    ResultOrderingError,
    ServerConfigError,
    ServerConnectionError,
    ToolCallError,
    ToolExecutionError,
    ToolNotFoundError,
    ToolRuntimeError,
    ToolSpawnError,
)
from .logging_system import BatchLogger
from .utils import _compact_json, normalize_env_name, to_json_value

__all__ = [
    "DONE_SENTINEL",
    "LOGGER",
    "RuntimeConfig",
    "BatchError",
    "BatchExecutionError",
    "DeclarationLoadError",
    "InvalidToolArgumentsError",
    "LoopDetectedError",
    "RemoteCallError",
    "ResultOrderingError",
    "ServerConfigError",
    "ServerConnectionError",
    "ToolCallError",
    "ToolExecutionError",
    "ToolNotFoundError",
    "ToolRuntimeError",
    "ToolSpawnError",
    "BatchLogger",
    "_compact_json",
    "normalize_env_name",
    "to_json_value",
]
