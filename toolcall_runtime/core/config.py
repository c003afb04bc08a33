"""Configuration for the tool-call runtime.

This module contains the runtime configuration schema and its constants:
- RuntimeConfig: functions directory, output channel, remote server file, logging
- Derived filesystem layout for local tools and agents
- Log level normalization
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal, Optional, cast

from pydantic import BaseModel, ConfigDict, Field

from .timing_logger import timed

LOGGER = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------

_ALLOWED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_DEFAULT_FUNCTIONS_DIR = Path("~/.config/toolcall/functions")

FUNCTIONS_FILE_NAME = "functions.json"
MCP_CONFIG_FILE_NAME = "mcp.json"
BIN_DIR_NAME = "bin"
AGENTS_DIR_NAME = "agents"

# Sentinel output for a call that succeeded with nothing to report.
DONE_SENTINEL = "DONE"


def _resolve_log_level_default() -> Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
    """Normalize env-provided log level to the allowed literal set."""
    value = (os.getenv("GLOBAL_LOG_LEVEL") or "INFO").strip().upper()
    if value not in _ALLOWED_LOG_LEVELS:
        value = "INFO"
    return cast(Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], value)


def _resolve_functions_dir_default() -> str:
    value = (os.getenv("LLM_FUNCTIONS_DIR") or "").strip()
    return value or str(_DEFAULT_FUNCTIONS_DIR)


# -----------------------------------------------------------------------------
# RuntimeConfig
# -----------------------------------------------------------------------------

class RuntimeConfig(BaseModel):
    """Process-wide settings shared by every tool-call batch."""

    model_config = ConfigDict(frozen=True)

    # Local tools
    FUNCTIONS_DIR: str = Field(
        default_factory=_resolve_functions_dir_default,
        description=(
            "Root of the local tool installation. Holds functions.json, the bin/ directory "
            "with tool executables and agents/<name>/ for agent-scoped tools."
        ),
    )
    OUTPUT_ENV_VAR: str = Field(
        default="LLM_OUTPUT",
        min_length=1,
        description="Environment variable naming the file a local tool writes its JSON result to.",
    )
    TEMP_FILE_PREFIX: str = Field(
        default="toolcall",
        description="Prefix of the per-call temporary output file names.",
    )

    # Remote tools
    MCP_CONFIG_FILE: Optional[str] = Field(
        default_factory=lambda: (os.getenv("LLM_MCP_CONFIG") or "").strip() or None,
        description="Path of the remote server config file. Defaults to <FUNCTIONS_DIR>/mcp.json.",
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default_factory=_resolve_log_level_default,
        description="Console log level for tool-call batches.",
    )
    BATCH_LOG_MAX_LINES: int = Field(
        default=2000,
        ge=100,
        le=200000,
        description="Maximum number of in-memory log events retained per batch (older entries are dropped).",
    )
    ENABLE_TIMING_LOG: bool = Field(
        default=False,
        description="Record function enter/exit timings for each batch as JSONL.",
    )
    TIMING_LOG_FILE: str = Field(
        default="logs/timing.jsonl",
        description="Destination of timing records when ENABLE_TIMING_LOG is on.",
    )

    # ------------------------------------------------------------------ paths
    @timed
    def functions_dir(self) -> Path:
        return Path(self.FUNCTIONS_DIR).expanduser()

    @timed
    def functions_file(self) -> Path:
        return self.functions_dir() / FUNCTIONS_FILE_NAME

    @timed
    def functions_bin_dir(self) -> Path:
        return self.functions_dir() / BIN_DIR_NAME

    @timed
    def agent_functions_dir(self, agent_name: str) -> Path:
        return self.functions_dir() / AGENTS_DIR_NAME / agent_name

    @timed
    def agent_bin_dir(self, agent_name: str) -> Path:
        return self.agent_functions_dir(agent_name) / BIN_DIR_NAME

    @timed
    def mcp_config_path(self) -> Path:
        if self.MCP_CONFIG_FILE:
            return Path(self.MCP_CONFIG_FILE).expanduser()
        return self.functions_dir() / MCP_CONFIG_FILE_NAME

    @timed
    def log_level_value(self) -> int:
        return logging.getLevelName(self.LOG_LEVEL)
