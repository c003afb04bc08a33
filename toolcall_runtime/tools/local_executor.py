"""Local tool execution.

A local tool is an executable found on an augmented PATH. It receives its
arguments as one trailing JSON-object argument and writes its structured
result to the file named by the output environment variable. Standard output
is only echoed for diagnostics.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import subprocess
import sys
import tempfile
import uuid
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

from ..core.config import RuntimeConfig
from ..core.errors import InvalidToolArgumentsError, ToolCallError, ToolExecutionError, ToolSpawnError
from ..core.timing_logger import timed, timing_scope
from ..core.utils import _compact_json, _truncate
from .resolver import ToolCallConfig
from .types import ToolCall

LOGGER = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"


@timed
def normalize_arguments(call_name: str, arguments: Any) -> dict[str, Any]:
    """Return the call arguments as a JSON object.

    Objects pass through; strings are parsed as JSON and must hold an object.
    """
    if isinstance(arguments, dict):
        return arguments
    if isinstance(arguments, str):
        try:
            parsed = json.loads(arguments)
        except json.JSONDecodeError as exc:
            raise InvalidToolArgumentsError(call_name, arguments) from exc
        if isinstance(parsed, dict):
            return parsed
    raise InvalidToolArgumentsError(call_name, arguments)


@timed
def build_bin_dirs(spec: ToolCallConfig, config: RuntimeConfig) -> list[Path]:
    """Directories prepended to PATH for ``spec``, highest priority first."""
    bin_dirs: list[Path] = []
    if spec.agent_scoped:
        agent_dir = config.agent_bin_dir(spec.cmd)
        if agent_dir.is_dir():
            bin_dirs.append(agent_dir)
    bin_dirs.append(config.functions_bin_dir())
    return bin_dirs


@timed
def build_child_env(
    spec_envs: Mapping[str, str],
    bin_dirs: Sequence[Path],
    output_var: str,
    output_path: Path,
    base_env: Optional[Mapping[str, str]] = None,
) -> dict[str, str]:
    """Return the complete environment for the child process.

    Built from a copy of ``base_env`` (the current process environment by
    default); the caller's environment is never modified.
    """
    env = dict(os.environ if base_env is None else base_env)
    env.update(spec_envs)
    current_path = env.get("PATH", os.defpath)
    env["PATH"] = os.pathsep.join([*(str(d) for d in bin_dirs), current_path])
    env[output_var] = str(output_path)
    return env


@timed
def polyfill_cmd_name(cmd_name: str, bin_dirs: Sequence[Path], pathext: Optional[str] = None) -> str:
    """Return ``cmd_name`` plus the first PATHEXT extension that exists in ``bin_dirs``.

    Only needed where executables are resolved by extension (Windows).
    """
    exts = pathext if pathext is not None else os.environ.get("PATHEXT")
    if not exts:
        return cmd_name
    for ext in (e for e in exts.split(";") if e):
        candidate = f"{cmd_name}{ext}"
        for directory in bin_dirs:
            if (Path(directory) / candidate).exists():
                return candidate
    return cmd_name


@timed
def new_output_path(prefix: str) -> Path:
    return Path(tempfile.gettempdir()) / f"{prefix}-eval-{uuid.uuid4().hex}"


@timed
def parse_tool_output(contents: str) -> Any:
    """Parse the output file contents; non-JSON text is wrapped as ``{"output": text}``."""
    try:
        return json.loads(contents)
    except json.JSONDecodeError:
        return {"output": contents}


@timed
def run_llm_function(
    cmd_name: str,
    cmd_args: list[str],
    envs: dict[str, str],
    bin_dirs: list[Path],
    config: RuntimeConfig,
) -> Optional[str]:
    """Run a local tool to completion and return the contents of its output file.

    Returns None when the tool wrote nothing.

    Raises:
        ToolSpawnError: the executable could not be started.
        ToolExecutionError: the process exited with a non-zero status.
    """
    output_path = new_output_path(config.TEMP_FILE_PREFIX)
    env = build_child_env(envs, bin_dirs, config.OUTPUT_ENV_VAR, output_path)
    if IS_WINDOWS:
        cmd_name = polyfill_cmd_name(cmd_name, bin_dirs)

    LOGGER.info("Call %s %s", cmd_name, " ".join(cmd_args))
    try:
        try:
            completed = subprocess.run(
                [cmd_name, *cmd_args],
                env=env,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
            )
        except OSError as exc:
            raise ToolSpawnError(cmd_name, exc) from exc

        if completed.stdout:
            LOGGER.debug("%s stdout: %s", cmd_name, _truncate(completed.stdout))
        if completed.returncode != 0:
            LOGGER.warning("Tool call failed: %s exited with %s", cmd_name, completed.returncode)
            raise ToolExecutionError(
                cmd_name,
                stdout=completed.stdout,
                stderr=completed.stderr,
                returncode=completed.returncode,
            )

        if not output_path.exists():
            return None
        try:
            contents = output_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ToolCallError(f"Failed to retrieve tool call output: {exc}") from exc
        return contents or None
    finally:
        output_path.unlink(missing_ok=True)


@timed
async def eval_local_call(call: ToolCall, spec: ToolCallConfig, config: RuntimeConfig) -> Any:
    """Execute ``call`` as described by ``spec`` and return its JSON output.

    The process runs on a worker thread; the calling task suspends until it
    exits. Returns None when the tool produced no output.
    """
    arguments = normalize_arguments(spec.name, call.arguments)
    cmd_args = [*spec.args, _compact_json(arguments)]
    bin_dirs = build_bin_dirs(spec, config)

    with timing_scope(f"local_call:{spec.name}"):
        contents = await asyncio.to_thread(run_llm_function, spec.cmd, cmd_args, dict(spec.envs), bin_dirs, config)
    if contents is None:
        return None
    return parse_tool_output(contents)
