"""Test configuration helpers for unit tests."""

from __future__ import annotations

import json
import os
import stat
import sys
from pathlib import Path
from typing import Any, Callable

import pytest

from toolcall_runtime.core.config import RuntimeConfig
from toolcall_runtime.core.logging_system import BatchLogger
from toolcall_runtime.core.timing_logger import clear_timing_context, close_timing_file


@pytest.fixture
def functions_dir(tmp_path: Path) -> Path:
    """An empty functions directory with its bin/ subdirectory."""
    root = tmp_path / "functions"
    (root / "bin").mkdir(parents=True)
    return root


@pytest.fixture
def runtime_config(functions_dir: Path) -> RuntimeConfig:
    return RuntimeConfig(FUNCTIONS_DIR=str(functions_dir), LOG_LEVEL="DEBUG")


@pytest.fixture
def write_declarations() -> Callable[[Path, list[dict[str, Any]]], Path]:
    """Write a functions.json holding ``entries`` into ``directory``."""

    def _write(directory: Path, entries: list[dict[str, Any]]) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / "functions.json"
        path.write_text(json.dumps(entries), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def write_tool() -> Callable[[Path, str, str], Path]:
    """Create an executable POSIX shell script named ``name`` in ``bin_dir``."""

    def _write(bin_dir: Path, name: str, body: str) -> Path:
        bin_dir.mkdir(parents=True, exist_ok=True)
        script = bin_dir / name
        script.write_text("#!/bin/sh\n" + body + "\n", encoding="utf-8")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return _write


def declaration(name: str, *, allow_concurrency: bool = False, agent: bool = False, **extra: Any) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "name": name,
        "description": f"{name} tool",
        "parameters": {"type": "object", "properties": {}},
        "allow_concurrency": allow_concurrency,
    }
    if agent:
        entry["agent"] = True
    entry.update(extra)
    return entry


posix_only = pytest.mark.skipif(sys.platform == "win32" or os.name != "posix", reason="requires a POSIX shell")


@pytest.fixture(autouse=True)
def _reset_runtime_state():
    """Drop per-batch buffers and timing state left behind by a test."""
    yield
    BatchLogger.logs.clear()
    BatchLogger._last_seen.clear()
    clear_timing_context()
    close_timing_file()
