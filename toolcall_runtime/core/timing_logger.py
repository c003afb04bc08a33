"""Timing instrumentation for tool-call batches.

Provides:
- @timed: enter/exit records for any sync or async function
- timing_scope(): enter/exit records around a block
- timing_mark(): a single point-in-time record
- A JSONL sink (TIMING_LOG_FILE) plus a bounded per-batch memory buffer

Recording only happens inside a batch that enabled it through
set_timing_context(); everywhere else the helpers are pass-through.

    @timed
    async def eval_tool_calls(...):
        with timing_scope("local_call:fetch"):
            ...
        timing_mark("tool_end:fetch")
"""

from __future__ import annotations

import datetime
import functools
import inspect
import json
import threading
import time
from collections import deque
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import IO, Any, Callable, Iterator, Optional, TypeVar

MAX_TIMING_EVENTS = 10000

_LABEL_PREFIX = "toolcall_runtime."

_timing_enabled: ContextVar[bool] = ContextVar("timing_enabled", default=False)
_timing_batch_id: ContextVar[Optional[str]] = ContextVar("timing_batch_id", default=None)


class _TimingSink:
    """Process-wide destination of timing records: one JSONL file and per-batch deques."""

    def __init__(self) -> None:
        self.path: Optional[Path] = None
        self._handle: Optional[IO[str]] = None
        self._file_lock = threading.Lock()
        self._buffers: dict[str, deque[dict[str, Any]]] = {}
        self._buffer_lock = threading.Lock()

    def open(self, path: Path) -> bool:
        with self._file_lock:
            self._close_locked()
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                self._handle = open(path, "a", encoding="utf-8")
            except OSError:
                return False
            self.path = path
            return True

    def is_open_at(self, path: Path) -> bool:
        with self._file_lock:
            return self._handle is not None and self.path == path

    def close(self) -> None:
        with self._file_lock:
            self._close_locked()

    def _close_locked(self) -> None:
        handle, self._handle, self.path = self._handle, None, None
        if handle is None:
            return
        try:
            handle.close()
        except OSError:
            return

    def write(self, batch_id: str, record: dict[str, Any]) -> None:
        line = json.dumps(record, ensure_ascii=False, separators=(",", ":"))
        with self._file_lock:
            if self._handle is not None:
                try:
                    self._handle.write(line + "\n")
                    self._handle.flush()
                except OSError:
                    pass  # a full disk must not fail the batch
        with self._buffer_lock:
            self._buffers.setdefault(batch_id, deque(maxlen=MAX_TIMING_EVENTS)).append(record)

    def events(self, batch_id: str) -> list[dict[str, Any]]:
        with self._buffer_lock:
            return list(self._buffers.get(batch_id, ()))

    def discard(self, batch_id: str) -> None:
        with self._buffer_lock:
            self._buffers.pop(batch_id, None)


_SINK = _TimingSink()


def _record(event: str, label: str, perf_ts: float, elapsed_ms: Optional[float] = None) -> None:
    batch_id = _timing_batch_id.get()
    if not batch_id:
        return
    wall = datetime.datetime.now(tz=datetime.timezone.utc)
    record: dict[str, Any] = {
        "ts": wall.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        "perf_ts": round(perf_ts, 6),
        "event": event,
        "label": label,
        "batch_id": batch_id,
    }
    if elapsed_ms is not None:
        record["elapsed_ms"] = round(elapsed_ms, 3)
    _SINK.write(batch_id, record)


# -----------------------------------------------------------------------------
# File output
# -----------------------------------------------------------------------------

def configure_timing_file(file_path: str) -> bool:
    """(Re)open ``file_path`` for appending; False when it cannot be opened.

    Missing parent directories are created. On failure records still reach
    the in-memory buffers.
    """
    return _SINK.open(Path(file_path))


def ensure_timing_file_configured(file_path: str) -> bool:
    if _SINK.is_open_at(Path(file_path)):
        return True
    return configure_timing_file(file_path)


def close_timing_file() -> None:
    _SINK.close()


# -----------------------------------------------------------------------------
# Batch context
# -----------------------------------------------------------------------------

def set_timing_context(batch_id: str, enabled: bool) -> None:
    _timing_batch_id.set(batch_id)
    _timing_enabled.set(enabled)


def clear_timing_context() -> None:
    _timing_batch_id.set(None)
    _timing_enabled.set(False)


def get_timing_events(batch_id: str) -> list[dict[str, Any]]:
    return _SINK.events(batch_id)


def clear_timing_events(batch_id: str) -> None:
    _SINK.discard(batch_id)


# -----------------------------------------------------------------------------
# Instrumentation
# -----------------------------------------------------------------------------

def timing_mark(label: str) -> None:
    if _timing_enabled.get():
        _record("mark", label, time.perf_counter())


@contextmanager
def timing_scope(label: str) -> Iterator[None]:
    if not _timing_enabled.get():
        yield
        return
    started = time.perf_counter()
    _record("enter", label, started)
    try:
        yield
    finally:
        finished = time.perf_counter()
        _record("exit", label, finished, (finished - started) * 1000)


F = TypeVar("F", bound=Callable[..., Any])


def _label_for(func: Callable[..., Any]) -> str:
    module = (getattr(func, "__module__", None) or "").removeprefix(_LABEL_PREFIX)
    name = getattr(func, "__qualname__", None) or getattr(func, "__name__", "unknown")
    return f"{module}.{name}" if module else name


def timed(func: F) -> F:
    """Wrap ``func`` in a timing_scope named after its module and qualified name."""
    label = _label_for(func)

    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            if not _timing_enabled.get():
                return await func(*args, **kwargs)
            with timing_scope(label):
                return await func(*args, **kwargs)

        return async_wrapper  # type: ignore[return-value]

    @functools.wraps(func)
    def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
        if not _timing_enabled.get():
            return func(*args, **kwargs)
        with timing_scope(label):
            return func(*args, **kwargs)

    return sync_wrapper  # type: ignore[return-value]
