"""Logging system with per-batch log capture.

This module handles logging-related functionality:
- BatchLogger: logger factory whose records carry the current batch id
- Log event classification and formatting
- Bounded in-memory buffers of structured events, one per batch
- Explicit and age-based cleanup of batch buffers

The BatchLogger uses contextvars to track batch_id so concurrent call tasks
spawned inside a batch inherit the id and their records land in the same
buffer.
"""

from __future__ import annotations

import logging
import sys
import threading
import time
import traceback
import uuid
from collections import deque
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, Optional

from .timing_logger import timed

LOGGER = logging.getLogger(__name__)

PACKAGE_LOGGER_NAME = "toolcall_runtime"


class BatchLogger:
    """Logger factory that tags records with the active batch id.

    Attributes:
        batch_id:  ContextVar storing the id of the batch being dispatched.
        log_level: ContextVar storing the minimum console level for this batch.
        logs:      Map of batch_id -> fixed-size deque of structured log events.
    """

    batch_id: ContextVar[Optional[str]] = ContextVar("batch_id", default=None)
    log_level: ContextVar[int] = ContextVar("batch_log_level", default=logging.INFO)
    max_lines: int = 2000
    logs: Dict[str, deque[dict[str, Any]]] = {}
    _last_seen: Dict[str, float] = {}
    _state_lock = threading.Lock()
    _console_formatter = logging.Formatter(
        "%(asctime)s.%(msecs)03d | %(levelname)-8s | [batch=%(batch_id)s] %(name)s:%(funcName)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    @staticmethod
    @timed
    def _classify_event_type(logger_name: str, message: str) -> str:
        msg = (message or "").lstrip()
        if logger_name.endswith(".local_executor") or msg.startswith("Call "):
            return "tools.local"
        if ".remote." in logger_name or logger_name.endswith(".remote"):
            return "tools.remote"
        if logger_name.endswith(".tool_executor"):
            return "tools.dispatch"
        return "runtime"

    @classmethod
    @timed
    def _build_event(cls, record: logging.LogRecord) -> dict[str, Any]:
        """Return a structured event extracted from a LogRecord."""
        message = record.getMessage()
        event: dict[str, Any] = {
            "created": float(record.created),
            "level": record.levelname,
            "logger": record.name,
            "batch_id": getattr(record, "batch_id", None),
            "event_type": cls._classify_event_type(record.name, message),
            "module": record.module,
            "func": record.funcName,
            "lineno": record.lineno,
            "message": message,
        }
        if record.exc_info:
            event["exception"] = {"text": "".join(traceback.format_exception(*record.exc_info))}
        return event

    @classmethod
    @timed
    def format_event_as_text(cls, event: dict[str, Any]) -> str:
        created = float(event.get("created") or time.time())
        asctime = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(created))
        msecs = int((created - int(created)) * 1000)
        return f"{asctime},{msecs:03d} [{event.get('level') or 'INFO'}] [batch={event.get('batch_id') or '-'}] {event.get('message') or ''}"

    @classmethod
    @timed
    def get_logger(cls, name: str = PACKAGE_LOGGER_NAME) -> logging.Logger:
        """Create a logger wired to the BatchLogger context.

        Args:
            name: Logger name; defaults to the package root so every module
                logger (propagating to it) is captured.

        Returns:
            logging.Logger: A logger that writes to stdout (honouring the
            per-batch level) and into ``BatchLogger.logs`` keyed by the
            current ``BatchLogger.batch_id``.
        """
        logger = logging.getLogger(name)
        logger.handlers.clear()
        logger.filters.clear()
        logger.setLevel(logging.DEBUG)
        root_logger = logging.getLogger()
        if not any(isinstance(handler, logging.NullHandler) for handler in root_logger.handlers):
            root_logger.addHandler(logging.NullHandler())
        logger.propagate = True

        def _filter(record: logging.LogRecord) -> bool:
            record.batch_id = cls.batch_id.get() or "-"
            record.batch_log_level = cls.log_level.get()
            return True

        handler = logging.Handler()
        # Handler-level so records propagated from child module loggers are stamped too.
        handler.addFilter(_filter)
        handler.emit = cls.process_record  # type: ignore[method-assign]
        logger.addHandler(handler)
        return logger

    @classmethod
    @timed
    def set_max_lines(cls, value: int) -> None:
        cls.max_lines = max(100, min(200000, int(value)))

    @classmethod
    def process_record(cls, record: logging.LogRecord) -> None:
        try:
            if record.levelno >= int(getattr(record, "batch_log_level", logging.INFO)):
                sys.stdout.write(cls._console_formatter.format(record) + "\n")
                sys.stdout.flush()
            batch_id = getattr(record, "batch_id", None)
            if not batch_id or batch_id == "-":
                return
            event = cls._build_event(record)
            with cls._state_lock:
                buffer = cls.logs.get(batch_id)
                if buffer is None or buffer.maxlen != cls.max_lines:
                    buffer = deque(buffer or (), maxlen=cls.max_lines)
                    cls.logs[batch_id] = buffer
                buffer.append(event)
                cls._last_seen[batch_id] = time.time()
        except Exception:
            # Logging must never break a batch.
            return

    @classmethod
    @contextmanager
    def batch_scope(cls, batch_id: Optional[str] = None, *, level: int = logging.INFO) -> Iterator[str]:
        """Bind a batch id (generated when omitted) and console level for the block."""
        bid = batch_id or uuid.uuid4().hex[:12]
        id_token = cls.batch_id.set(bid)
        level_token = cls.log_level.set(level)
        try:
            yield bid
        finally:
            cls.batch_id.reset(id_token)
            cls.log_level.reset(level_token)

    @classmethod
    @timed
    def get_events(cls, batch_id: str) -> list[dict[str, Any]]:
        with cls._state_lock:
            return list(cls.logs.get(batch_id) or ())

    @classmethod
    @timed
    def cleanup(cls, batch_id: str) -> None:
        with cls._state_lock:
            cls.logs.pop(batch_id, None)
            cls._last_seen.pop(batch_id, None)

    @classmethod
    @timed
    def cleanup_stale(cls, max_age_seconds: float = 3600) -> None:
        """Remove batch buffers not written to for ``max_age_seconds``."""
        cutoff = time.time() - max_age_seconds
        with cls._state_lock:
            stale = [bid for bid, ts in cls._last_seen.items() if ts < cutoff]
            for bid in stale:
                cls.logs.pop(bid, None)
                cls._last_seen.pop(bid, None)
