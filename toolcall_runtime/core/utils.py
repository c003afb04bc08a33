"""Pure utility functions shared across the runtime."""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import BaseModel

from .timing_logger import timed

_ENV_NAME_INVALID_RE = re.compile(r"[^A-Za-z0-9]")


@timed
def _compact_json(value: Any) -> str:
    """Serialize ``value`` without whitespace, keeping non-ASCII text as-is."""
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


@timed
def normalize_env_name(value: str) -> str:
    """Upper-case ``value`` and replace anything but ASCII letters/digits with ``_``."""
    return _ENV_NAME_INVALID_RE.sub("_", value).upper()


@timed
def _truncate(text: str, limit: int = 2000) -> str:
    if len(text) <= limit:
        return text
    return f"{text[:limit]}... [{len(text) - limit} more chars]"


@timed
def to_json_value(value: Any) -> Any:
    """Render a tool return value as plain JSON data.

    Pydantic models (remote call results) are dumped by alias without unset
    fields; anything else is assumed to be JSON already.
    """
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    return value
