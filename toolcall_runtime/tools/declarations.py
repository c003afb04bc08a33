"""Static declaration store for local tools.

Loads the declarations file (a JSON array of function declarations) once and
answers name lookups. A missing file means no local tools.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from pydantic import TypeAdapter, ValidationError

from ..core.errors import DeclarationLoadError
from ..core.timing_logger import timed
from .types import FunctionDeclaration

LOGGER = logging.getLogger(__name__)

_DECLARATIONS_ADAPTER: TypeAdapter[list[FunctionDeclaration]] = TypeAdapter(list[FunctionDeclaration])


@timed
def load_declarations(path: Path) -> list[FunctionDeclaration]:
    """Load function declarations from ``path``; ``[]`` when the file does not exist."""
    if not path.exists():
        LOGGER.debug("No function declarations at %s", path)
        return []
    try:
        content = path.read_text(encoding="utf-8")
        declarations = _DECLARATIONS_ADAPTER.validate_json(content)
    except (OSError, ValidationError) as exc:
        raise DeclarationLoadError(path) from exc
    LOGGER.debug("Loaded %d function declarations from %s", len(declarations), path)
    return declarations


class FunctionStore:
    """Read-only index of function declarations, in file order."""

    def __init__(self, declarations: Optional[Iterable[FunctionDeclaration]] = None) -> None:
        self._declarations: tuple[FunctionDeclaration, ...] = tuple(declarations or ())

    @classmethod
    @timed
    def init(cls, declarations_path: Path) -> FunctionStore:
        return cls(load_declarations(declarations_path))

    @timed
    def find(self, name: str) -> Optional[FunctionDeclaration]:
        # First match wins when a file declares the same name twice.
        for declaration in self._declarations:
            if declaration.name == name:
                return declaration
        return None

    def contains(self, name: str) -> bool:
        return self.find(name) is not None

    def declarations(self) -> tuple[FunctionDeclaration, ...]:
        return self._declarations

    def is_empty(self) -> bool:
        return not self._declarations

    def __len__(self) -> int:
        return len(self._declarations)
