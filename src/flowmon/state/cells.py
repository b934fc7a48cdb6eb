"""Observable cells, one per external stream.

Each stream writes only to its own cell. Values that combine several
streams are computed from the cells at read time, so a reader may see one
cell updated while another is still stale.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

_logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[str], None]


class Cell(Generic[T]):
    """Latest value of one stream plus its current error message."""

    def __init__(self, name: str, initial: T) -> None:
        self.name = name
        self._value = initial
        self._error: str | None = None
        self._version = 0
        self._listeners: list[Listener] = []

    @property
    def value(self) -> T:
        return self._value

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def version(self) -> int:
        """Number of changes so far; readers can use it to detect staleness."""
        return self._version

    def set(self, value: T, *, clear_error: bool = True) -> None:
        self._value = value
        if clear_error:
            self._error = None
        self._changed()

    def fail(self, message: str) -> None:
        """Record an error message; the last good value is kept."""
        self._error = message
        self._changed()

    def clear_error(self) -> None:
        if self._error is None:
            return
        self._error = None
        self._changed()

    def watch(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unwatch() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unwatch

    def _changed(self) -> None:
        self._version += 1
        for listener in list(self._listeners):
            try:
                listener(self.name)
            except Exception:
                _logger.warning("Cell listener failed cell=%s", self.name, exc_info=True)
