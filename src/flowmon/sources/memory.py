"""In-process data source with realtime-database value semantics."""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Any

from flowmon.exceptions import FlowmonPermissionDeniedError, FlowmonSourceError
from flowmon.sources._tree import get_at, related, set_at, split_path
from flowmon.sources.base import ErrorCallback, Unsubscribe, ValueCallback

_logger = logging.getLogger(__name__)

_UNSET: Any = object()


@dataclass(slots=True)
class _Listener:
    path: str
    parts: tuple[str, ...]
    on_value: ValueCallback
    on_error: ErrorCallback
    last: Any = field(default=_UNSET)


class MemorySource:
    """A tree held in memory that pushes full values to subscribers.

    A write at ``a/b`` is seen by subscribers of ``a``, ``a/b`` and
    ``a/b/c``; subscribers are only notified when the value at their own
    path actually changed. New subscribers receive the current value
    (possibly ``None``) synchronously.
    """

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._root: Any = set_at(None, (), initial)
        self._listeners: dict[int, _Listener] = {}
        self._ids = itertools.count(1)

    def subscribe(self, path: str, on_value: ValueCallback, on_error: ErrorCallback) -> Unsubscribe:
        listener_id = next(self._ids)
        listener = _Listener(path=path, parts=split_path(path), on_value=on_value, on_error=on_error)
        self._listeners[listener_id] = listener
        _logger.debug("Memory subscribe id=%d path=%s", listener_id, path)

        def unsubscribe() -> None:
            if self._listeners.pop(listener_id, None) is not None:
                _logger.debug("Memory unsubscribe id=%d path=%s", listener_id, path)

        self._deliver(listener_id, listener)
        return unsubscribe

    def get(self, path: str) -> Any:
        return get_at(self._root, split_path(path))

    def set(self, path: str, value: Any) -> None:
        """Store *value* at *path* (``None`` deletes) and notify subscribers."""
        parts = split_path(path)
        self._root = set_at(self._root, parts, value)
        for listener_id, listener in list(self._listeners.items()):
            if related(parts, listener.parts):
                self._deliver(listener_id, listener)

    def fail(self, path: str, error: FlowmonSourceError | None = None) -> None:
        """Cancel every subscription on exactly *path* with *error*.

        Defaults to a permission-denied error, which is how a realtime
        database reports a listener revoked by its security rules.
        """
        parts = split_path(path)
        if error is None:
            error = FlowmonPermissionDeniedError(f"Permission denied: {path}", path=path)
        for listener_id, listener in list(self._listeners.items()):
            if listener.parts != parts:
                continue
            if self._listeners.pop(listener_id, None) is None:
                continue
            listener.on_error(error)

    def listener_count(self, path: str | None = None) -> int:
        if path is None:
            return len(self._listeners)
        parts = split_path(path)
        return sum(1 for listener in self._listeners.values() if listener.parts == parts)

    def _deliver(self, listener_id: int, listener: _Listener) -> None:
        if listener_id not in self._listeners:
            return
        value = get_at(self._root, listener.parts)
        if listener.last is not _UNSET and listener.last == value:
            return
        listener.last = value
        listener.on_value(value)
