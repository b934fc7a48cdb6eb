"""Structural interface of a push-based key/value data source."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol

from flowmon.exceptions import FlowmonSourceError

ValueCallback = Callable[[Any], None]
ErrorCallback = Callable[[FlowmonSourceError], None]
Unsubscribe = Callable[[], None]


class DataSource(Protocol):
    """A source of full-replace value notifications per path.

    ``subscribe`` registers interest in *path* and returns a callable that
    cancels it. Every notification carries the complete current value at
    the path (``None`` when nothing is stored there). After ``on_error`` is
    called the subscription is dead and receives nothing more.

    Implementations may deliver the first value synchronously from inside
    ``subscribe``.
    """

    def subscribe(self, path: str, on_value: ValueCallback, on_error: ErrorCallback) -> Unsubscribe: ...
