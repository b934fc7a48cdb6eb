from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import pytest

from flowmon.exceptions import FlowmonSourceError


@dataclass
class ManualSubscription:
    path: str
    on_value: Any
    on_error: Any
    active: bool = True


class ManualSource:
    """Data source driven explicitly by the test; nothing is delivered on subscribe."""

    def __init__(self) -> None:
        self.subscriptions: list[ManualSubscription] = []

    def subscribe(self, path: str, on_value: Any, on_error: Any):
        subscription = ManualSubscription(path, on_value, on_error)
        self.subscriptions.append(subscription)

        def unsubscribe() -> None:
            subscription.active = False

        return unsubscribe

    def active_paths(self) -> list[str]:
        return [sub.path for sub in self.subscriptions if sub.active]

    def latest(self, path: str) -> ManualSubscription:
        return [sub for sub in self.subscriptions if sub.path == path][-1]

    def push(self, path: str, payload: Any) -> None:
        self.latest(path).on_value(payload)

    def error(self, path: str, error: FlowmonSourceError | None = None) -> None:
        subscription = self.latest(path)
        subscription.active = False
        subscription.on_error(error or FlowmonSourceError(f"disconnected: {path}", path=path))


@pytest.fixture
def manual_source() -> ManualSource:
    return ManualSource()
