"""Fixed-capacity rolling series per key."""

from __future__ import annotations

import bisect
from collections.abc import Iterator

from flowmon.models.sensor import ChartPoint

DEFAULT_WINDOW = 100


class RollingBuffer:
    """FIFO windows of chart points, one per series key.

    Points are appended at the tail and the oldest are dropped from the
    head so every series holds at most ``window`` points. Arrival order is
    trusted unless ``ordered`` is set, in which case a late point is
    inserted at its timestamp position (stable for equal timestamps).
    """

    def __init__(self, window: int = DEFAULT_WINDOW, *, ordered: bool = False) -> None:
        if window < 1:
            raise ValueError(f"window must be >= 1, got {window}")
        self._window = window
        self._ordered = ordered
        self._series: dict[str, list[ChartPoint]] = {}

    @property
    def window(self) -> int:
        return self._window

    def push(self, key: str, point: ChartPoint) -> None:
        series = self._series.setdefault(key, [])
        if self._ordered and series and point.timestamp < series[-1].timestamp:
            position = bisect.bisect_right(series, point.timestamp, key=lambda item: item.timestamp)
            series.insert(position, point)
        else:
            series.append(point)
        overflow = len(series) - self._window
        if overflow > 0:
            del series[:overflow]

    def get(self, key: str) -> list[ChartPoint]:
        """Current window for *key*, oldest first (a copy)."""
        return list(self._series.get(key, ()))

    def latest(self, key: str) -> ChartPoint | None:
        series = self._series.get(key)
        return series[-1] if series else None

    def clear(self, key: str | None = None) -> None:
        if key is None:
            self._series.clear()
        else:
            self._series.pop(key, None)

    def snapshot(self) -> dict[str, list[ChartPoint]]:
        return {key: list(series) for key, series in self._series.items()}

    def __contains__(self, key: object) -> bool:
        return key in self._series

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._series))

    def __len__(self) -> int:
        return len(self._series)
