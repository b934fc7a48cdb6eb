"""Pure computations over the latest validated state.

Nothing here keeps state between calls: every value is recomputed from the
current cells each time it is read.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from flowmon.models._base import is_number, parse_numeric
from flowmon.models.sensor import GlobalThresholdState, HistoryEntry, SensorSnapshot

LEAK_DETECTED_MESSAGE = "Leakage detected"
NO_LEAK_MESSAGE = "No leakage detected"

_DAY_SECONDS = 24 * 60 * 60


class HistoryFilter(StrEnum):
    TODAY = "today"
    WEEK = "7d"
    ALL = "all"

    @property
    def window_seconds(self) -> float:
        """Width of the window ending now; infinite for ``ALL``."""
        if self is HistoryFilter.TODAY:
            return float(_DAY_SECONDS)
        if self is HistoryFilter.WEEK:
            return float(7 * _DAY_SECONDS)
        return math.inf


class LeakageStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    has_leakage: bool
    message: str


class DashboardSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_volume: float
    total_volume_label: str
    latest_update: float | None
    latest_update_label: str


def _finite(value: float | None) -> bool:
    return is_number(value) and math.isfinite(value)  # type: ignore[arg-type]


def detect_leak(r_value: float | None, threshold: float | None) -> bool:
    """Return ``True`` when ``r_value`` strictly exceeds ``threshold``.

    Missing or non-finite inputs report no leak rather than raising, so a
    partially loaded dashboard stays quiet.
    """
    if not _finite(r_value) or not _finite(threshold):
        return False
    return r_value > threshold  # type: ignore[operator]


def leakage_status(thresholds: GlobalThresholdState) -> LeakageStatus:
    has_leakage = detect_leak(thresholds.r_value, thresholds.threshold)
    return LeakageStatus(
        has_leakage=has_leakage,
        message=LEAK_DETECTED_MESSAGE if has_leakage else NO_LEAK_MESSAGE,
    )


def sorted_sensors(sensors: Mapping[str, SensorSnapshot]) -> list[tuple[str, SensorSnapshot]]:
    """Sensors in display order (lexicographic by id)."""
    return sorted(sensors.items(), key=lambda item: item[0])


def total_volume(sensors: Mapping[str, SensorSnapshot]) -> float:
    return sum((parse_numeric(sensor.total) for sensor in sensors.values()), 0.0)


def latest_update(sensors: Mapping[str, SensorSnapshot]) -> float | None:
    if not sensors:
        return None
    return max(sensor.timestamp for sensor in sensors.values())


def filter_history(
    entries: Iterable[HistoryEntry],
    selector: HistoryFilter,
    now: float,
) -> list[HistoryEntry]:
    """Entries with ``timestamp >= now - window``, order preserved."""
    if selector is HistoryFilter.ALL:
        return list(entries)
    cutoff = now - selector.window_seconds
    return [entry for entry in entries if entry.timestamp >= cutoff]


def format_timestamp(timestamp: float | None) -> str:
    """Medium date and short time in local time.

    ``"-"`` when unset or outside the platform's datetime range (a sensor
    reporting epoch milliseconds, for instance).
    """
    if not timestamp:
        return "-"
    try:
        return datetime.fromtimestamp(timestamp).strftime("%d %b %Y %H:%M")
    except (OverflowError, OSError, ValueError):
        return "-"


def format_optional_number(value: float | None) -> str:
    if _finite(value):
        return f"{value:.3f}"
    return "-"


def summarize(sensors: Mapping[str, SensorSnapshot]) -> DashboardSummary:
    total = total_volume(sensors)
    latest = latest_update(sensors)
    return DashboardSummary(
        total_volume=total,
        total_volume_label=f"{total:.3f} L",
        latest_update=latest,
        latest_update_label=format_timestamp(latest),
    )


def greeting(now: datetime) -> str:
    if now.hour < 12:
        return "Good Morning!"
    if now.hour < 18:
        return "Good Afternoon!"
    return "Good Evening!"
