"""Sensor snapshot, history and chart models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field, StrictStr

from flowmon.models._base import FlowmonBaseModel, OptionalNumber, Timestamp


def format_time_label(timestamp: float) -> str:
    """Local ``HH:MM:SS`` label for a chart point."""
    return datetime.fromtimestamp(timestamp).strftime("%H:%M:%S")


class SensorSnapshot(FlowmonBaseModel):
    """One sensor's current reading.

    ``flow`` and ``total`` are unit-bearing display strings
    (``"2.5 L/min"``, ``"120.000 L"``). ``r_value`` and ``threshold`` are
    ``None`` when the source did not send a usable number.
    """

    flow: StrictStr
    total: StrictStr
    timestamp: Timestamp
    r_value: OptionalNumber = None
    threshold: OptionalNumber = None


SensorSet = dict[str, SensorSnapshot]
"""Sensor id -> latest snapshot."""


class HistoryEntry(SensorSnapshot):
    """A historical snapshot tagged with the sensor it belongs to."""

    sensor_id: str = Field(..., description="Owning sensor identifier")


class ChartPoint(FlowmonBaseModel):
    """A single sample of a rolling chart series."""

    timestamp: Timestamp
    value: float
    label: str = ""

    @classmethod
    def at(cls, timestamp: float, value: float) -> ChartPoint:
        return cls(timestamp=timestamp, value=value, label=format_time_label(timestamp))


class GlobalThresholdState(FlowmonBaseModel):
    """Global leak-detection inputs combined at read time.

    The two values arrive on independent streams, so either can be stale
    relative to the other.
    """

    r_value: float | None = None
    threshold: float | None = None
    error: str | None = None


def snapshot_dump(snapshot: SensorSnapshot) -> dict[str, Any]:
    """Dump a snapshot back into the source's record shape."""
    return snapshot.model_dump(exclude_none=True)
