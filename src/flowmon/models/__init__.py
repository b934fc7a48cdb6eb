"""Data models for flow-sensor telemetry."""

from flowmon.models._base import FlowmonBaseModel, OptionalNumber, Timestamp, parse_numeric, parse_optional_number
from flowmon.models.sensor import (
    ChartPoint,
    GlobalThresholdState,
    HistoryEntry,
    SensorSet,
    SensorSnapshot,
    format_time_label,
    snapshot_dump,
)

__all__ = [
    "ChartPoint",
    "FlowmonBaseModel",
    "GlobalThresholdState",
    "HistoryEntry",
    "OptionalNumber",
    "SensorSet",
    "SensorSnapshot",
    "Timestamp",
    "format_time_label",
    "parse_numeric",
    "parse_optional_number",
    "snapshot_dump",
]
