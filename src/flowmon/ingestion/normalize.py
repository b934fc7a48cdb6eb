"""Normalization helpers.

Turns loosely-typed source payloads into validated models. Entries that
fail the mandatory-field check are dropped whole and reported; none of the
functions here raise.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from flowmon.exceptions import FlowmonValidationError
from flowmon.models._base import is_number, parse_numeric, parse_optional_number
from flowmon.models.sensor import ChartPoint, HistoryEntry, SensorSet, SensorSnapshot
from flowmon.state.events import Diagnostic, DiagnosticKind, DiagnosticSink, StreamName

_logger = logging.getLogger(__name__)

TModel = TypeVar("TModel", bound=BaseModel)

__all__ = [
    "emit",
    "is_chart_payload",
    "normalize_chart_point",
    "normalize_history",
    "normalize_sensor_set",
    "parse_numeric",
    "parse_optional_number",
]


def emit(report: DiagnosticSink | None, diagnostic: Diagnostic) -> None:
    """Log a diagnostic and hand it to *report*, containing sink failures."""
    _logger.warning(
        "%s stream=%s key=%s: %s",
        diagnostic.kind.value,
        diagnostic.stream,
        diagnostic.key,
        diagnostic.reason,
    )
    if report is None:
        return
    try:
        report(diagnostic)
    except Exception:
        _logger.debug("Diagnostic sink failed", exc_info=True)


def _as_record(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump()
    return value


def _admit(model: type[TModel], record: Any, key: str) -> TModel:
    """Validate one record or raise :class:`FlowmonValidationError`."""
    try:
        return model.model_validate(record)
    except ValidationError as exc:
        fields = sorted({".".join(str(part) for part in err["loc"]) or "<record>" for err in exc.errors()})
        raise FlowmonValidationError(f"missing or invalid: {', '.join(fields)}", key=key) from exc


def normalize_sensor_set(raw: Any, *, report: DiagnosticSink | None = None) -> SensorSet:
    """Validate a sensor-id -> record mapping.

    Absent or non-mapping input yields an empty set. Each admitted entry has
    ``flow``/``total`` strings and a numeric ``timestamp``; anything else is
    skipped and reported.
    """
    if not isinstance(raw, Mapping):
        return {}

    sensors: SensorSet = {}
    for key, value in raw.items():
        sensor_id = str(key)
        if isinstance(value, SensorSnapshot):
            sensors[sensor_id] = value
            continue
        try:
            sensors[sensor_id] = _admit(SensorSnapshot, _as_record(value), sensor_id)
        except FlowmonValidationError as exc:
            emit(
                report,
                Diagnostic(
                    kind=DiagnosticKind.INVALID_ENTRY,
                    stream=StreamName.SENSORS,
                    key=sensor_id,
                    reason=str(exc),
                    raw=value,
                ),
            )
    return sensors


def normalize_history(raw: Any, *, report: DiagnosticSink | None = None) -> list[HistoryEntry]:
    """Flatten ``sensor -> record id -> record`` into entries, newest first.

    The sort is stable, so entries with equal timestamps keep the order in
    which they were encountered (sensor first, then record).
    """
    if not isinstance(raw, Mapping):
        return []

    entries: list[HistoryEntry] = []
    for sensor_key, records in raw.items():
        sensor_id = str(sensor_key)
        if not isinstance(records, Mapping):
            continue
        for record_id, record in records.items():
            key = f"{sensor_id}/{record_id}"
            candidate = _as_record(record)
            if not isinstance(candidate, Mapping):
                emit(
                    report,
                    Diagnostic(
                        kind=DiagnosticKind.INVALID_ENTRY,
                        stream=StreamName.HISTORY,
                        key=key,
                        reason="record is not an object",
                        raw=record,
                    ),
                )
                continue
            try:
                entries.append(_admit(HistoryEntry, {**candidate, "sensor_id": sensor_id}, key))
            except FlowmonValidationError as exc:
                emit(
                    report,
                    Diagnostic(
                        kind=DiagnosticKind.INVALID_ENTRY,
                        stream=StreamName.HISTORY,
                        key=key,
                        reason=str(exc),
                        raw=record,
                    ),
                )

    entries.sort(key=lambda entry: entry.timestamp, reverse=True)
    return entries


def is_chart_payload(raw: Any) -> bool:
    """Whether *raw* can produce a chart point: a non-empty flow and a numeric timestamp."""
    if not isinstance(raw, Mapping):
        return False
    flow = raw.get("flow")
    return isinstance(flow, str) and bool(flow) and is_number(raw.get("timestamp"))


def normalize_chart_point(raw: Any) -> ChartPoint | None:
    """Build a chart point from a single sensor record, or ``None``."""
    if not is_chart_payload(raw):
        return None
    timestamp = raw["timestamp"]
    try:
        return ChartPoint.at(timestamp, parse_numeric(raw["flow"]))
    except (ValidationError, OverflowError, OSError, ValueError):
        # Non-finite or out-of-range timestamps cannot be labelled.
        return None
