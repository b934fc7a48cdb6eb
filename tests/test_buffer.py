from __future__ import annotations

import pytest

from flowmon.models.sensor import ChartPoint
from flowmon.state.buffer import RollingBuffer


def _point(timestamp: int, value: float = 1.0) -> ChartPoint:
    return ChartPoint(timestamp=timestamp, value=value, label=str(timestamp))


def test_window_keeps_the_most_recent_points() -> None:
    buffer = RollingBuffer(100)

    for timestamp in range(150):
        buffer.push("sensor1", _point(timestamp))

    series = buffer.get("sensor1")
    assert len(series) == 100
    assert [point.timestamp for point in series] == list(range(50, 150))


def test_window_of_one() -> None:
    buffer = RollingBuffer(1)

    buffer.push("sensor1", _point(1))
    buffer.push("sensor1", _point(2))

    assert [point.timestamp for point in buffer.get("sensor1")] == [2]


def test_series_are_independent() -> None:
    buffer = RollingBuffer(2)

    buffer.push("sensor1", _point(1))
    buffer.push("sensor2", _point(2))
    buffer.push("sensor1", _point(3))
    buffer.push("sensor1", _point(4))

    assert [point.timestamp for point in buffer.get("sensor1")] == [3, 4]
    assert [point.timestamp for point in buffer.get("sensor2")] == [2]
    assert list(buffer) == ["sensor1", "sensor2"]
    assert len(buffer) == 2


def test_unknown_key_is_empty() -> None:
    buffer = RollingBuffer()

    assert buffer.get("missing") == []
    assert buffer.latest("missing") is None
    assert "missing" not in buffer


def test_get_returns_a_copy() -> None:
    buffer = RollingBuffer()
    buffer.push("sensor1", _point(1))

    buffer.get("sensor1").clear()

    assert len(buffer.get("sensor1")) == 1


def test_out_of_order_points_are_appended_by_default() -> None:
    buffer = RollingBuffer()

    for timestamp in (10, 30, 20):
        buffer.push("sensor1", _point(timestamp))

    assert [point.timestamp for point in buffer.get("sensor1")] == [10, 30, 20]
    assert buffer.latest("sensor1").timestamp == 20


def test_ordered_mode_inserts_late_points_by_timestamp() -> None:
    buffer = RollingBuffer(3, ordered=True)

    for timestamp, value in ((10, 1.0), (30, 2.0), (20, 3.0), (20, 4.0)):
        buffer.push("sensor1", _point(timestamp, value))

    series = buffer.get("sensor1")
    assert [point.timestamp for point in series] == [20, 20, 30]
    assert [point.value for point in series] == [3.0, 4.0, 2.0]


def test_clear() -> None:
    buffer = RollingBuffer()
    buffer.push("sensor1", _point(1))
    buffer.push("sensor2", _point(1))

    buffer.clear("sensor1")
    assert "sensor1" not in buffer
    assert "sensor2" in buffer

    buffer.clear()
    assert buffer.snapshot() == {}


def test_invalid_window() -> None:
    with pytest.raises(ValueError):
        RollingBuffer(0)
