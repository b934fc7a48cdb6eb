from __future__ import annotations

from typing import Any

import pytest

from flowmon.exceptions import FlowmonExhaustedError, FlowmonPermissionDeniedError, FlowmonSourceError
from flowmon.ingestion.resolver import PathResolver, ResolverState, is_present
from flowmon.sources.memory import MemorySource
from flowmon.subscriptions import SubscriptionManager

_SENSORS = {"sensor1": {"flow": "1 L/min", "total": "2 L", "timestamp": 10}}


class _Recorder:
    def __init__(self) -> None:
        self.data: list[tuple[str, Any]] = []
        self.exhausted: list[FlowmonExhaustedError] = []
        self.errors: list[Exception] = []

    def on_data(self, path: str, payload: Any) -> None:
        self.data.append((path, payload))

    def on_exhausted(self, error: FlowmonExhaustedError) -> None:
        self.exhausted.append(error)

    def on_error(self, error: Exception) -> None:
        self.errors.append(error)


def _resolver(source, candidates, recorder: _Recorder, **kwargs) -> tuple[SubscriptionManager, PathResolver]:
    manager = SubscriptionManager(source)
    resolver = PathResolver(
        manager.scope("sensors"),
        candidates,
        on_data=kwargs.pop("on_data", recorder.on_data),
        on_exhausted=recorder.on_exhausted,
        on_error=recorder.on_error,
        name="sensors",
        **kwargs,
    )
    return manager, resolver


def test_empty_primary_falls_back_and_adopts() -> None:
    source = MemorySource({"fallback": _SENSORS})
    recorder = _Recorder()
    _manager, resolver = _resolver(source, ["primary", "fallback"], recorder)

    resolver.start()

    assert resolver.state == ResolverState.ADOPTED
    assert resolver.adopted_path == "fallback"
    assert recorder.data == [("fallback", _SENSORS)]
    assert source.listener_count("primary") == 0
    assert source.listener_count("fallback") == 1
    assert source.listener_count() == 1


def test_adopted_path_is_never_re_resolved() -> None:
    source = MemorySource({"fallback": _SENSORS})
    recorder = _Recorder()
    _manager, resolver = _resolver(source, ["primary", "fallback"], recorder)
    resolver.start()

    source.set("fallback", None)
    source.set("primary", _SENSORS)

    assert resolver.state == ResolverState.ADOPTED
    assert resolver.adopted_path == "fallback"
    assert recorder.data == [("fallback", _SENSORS), ("fallback", None)]
    assert source.listener_count("primary") == 0


def test_primary_with_data_is_adopted_immediately() -> None:
    source = MemorySource({"primary": _SENSORS, "fallback": _SENSORS})
    recorder = _Recorder()
    _manager, resolver = _resolver(source, ["primary", "fallback"], recorder)

    resolver.start()

    assert resolver.adopted_path == "primary"
    assert source.listener_count("fallback") == 0


def test_all_candidates_empty_is_exhausted_and_terminal() -> None:
    source = MemorySource()
    recorder = _Recorder()
    _manager, resolver = _resolver(source, ["primary", "fallback"], recorder)

    resolver.start()

    assert resolver.state == ResolverState.EXHAUSTED
    assert resolver.current_path is None
    assert len(recorder.exhausted) == 1
    assert recorder.exhausted[0].candidates == ("primary", "fallback")
    assert recorder.exhausted[0].last_error is None
    assert recorder.data == []
    assert source.listener_count() == 0

    source.set("fallback", _SENSORS)

    assert recorder.data == []
    assert resolver.state == ResolverState.EXHAUSTED


def test_subscription_error_while_trying_moves_to_next_candidate(manual_source) -> None:
    recorder = _Recorder()
    _manager, resolver = _resolver(manual_source, ["primary", "fallback"], recorder)
    resolver.start()

    assert manual_source.active_paths() == ["primary"]

    manual_source.error("primary", FlowmonPermissionDeniedError("denied", path="primary"))

    assert resolver.state == ResolverState.TRYING
    assert resolver.current_path == "fallback"
    assert manual_source.active_paths() == ["fallback"]

    manual_source.push("fallback", _SENSORS)

    assert resolver.adopted_path == "fallback"
    assert recorder.data == [("fallback", _SENSORS)]


def test_exhaustion_carries_last_source_error(manual_source) -> None:
    recorder = _Recorder()
    _manager, resolver = _resolver(manual_source, ["primary", "fallback"], recorder)
    resolver.start()

    manual_source.push("primary", None)
    denied = FlowmonPermissionDeniedError("denied", path="fallback")
    manual_source.error("fallback", denied)

    assert resolver.state == ResolverState.EXHAUSTED
    assert recorder.exhausted[0].last_error is denied
    assert manual_source.active_paths() == []


def test_handler_exception_while_trying_moves_to_next_candidate() -> None:
    source = MemorySource({"primary": _SENSORS, "fallback": _SENSORS})
    recorder = _Recorder()

    def on_data(path: str, payload: Any) -> None:
        if path == "primary":
            raise ValueError("cannot process")
        recorder.on_data(path, payload)

    _manager, resolver = _resolver(source, ["primary", "fallback"], recorder, on_data=on_data)
    resolver.start()

    assert resolver.adopted_path == "fallback"
    assert recorder.data == [("fallback", _SENSORS)]
    assert source.listener_count("primary") == 0


def test_error_on_adopted_path_is_reported_without_fallback(manual_source) -> None:
    recorder = _Recorder()
    _manager, resolver = _resolver(manual_source, ["primary", "fallback"], recorder)
    resolver.start()
    manual_source.push("primary", _SENSORS)

    error = FlowmonSourceError("connection lost", path="primary")
    manual_source.error("primary", error)

    assert resolver.state == ResolverState.ADOPTED
    assert recorder.errors == [error]
    assert [sub.path for sub in manual_source.subscriptions] == ["primary"]


def test_handler_failure_after_adoption_is_reported() -> None:
    source = MemorySource({"primary": _SENSORS})
    recorder = _Recorder()
    calls: list[Any] = []

    def on_data(path: str, payload: Any) -> None:
        calls.append(payload)
        if len(calls) > 1:
            raise RuntimeError("bad update")

    _manager, resolver = _resolver(source, ["primary"], recorder, on_data=on_data)
    resolver.start()
    source.set("primary/sensor1/flow", "2 L/min")

    assert resolver.state == ResolverState.ADOPTED
    assert len(calls) == 2
    assert isinstance(recorder.errors[0], RuntimeError)


def test_closing_scope_mid_resolution_drops_in_flight_notifications(manual_source) -> None:
    recorder = _Recorder()
    manager, resolver = _resolver(manual_source, ["primary", "fallback"], recorder)
    resolver.start()
    manual_source.push("primary", None)
    in_flight = manual_source.latest("fallback")

    manager.close()
    in_flight.on_value(_SENSORS)

    assert manual_source.active_paths() == []
    assert recorder.data == []
    assert resolver.state == ResolverState.TRYING


def test_stale_candidate_notifications_are_ignored(manual_source) -> None:
    recorder = _Recorder()
    _manager, resolver = _resolver(manual_source, ["primary", "fallback"], recorder)
    resolver.start()
    stale = manual_source.latest("primary")
    manual_source.push("primary", "")

    stale.on_value(_SENSORS)

    assert resolver.current_path == "fallback"
    assert recorder.data == []


def test_custom_usability_check() -> None:
    source = MemorySource({"primary": {"unrelated": 1}, "fallback": {"flow": "1", "timestamp": 1}})
    recorder = _Recorder()
    _manager, resolver = _resolver(
        source,
        ["primary", "fallback"],
        recorder,
        is_usable=lambda payload: isinstance(payload, dict) and "flow" in payload,
    )

    resolver.start()

    assert resolver.adopted_path == "fallback"


def test_stop_releases_subscription() -> None:
    source = MemorySource({"primary": _SENSORS})
    recorder = _Recorder()
    _manager, resolver = _resolver(source, ["primary"], recorder)
    resolver.start()

    resolver.stop()

    assert resolver.state == ResolverState.IDLE
    assert source.listener_count() == 0


def test_requires_candidates() -> None:
    manager = SubscriptionManager(MemorySource())

    with pytest.raises(ValueError):
        PathResolver(manager.scope("x"), [], on_data=lambda _path, _payload: None)


@pytest.mark.parametrize(
    ("payload", "expected"),
    [
        (None, False),
        (False, False),
        (0, False),
        ("", False),
        ({}, True),
        ([], True),
        ("x", True),
        (1, True),
        ({"a": 1}, True),
    ],
)
def test_is_present(payload, expected) -> None:
    assert is_present(payload) is expected
