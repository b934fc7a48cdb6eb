from __future__ import annotations

from typing import Any

from flowmon.exceptions import FlowmonSourceError
from flowmon.sources.memory import MemorySource
from flowmon.subscriptions import Scope, SubscriptionManager


def test_revoked_token_drops_in_flight_notifications(manual_source) -> None:
    manager = SubscriptionManager(manual_source)
    received: list[Any] = []
    token = manager.scope("sensors").subscribe("sensorsCurrent", received.append)
    in_flight = manual_source.latest("sensorsCurrent")

    token.revoke()
    in_flight.on_value({"late": True})

    assert received == []
    assert not token.active
    assert manual_source.active_paths() == []


def test_revoke_is_idempotent(manual_source) -> None:
    manager = SubscriptionManager(manual_source)
    token = manager.scope("sensors").subscribe("a", lambda _payload: None)

    token.revoke()
    token.revoke()

    assert manager.active_count == 0


def test_scope_closed_during_initial_delivery_unsubscribes() -> None:
    source = MemorySource({"a": 1})
    manager = SubscriptionManager(source)
    scope = manager.scope("s")
    received: list[Any] = []

    def on_value(payload: Any) -> None:
        received.append(payload)
        scope.close()

    token = scope.subscribe("a", on_value)

    assert received == [1]
    assert not token.active
    assert source.listener_count() == 0


def test_error_deactivates_token_before_handler(manual_source) -> None:
    manager = SubscriptionManager(manual_source)
    errors: list[FlowmonSourceError] = []
    scope = manager.scope("system")
    token = scope.subscribe("system/r_value", lambda _payload: None, errors.append)
    seen_active: list[bool] = []
    scope_token_count: list[int] = []

    def on_error(error: FlowmonSourceError) -> None:
        seen_active.append(token.active)
        scope_token_count.append(scope.active_count)
        errors.append(error)

    token = scope.subscribe("system/threshold", lambda _payload: None, on_error)
    manual_source.error("system/threshold")

    assert seen_active == [False]
    assert scope_token_count == [1]
    assert len(errors) == 1
    assert errors[0].path == "system/threshold"


def test_callback_exceptions_are_contained(manual_source) -> None:
    manager = SubscriptionManager(manual_source)

    def explode(_payload: Any) -> None:
        raise RuntimeError("boom")

    def explode_error(_error: FlowmonSourceError) -> None:
        raise RuntimeError("boom")

    manager.scope("s").subscribe("a", explode, explode_error)
    manual_source.push("a", 1)
    manual_source.error("a")


def test_subscribe_error_raised_by_source_is_routed_to_handler() -> None:
    class _RefusingSource:
        def subscribe(self, path, on_value, on_error):
            raise FlowmonSourceError("refused", path=path)

    errors: list[FlowmonSourceError] = []
    token = Scope(_RefusingSource(), "s").subscribe("a", lambda _payload: None, errors.append)

    assert not token.active
    assert [error.path for error in errors] == ["a"]


def test_bind_rebuilds_scope_only_when_value_changes(manual_source) -> None:
    manager = SubscriptionManager(manual_source)
    setups: list[Any] = []

    def setup(scope: Scope, active: bool) -> None:
        setups.append(active)
        if active:
            scope.subscribe("sensorsHistory", lambda _payload: None)

    assert manager.bind("history", True, setup) is True
    assert manager.bind("history", True, setup) is False
    assert manual_source.active_paths() == ["sensorsHistory"]

    assert manager.bind("history", False, setup) is True
    assert manual_source.active_paths() == []

    manager.bind("history", True, setup)
    assert manual_source.active_paths() == ["sensorsHistory"]
    assert len(manual_source.subscriptions) == 2
    assert setups == [True, False, True]


def test_close_releases_everything_and_refuses_new_subscriptions(manual_source) -> None:
    manager = SubscriptionManager(manual_source)
    manager.scope("sensors").subscribe("sensorsCurrent", lambda _payload: None)
    manager.scope("system").subscribe("system/r_value", lambda _payload: None)
    manager.bind("history", True, lambda scope, _value: scope.subscribe("sensorsHistory", lambda _payload: None))

    manager.close()

    assert manual_source.active_paths() == []
    assert manager.active_count == 0

    token = manager.scope("sensors").subscribe("sensorsCurrent", lambda _payload: None)
    assert not token.active
    assert manager.bind("history", False, lambda _scope, _value: None) is False
    assert len(manual_source.subscriptions) == 3
