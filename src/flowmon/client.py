"""High-level telemetry client.

Wires every logical stream of the dashboard to its own cell:

* the sensor set, resolved across ``config.sensor_paths``;
* one rolling chart series per configured sensor id, each resolved
  across the same base paths;
* the global ratio and threshold scalars;
* the history table, subscribed only while the history view is active;
* a clock cell refreshed every ``config.clock_refresh_interval`` seconds.

Derived values are computed from the cells whenever they are read.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections import deque
from collections.abc import Callable
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from flowmon.config import FlowmonConfig
from flowmon.exceptions import FlowmonExhaustedError, FlowmonSourceError
from flowmon.ingestion.normalize import (
    emit,
    is_chart_payload,
    normalize_chart_point,
    normalize_history,
    normalize_sensor_set,
    parse_optional_number,
)
from flowmon.ingestion.resolver import PathResolver, ResolverState
from flowmon.models.sensor import ChartPoint, GlobalThresholdState, HistoryEntry, SensorSet, SensorSnapshot
from flowmon.sources.base import DataSource
from flowmon.state.buffer import RollingBuffer
from flowmon.state.cells import Cell
from flowmon.state.derived import (
    DashboardSummary,
    HistoryFilter,
    LeakageStatus,
    filter_history,
    greeting,
    leakage_status,
    sorted_sensors,
    summarize,
)
from flowmon.state.events import Diagnostic, DiagnosticKind, DiagnosticSink, StreamName
from flowmon.subscriptions import Scope, SubscriptionManager

_logger = logging.getLogger(__name__)

SENSORS_UNAVAILABLE_MESSAGE = "Unable to connect to the data source. Check the configuration."
SENSORS_CONNECTION_MESSAGE = "Data source connection problem."
SENSORS_LOAD_MESSAGE = "Unable to load sensor data."

_RECENT_DIAGNOSTICS = 50


def _display_path(path: str) -> str:
    return "/" + path.strip("/")


def _source_error_message(error: Exception, path: str, fallback: str) -> str:
    if isinstance(error, FlowmonSourceError) and error.permission_denied:
        return f"Permission denied: {_display_path(path)}"
    return fallback


class DashboardView(BaseModel):
    """Consistent read model handed to the presentation layer."""

    model_config = ConfigDict(frozen=True)

    now: float
    greeting: str
    loading: bool
    error: str | None
    sensors: list[tuple[str, SensorSnapshot]]
    summary: DashboardSummary
    thresholds: GlobalThresholdState
    leakage: LeakageStatus
    charts: dict[str, list[ChartPoint]]
    history_active: bool
    history_loading: bool
    history_filter: HistoryFilter
    history: list[HistoryEntry]
    streams: dict[str, ResolverState]


class FlowmonClient:
    """Consumer-side telemetry pipeline.

    Usage::

        async with FlowmonClient(config, source) as client:
            client.set_history_active(True)
            view = client.view()
    """

    def __init__(
        self,
        config: FlowmonConfig,
        source: DataSource,
        *,
        clock: Callable[[], float] = time.time,
        on_change: Callable[[str], None] | None = None,
        on_diagnostic: DiagnosticSink | None = None,
    ) -> None:
        self._config = config
        self._clock = clock
        self._on_change = on_change
        self._on_diagnostic = on_diagnostic
        self._manager = SubscriptionManager(source)
        self._buffer = RollingBuffer(config.chart_window_size, ordered=config.chart_ordered)
        self._resolvers: dict[str, PathResolver] = {}
        self._diagnostics: deque[Diagnostic] = deque(maxlen=_RECENT_DIAGNOSTICS)
        self._clock_task: asyncio.Task[None] | None = None
        self._opened = False

        self._sensors: Cell[SensorSet] = Cell(StreamName.SENSORS, {})
        self._r_value: Cell[float | None] = Cell(StreamName.R_VALUE, None)
        self._threshold: Cell[float | None] = Cell(StreamName.THRESHOLD, None)
        self._history: Cell[list[HistoryEntry]] = Cell(StreamName.HISTORY, [])
        self._now: Cell[float] = Cell(StreamName.CLOCK, clock())
        for cell in (self._sensors, self._r_value, self._threshold, self._history, self._now):
            cell.watch(self._notify)

        self._loading = True
        self._history_loading = False
        self._history_active = False
        self._history_filter = HistoryFilter.ALL

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> FlowmonClient:
        await self.start()
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.close()

    async def start(self) -> None:
        """Open all streams and start the clock refresh task."""
        self.open()
        if self._clock_task is None:
            self._clock_task = asyncio.get_running_loop().create_task(self._run_clock(), name="flowmon-clock")

    def open(self) -> None:
        """Open all streams without starting the clock task."""
        if self._opened:
            return
        self._opened = True
        self._open_sensors(self._manager.scope(StreamName.SENSORS))
        self._open_charts(self._manager.scope(StreamName.CHART))
        self._open_scalars(self._manager.scope("system"))

    async def close(self) -> None:
        task, self._clock_task = self._clock_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._manager.close()
        _logger.debug("Client closed")

    async def _run_clock(self) -> None:
        while True:
            await asyncio.sleep(self._config.clock_refresh_interval)
            self.tick()

    def tick(self) -> float:
        """Refresh the clock cell used by time-window filtering."""
        now = self._clock()
        self._now.set(now)
        return now

    # ------------------------------------------------------------------
    # View inputs
    # ------------------------------------------------------------------

    def set_history_active(self, active: bool) -> None:
        """Subscribe to the history table only while its view is shown."""
        self._history_active = active
        self._manager.bind(StreamName.HISTORY, active, self._setup_history)

    def set_history_filter(self, selector: HistoryFilter | str) -> None:
        self._history_filter = HistoryFilter(selector)
        self._notify(StreamName.HISTORY)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def config(self) -> FlowmonConfig:
        return self._config

    @property
    def manager(self) -> SubscriptionManager:
        return self._manager

    @property
    def sensors(self) -> SensorSet:
        return dict(self._sensors.value)

    @property
    def history(self) -> list[HistoryEntry]:
        return list(self._history.value)

    @property
    def history_filter(self) -> HistoryFilter:
        return self._history_filter

    @property
    def now(self) -> float:
        return self._now.value

    @property
    def error(self) -> str | None:
        return self._sensors.error

    @property
    def history_error(self) -> str | None:
        return self._history.error

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def history_loading(self) -> bool:
        return self._history_loading

    def sorted_sensors(self) -> list[tuple[str, SensorSnapshot]]:
        return sorted_sensors(self._sensors.value)

    def chart(self, sensor_id: str) -> list[ChartPoint]:
        return self._buffer.get(sensor_id)

    def charts(self) -> dict[str, list[ChartPoint]]:
        return {sensor_id: self._buffer.get(sensor_id) for sensor_id in self._config.chart_sensor_ids}

    def filtered_history(self) -> list[HistoryEntry]:
        return filter_history(self._history.value, self._history_filter, self._now.value)

    def global_thresholds(self) -> GlobalThresholdState:
        return GlobalThresholdState(
            r_value=self._r_value.value,
            threshold=self._threshold.value,
            error=self._r_value.error or self._threshold.error,
        )

    def leakage(self) -> LeakageStatus:
        return leakage_status(self.global_thresholds())

    def summary(self) -> DashboardSummary:
        return summarize(self._sensors.value)

    def stream_states(self) -> dict[str, ResolverState]:
        return {name: resolver.state for name, resolver in self._resolvers.items()}

    def recent_diagnostics(self) -> list[Diagnostic]:
        return list(self._diagnostics)

    def view(self) -> DashboardView:
        now = self._now.value
        thresholds = self.global_thresholds()
        return DashboardView(
            now=now,
            greeting=greeting(datetime.fromtimestamp(now)),
            loading=self._loading,
            error=self._sensors.error,
            sensors=self.sorted_sensors(),
            summary=self.summary(),
            thresholds=thresholds,
            leakage=leakage_status(thresholds),
            charts=self.charts(),
            history_active=self._history_active,
            history_loading=self._history_loading,
            history_filter=self._history_filter,
            history=self.filtered_history(),
            streams=self.stream_states(),
        )

    # ------------------------------------------------------------------
    # Streams
    # ------------------------------------------------------------------

    def _open_sensors(self, scope: Scope) -> None:
        resolver = PathResolver(
            scope,
            self._config.sensor_paths,
            on_data=self._handle_sensors,
            on_exhausted=self._sensors_exhausted,
            on_error=self._sensors_failed,
            name=StreamName.SENSORS,
        )
        self._resolvers[StreamName.SENSORS] = resolver
        resolver.start()

    def _handle_sensors(self, path: str, payload: Any) -> None:
        if not payload:
            _logger.warning("No sensor data found at %s", _display_path(path))
            self._loading = False
            self._sensors.set({})
            return
        normalized = normalize_sensor_set(payload, report=self._collect)
        self._loading = False
        self._sensors.set(normalized)
        _logger.debug("Sensor set from %s: %d sensors", _display_path(path), len(normalized))

    def _sensors_exhausted(self, error: FlowmonExhaustedError) -> None:
        self._loading = False
        last = error.last_error
        if last is not None and last.permission_denied:
            self._sensors.fail(_source_error_message(last, last.path, SENSORS_UNAVAILABLE_MESSAGE))
            return
        self._sensors.fail(SENSORS_UNAVAILABLE_MESSAGE)

    def _sensors_failed(self, error: Exception) -> None:
        self._loading = False
        resolver = self._resolvers[StreamName.SENSORS]
        path = resolver.candidates[resolver.index]
        if isinstance(error, FlowmonSourceError):
            self._sensors.fail(_source_error_message(error, path, SENSORS_CONNECTION_MESSAGE))
        else:
            self._sensors.fail(SENSORS_LOAD_MESSAGE)

    def _open_charts(self, scope: Scope) -> None:
        for sensor_id in self._config.chart_sensor_ids:
            name = f"{StreamName.CHART}:{sensor_id}"
            resolver = PathResolver(
                scope,
                self._config.chart_paths(sensor_id),
                on_data=self._chart_handler(sensor_id),
                on_exhausted=self._chart_exhausted(sensor_id),
                is_usable=is_chart_payload,
                name=name,
            )
            self._resolvers[name] = resolver
            resolver.start()

    def _chart_handler(self, sensor_id: str) -> Callable[[str, Any], None]:
        def handle(path: str, payload: Any) -> None:
            point = normalize_chart_point(payload)
            if point is None:
                self._report(
                    Diagnostic(
                        kind=DiagnosticKind.INVALID_VALUE,
                        stream=StreamName.CHART,
                        key=sensor_id,
                        reason=f"no chart point in payload from {_display_path(path)}",
                        raw=payload,
                    )
                )
                return
            self._buffer.push(sensor_id, point)
            self._notify(StreamName.CHART)

        return handle

    def _chart_exhausted(self, sensor_id: str) -> Callable[[FlowmonExhaustedError], None]:
        def handle(error: FlowmonExhaustedError) -> None:
            self._report(
                Diagnostic(
                    kind=DiagnosticKind.SOURCE_ERROR,
                    stream=StreamName.CHART,
                    key=sensor_id,
                    reason=f"no data path found: {error}",
                )
            )

        return handle

    def _open_scalars(self, scope: Scope) -> None:
        for cell, path in (
            (self._r_value, self._config.r_value_path),
            (self._threshold, self._config.threshold_path),
        ):
            label = path.strip("/").rsplit("/", 1)[-1]
            scope.subscribe(path, self._scalar_handler(cell, path, label), self._scalar_error_handler(cell, path))

    def _scalar_handler(self, cell: Cell[float | None], path: str, label: str) -> Callable[[Any], None]:
        def handle(payload: Any) -> None:
            if payload is None:
                self._report(
                    Diagnostic(
                        kind=DiagnosticKind.MISSING_VALUE,
                        stream=cell.name,
                        key=_display_path(path),
                        reason="null or missing",
                    )
                )
                cell.fail(f"System {label} not available")
                return
            value = parse_optional_number(payload)
            if value is None:
                self._report(
                    Diagnostic(
                        kind=DiagnosticKind.INVALID_VALUE,
                        stream=cell.name,
                        key=_display_path(path),
                        reason=f"invalid {label} format",
                        raw=payload,
                    )
                )
                return
            cell.set(value)
            _logger.debug("Updated %s: %s", label, value)

        return handle

    def _scalar_error_handler(self, cell: Cell[float | None], path: str) -> Callable[[FlowmonSourceError], None]:
        def handle(error: FlowmonSourceError) -> None:
            _logger.error("Error subscribing to %s: %s", _display_path(path), error)
            cell.fail(_source_error_message(error, path, f"Failed to connect to {_display_path(path)}"))

        return handle

    def _setup_history(self, scope: Scope, active: bool) -> None:
        if not active:
            self._history_loading = False
            return
        self._history_loading = True
        path = self._config.history_path

        def handle(payload: Any) -> None:
            entries = normalize_history(payload, report=self._collect)
            self._history_loading = False
            self._history.set(entries)
            _logger.debug("Loaded %d history entries", len(entries))

        def handle_error(error: FlowmonSourceError) -> None:
            _logger.error("History subscription error: %s", error)
            self._history_loading = False
            self._history.fail(_source_error_message(error, path, f"Failed to connect to {_display_path(path)}"))

        scope.subscribe(path, handle, handle_error)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _collect(self, diagnostic: Diagnostic) -> None:
        self._diagnostics.append(diagnostic)
        if self._on_diagnostic is None:
            return
        try:
            self._on_diagnostic(diagnostic)
        except Exception:
            _logger.debug("on_diagnostic callback failed", exc_info=True)

    def _report(self, diagnostic: Diagnostic) -> None:
        emit(self._collect, diagnostic)

    def _notify(self, name: str) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change(str(name))
        except Exception:
            _logger.debug("on_change callback failed", exc_info=True)
