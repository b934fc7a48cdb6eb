"""Client configuration for flowmon."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from flowmon.exceptions import FlowmonConfigError

DEFAULT_SENSOR_PATHS: tuple[str, ...] = ("sensorsCurrent", "/")
DEFAULT_CHART_SENSOR_IDS: tuple[str, ...] = ("sensor1", "sensor2", "sensor3", "sensor4")


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_list(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


def join_path(base: str, child: str) -> str:
    """Join two source paths, treating ``"/"`` and ``""`` as the root."""
    parts = [part for part in (base.strip("/"), child.strip("/")) if part]
    return "/".join(parts) or "/"


@dataclasses.dataclass(frozen=True)
class FlowmonConfig:
    """Pipeline configuration.

    Parameters
    ----------
    database_url : str
        Base URL of the realtime database. Only required by sources that
        talk to a remote server.
    sensor_paths : tuple[str, ...]
        Ordered candidate paths for the full sensor set. The first one
        that yields data is adopted.
    chart_sensor_ids : tuple[str, ...]
        Fixed set of sensor ids that get a rolling chart series. Each id
        is looked up under every entry of ``sensor_paths`` in order.
    r_value_path : str
        Path of the global leak-detection ratio.
    threshold_path : str
        Path of the global alert threshold.
    history_path : str
        Path of the two-level history mapping. Only subscribed while the
        history view is active.
    chart_window_size : int
        Capacity of every rolling chart series.
    chart_ordered : bool
        Insert out-of-order chart points by timestamp instead of
        appending them at the tail.
    clock_refresh_interval : float
        Seconds between clock ticks used for time-window filtering.
    reconnect_delay : float
        Seconds a streaming source waits before reopening a dropped
        connection.
    """

    database_url: str = ""
    sensor_paths: tuple[str, ...] = DEFAULT_SENSOR_PATHS
    chart_sensor_ids: tuple[str, ...] = DEFAULT_CHART_SENSOR_IDS
    r_value_path: str = "system/r_value"
    threshold_path: str = "system/threshold"
    history_path: str = "sensorsHistory"
    chart_window_size: int = 100
    chart_ordered: bool = False
    clock_refresh_interval: float = 30.0
    reconnect_delay: float = 5.0

    def __post_init__(self) -> None:
        if not self.sensor_paths:
            raise FlowmonConfigError("sensor_paths must contain at least one path")
        if self.chart_window_size < 1:
            raise FlowmonConfigError(f"chart_window_size must be >= 1, got {self.chart_window_size}")
        if self.clock_refresh_interval <= 0:
            raise FlowmonConfigError("clock_refresh_interval must be positive")
        if self.reconnect_delay < 0:
            raise FlowmonConfigError("reconnect_delay must not be negative")

    def chart_paths(self, sensor_id: str) -> tuple[str, ...]:
        """Candidate paths for one sensor's chart stream."""
        return tuple(join_path(base, sensor_id) for base in self.sensor_paths)

    @classmethod
    def from_env(cls, **overrides: Any) -> FlowmonConfig:
        """Create configuration from environment variables.

        Reads ``FLOWMON_*`` variables. Explicit keyword arguments override
        environment values.

        Raises
        ------
        FlowmonConfigError
            When a numeric variable cannot be parsed or a value is out of
            range.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "FLOWMON_DATABASE_URL": "database_url",
            "FLOWMON_R_VALUE_PATH": "r_value_path",
            "FLOWMON_THRESHOLD_PATH": "threshold_path",
            "FLOWMON_HISTORY_PATH": "history_path",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        paths_env = env.get("FLOWMON_SENSOR_PATHS")
        if paths_env is not None:
            config_kwargs["sensor_paths"] = _env_list(paths_env)

        charts_env = env.get("FLOWMON_CHART_SENSORS")
        if charts_env is not None:
            config_kwargs["chart_sensor_ids"] = _env_list(charts_env)

        _ENV_NUMERIC_MAP: dict[str, tuple[str, type]] = {
            "FLOWMON_CHART_WINDOW_SIZE": ("chart_window_size", int),
            "FLOWMON_CLOCK_REFRESH_INTERVAL": ("clock_refresh_interval", float),
            "FLOWMON_RECONNECT_DELAY": ("reconnect_delay", float),
        }
        for env_key, (field_name, convert) in _ENV_NUMERIC_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = convert(val)
            except ValueError as exc:
                raise FlowmonConfigError(f"{env_key} is not a valid number: {val!r}") from exc

        if "chart_ordered" not in overrides:
            config_kwargs["chart_ordered"] = _env_bool(env.get("FLOWMON_CHART_ORDERED"), False)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
