"""flowmon - consumer-side ingestion pipeline for flow-sensor telemetry."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("flowmon")
except PackageNotFoundError:
    __version__ = "0+local"
from flowmon.client import DashboardView, FlowmonClient
from flowmon.config import FlowmonConfig
from flowmon.exceptions import (
    FlowmonConfigError,
    FlowmonError,
    FlowmonExhaustedError,
    FlowmonPermissionDeniedError,
    FlowmonSourceError,
    FlowmonValidationError,
)
from flowmon.ingestion.normalize import normalize_history, normalize_sensor_set
from flowmon.ingestion.resolver import PathResolver, ResolverState
from flowmon.models import (
    ChartPoint,
    GlobalThresholdState,
    HistoryEntry,
    SensorSet,
    SensorSnapshot,
    parse_numeric,
)
from flowmon.sources.firebase import FirebaseStreamSource
from flowmon.sources.memory import MemorySource
from flowmon.state.buffer import RollingBuffer
from flowmon.state.derived import HistoryFilter, detect_leak, filter_history, total_volume
from flowmon.subscriptions import SubscriptionManager, SubscriptionToken

__all__ = [
    "__version__",
    "ChartPoint",
    "DashboardView",
    "FirebaseStreamSource",
    "FlowmonClient",
    "FlowmonConfig",
    "FlowmonConfigError",
    "FlowmonError",
    "FlowmonExhaustedError",
    "FlowmonPermissionDeniedError",
    "FlowmonSourceError",
    "FlowmonValidationError",
    "GlobalThresholdState",
    "HistoryEntry",
    "HistoryFilter",
    "MemorySource",
    "PathResolver",
    "ResolverState",
    "RollingBuffer",
    "SensorSet",
    "SensorSnapshot",
    "SubscriptionManager",
    "SubscriptionToken",
    "detect_leak",
    "filter_history",
    "normalize_history",
    "normalize_sensor_set",
    "parse_numeric",
    "total_volume",
]
