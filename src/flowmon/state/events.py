"""Stream names and diagnostic events.

Every ingestion path reports dropped records and contained failures as
:class:`Diagnostic` events instead of raising.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class StreamName(StrEnum):
    SENSORS = "sensors"
    CHART = "chart"
    R_VALUE = "r_value"
    THRESHOLD = "threshold"
    HISTORY = "history"
    CLOCK = "clock"


class DiagnosticKind(StrEnum):
    INVALID_ENTRY = "invalid_entry"
    INVALID_VALUE = "invalid_value"
    MISSING_VALUE = "missing_value"
    SOURCE_ERROR = "source_error"


class Diagnostic(BaseModel):
    """A contained, non-fatal problem observed while ingesting."""

    model_config = ConfigDict(frozen=True)

    kind: DiagnosticKind
    stream: str = ""
    key: str = ""
    reason: str = ""
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    raw: Any = Field(default=None, description="Offending value (as received)")


DiagnosticSink = Callable[[Diagnostic], None]
