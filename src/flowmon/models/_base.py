"""Base model and numeric coercion for source records.

Every flowmon model inherits from :class:`FlowmonBaseModel` which is
frozen and ignores unknown keys, so the source can add fields without
breaking admission.

Numeric fields coming from the source are loosely typed. Two coercions
are used:

* :func:`parse_optional_number` for optional measurements: a finite number
  or a string whose leading characters form one, else ``None``. Absence
  is never turned into ``0``.
* :func:`parse_numeric` for unit-bearing display strings (``"2.50 L"``):
  everything but digits, ``.`` and ``-`` is stripped first, and the result
  is ``0.0`` when nothing numeric remains.
"""

from __future__ import annotations

import math
import re
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, StrictFloat, StrictInt

_LEADING_FLOAT = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_NON_NUMERIC = re.compile(r"[^\d.-]")


def is_number(value: Any) -> bool:
    """Return ``True`` for real numbers. ``bool`` is not a number here."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_leading_float(text: str) -> float | None:
    """Parse the longest numeric prefix of *text*.

    ``"1.5abc"`` gives ``1.5``; ``"abc"`` gives ``None``.
    """
    match = _LEADING_FLOAT.match(text)
    if match is None:
        return None
    try:
        result = float(match.group(1))
    except (OverflowError, ValueError):
        return None
    return result if math.isfinite(result) else None


def parse_optional_number(value: Any) -> float | None:
    if is_number(value):
        result = float(value)
        return result if math.isfinite(result) else None
    if isinstance(value, str):
        return parse_leading_float(value)
    return None


def parse_numeric(value: Any) -> float:
    """Parse a display string such as ``"2.50 L"`` into a float.

    Never raises; returns ``0.0`` for empty or non-numeric input.
    """
    if is_number(value):
        result = float(value)
        return result if math.isfinite(result) else 0.0
    if not isinstance(value, str) or not value:
        return 0.0
    parsed = parse_leading_float(_NON_NUMERIC.sub("", value))
    return 0.0 if parsed is None else parsed


def _require_finite(value: Any) -> Any:
    if isinstance(value, bool):
        raise ValueError("timestamp must be a number")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError("timestamp must be finite")
    return value


OptionalNumber = Annotated[float | None, BeforeValidator(parse_optional_number)]
"""Annotated type that coerces number-or-numeric-string to a finite float, else ``None``."""

Timestamp = Annotated[StrictInt | StrictFloat, BeforeValidator(_require_finite)]
"""Epoch seconds as a real number; strings and booleans are rejected."""


class FlowmonBaseModel(BaseModel):
    """Base for records read from the data source."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )
