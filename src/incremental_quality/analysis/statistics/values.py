"""Cell-level value classification shared by analyzers and detectors.

Samples hold raw string values (or None). These helpers decide, for a
single cell, whether it is blank, missing, or numeric.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from typing import Any


def is_blank(value: Any) -> bool:
    """True for None, NaN, and empty or whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


def is_missing(value: Any, indicators: Iterable[str] = ()) -> bool:
    """True when the value is blank or one of the missing indicators.

    Indicators are compared against the trimmed, lower-cased value; pass them
    already normalised (see DetectionConfig.missing_indicator_set).
    """
    if is_blank(value):
        return True
    normalized = str(value).strip().lower()
    return normalized in indicators


def parse_number(value: Any) -> float | None:
    """Parse a cell as a finite float.

    Uses Python's locale-independent float grammar on the trimmed text;
    digit-group underscores, infinities and NaN are rejected.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        number = float(value)
        return number if math.isfinite(number) else None

    text = str(value).strip()
    if not text or "_" in text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def numeric_values(values: Iterable[Any]) -> list[float]:
    """All values that parse as finite numbers, in input order."""
    parsed = (parse_number(v) for v in values)
    return [v for v in parsed if v is not None]
