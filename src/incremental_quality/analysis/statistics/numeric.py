"""Descriptive statistics for numeric columns."""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Iterable

import numpy as np
from scipy import stats as scipy_stats

from incremental_quality.analysis.statistics.models import NumericStats

PERCENTILES = (5, 25, 50, 75, 95)
IQR_MULTIPLIER = 1.5


def _finite_or_none(value: float) -> float | None:
    value = float(value)
    return value if math.isfinite(value) else None


def analyze_numeric(values: Iterable[float]) -> NumericStats:
    """Compute descriptive statistics over parsed numeric values.

    Variance and standard deviation are sample estimates (n - 1). Quartiles
    use linear interpolation. Skewness and kurtosis are bias-corrected and
    only computed with enough values (3 and 4) and non-zero spread.

    Args:
        values: Finite floats (see parse_number)

    Returns:
        NumericStats; zeroed when values is empty
    """
    arr = np.asarray(list(values), dtype=float)
    n = arr.size
    if n == 0:
        return NumericStats()

    mean = float(arr.mean())
    variance = float(arr.var(ddof=1)) if n > 1 else 0.0
    std_dev = math.sqrt(variance)

    q1, median, q3 = (float(q) for q in np.percentile(arr, [25, 50, 75]))
    iqr = q3 - q1
    lower = q1 - IQR_MULTIPLIER * iqr
    upper = q3 + IQR_MULTIPLIER * iqr
    outlier_count = int(np.count_nonzero((arr < lower) | (arr > upper)))

    rounded = Counter(round(float(v), 2) for v in arr)
    top_value, top_count = rounded.most_common(1)[0]
    mode = top_value if top_count > 1 else None

    skewness = None
    kurtosis = None
    if std_dev > 0:
        if n >= 3:
            skewness = _finite_or_none(scipy_stats.skew(arr, bias=False))
        if n >= 4:
            kurtosis = _finite_or_none(scipy_stats.kurtosis(arr, bias=False))

    percentiles = {
        f"p{p}": float(v) for p, v in zip(PERCENTILES, np.percentile(arr, PERCENTILES), strict=True)
    }

    return NumericStats(
        count=n,
        mean=mean,
        median=median,
        mode=mode,
        variance=variance,
        std_dev=std_dev,
        min_value=float(arr.min()),
        max_value=float(arr.max()),
        q1=q1,
        q3=q3,
        iqr=iqr,
        skewness=skewness,
        kurtosis=kurtosis,
        outlier_count=outlier_count,
        total=float(arr.sum()),
        percentiles=percentiles,
    )
