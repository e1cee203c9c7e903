# rsfilter/stats.py — Percentile rank, regression slope, moving average
from typing import List, Sequence

import numpy as np
from scipy.stats import rankdata


def percentile_rank(values: Sequence[float]) -> List[float]:
    """
    Fractional position (0 = lowest, 1 = highest) of each value among the
    finite values of the input.

    Ties take the position of the first occurrence of the value in the
    ascending sort ("min" rank), so later duplicates are not averaged up.
    NaN/inf map to 0 and are left out of the population. A single finite
    value maps to 0.5.
    """
    arr = np.asarray(values, dtype=float)
    out = np.zeros(arr.shape[0], dtype=float)
    finite = np.isfinite(arr)
    n = int(finite.sum())
    if n == 0:
        return out.tolist()
    if n == 1:
        out[finite] = 0.5
        return out.tolist()
    ranks = rankdata(arr[finite], method="min") - 1
    out[finite] = ranks / (n - 1)
    return out.tolist()


def regression_slope(series: Sequence[float]) -> float:
    """OLS slope of series[i] against x = 1..n. Returns 0.0 for n <= 1 or a degenerate fit."""
    y = np.asarray(series, dtype=float)
    n = y.shape[0]
    if n <= 1:
        return 0.0

    x = np.arange(1, n + 1, dtype=float)
    sum_x = x.sum()
    denominator = n * (x * x).sum() - sum_x * sum_x
    if abs(denominator) < np.finfo(float).tiny:
        return 0.0

    with np.errstate(all="ignore"):
        slope = (n * (x * y).sum() - sum_x * y.sum()) / denominator
    return float(slope) if np.isfinite(slope) else 0.0


def moving_average(series: Sequence[float], days: int) -> float:
    """Simple mean of the trailing `days` values."""
    tail = np.asarray(series, dtype=float)[-days:]
    if tail.size == 0:
        return 0.0
    with np.errstate(all="ignore"):
        return float(tail.mean())
