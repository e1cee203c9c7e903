# rsfilter/composite.py — Per-symbol RS metrics, cross-sectional ranks, composite strength
from dataclasses import replace
from typing import List, Sequence

import numpy as np

from rsfilter.models import Lookbacks, SymbolStrength, Weights
from rsfilter.stats import moving_average, percentile_rank, regression_slope
from rsfilter.utils import _finite

METRIC_COLS = ["current_term_rs", "short_rs", "middle_rs", "long_rs"]
RANK_COLS   = ["current_term_rs_rank", "short_rs_rank", "middle_rs_rank", "long_rs_rank"]


def _ratio_pct(numerator: float, denominator: float) -> float:
    if denominator == 0:
        return 0.0
    return _finite(numerator / denominator * 100)


def compute_symbol_metrics(symbol: str, prices: Sequence[float],
                           lookbacks: Lookbacks) -> SymbolStrength:
    """
    Raw RS metrics for one symbol from its closes (oldest first).

      current_term_rs = 100 * last / MA(current)
      short/middle/long_rs = 100 * slope(last N) / MA(N)

    Division by a zero MA or any non-finite result gives 0.
    """
    series = np.asarray(prices, dtype=float)
    last = float(series[-1])

    def ma(days: int) -> float:
        return _finite(moving_average(series, days))

    def slope(days: int) -> float:
        return regression_slope(series[-days:])

    return SymbolStrength(
        symbol=symbol,
        current_term_rs=_ratio_pct(last, ma(lookbacks.current)),
        short_rs=_ratio_pct(slope(lookbacks.short), ma(lookbacks.short)),
        middle_rs=_ratio_pct(slope(lookbacks.middle), ma(lookbacks.middle)),
        long_rs=_ratio_pct(slope(lookbacks.long), ma(lookbacks.long)),
    )


def compute_composite(ranks: Sequence[float], weights: Weights) -> float:
    current, short, middle, long_ = ranks
    return (current * weights.current + short * weights.short
            + middle * weights.middle + long_ * weights.long)


def apply_ranks(strengths: List[SymbolStrength], weights: Weights) -> List[SymbolStrength]:
    """
    Percentile-rank each metric across the whole set and attach the weighted
    composite. Input order is preserved; nothing is sorted here.
    """
    if not strengths:
        return []

    ranks = {
        rank_col: percentile_rank([getattr(s, metric_col) for s in strengths])
        for metric_col, rank_col in zip(METRIC_COLS, RANK_COLS)
    }

    ranked = []
    for i, s in enumerate(strengths):
        row = [ranks[c][i] for c in RANK_COLS]
        ranked.append(replace(
            s,
            **dict(zip(RANK_COLS, row)),
            strength=compute_composite(row, weights),
        ))
    return ranked


def sort_by_strength(strengths: List[SymbolStrength]) -> List[SymbolStrength]:
    # stable: equal strengths keep their collection order
    return sorted(strengths, key=lambda s: s.strength, reverse=True)
