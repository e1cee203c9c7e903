# rsfilter/improvement.py — N-day strength improvement outside the top ranks
import logging
from datetime import date, timedelta
from typing import List, Optional

from rsfilter.config import CFG
from rsfilter.models import SymbolStrength
from rsfilter.store import ResultStore

logger = logging.getLogger(__name__)


def detect_improvement(current_ranked: List[SymbolStrength], exclude_top_count: int,
                       store: ResultStore, run_date: date,
                       lookback_days: int = CFG["improvement_days"],
                       top_count: int = CFG["improvement_top"]) -> Optional[List[SymbolStrength]]:
    """
    Symbols ranked below the first `exclude_top_count` whose strength rose the
    most since the run `lookback_days` calendar days before `run_date`.

    Returns None when that run's ranking is unavailable. Symbols missing from
    the older ranking are left out.
    """
    past_date = run_date - timedelta(days=lookback_days)
    past = store.read_ranked(past_date)
    if past is None:
        logger.info(f"No ranking from {past_date:%Y-%m-%d}; {lookback_days}-day improvement unavailable")
        return None

    past_strength = {}
    for s in past:
        past_strength.setdefault(s.symbol, s.strength)

    candidates = current_ranked[max(exclude_top_count, 0):]
    improvements = [
        (s, s.strength - past_strength[s.symbol])
        for s in candidates if s.symbol in past_strength
    ]
    improvements.sort(key=lambda pair: pair[1], reverse=True)
    return [s for s, _ in improvements[:top_count]]
