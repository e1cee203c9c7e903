# rsfilter/summary.py — Console summary output
from dataclasses import asdict
from typing import List, Optional

import pandas as pd

from rsfilter.models import SymbolStrength

SHOW_COLS = ["rank", "symbol", "strength",
             "current_term_rs_rank", "short_rs_rank", "middle_rs_rank", "long_rs_rank",
             "current_term_rs", "short_rs", "middle_rs", "long_rs"]


def to_frame(strengths: List[SymbolStrength]) -> pd.DataFrame:
    df = pd.DataFrame([asdict(s) for s in strengths])
    if df.empty:
        return df
    df.insert(0, "rank", range(1, len(df) + 1))
    return df


def _print_summary(top: List[SymbolStrength],
                   improvement: Optional[List[SymbolStrength]] = None):
    print("\n" + "=" * 65)
    print(f"  RS RANK TOP {len(top)}")
    print("=" * 65)
    df = to_frame(top)
    if df.empty:
        print("  (no ranked symbols)")
    else:
        print(df[[c for c in SHOW_COLS if c in df.columns]].round(4).to_string(index=False))

    if improvement:
        print("\n  5-DAY IMPROVING")
        print("-" * 45)
        print(to_frame(improvement)[["symbol", "strength"]].round(4).to_string(index=False))
    elif improvement is not None:
        print("\n  5-DAY IMPROVING: none")
