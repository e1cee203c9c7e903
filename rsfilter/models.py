# rsfilter/models.py — Value types shared by the engine, store and sinks
import math
import numbers
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import List, Optional, Protocol

from rsfilter.config import ConfigError


class IntervalUnit(str, Enum):
    DAY = "d"
    HOUR = "h"
    MINUTE = "m"
    SECOND = "s"


class PriceSource(Protocol):
    # replay sources also expose `target_date`, the stored batch they serve
    is_replay: bool

    def list_tradable_symbols(self) -> List[str]: ...

    def get_prices(self, symbol: str, interval_count: int,
                   interval_unit: IntervalUnit, limit: int) -> List[float]: ...

    def to_tradingview(self, symbols: List[str]) -> str: ...


@dataclass(frozen=True)
class Lookbacks:
    current: int
    short: int
    middle: int
    long: int

    def __post_init__(self):
        bad = [name for name in ("current", "short", "middle", "long")
               if not isinstance(getattr(self, name), numbers.Integral)
               or isinstance(getattr(self, name), bool)
               or getattr(self, name) <= 0]
        if bad:
            raise ConfigError(f"Lookback days must be positive integers: {', '.join(bad)}")

    @property
    def max_days(self) -> int:
        return max(self.current, self.short, self.middle, self.long)


@dataclass(frozen=True)
class Weights:
    current: float
    short: float
    middle: float
    long: float

    def __post_init__(self):
        bad = []
        for name in ("current", "short", "middle", "long"):
            v = getattr(self, name)
            if isinstance(v, bool) or not isinstance(v, numbers.Real) or not math.isfinite(v):
                bad.append(name)
        if bad:
            raise ConfigError(f"Weights must be finite numbers: {', '.join(bad)}")

    @property
    def total(self) -> float:
        return self.current + self.short + self.middle + self.long


@dataclass(frozen=True)
class SymbolStrength:
    symbol: str
    current_term_rs: float = 0.0
    short_rs: float = 0.0
    middle_rs: float = 0.0
    long_rs: float = 0.0
    current_term_rs_rank: float = 0.0
    short_rs_rank: float = 0.0
    middle_rs_rank: float = 0.0
    long_rs_rank: float = 0.0
    strength: float = 0.0


class OutcomeStatus(str, Enum):
    OK = "ok"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class SymbolOutcome:
    symbol: str
    status: OutcomeStatus
    metrics: Optional[SymbolStrength] = None
    reason: str = ""


@dataclass
class RankReport:
    """Result of one ranking run: the sorted ranking plus every per-symbol outcome."""

    run_date: date
    ranked: List[SymbolStrength] = field(default_factory=list)
    outcomes: List[SymbolOutcome] = field(default_factory=list)

    @property
    def skipped(self) -> List[SymbolOutcome]:
        return [o for o in self.outcomes if o.status is OutcomeStatus.SKIPPED]

    @property
    def failed(self) -> List[SymbolOutcome]:
        return [o for o in self.outcomes if o.status is OutcomeStatus.FAILED]

    def top(self, n: int) -> List[SymbolStrength]:
        return self.ranked[:n]


@dataclass(frozen=True)
class UniverseChange:
    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    established: bool = False

    def to_message(self) -> str:
        if self.established:
            return "Symbol list re-established.\n"
        lines = []
        if self.added:
            lines += ["Added symbols:", ", ".join(self.added)]
        if self.removed:
            lines += ["Removed symbols:", ", ".join(self.removed)]
        return "\n".join(lines) + "\n"
