# rsfilter/data_file.py — Replay price source backed by a stored raw-price batch
import logging
from datetime import date
from typing import List

from rsfilter.config import SPLITTER
from rsfilter.models import IntervalUnit
from rsfilter.store import ResultStore

logger = logging.getLogger(__name__)


class FileReplaySource:
    """Serves the universe and closes recorded in `target_date`'s price batch."""

    is_replay = True

    def __init__(self, store: ResultStore, target_date: date):
        self.target_date = target_date
        self._prices = store.read_price_batch(target_date)
        if not self._prices:
            logger.warning(f"⚠️  No price batch for {target_date:%Y-%m-%d} — replay universe is empty")
        else:
            logger.info(f"✅  Loaded {len(self._prices)} price series for {target_date:%Y-%m-%d}")

    def list_tradable_symbols(self) -> List[str]:
        return list(self._prices)

    def get_prices(self, symbol: str, interval_count: int = 1,
                   interval_unit: IntervalUnit = IntervalUnit.DAY,
                   limit: int = 500) -> List[float]:
        prices = self._prices.get(symbol, [])
        return list(prices[-limit:]) if limit > 0 else []

    def to_tradingview(self, symbols: List[str]) -> str:
        return SPLITTER.join(f"BINANCE:{s}.P" for s in symbols)
