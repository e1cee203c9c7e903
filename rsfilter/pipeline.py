# rsfilter/pipeline.py — Main orchestration
import logging
import math
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date
from typing import Iterable, List, Optional, Tuple

from tqdm import tqdm

from rsfilter.composite import apply_ranks, compute_symbol_metrics, sort_by_strength
from rsfilter.config import Settings
from rsfilter.data_binance import BinanceFuturesSource
from rsfilter.data_file import FileReplaySource
from rsfilter.improvement import detect_improvement
from rsfilter.models import (IntervalUnit, Lookbacks, OutcomeStatus, PriceSource, RankReport,
                             SymbolOutcome, Weights)
from rsfilter.notify import TelegramNotifier, format_ranking_message, format_watchlist
from rsfilter.store import ResultStore, format_price_line
from rsfilter.summary import _print_summary
from rsfilter.universe import diff_universe
from rsfilter.utils import unique

logger = logging.getLogger(__name__)


def _process_symbol(symbol: str, price_source: PriceSource,
                    lookbacks: Lookbacks) -> Tuple[SymbolOutcome, Optional[str]]:
    """
    Fetch, validate and measure one symbol. Never raises.

    The returned price line is set whenever enough closes arrived, even if
    the metrics then fail, so the raw batch keeps the series.
    """
    days = lookbacks.max_days
    try:
        prices = list(price_source.get_prices(symbol, 1, IntervalUnit.DAY, days))
    except Exception as e:
        logger.warning(f"⚠️  {symbol}: {type(e).__name__}: {e}")
        return SymbolOutcome(symbol, OutcomeStatus.FAILED, reason=str(e)), None

    if len(prices) < days:
        logger.info(f"{symbol}: {len(prices)} closes < {days} required — skipped")
        return SymbolOutcome(symbol, OutcomeStatus.SKIPPED,
                             reason=f"{len(prices)} of {days} closes"), None

    closes = prices[-days:]
    line = format_price_line(symbol, closes)
    try:
        metrics = compute_symbol_metrics(symbol, closes, lookbacks)
    except Exception as e:
        logger.warning(f"⚠️  {symbol}: {type(e).__name__}: {e}")
        return SymbolOutcome(symbol, OutcomeStatus.FAILED, reason=str(e)), line
    return SymbolOutcome(symbol, OutcomeStatus.OK, metrics=metrics), line


def rank_symbols(symbols: Iterable[str], price_source: PriceSource,
                 lookbacks: Lookbacks, weights: Weights,
                 ignore: Iterable[str] = (), store: Optional[ResultStore] = None,
                 run_date: Optional[date] = None, max_workers: int = 1,
                 show_progress: bool = False) -> RankReport:
    """
    Rank `symbols` by weighted relative strength.

    Symbols with fewer than `lookbacks.max_days` closes are skipped and
    per-symbol errors are recorded as failures; neither stops the run.
    Results are folded in input order whatever `max_workers` is, so the
    ranking of a given input is deterministic. With a `store`, the raw
    price batch and the ranked set are written under `run_date`'s folder.
    """
    run_date = run_date or date.today()
    ignored = set(ignore)
    todo = [s for s in unique(symbols) if s not in ignored]

    if not math.isclose(weights.total, 1.0, abs_tol=1e-9):
        logger.warning(f"⚠️  Weights sum to {weights.total:.4f}, not 1")

    logger.info(f"Ranking {len(todo)} symbols "
                f"(lookbacks {lookbacks.current}/{lookbacks.short}/{lookbacks.middle}/{lookbacks.long})")

    results: List[Optional[Tuple[SymbolOutcome, Optional[str]]]] = [None] * len(todo)
    if max_workers <= 1:
        for i, symbol in enumerate(tqdm(todo, desc="Prices", disable=not show_progress)):
            results[i] = _process_symbol(symbol, price_source, lookbacks)
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {executor.submit(_process_symbol, s, price_source, lookbacks): i
                       for i, s in enumerate(todo)}
            for future in tqdm(as_completed(futures), total=len(todo),
                               desc="Prices (parallel)", disable=not show_progress):
                results[futures[future]] = future.result()

    outcomes = [outcome for outcome, _ in results]
    price_lines = [line for _, line in results if line is not None]
    survivors = [o.metrics for o in outcomes if o.status is OutcomeStatus.OK]

    ranked = apply_ranks(survivors, weights)
    report = RankReport(run_date=run_date, ranked=sort_by_strength(ranked), outcomes=outcomes)

    logger.info(f"✅  Ranked {len(report.ranked)} | skipped {len(report.skipped)} "
                f"| failed {len(report.failed)}")

    if store is not None:
        if price_lines:
            store.write_price_batch(run_date, price_lines)
        if ranked:
            path = store.write_ranked(run_date, report.ranked)
            logger.info(f"💾  Ranked result saved: {path}")
    return report


def build_source(settings: Settings, store: ResultStore) -> PriceSource:
    if settings.source == "file":
        return FileReplaySource(store, settings.replay_date)
    return BinanceFuturesSource()


def run_daily(settings: Settings, source: Optional[PriceSource] = None,
              notifier: Optional[TelegramNotifier] = None,
              today: Optional[date] = None) -> RankReport:
    """
    One daily filter run: universe check, ranking, improvement, delivery, pruning.

    A replay run ranks the stored batch of `source.target_date` and writes its
    ranking and watch list under the store's replay folder, leaving the
    replayed date folder untouched.
    """
    store = ResultStore.from_settings(settings)
    source = source or build_source(settings, store)
    notifier = notifier or TelegramNotifier.from_settings(settings)
    replay = source.is_replay
    run_date = source.target_date if replay else (today or date.today())

    print("=" * 65)
    print(f"  RS DAILY FILTER – {'replay' if replay else 'live'} run {run_date:%Y-%m-%d}")
    print("=" * 65)

    lookbacks, weights = settings.lookbacks, settings.weights
    ignore = settings.ignore_list

    symbols = source.list_tradable_symbols()

    if not replay:
        change = diff_universe(symbols, store, ignore)
        if change is not None:
            notifier.send_universe_change(change.to_message())

    report = rank_symbols(symbols, source, lookbacks, weights, ignore=ignore,
                          store=None if replay else store, run_date=run_date,
                          max_workers=settings.max_workers, show_progress=True)
    if not report.ranked:
        logger.warning("⚠️  No symbols could be ranked — nothing to send")
        return report

    out_folder = None
    if replay:
        out_folder = store.replay_folder(run_date)
        path = store.write_ranked(run_date, report.ranked, folder=out_folder)
        logger.info(f"💾  Replay result saved: {path}")

    improvement = detect_improvement(report.ranked, settings.take_count, store, run_date,
                                     lookback_days=settings.improvement_days,
                                     top_count=settings.improvement_top)

    top = report.top(settings.take_count)
    _print_summary(top, improvement)

    watchlist = store.write_watchlist(
        run_date, format_watchlist(top, improvement, source.to_tradingview), folder=out_folder)
    notifier.send_ranking(format_ranking_message(top, improvement), watchlist)

    if not replay:
        store.prune(run_date, settings.keep_days)
    return report
