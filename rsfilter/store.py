# rsfilter/store.py — Flat-file result store, one folder per calendar date
import logging
import shutil
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from rsfilter.config import (CFG, FOLDER_DATE_FMT, OUTPUT_FILE_EXT, PRICE_SYMBOL_SPLITTER,
                             RS_RESULT_DATE_FMT, SPLITTER)
from rsfilter.export_json import export_ranked_json, parse_ranked_json
from rsfilter.models import SymbolStrength
from rsfilter.utils import _finite, parse_symbol_list

logger = logging.getLogger(__name__)


def format_price_line(symbol: str, prices: Sequence[float]) -> str:
    """`SYMBOL|p1,p2,...`; values are written as received, floats via repr."""
    return f"{symbol}{PRICE_SYMBOL_SPLITTER}" + SPLITTER.join(
        repr(p) if isinstance(p, float) else str(p) for p in prices)


def parse_price_lines(text: str) -> Dict[str, List[float]]:
    """Parse `SYMBOL|p1,p2,...` lines. Malformed lines are skipped, bad prices read as 0.0."""
    out: Dict[str, List[float]] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        parts = line.split(PRICE_SYMBOL_SPLITTER)
        if len(parts) != 2:
            continue
        symbol = parts[0].strip()
        prices = [_finite(p.strip()) for p in parts[1].split(SPLITTER) if p.strip()]
        out[symbol] = prices
    return out


class ResultStore:
    """
    Layout under `root`:

        <symbol_output_file>          latest tradable-symbol snapshot
        YYYY-MM-DD/<price_file>       raw price batch of the run
        YYYY-MM-DD/<ranked_file>      full ranked result (JSON)
        YYYY-MM-DD/0.RS_YYYYMMDD.txt  TradingView watch list
        replay/YYYY-MM-DD/            ranking + watch list of a replay run

    A replay never writes into the date folder it reads from.
    Write failures raise OSError.
    """

    def __init__(self, root, symbol_output_file: str = CFG["symbol_output_file"],
                 price_file: str = CFG["price_file"],
                 ranked_file: str = CFG["ranked_file"]):
        self.root = Path(root)
        self.symbol_output_file = symbol_output_file
        self.price_file = price_file
        self.ranked_file = ranked_file

    @classmethod
    def from_settings(cls, settings) -> "ResultStore":
        return cls(settings.result_root, settings.symbol_output_file,
                   settings.price_file, settings.ranked_file)

    # ── paths / raw IO ───────────────────────────────────────────
    def day_folder(self, run_date: date) -> Path:
        return self.root / run_date.strftime(FOLDER_DATE_FMT)

    def replay_folder(self, run_date: date) -> Path:
        return self.root / CFG["replay_dir"] / run_date.strftime(FOLDER_DATE_FMT)

    @staticmethod
    def write_text(folder: Path, file_name: str, text: str) -> Path:
        folder.mkdir(parents=True, exist_ok=True)
        path = folder / file_name
        path.write_text(text, encoding="utf-8")
        return path

    @staticmethod
    def read_text(folder: Path, file_name: str) -> str:
        path = folder / file_name
        if not path.is_file():
            return ""
        return path.read_text(encoding="utf-8")

    # ── raw price batch ──────────────────────────────────────────
    def write_price_batch(self, run_date: date, lines: List[str]) -> Path:
        return self.write_text(self.day_folder(run_date), self.price_file,
                               "\n".join(lines) + "\n")

    def read_price_batch(self, run_date: date) -> Dict[str, List[float]]:
        return parse_price_lines(self.read_text(self.day_folder(run_date), self.price_file))

    # ── ranked result ────────────────────────────────────────────
    def write_ranked(self, run_date: date, strengths: List[SymbolStrength],
                     folder: Optional[Path] = None) -> Path:
        return self.write_text(folder or self.day_folder(run_date), self.ranked_file,
                               export_ranked_json(strengths))

    def read_ranked(self, run_date: date) -> Optional[List[SymbolStrength]]:
        """Ranked snapshot of `run_date`, or None if absent, empty or unparseable."""
        folder = self.day_folder(run_date)
        if not folder.is_dir():
            logger.info(f"No result folder for {run_date:%Y-%m-%d}")
            return None
        content = self.read_text(folder, self.ranked_file)
        if not content.strip():
            logger.info(f"Ranked result for {run_date:%Y-%m-%d} is missing or empty")
            return None
        try:
            strengths = parse_ranked_json(content)
        except (ValueError, TypeError) as e:
            logger.warning(f"⚠️  Cannot parse ranked result for {run_date:%Y-%m-%d}: {e}")
            return None
        return strengths or None

    # ── tradable-symbol snapshot ─────────────────────────────────
    def read_symbol_snapshot(self) -> List[str]:
        return parse_symbol_list(self.read_text(self.root, self.symbol_output_file), SPLITTER)

    def write_symbol_snapshot(self, symbols: List[str]) -> Path:
        return self.write_text(self.root, self.symbol_output_file, SPLITTER.join(symbols))

    # ── watch list ───────────────────────────────────────────────
    def watchlist_name(self, run_date: date) -> str:
        return f"0.RS_{run_date.strftime(RS_RESULT_DATE_FMT)}{OUTPUT_FILE_EXT}"

    def write_watchlist(self, run_date: date, text: str,
                        folder: Optional[Path] = None) -> Path:
        return self.write_text(folder or self.day_folder(run_date),
                               self.watchlist_name(run_date), text)

    # ── retention ────────────────────────────────────────────────
    def prune(self, today: date, keep_days: int = CFG["keep_days"]) -> List[Path]:
        """Delete date folders older than `keep_days`; other folders are left alone."""
        if not self.root.is_dir():
            return []
        cutoff = today - timedelta(days=keep_days)
        removed = []
        for folder in sorted(self.root.iterdir()):
            if not folder.is_dir():
                continue
            try:
                folder_date = datetime.strptime(folder.name, FOLDER_DATE_FMT).date()
            except ValueError:
                continue
            if folder_date >= cutoff:
                continue
            try:
                shutil.rmtree(folder)
                removed.append(folder)
            except OSError as e:
                logger.warning(f"⚠️  Failed to delete folder {folder}: {e}")
        if removed:
            logger.info(f"🧹  Pruned {len(removed)} result folder(s) older than {cutoff}")
        return removed
