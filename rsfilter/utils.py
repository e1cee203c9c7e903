# rsfilter/utils.py — Shared utility functions
import logging
import math
import sys
from pathlib import Path
from typing import Iterable, Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure the root logger with a console handler and an optional file handler."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    for h in list(root.handlers):
        root.removeHandler(h)

    formatter = logging.Formatter(LOG_FORMAT)
    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(path, encoding="utf-8")
        fh.setFormatter(formatter)
        root.addHandler(fh)


def _finite(val, default: float = 0.0) -> float:
    """Convert to float, returning default for None/NaN/inf/non-numeric."""
    if val is None:
        return default
    try:
        f = float(val)
    except (TypeError, ValueError):
        return default
    return f if math.isfinite(f) else default


def parse_symbol_list(raw: Optional[str], sep: str = ",") -> list:
    """Split a delimited identifier list, trimming blanks."""
    if not raw:
        return []
    return [s.strip() for s in raw.split(sep) if s.strip()]


def unique(symbols: Iterable[str]) -> list:
    """Drop duplicates, keeping first-seen order."""
    return list(dict.fromkeys(symbols))
