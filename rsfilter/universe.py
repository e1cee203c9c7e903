# rsfilter/universe.py — Day-over-day tradable-universe changes
import logging
from typing import Iterable, List, Optional

from rsfilter.models import UniverseChange
from rsfilter.store import ResultStore
from rsfilter.utils import unique

logger = logging.getLogger(__name__)


def diff_universe(current_symbols: List[str], store: ResultStore,
                  ignore: Iterable[str] = ()) -> Optional[UniverseChange]:
    """
    Compare the current universe with the latest persisted snapshot.

    The snapshot is whatever the last changed run wrote, not necessarily
    yesterday's. Returns None when nothing changed; otherwise the new filtered
    list is persisted and the change returned. A missing or empty snapshot
    counts as a full re-baseline (`established=True`).
    """
    ignored = set(ignore)
    current = unique(s for s in current_symbols if s not in ignored)
    previous = unique(s for s in store.read_symbol_snapshot() if s not in ignored)

    if not previous:
        store.write_symbol_snapshot(current)
        logger.info(f"📋  Symbol list established ({len(current)} symbols)")
        return UniverseChange(established=True)

    current_set, previous_set = set(current), set(previous)
    added = [s for s in current if s not in previous_set]
    removed = [s for s in previous if s not in current_set]

    if not added and not removed:
        logger.info("Symbol list unchanged")
        return None

    store.write_symbol_snapshot(current)
    logger.info(f"📋  Symbol list changed: +{len(added)} / -{len(removed)}")
    return UniverseChange(added=added, removed=removed)
