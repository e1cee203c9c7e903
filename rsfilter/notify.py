# rsfilter/notify.py — Ranking / universe messages and Telegram delivery
import logging
from pathlib import Path
from typing import Callable, List, Optional

import requests

from rsfilter.config import CFG, QUOTE_ASSET, SPLITTER, TELEGRAM_API_URL
from rsfilter.models import SymbolStrength

logger = logging.getLogger(__name__)


def _short(symbol: str) -> str:
    return symbol.replace(QUOTE_ASSET, "")


def format_ranking_message(top: List[SymbolStrength],
                           improvement: Optional[List[SymbolStrength]] = None) -> str:
    msg = f"RS Rank Top {len(top)}: \n" + f"{SPLITTER} ".join(_short(s.symbol) for s in top)
    if improvement:
        msg += "\n\n5D Improving:\n" + f"{SPLITTER} ".join(_short(s.symbol) for s in improvement)
    return msg


def format_watchlist(top: List[SymbolStrength],
                     improvement: Optional[List[SymbolStrength]],
                     to_tradingview: Callable[[List[str]], str]) -> str:
    """TradingView watch-list sections, one `###NAME,SYM,SYM` line each."""
    lines = [f"###RS_TOP_{len(top)}{SPLITTER}{to_tradingview([s.symbol for s in top])}"]
    if improvement:
        lines.append(f"###5D_IMPROVING{SPLITTER}{to_tradingview([s.symbol for s in improvement])}")
    return "\n".join(lines) + "\n"


class TelegramNotifier:
    """
    Sends ranking results and universe changes to Telegram channels.

    Without a bot token every send is only logged. Delivery failures are
    logged and reported as False; they never abort the run.
    """

    def __init__(self, bot_token: Optional[str], rank_chat_id: Optional[str] = None,
                 universe_chat_id: Optional[str] = None,
                 session: Optional[requests.Session] = None,
                 timeout: float = CFG["http_timeout"]):
        self.bot_token = bot_token
        self.rank_chat_id = rank_chat_id
        self.universe_chat_id = universe_chat_id
        self.session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "TelegramNotifier":
        return cls(settings.telegram_bot_token, settings.telegram_rank_chat_id,
                   settings.telegram_universe_chat_id)

    def _url(self, method: str) -> str:
        return f"{TELEGRAM_API_URL}/bot{self.bot_token}/{method}"

    def _enabled(self, chat_id: Optional[str], what: str) -> bool:
        if not self.bot_token or not chat_id:
            logger.info(f"Telegram not configured — {what} not sent")
            return False
        return True

    def send_message(self, chat_id: str, text: str) -> bool:
        try:
            resp = self.session.post(self._url("sendMessage"),
                                     data={"chat_id": chat_id, "text": text},
                                     timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"⚠️  Telegram sendMessage error: {e}")
            return False
        if not resp.ok:
            logger.warning(f"⚠️  Telegram sendMessage HTTP {resp.status_code}: {resp.text[:200]}")
            return False
        return True

    def send_document(self, chat_id: str, path: Path, caption: str = "") -> bool:
        path = Path(path)
        try:
            with open(path, "rb") as f:
                resp = self.session.post(
                    self._url("sendDocument"),
                    data={"chat_id": chat_id, "caption": caption},
                    files={"document": (path.name, f, "application/octet-stream")},
                    timeout=self.timeout,
                )
        except requests.RequestException as e:
            logger.warning(f"⚠️  Telegram sendDocument error: {e}")
            return False
        if not resp.ok:
            logger.warning(f"⚠️  Telegram sendDocument HTTP {resp.status_code}: {resp.text[:200]}")
            return False
        return True

    # ── sink interface used by the pipeline ──────────────────────
    def send_universe_change(self, message: str) -> bool:
        if not self._enabled(self.universe_chat_id, "universe change"):
            return False
        sent = self.send_message(self.universe_chat_id, message)
        if sent:
            logger.info("📨  Universe change sent")
        return sent

    def send_ranking(self, message: str, watchlist_path: Path) -> bool:
        if not self._enabled(self.rank_chat_id, "ranking"):
            return False
        sent = self.send_document(self.rank_chat_id, watchlist_path, caption=message)
        if sent:
            logger.info("📨  Ranking sent")
        return sent
