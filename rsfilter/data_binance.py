# rsfilter/data_binance.py — Binance USDⓈ-M futures price source
import logging
import time
from typing import List, Optional

import requests

from rsfilter.config import BINANCE_FAPI_URL, CFG, QUOTE_ASSET, SPLITTER
from rsfilter.models import IntervalUnit

logger = logging.getLogger(__name__)


class BinanceFuturesSource:
    """Tradable USDT perpetuals and their daily closes from the public futures REST API."""

    is_replay = False

    def __init__(self, session: Optional[requests.Session] = None,
                 base_url: str = BINANCE_FAPI_URL,
                 timeout: float = CFG["http_timeout"],
                 retries: int = CFG["http_retries"],
                 retry_sleep: float = CFG["http_retry_sleep"]):
        self.session = session or requests.Session()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retries = max(int(retries), 1)
        self.retry_sleep = retry_sleep

    def _get(self, path: str, params: Optional[dict] = None) -> requests.Response:
        url = f"{self.base_url}/{path}"
        last_exc = None
        for attempt in range(1, self.retries + 1):
            try:
                resp = self.session.get(url, params=params, timeout=self.timeout)
                if resp.status_code != 429 and resp.status_code < 500:
                    return resp
                resp.raise_for_status()
            except requests.RequestException as e:
                last_exc = e
                if attempt < self.retries:
                    logger.warning(f"⚠️  {path} attempt {attempt}/{self.retries} failed: {e}")
                    time.sleep(self.retry_sleep)
        raise last_exc

    def list_tradable_symbols(self) -> List[str]:
        resp = self._get("exchangeInfo")
        resp.raise_for_status()
        symbols = [
            s["symbol"] for s in resp.json().get("symbols", [])
            if s.get("quoteAsset") == QUOTE_ASSET
            and s.get("contractType") == "PERPETUAL"
            and s.get("status") == "TRADING"
        ]
        logger.info(f"✅  {len(symbols)} tradable {QUOTE_ASSET} perpetuals")
        return symbols

    def get_prices(self, symbol: str, interval_count: int = 1,
                   interval_unit: IntervalUnit = IntervalUnit.DAY,
                   limit: int = 500) -> List[float]:
        unit = IntervalUnit(interval_unit).value
        resp = self._get("klines", params={
            "symbol": symbol,
            "interval": f"{interval_count}{unit}",
            "limit": limit,
        })
        if resp.status_code == 400:
            # unknown or delisted symbol
            logger.info(f"{symbol}: no klines ({resp.text[:120]})")
            return []
        resp.raise_for_status()
        return [float(k[4]) for k in resp.json()][-limit:]

    def to_tradingview(self, symbols: List[str]) -> str:
        return SPLITTER.join(f"BINANCE:{s}.P" for s in symbols)
