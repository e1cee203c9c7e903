"""
Tests for the ranking run, the daily orchestration and the delivery layer.
All price sources and sinks are in-memory fakes; no network access.
Run: python -m pytest test_pipeline.py -v
"""

import logging
import os
import sys
from datetime import date, timedelta

import pytest
import requests

sys.path.insert(0, os.path.dirname(__file__))

from rsfilter.config import load_settings
from rsfilter.data_binance import BinanceFuturesSource
from rsfilter.export_json import parse_ranked_json
from rsfilter.models import IntervalUnit, Lookbacks, OutcomeStatus, SymbolStrength, Weights
from rsfilter.notify import TelegramNotifier, format_ranking_message, format_watchlist
from rsfilter.pipeline import rank_symbols, run_daily
from rsfilter.store import ResultStore

import rs_daily_filter

RUN = date(2024, 3, 6)
LB = Lookbacks(2, 2, 3, 4)
EQUAL = Weights(0.25, 0.25, 0.25, 0.25)

PRICES = {
    "UPUSDT":   [1.0, 2.0, 3.0, 4.0],
    "MIDUSDT":  [10.0, 10.5, 11.0, 11.5],
    "FLATUSDT": [5.0, 5.0, 5.0, 5.0],
}


# ═══════════════════════════════════════════════════
#  FAKES
# ═══════════════════════════════════════════════════

class FakeSource:
    is_replay = False

    def __init__(self, prices, fail=()):
        self.prices = prices
        self.fail = set(fail)
        self.calls = []

    def list_tradable_symbols(self):
        return list(self.prices)

    def get_prices(self, symbol, interval_count, interval_unit, limit):
        self.calls.append((symbol, interval_count, interval_unit, limit))
        if symbol in self.fail:
            raise RuntimeError("exchange down")
        return list(self.prices.get(symbol, []))[-limit:]

    def to_tradingview(self, symbols):
        return ",".join(f"BINANCE:{s}.P" for s in symbols)


class FakeNotifier:
    def __init__(self):
        self.universe = []
        self.rankings = []

    def send_universe_change(self, message):
        self.universe.append(message)
        return True

    def send_ranking(self, message, watchlist_path):
        self.rankings.append((message, watchlist_path))
        return True


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self.payload = payload
        self.text = text

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return self.payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")


class FakeSession:
    def __init__(self, responses=()):
        self.responses = list(responses)
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, params))
        return self.responses.pop(0)

    def post(self, url, data=None, files=None, timeout=None):
        self.requests.append((url, data, files))
        resp = self.responses.pop(0)
        if isinstance(resp, Exception):
            raise resp
        return resp


def symbols_of(strengths):
    return [s.symbol for s in strengths]


# ═══════════════════════════════════════════════════
#  RANKING RUN
# ═══════════════════════════════════════════════════

class TestRankSymbols:
    def test_rising_outranks_flat(self):
        report = rank_symbols(list(PRICES), FakeSource(PRICES), LB, EQUAL)
        assert symbols_of(report.ranked) == ["UPUSDT", "MIDUSDT", "FLATUSDT"]
        assert [s.strength for s in report.ranked] == pytest.approx([1.0, 0.5, 0.0])

    def test_fetches_max_days_of_daily_closes(self):
        src = FakeSource(PRICES)
        rank_symbols(["UPUSDT"], src, LB, EQUAL)
        assert src.calls == [("UPUSDT", 1, IntervalUnit.DAY, 4)]

    def test_short_series_skipped(self):
        prices = {"BTCUSDT": [float(i) for i in range(1, 11)], "NEWUSDT": [1.0, 2.0]}
        report = rank_symbols(list(prices), FakeSource(prices), Lookbacks(7, 5, 7, 10), EQUAL)
        assert symbols_of(report.ranked) == ["BTCUSDT"]
        assert [o.symbol for o in report.skipped] == ["NEWUSDT"]

    def test_ignored_symbols_never_fetched(self):
        src = FakeSource(PRICES)
        report = rank_symbols(list(PRICES), src, LB, EQUAL, ignore=["MIDUSDT"])
        assert "MIDUSDT" not in symbols_of(report.ranked)
        assert "MIDUSDT" not in [c[0] for c in src.calls]

    def test_failure_is_isolated(self):
        report = rank_symbols(list(PRICES), FakeSource(PRICES, fail=["MIDUSDT"]), LB, EQUAL)
        assert symbols_of(report.ranked) == ["UPUSDT", "FLATUSDT"]
        [failed] = report.failed
        assert failed.symbol == "MIDUSDT" and "exchange down" in failed.reason

    def test_outcomes_in_input_order(self):
        report = rank_symbols(["FLATUSDT", "NOPEUSDT", "UPUSDT"], FakeSource(PRICES), LB, EQUAL)
        assert [o.symbol for o in report.outcomes] == ["FLATUSDT", "NOPEUSDT", "UPUSDT"]
        assert report.outcomes[1].status is OutcomeStatus.SKIPPED

    def test_empty_universe(self):
        report = rank_symbols([], FakeSource({}), LB, EQUAL)
        assert report.ranked == [] and report.outcomes == []

    def test_repeatable(self):
        a = rank_symbols(list(PRICES), FakeSource(PRICES), LB, EQUAL)
        b = rank_symbols(list(PRICES), FakeSource(PRICES), LB, EQUAL)
        assert a.ranked == b.ranked

    def test_parallel_matches_sequential(self):
        prices = {f"S{i}USDT": [1.0, 1.0 + i * 0.1, 1.0 + i * 0.3, 1.0 + i * 0.2]
                  for i in range(20)}
        seq = rank_symbols(list(prices), FakeSource(prices), LB, EQUAL, max_workers=1)
        par = rank_symbols(list(prices), FakeSource(prices), LB, EQUAL, max_workers=6)
        assert par.ranked == seq.ranked
        assert [o.symbol for o in par.outcomes] == list(prices)

    def test_ties_keep_input_order(self):
        prices = {"BUSDT": [1.0] * 4, "AUSDT": [1.0] * 4, "CUSDT": [1.0] * 4}
        report = rank_symbols(list(prices), FakeSource(prices), LB, EQUAL)
        assert symbols_of(report.ranked) == ["BUSDT", "AUSDT", "CUSDT"]

    def test_weights_sum_warning(self, caplog):
        with caplog.at_level(logging.WARNING):
            report = rank_symbols(list(PRICES), FakeSource(PRICES), LB, Weights(1, 1, 0, 0))
        assert "Weights sum" in caplog.text
        assert report.ranked[0].strength == pytest.approx(2.0)

    def test_persists_batch_and_ranking(self, tmp_path):
        store = ResultStore(tmp_path)
        prices = {**PRICES, "NEWUSDT": [1.0]}
        report = rank_symbols(list(prices), FakeSource(prices), LB, EQUAL,
                              store=store, run_date=RUN)
        batch = store.read_price_batch(RUN)
        assert sorted(batch) == ["FLATUSDT", "MIDUSDT", "UPUSDT"]
        assert batch["UPUSDT"] == [1.0, 2.0, 3.0, 4.0]
        assert store.read_ranked(RUN) == report.ranked

    def test_nothing_written_when_empty(self, tmp_path):
        store = ResultStore(tmp_path)
        rank_symbols(["NEWUSDT"], FakeSource({"NEWUSDT": [1.0]}), LB, EQUAL,
                     store=store, run_date=RUN)
        assert not store.day_folder(RUN).exists()

    def test_batch_keeps_series_when_metrics_fail(self, tmp_path):
        store = ResultStore(tmp_path)
        prices = {**PRICES, "BADUSDT": [1.0, 2.0, "n/a", 4.0]}
        report = rank_symbols(list(prices), FakeSource(prices), LB, EQUAL,
                              store=store, run_date=RUN)
        assert [o.symbol for o in report.failed] == ["BADUSDT"]
        assert "BADUSDT" not in symbols_of(report.ranked)
        batch_text = (store.day_folder(RUN) / store.price_file).read_text(encoding="utf-8")
        assert "BADUSDT|1.0,2.0,n/a,4.0" in batch_text.splitlines()

    def test_store_write_failure_propagates(self, tmp_path):
        blocker = tmp_path / "results"
        blocker.write_text("not a folder", encoding="utf-8")
        with pytest.raises(OSError):
            rank_symbols(list(PRICES), FakeSource(PRICES), LB, EQUAL,
                         store=ResultStore(blocker), run_date=RUN)

    def test_ranked_write_failure_propagates(self, tmp_path, monkeypatch):
        store = ResultStore(tmp_path)

        def disk_full(*args, **kwargs):
            raise OSError(28, "No space left on device")

        monkeypatch.setattr(store, "write_ranked", disk_full)
        with pytest.raises(OSError):
            rank_symbols(list(PRICES), FakeSource(PRICES), LB, EQUAL, store=store, run_date=RUN)
        assert (store.day_folder(RUN) / store.price_file).is_file()


# ═══════════════════════════════════════════════════
#  MESSAGES + TELEGRAM
# ═══════════════════════════════════════════════════

TOP = [SymbolStrength("BTCUSDT"), SymbolStrength("ETHUSDT")]
IMPROVING = [SymbolStrength("ADAUSDT")]


class TestMessages:
    def test_ranking_message(self):
        assert format_ranking_message(TOP) == "RS Rank Top 2: \nBTC, ETH"

    def test_ranking_message_with_improvement(self):
        msg = format_ranking_message(TOP, IMPROVING)
        assert msg == "RS Rank Top 2: \nBTC, ETH\n\n5D Improving:\nADA"

    def test_empty_improvement_left_out(self):
        assert "5D" not in format_ranking_message(TOP, [])

    def test_watchlist(self):
        text = format_watchlist(TOP, IMPROVING, FakeSource({}).to_tradingview)
        assert text == ("###RS_TOP_2,BINANCE:BTCUSDT.P,BINANCE:ETHUSDT.P\n"
                        "###5D_IMPROVING,BINANCE:ADAUSDT.P\n")

    def test_watchlist_without_improvement(self):
        text = format_watchlist(TOP, None, FakeSource({}).to_tradingview)
        assert text.count("\n") == 1


class TestTelegramNotifier:
    def test_without_token_only_logs(self, tmp_path):
        session = FakeSession()
        notifier = TelegramNotifier(None, "rank", "universe", session=session)
        assert notifier.send_universe_change("hi") is False
        assert notifier.send_ranking("hi", tmp_path / "x.txt") is False
        assert session.requests == []

    def test_send_universe_change(self):
        session = FakeSession([FakeResponse(200)])
        notifier = TelegramNotifier("TOKEN", "rank", "universe", session=session)
        assert notifier.send_universe_change("Added symbols:\nADAUSDT\n")
        url, data, _ = session.requests[0]
        assert url.endswith("/botTOKEN/sendMessage")
        assert data == {"chat_id": "universe", "text": "Added symbols:\nADAUSDT\n"}

    def test_send_ranking_document(self, tmp_path):
        path = tmp_path / "0.RS_20240306.txt"
        path.write_text("###RS_TOP_1,BINANCE:BTCUSDT.P\n", encoding="utf-8")
        session = FakeSession([FakeResponse(200)])
        notifier = TelegramNotifier("TOKEN", "rank", "universe", session=session)
        assert notifier.send_ranking("RS Rank Top 1: \nBTC", path)
        url, data, files = session.requests[0]
        assert url.endswith("/sendDocument")
        assert data["caption"] == "RS Rank Top 1: \nBTC"
        assert files["document"][0] == "0.RS_20240306.txt"

    def test_http_error_returns_false(self):
        session = FakeSession([FakeResponse(403, text="forbidden")])
        notifier = TelegramNotifier("TOKEN", "rank", "universe", session=session)
        assert notifier.send_universe_change("x") is False

    def test_connection_error_returns_false(self):
        session = FakeSession([requests.ConnectionError("offline")])
        notifier = TelegramNotifier("TOKEN", "rank", "universe", session=session)
        assert notifier.send_universe_change("x") is False


# ═══════════════════════════════════════════════════
#  BINANCE SOURCE
# ═══════════════════════════════════════════════════

class TestBinanceSource:
    def test_tradable_symbols(self):
        info = {"symbols": [
            {"symbol": "BTCUSDT", "quoteAsset": "USDT", "contractType": "PERPETUAL", "status": "TRADING"},
            {"symbol": "BTCUSDT_240329", "quoteAsset": "USDT", "contractType": "CURRENT_QUARTER", "status": "TRADING"},
            {"symbol": "ETHBUSD", "quoteAsset": "BUSD", "contractType": "PERPETUAL", "status": "TRADING"},
            {"symbol": "LUNAUSDT", "quoteAsset": "USDT", "contractType": "PERPETUAL", "status": "SETTLING"},
        ]}
        src = BinanceFuturesSource(session=FakeSession([FakeResponse(200, info)]))
        assert src.list_tradable_symbols() == ["BTCUSDT"]

    def test_closes_from_klines(self):
        klines = [[0, "1", "2", "0.5", "1.5", "100"], [1, "1.5", "3", "1", "2.5", "120"]]
        session = FakeSession([FakeResponse(200, klines)])
        src = BinanceFuturesSource(session=session)
        assert src.get_prices("BTCUSDT", 1, IntervalUnit.DAY, 2) == [1.5, 2.5]
        url, params = session.requests[0]
        assert url.endswith("/klines")
        assert params == {"symbol": "BTCUSDT", "interval": "1d", "limit": 2}

    def test_unknown_symbol(self):
        src = BinanceFuturesSource(session=FakeSession([FakeResponse(400, text="Invalid symbol")]))
        assert src.get_prices("NOPEUSDT", 1, IntervalUnit.DAY, 10) == []

    def test_retries_server_errors(self):
        session = FakeSession([FakeResponse(502), FakeResponse(200, [[0, 0, 0, 0, "7", 0]])])
        src = BinanceFuturesSource(session=session, retry_sleep=0)
        assert src.get_prices("BTCUSDT", 1, IntervalUnit.DAY, 5) == [7.0]
        assert len(session.requests) == 2

    def test_gives_up_after_retries(self):
        session = FakeSession([FakeResponse(503)] * 2)
        src = BinanceFuturesSource(session=session, retries=2, retry_sleep=0)
        with pytest.raises(requests.HTTPError):
            src.list_tradable_symbols()

    def test_tradingview(self):
        assert BinanceFuturesSource(session=FakeSession()).to_tradingview(["BTCUSDT"]) == "BINANCE:BTCUSDT.P"


# ═══════════════════════════════════════════════════
#  DAILY RUN
# ═══════════════════════════════════════════════════

@pytest.fixture
def clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("RS_"):
            monkeypatch.delenv(key)


def make_settings(tmp_path, **kw):
    base = dict(
        _env_file=None, result_root=tmp_path, take_count=1, max_workers=1,
        current_term_days=2, short_days=2, middle_days=3, long_days=4,
        current_term_weight=0.25, short_term_weight=0.25,
        middle_term_weight=0.25, long_term_weight=0.25,
    )
    base.update(kw)
    return load_settings(**base)


class TestRunDaily:
    def test_live_run(self, tmp_path, clean_env):
        settings = make_settings(tmp_path)
        store = ResultStore.from_settings(settings)
        store.write_ranked(RUN - timedelta(days=5), [SymbolStrength("MIDUSDT", strength=0.0),
                                                     SymbolStrength("FLATUSDT", strength=0.5)])
        old = store.day_folder(RUN - timedelta(days=40))
        old.mkdir(parents=True)

        notifier = FakeNotifier()
        report = run_daily(settings, source=FakeSource(PRICES), notifier=notifier, today=RUN)

        assert symbols_of(report.ranked) == ["UPUSDT", "MIDUSDT", "FLATUSDT"]
        assert notifier.universe == ["Symbol list re-established.\n"]
        [(message, path)] = notifier.rankings
        assert message == "RS Rank Top 1: \nUP\n\n5D Improving:\nMID, FLAT"
        assert path == store.day_folder(RUN) / "0.RS_20240306.txt"
        assert path.read_text(encoding="utf-8").startswith("###RS_TOP_1,BINANCE:UPUSDT.P\n")
        assert store.read_symbol_snapshot() == list(PRICES)
        assert store.read_ranked(RUN) == report.ranked
        assert not old.exists()

    def test_unchanged_universe_not_announced(self, tmp_path, clean_env):
        settings = make_settings(tmp_path)
        ResultStore.from_settings(settings).write_symbol_snapshot(list(PRICES))
        notifier = FakeNotifier()
        run_daily(settings, source=FakeSource(PRICES), notifier=notifier, today=RUN)
        assert notifier.universe == []
        assert "5D Improving" not in notifier.rankings[0][0]

    def test_ignore_list(self, tmp_path, clean_env):
        settings = make_settings(tmp_path, ignore_symbols="UPUSDT")
        notifier = FakeNotifier()
        report = run_daily(settings, source=FakeSource(PRICES), notifier=notifier, today=RUN)
        assert "UPUSDT" not in symbols_of(report.ranked)
        assert "UPUSDT" not in ResultStore.from_settings(settings).read_symbol_snapshot()

    def test_nothing_ranked(self, tmp_path, clean_env):
        settings = make_settings(tmp_path)
        notifier = FakeNotifier()
        report = run_daily(settings, source=FakeSource({"NEWUSDT": [1.0]}),
                           notifier=notifier, today=RUN)
        assert report.ranked == []
        assert notifier.rankings == []

    def test_replay_run(self, tmp_path, clean_env):
        settings = make_settings(tmp_path, source="file", replay_date=RUN)
        store = ResultStore.from_settings(settings)
        long_series = {s: [p[0]] * 6 + p for s, p in PRICES.items()}    # 10 closes each
        store.write_price_batch(RUN, [f"{s}|{','.join(map(str, p))}" for s, p in long_series.items()])
        store.write_ranked(RUN, [SymbolStrength("FLATUSDT", strength=0.9)])
        batch_file = store.day_folder(RUN) / store.price_file
        ranked_file = store.day_folder(RUN) / store.ranked_file
        batch_before, ranked_before = batch_file.read_bytes(), ranked_file.read_bytes()
        old = store.day_folder(RUN - timedelta(days=40))
        old.mkdir(parents=True)

        notifier = FakeNotifier()
        report = run_daily(settings, notifier=notifier, today=date(2030, 1, 1))

        assert report.run_date == RUN
        assert symbols_of(report.ranked) == ["UPUSDT", "MIDUSDT", "FLATUSDT"]
        assert notifier.universe == []
        assert len(notifier.rankings) == 1
        assert old.exists()

        # the replayed date folder is read, never rewritten
        assert batch_file.read_bytes() == batch_before
        assert ranked_file.read_bytes() == ranked_before
        assert len(store.read_price_batch(RUN)["UPUSDT"]) == 10
        assert sorted(p.name for p in store.day_folder(RUN).iterdir()) == \
            sorted([store.price_file, store.ranked_file])

        out = store.replay_folder(RUN)
        assert notifier.rankings[0][1] == out / "0.RS_20240306.txt"
        assert store.read_ranked(RUN) == [SymbolStrength("FLATUSDT", strength=0.9)]
        assert parse_ranked_json((out / store.ranked_file).read_text(encoding="utf-8")) == report.ranked

    def test_replay_leaves_snapshot_alone(self, tmp_path, clean_env):
        settings = make_settings(tmp_path, source="file", replay_date=RUN)
        store = ResultStore.from_settings(settings)
        store.write_symbol_snapshot(["BTCUSDT"])
        store.write_price_batch(RUN, [f"{s}|{','.join(map(str, p))}" for s, p in PRICES.items()])
        run_daily(settings, notifier=FakeNotifier())
        assert store.read_symbol_snapshot() == ["BTCUSDT"]

    def test_write_failure_propagates(self, tmp_path, clean_env):
        blocker = tmp_path / "results"
        blocker.write_text("not a folder", encoding="utf-8")
        settings = make_settings(blocker)
        notifier = FakeNotifier()
        with pytest.raises(OSError):
            run_daily(settings, source=FakeSource(PRICES), notifier=notifier, today=RUN)
        assert notifier.rankings == []


class TestCli:
    def test_config_error_exits_nonzero(self, tmp_path, clean_env):
        assert rs_daily_filter.main(["--no-notify", "--env-file", str(tmp_path / "none.env"),
                                     "--result-root", str(tmp_path)]) == 1

    def test_write_failure_exits_nonzero(self, tmp_path, clean_env, monkeypatch):
        for k, v in dict(current_term_days=2, short_days=2, middle_days=3, long_days=4,
                         current_term_weight=0.25, short_term_weight=0.25,
                         middle_term_weight=0.25, long_term_weight=0.25).items():
            monkeypatch.setenv(f"RS_{k.upper()}", str(v))
        monkeypatch.setattr("rsfilter.pipeline.BinanceFuturesSource", lambda: FakeSource(PRICES))
        blocker = tmp_path / "results"
        blocker.write_text("not a folder", encoding="utf-8")

        code = rs_daily_filter.main(["--no-notify", "--env-file", str(tmp_path / "none.env"),
                                     "--result-root", str(blocker)])
        assert code == 1

    def test_replay_from_command_line(self, tmp_path, clean_env, monkeypatch):
        for k, v in dict(current_term_days=2, short_days=2, middle_days=3, long_days=4,
                         current_term_weight=0.25, short_term_weight=0.25,
                         middle_term_weight=0.25, long_term_weight=0.25).items():
            monkeypatch.setenv(f"RS_{k.upper()}", str(v))
        ResultStore(tmp_path).write_price_batch(
            RUN, [f"{s}|{','.join(map(str, p))}" for s, p in PRICES.items()])

        code = rs_daily_filter.main(["--date", "2024-03-06", "--no-notify",
                                     "--env-file", str(tmp_path / "none.env"),
                                     "--result-root", str(tmp_path)])
        assert code == 0
        assert (tmp_path / "replay" / "2024-03-06" / "0.RS_20240306.txt").is_file()
        assert not (tmp_path / "2024-03-06" / "0.RS_20240306.txt").exists()
