# rsfilter/__init__.py — RS Daily Filter package
#
# Ranks tradable symbols by multi-horizon relative strength and keeps a
# date-partitioned flat-file history of every run.
#
# Module layout:
#   config.py        — CFG defaults, constants, Settings, ConfigError
#   utils.py         — logging setup, _finite(), symbol list helpers
#   models.py        — SymbolStrength, Lookbacks, Weights, RankReport, ...
#   stats.py         — percentile_rank, regression_slope, moving_average
#   composite.py     — per-symbol RS metrics, ranks, weighted strength
#   store.py         — flat-file result store (price batch, ranking, snapshot)
#   export_json.py   — JSON encoding of the ranked set
#   universe.py      — day-over-day tradable-universe diff
#   improvement.py   — N-day strength improvement outside the top ranks
#   data_binance.py  — Binance futures price source
#   data_file.py     — replay price source from a stored batch
#   notify.py        — message formatting + Telegram delivery
#   summary.py       — console summary output
#   pipeline.py      — rank_symbols / run_daily orchestration

__version__ = "1.0"
