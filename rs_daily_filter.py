"""
RS Daily Filter — rank USDT perpetuals by relative strength and post the result.

Settings come from RS_* environment variables or a .env file; the flags below
override the most common ones.

Run:  python rs_daily_filter.py                      # live run (Binance)
      python rs_daily_filter.py --date 2024-03-01    # replay a stored price batch
"""
import argparse
import logging
import sys
from datetime import datetime

from rsfilter.config import ConfigError, load_settings
from rsfilter.notify import TelegramNotifier
from rsfilter.pipeline import run_daily
from rsfilter.utils import setup_logging

logger = logging.getLogger("rs_daily_filter")


def _parse_date(raw: str):
    try:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {raw!r}")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Daily relative-strength filter")
    ap.add_argument("--date", type=_parse_date, default=None,
                    help="replay the price batch stored for this date (implies --source file)")
    ap.add_argument("--source", choices=["binance", "file"], default=None)
    ap.add_argument("--result-root", default=None, help="folder holding the dated results")
    ap.add_argument("--env-file", default=".env")
    ap.add_argument("--log-level", default=None)
    ap.add_argument("--no-notify", action="store_true", help="do not send Telegram messages")
    return ap


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    overrides = {"_env_file": args.env_file}
    if args.date is not None:
        overrides["replay_date"] = args.date
        overrides["source"] = "file"
    if args.source:
        overrides["source"] = args.source
    if args.result_root:
        overrides["result_root"] = args.result_root
    if args.log_level:
        overrides["log_level"] = args.log_level

    setup_logging(args.log_level or "INFO")
    try:
        settings = load_settings(**overrides)
    except ConfigError as e:
        logger.error(str(e))
        return 1
    setup_logging(settings.log_level, settings.log_file)

    notifier = TelegramNotifier(None) if args.no_notify else None
    try:
        report = run_daily(settings, notifier=notifier)
    except Exception as e:
        logger.exception(f"Run failed: {e}")
        return 1

    logger.info(f"Done — {len(report.ranked)} ranked, {len(report.skipped)} skipped, "
                f"{len(report.failed)} failed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
