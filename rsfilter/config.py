# rsfilter/config.py — Configuration, defaults, constants
import math
from datetime import date
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, PositiveInt, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from rsfilter.utils import parse_symbol_list

# ════════════════════════════════════════════════════════════
#  DEFAULTS
# ════════════════════════════════════════════════════════════
CFG = {
    "result_root":         "results",
    "symbol_output_file":  "SymbolList.txt",
    "price_file":          "UsdtPrice.txt",
    "ranked_file":         "DailyRankedResult.txt",
    "take_count":          30,
    "improvement_days":    5,     # compare against the ranking from N calendar days ago
    "improvement_top":     5,
    "keep_days":           30,    # date folders older than this are pruned after a live run
    "replay_dir":          "replay",
    "max_workers":         8,
    "http_timeout":        15,
    "http_retries":        3,
    "http_retry_sleep":    2.0,
}

FOLDER_DATE_FMT    = "%Y-%m-%d"
RS_RESULT_DATE_FMT = "%Y%m%d"
OUTPUT_FILE_EXT    = ".txt"
SPLITTER           = ","
PRICE_SYMBOL_SPLITTER = "|"
QUOTE_ASSET        = "USDT"

BINANCE_FAPI_URL = "https://fapi.binance.com/fapi/v1"
TELEGRAM_API_URL = "https://api.telegram.org"

# JSON keys of the persisted ranking; history files N days back are read with these
RANKED_JSON_FIELDS = {
    "symbol":               "Symbol",
    "current_term_rs":      "CurrentTermRs",
    "short_rs":             "ShortRs",
    "middle_rs":            "MiddleRs",
    "long_rs":              "LongRs",
    "current_term_rs_rank": "CurrentTermRsRank",
    "short_rs_rank":        "ShortRsRank",
    "middle_rs_rank":       "MiddleRsRank",
    "long_rs_rank":         "LongRsRank",
    "strength":             "Strength",
}


class ConfigError(ValueError):
    """Raised when required settings are missing or invalid."""


# ════════════════════════════════════════════════════════════
#  SETTINGS
# ════════════════════════════════════════════════════════════

class Settings(BaseSettings):
    """Run settings loaded from RS_* environment variables (and .env)."""

    model_config = SettingsConfigDict(
        env_prefix="RS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Lookback days
    current_term_days: PositiveInt
    short_days: PositiveInt
    middle_days: PositiveInt
    long_days: PositiveInt

    # Composite weights (expected to sum to 1)
    current_term_weight: float
    short_term_weight: float
    middle_term_weight: float
    long_term_weight: float

    ignore_symbols: str = ""
    take_count: PositiveInt = CFG["take_count"]
    improvement_days: PositiveInt = CFG["improvement_days"]
    improvement_top: PositiveInt = CFG["improvement_top"]

    # Result store
    result_root: Path = Path(CFG["result_root"])
    symbol_output_file: str = CFG["symbol_output_file"]
    price_file: str = CFG["price_file"]
    ranked_file: str = CFG["ranked_file"]
    keep_days: PositiveInt = CFG["keep_days"]

    # Price source
    source: Literal["binance", "file"] = "binance"
    replay_date: Optional[date] = None
    max_workers: PositiveInt = CFG["max_workers"]

    # Telegram
    telegram_bot_token: Optional[str] = None
    telegram_rank_chat_id: Optional[str] = None
    telegram_universe_chat_id: Optional[str] = None

    # Logging
    log_level: str = Field("INFO")
    log_file: Optional[str] = None

    @field_validator("current_term_weight", "short_term_weight",
                     "middle_term_weight", "long_term_weight")
    @classmethod
    def _finite_weight(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("weight must be a finite number")
        return v

    @field_validator("symbol_output_file", "price_file", "ranked_file")
    @classmethod
    def _non_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("file name must not be blank")
        return v.strip()

    @model_validator(mode="after")
    def _replay_needs_date(self):
        if self.source == "file" and self.replay_date is None:
            raise ValueError("replay_date is required when source is 'file'")
        return self

    @property
    def lookbacks(self):
        from rsfilter.models import Lookbacks
        return Lookbacks(self.current_term_days, self.short_days,
                         self.middle_days, self.long_days)

    @property
    def weights(self):
        from rsfilter.models import Weights
        return Weights(self.current_term_weight, self.short_term_weight,
                       self.middle_term_weight, self.long_term_weight)

    @property
    def ignore_list(self) -> list:
        return parse_symbol_list(self.ignore_symbols)


def _describe(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ())) or "settings"
        parts.append(f"{field}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


def load_settings(**overrides) -> Settings:
    """Build and validate Settings once; invalid values raise ConfigError."""
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration — {_describe(e)}") from e
