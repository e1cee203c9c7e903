# rsfilter/export_json.py — JSON encoding of the ranked result set
import json
from dataclasses import asdict
from typing import List

from rsfilter.config import RANKED_JSON_FIELDS
from rsfilter.models import SymbolStrength
from rsfilter.utils import _finite


def to_records(strengths: List[SymbolStrength]) -> list:
    records = []
    for s in strengths:
        row = asdict(s)
        records.append({
            key: (str(row[attr]) if attr == "symbol" else _finite(row[attr]))
            for attr, key in RANKED_JSON_FIELDS.items()
        })
    return records


def export_ranked_json(strengths: List[SymbolStrength]) -> str:
    """Human-readable JSON array; keys are RANKED_JSON_FIELDS values."""
    return json.dumps(to_records(strengths), indent=2, ensure_ascii=False)


def parse_ranked_json(text: str) -> List[SymbolStrength]:
    """Inverse of export_ranked_json. Raises ValueError on malformed content."""
    data = json.loads(text)
    if not isinstance(data, list):
        raise ValueError("ranked result must be a JSON array")

    out = []
    for item in data:
        if not isinstance(item, dict) or not item.get("Symbol"):
            raise ValueError(f"ranked entry without a symbol: {item!r}")
        out.append(SymbolStrength(**{
            attr: (str(item[key]) if attr == "symbol" else _finite(item.get(key)))
            for attr, key in RANKED_JSON_FIELDS.items()
        }))
    return out
