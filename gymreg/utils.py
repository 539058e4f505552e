import os
import re
import json
from pathlib import Path
from typing import Any, Optional

PACKAGE_DIR = Path(__file__).resolve().parent
DEFAULT_DATA_DIR = PACKAGE_DIR / "data"

GYMREG_RULES = os.environ.get("GYMREG_RULES")


def load_json(path: Path, default: Any):
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError):
        return default


_NBSP_RE = re.compile(r"[\u00A0\u2007\u202F]")
_DASH_CHARS_RE = re.compile(r"[\u2010\u2011\u2012\u2013\u2014\u2212]")
_NON_DIGIT_RE = re.compile(r"\D")


def cell_text(v: Any) -> str:
    """
    Text form of a raw cell:
    - None / NaN -> ""
    - floats that are whole numbers lose the trailing ".0" (9876543210.0 -> "9876543210")
    - BOM and non-breaking spaces removed, outer whitespace stripped
    """
    if v is None:
        return ""
    if isinstance(v, float):
        if v != v:
            return ""
        if v.is_integer():
            return str(int(v))
    s = str(v)
    s = s.replace("\ufeff", "")
    s = _NBSP_RE.sub(" ", s)
    s = _DASH_CHARS_RE.sub("-", s)
    return s.strip()


def norm_text(s: Any) -> str:
    # upper-case, single spaces; registers are written in capitals
    t = cell_text(s)
    if not t:
        return ""
    return re.sub(r"\s+", " ", t).upper()


def digits_of(v: Any) -> str:
    return _NON_DIGIT_RE.sub("", cell_text(v))


def is_blank(v: Any) -> bool:
    return cell_text(v) == ""


def row_is_blank(row) -> bool:
    return all(is_blank(v) for v in row)


def cell_at(row, idx: Optional[int]) -> Any:
    if idx is None or idx < 0 or idx >= len(row):
        return ""
    return row[idx]


def rules_path() -> Path:
    return DEFAULT_DATA_DIR / "rules.json"


def user_rules_path() -> Optional[Path]:
    if GYMREG_RULES:
        return Path(GYMREG_RULES)
    return None
