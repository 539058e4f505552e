from __future__ import annotations
import math
import numbers
import re
from datetime import date, datetime, timedelta
from enum import Enum
from functools import lru_cache
from typing import Any, Optional, Tuple
from dateutil import parser as dtparser
from dateutil.parser import isoparse
from .rules import DEFAULT_RULES, ParseRules
from .utils import cell_text, digits_of
# =========================

# Cell kinds
# =========================
class CellKind(Enum):
    EMPTY = "empty"
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"


def classify(v: Any) -> Tuple[CellKind, Any]:
    """
    Tag a raw cell as Empty / Text(str) / Number(float) / Date(date).
    Readers hand over whatever openpyxl or pandas produced; everything
    downstream dispatches on the tag instead of probing types again.
    """
    if v is None:
        return CellKind.EMPTY, None
    if isinstance(v, bool):
        return CellKind.TEXT, str(v)
    if isinstance(v, datetime):
        if v != v:  # NaT
            return CellKind.EMPTY, None
        return CellKind.DATE, v.date()
    if isinstance(v, date):
        return CellKind.DATE, v
    if isinstance(v, numbers.Real):
        f = float(v)
        if math.isnan(f) or math.isinf(f):
            return CellKind.EMPTY, None
        return CellKind.NUMBER, f
    s = cell_text(v)
    if not s:
        return CellKind.EMPTY, None
    return CellKind.TEXT, s
# =========================

# Dates
# =========================
# Spreadsheet serials: 1 = 1900-01-01 and 60 is the non-existent 1900-02-29,
# so serials below 60 are one day off the 1899-12-30 epoch used from 61 on.
_EPOCH = date(1899, 12, 30)
_EPOCH_PRE_LEAP = date(1899, 12, 31)

_ISO_RE = re.compile(r"^\d{4}-\d{2}-\d{2}(?:[T ].*)?$")
# dd.mm.yyyy / dd/mm/yy / dd-mm-yyyy
_DAY_FIRST_RE = re.compile(r"^\d{1,2}[./-]\d{1,2}[./-]\d{2,4}$")
# yyyy/mm/dd / yyyy.m.d / yyyy-m-d
_YEAR_FIRST_RE = re.compile(r"^\d{4}[./-]\d{1,2}[./-]\d{1,2}$")
# "15 Mar 2023", "1-FEB-23"
_NAMED_MONTH_RE = re.compile(r"^\d{1,2}[\s\-/.]+[A-Za-z]{3,9}[\s\-/.,]+\d{2,4}$")


def serial_to_date(serial: float) -> Optional[date]:
    days = int(math.floor(serial))
    if days < 1:
        return None
    try:
        if days < 60:
            return _EPOCH_PRE_LEAP + timedelta(days=days)
        if days == 60:
            return date(1900, 3, 1)
        return _EPOCH + timedelta(days=days)
    except OverflowError:
        return None


def _parse_iso(s: str) -> Optional[date]:
    if not _ISO_RE.match(s):
        return None
    try:
        return isoparse(s).date()
    except (ValueError, OverflowError):
        return None


def _parse_text(s: str) -> Optional[date]:
    # dayfirst still reads "02/13/2023" as Feb 13: 13 cannot be a month
    if _DAY_FIRST_RE.match(s) or _NAMED_MONTH_RE.match(s):
        dayfirst = True
    elif _YEAR_FIRST_RE.match(s):
        dayfirst = False
    else:
        return None
    try:
        return dtparser.parse(s, dayfirst=dayfirst).date()
    except (ValueError, OverflowError):
        return None


@lru_cache(maxsize=8)
def _placeholder_re(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.I)


def is_placeholder(v: Any, rules: ParseRules = DEFAULT_RULES) -> bool:
    # "x", "XXXXXXXX": the register's way of writing "nothing here"
    s = cell_text(v)
    return bool(s) and bool(_placeholder_re(rules.placeholder_pattern).match(s))


def parse_date_value(v: Any, rules: ParseRules = DEFAULT_RULES) -> Optional[date]:
    kind, val = classify(v)
    if kind is CellKind.DATE:
        return val
    if kind is CellKind.NUMBER:
        return serial_to_date(val)
    if kind is CellKind.TEXT:
        if is_placeholder(val, rules):
            return None
        for strategy in (_parse_iso, _parse_text):
            d = strategy(val)
            if d is not None:
                return d
    return None


def parse_date(v: Any, rules: ParseRules = DEFAULT_RULES) -> Optional[str]:
    """Cell -> "YYYY-MM-DD" or None. Never raises."""
    d = parse_date_value(v, rules)
    return d.isoformat() if d is not None else None


def parse_plausible_date(v: Any, rules: ParseRules = DEFAULT_RULES) -> Optional[str]:
    # used where small integers (serial numbers, day counts) must not pass as 1900 dates
    d = parse_date_value(v, rules)
    if d is None or d.year < rules.min_plausible_year:
        return None
    return d.isoformat()
# =========================

# Mobile numbers
# =========================
def normalize_mobile(v: Any, rules: ParseRules = DEFAULT_RULES) -> Optional[str]:
    """
    Keep digits, drop a leading country code on long numbers, keep the last
    `mobile_max_digits`, accept at `mobile_min_digits` or more.
    Lossy on purpose: partial numbers are common in paper-copied registers.
    """
    digits = digits_of(v)
    if not digits:
        return None
    keep = rules.mobile_max_digits
    if rules.country_code and digits.startswith(rules.country_code) and len(digits) > keep:
        digits = digits[len(rules.country_code):]
    if len(digits) > keep:
        digits = digits[-keep:]
    return digits if len(digits) >= rules.mobile_min_digits else None


def is_likely_mobile(v: Any, rules: ParseRules = DEFAULT_RULES) -> bool:
    lo, hi = rules.likely_mobile_digits
    return lo <= len(digits_of(v)) <= hi
# =========================

# Plan tokens
# =========================
_MONTH_SUFFIX_RE = re.compile(r"(MONTHS?|MTHS?)")
_NA_TOKENS = {"NA", "N/A"}


def map_plan_token(v: Any, rules: ParseRules = DEFAULT_RULES) -> Tuple[Optional[str], Optional[int]]:
    """
    "3M" / "3 months" / "3MTH" / 3 -> ("Quarterly", 3).
    Anything unrecognised is (None, None): plan unknown, not an error.
    """
    s = re.sub(r"\s+", "", cell_text(v).upper())
    if not s or s in _NA_TOKENS or is_placeholder(s, rules):
        return None, None
    s = _MONTH_SUFFIX_RE.sub("M", s)
    digits = re.sub(r"\D", "", s)
    hit = rules.plan_tokens.get(digits)
    if hit is None:
        return None, None
    return hit[0], hit[1]


@lru_cache(maxsize=8)
def _plan_token_re(tokens: Tuple[str, ...]) -> re.Pattern:
    alt = "|".join(sorted((re.escape(t) for t in tokens), key=len, reverse=True))
    return re.compile(rf"^\s*({alt})\s*(M|MONTHS?|MTHS?)?\s*$", re.I)


def looks_like_plan_token(v: Any, rules: ParseRules = DEFAULT_RULES) -> bool:
    s = cell_text(v)
    if not s:
        return False
    return bool(_plan_token_re(tuple(rules.plan_tokens)).match(s))
# =========================

# Names
# =========================
_UPPER_NAME_RE = re.compile(r"^[A-Z .\-]{2,200}$")


def is_likely_upper_case_name(v: Any, rules: ParseRules = DEFAULT_RULES) -> bool:
    kind, s = classify(v)
    if kind is not CellKind.TEXT:
        return False
    if not _UPPER_NAME_RE.match(s) or not re.search(r"[A-Z]", s):
        return False
    t = s.strip()
    if t in _NA_TOKENS or t == rules.not_available or t in rules.present_marks:
        return False
    return not is_placeholder(t, rules)


def is_present_mark(v: Any, rules: ParseRules = DEFAULT_RULES) -> bool:
    s = cell_text(v).upper()
    return bool(s) and s in {m.upper() for m in rules.present_marks}


def is_phone_candidate(v: Any, rules: ParseRules = DEFAULT_RULES) -> bool:
    """is_likely_mobile, minus cells that read as dates ("01/02/2023" has eight digits too)."""
    kind, _ = classify(v)
    if kind is CellKind.DATE or (kind is CellKind.TEXT and parse_date_value(v, rules) is not None):
        return False
    return is_likely_mobile(v, rules)
