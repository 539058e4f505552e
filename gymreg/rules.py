"""Register vocabulary and heuristic thresholds.

The packaged `data/rules.json` carries the defaults; an operator file
(`GYMREG_RULES` or the CLI `--rules` option) is merged over it key by key.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .utils import load_json, rules_path, user_rules_path

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when a rules file cannot be read or is not a JSON object."""


@dataclass(frozen=True)
class ParseRules:
    header_keywords: Tuple[str, ...] = (
        "NAME", "CONTACT", "MOBILE", "DATE", "MONTHS", "DURATION", "START", "DUE", "SR NO",
    )
    header_min_matches: int = 2
    header_scan_rows: int = 12

    month_names: Tuple[str, ...] = (
        "JANUARY", "FEBRUARY", "MARCH", "APRIL", "MAY", "JUNE",
        "JULY", "AUGUST", "SEPTEMBER", "OCTOBER", "NOVEMBER", "DECEMBER",
    )
    year_lookahead_rows: int = 30
    year_probe_column: int = 3
    first_section_fallback_year: int = 2023
    min_plausible_year: int = 1990

    mobile_min_digits: int = 8
    mobile_max_digits: int = 10
    country_code: str = "91"
    likely_mobile_digits: Tuple[int, int] = (8, 13)
    mobile_column_digits: Tuple[int, int] = (6, 13)
    mobile_column_min_score: float = 8
    mobile_column_scan_rows: int = 400
    mobile_scan_columns: int = 12

    plan_tokens: Dict[str, Tuple[str, int]] = field(default_factory=lambda: {
        "1": ("Monthly", 1),
        "3": ("Quarterly", 3),
        "6": ("Half-Yearly", 6),
        "12": ("Yearly", 12),
    })
    plan_min_matches: int = 2
    plan_preferred_column: Optional[int] = 5
    plan_fallback_columns: Tuple[int, int] = (2, 8)

    name_column: int = 1
    name_scan_columns: int = 10
    start_date_scan_columns: int = 6

    present_marks: Tuple[str, ...] = ("P",)
    placeholder_pattern: str = "^X+$"
    not_available: str = "NA"

    name_match_threshold: float = 90
    due_soon_days: int = 7

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> ParseRules:
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for k, v in data.items():
            if k not in known:
                logger.debug("rules: ignoring unknown key %s", k)
                continue
            if k == "plan_tokens":
                v = {str(tok).upper(): (str(pt), int(pm)) for tok, (pt, pm) in dict(v).items()}
            elif isinstance(v, list):
                v = tuple(v)
            kwargs[k] = v
        return cls(**kwargs)


def _read_rules_file(path: Path) -> Dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"rules file not readable: {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid rules json: {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"rules file must hold a JSON object: {path}")
    return data


def load_rules(path: Optional[Path] = None) -> ParseRules:
    # packaged defaults <- operator file (explicit path wins over the env var)
    merged: Dict[str, Any] = dict(load_json(rules_path(), {}) or {})
    override = Path(path) if path is not None else user_rules_path()
    if override is not None:
        merged.update(_read_rules_file(override))
        logger.info("rules: loaded overrides from %s", override)
    return ParseRules.from_mapping(merged)


DEFAULT_RULES = ParseRules()
