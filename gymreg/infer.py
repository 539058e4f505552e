from __future__ import annotations
import logging
import re
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple
from .cells import looks_like_plan_token
from .models import ColumnRoles, HeaderLayout, MobileColumnDetection, PlanColumnDetection
from .rules import DEFAULT_RULES, ParseRules
from .utils import cell_at, cell_text, digits_of

logger = logging.getLogger(__name__)

MOBILE_HEADER_KWS = ("CONTACT", "PHONE", "MOBILE")
# "SR NO.", "RECEIPT NO." - running numbers, never phones
SERIAL_HEADER_KWS = ("NO.", "SR")

_ALPHA_RE = re.compile(r"[A-Za-z]")


def _grid_width(grid: Sequence[Sequence[Any]]) -> int:
    return max((len(r) for r in grid), default=0)
# =========================

# Mobile column
# =========================
def score_mobile_column(grid: Sequence[Sequence[Any]], col: int, header_label: str,
                        data_rows: Sequence[int], rules: ParseRules = DEFAULT_RULES) -> float:
    """
    header bonus + numeric cells + 40 * numeric ratio + uniqueness bonus
    - 30 * alphabetic ratio. Ratios are over non-empty cells of the column.
    """
    lo, hi = rules.mobile_column_digits
    non_empty = numeric = alpha = 0
    seen: Set[str] = set()
    for r in data_rows:
        s = cell_text(cell_at(grid[r], col))
        if not s:
            continue
        non_empty += 1
        d = digits_of(s)
        if lo <= len(d) <= hi:
            numeric += 1
            seen.add(d)
        elif _ALPHA_RE.search(s):
            alpha += 1

    score = 0.0
    if any(k in header_label for k in MOBILE_HEADER_KWS):
        score += 50
    if any(k in header_label for k in SERIAL_HEADER_KWS):
        score -= 10
    score += numeric
    if non_empty:
        score += 40.0 * numeric / non_empty
        score -= 30.0 * alpha / non_empty
    if len(seen) > 3:
        score += min(10.0, len(seen) / 2.0)
    return score


def detect_mobile_column(grid: Sequence[Sequence[Any]], layout: HeaderLayout,
                         marker_rows: Set[int],
                         rules: ParseRules = DEFAULT_RULES) -> MobileColumnDetection:
    stop = min(len(grid), layout.row_index + 1 + rules.mobile_column_scan_rows)
    data_rows = [r for r in range(layout.row_index + 1, stop) if r not in marker_rows]
    width = max(_grid_width(grid), len(layout.labels))

    scores: List[Tuple[int, float]] = []
    best: Optional[int] = None
    best_score = float("-inf")
    for c in range(width):
        label = layout.labels[c] if c < len(layout.labels) else ""
        s = round(score_mobile_column(grid, c, label, data_rows, rules), 4)
        scores.append((c, s))
        if s > best_score:
            best, best_score = c, s

    if best is None or best_score < rules.mobile_column_min_score:
        logger.info("No mobile column detected (best score %.2f)", best_score if best is not None else 0.0)
        best = None
    else:
        logger.info("Mobile column: %d (score %.2f)", best, best_score)
    return MobileColumnDetection(best_column=best, per_column_scores=tuple(scores))
# =========================

# Plan column
# =========================
def count_plan_tokens(grid: Sequence[Sequence[Any]], rules: ParseRules = DEFAULT_RULES) -> Dict[int, int]:
    # whole grid on purpose: duration tokens never collide with month names or header words
    counts: Dict[int, int] = {}
    for row in grid:
        for c, v in enumerate(row):
            if looks_like_plan_token(v, rules):
                counts[c] = counts.get(c, 0) + 1
    return counts


def detect_plan_column(grid: Sequence[Sequence[Any]],
                       rules: ParseRules = DEFAULT_RULES) -> PlanColumnDetection:
    counts = count_plan_tokens(grid, rules)
    per_col = tuple(sorted(counts.items()))

    preferred = rules.plan_preferred_column
    if preferred is not None and counts.get(preferred, 0) >= 1:
        logger.info("Plan column: %d (preferred column, %d matches)", preferred, counts[preferred])
        return PlanColumnDetection(best_column=preferred, per_column_match_counts=per_col)

    best: Optional[int] = None
    best_n = 0
    for c, n in per_col:
        if n > best_n:
            best, best_n = c, n
    if best_n < rules.plan_min_matches:
        logger.info("No plan column detected (best %s with %d matches)", best, best_n)
        best = None
    else:
        logger.info("Plan column: %d (%d matches)", best, best_n)
    return PlanColumnDetection(best_column=best, per_column_match_counts=per_col)
# =========================

def infer_column_roles(grid: Sequence[Sequence[Any]], layout: HeaderLayout, marker_rows: Set[int],
                       rules: ParseRules = DEFAULT_RULES) -> Tuple[ColumnRoles, MobileColumnDetection, PlanColumnDetection]:
    """Pick one mobile column and one plan column for the whole sheet."""
    mobile = detect_mobile_column(grid, layout, marker_rows, rules)
    plan = detect_plan_column(grid, rules)
    roles = ColumnRoles(mobile_column_index=mobile.best_column, plan_column_index=plan.best_column)
    return roles, mobile, plan
