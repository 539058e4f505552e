from __future__ import annotations
import logging
import re
from datetime import date
from typing import Any, List, Optional, Sequence, Tuple
from .cells import CellKind, classify, is_phone_candidate, parse_plausible_date
from .models import DetectedSection, HeaderLayout, SectionContext, SectionMap
from .rules import DEFAULT_RULES, ParseRules
from .utils import cell_text, norm_text

logger = logging.getLogger(__name__)

YEAR_RE = re.compile(r"(?<!\d)((?:19|20)\d{2})(?!\d)")

# header text -> role; first matching column wins
NAME_KWS = ("NAME", "MEMBER")
CONTACT_KWS = ("CONTACT", "MOBILE", "PHONE")
START_KWS = ("START", "JOIN")
DUE_KWS = ("DUE",)
PLAN_KWS = ("MONTHS", "DURATION", "PLAN")


class HeaderNotFoundError(Exception):
    """No row in the scan window looks like a column-header row."""

    def __init__(self, scanned_rows: int, min_matches: int):
        self.scanned_rows = scanned_rows
        self.min_matches = min_matches
        super().__init__(
            f"no column-header row found in the first {scanned_rows} rows "
            f"(need {min_matches}+ header keywords in one row)"
        )


def _keyword_hits(row: Sequence[Any], keywords: Sequence[str]) -> int:
    hits = 0
    for v in row:
        s = norm_text(v)
        if not s:
            continue
        if any(k in s for k in keywords):
            hits += 1
    return hits


def is_header_like(row: Sequence[Any], rules: ParseRules = DEFAULT_RULES) -> bool:
    # registers often repeat the column headers under every month section
    return _keyword_hits(row, rules.header_keywords) >= rules.header_min_matches
# =========================

# Column-header row
# =========================
def detect_header_row(grid: Sequence[Sequence[Any]], rules: ParseRules = DEFAULT_RULES) -> int:
    """
    First row in the scan window with `header_min_matches` or more cells
    containing a header keyword. Fails closed: raises HeaderNotFoundError
    instead of guessing row 0.
    """
    scan = min(rules.header_scan_rows, len(grid))
    for r in range(scan):
        hits = _keyword_hits(grid[r], rules.header_keywords)
        if hits >= rules.header_min_matches:
            logger.info("Header row detected at index %d (%d keyword cells)", r, hits)
            return r
    raise HeaderNotFoundError(scan, rules.header_min_matches)


def _first_column(labels: Sequence[str], kws: Sequence[str], skip: Tuple[Optional[int], ...] = ()) -> Optional[int]:
    for i, lab in enumerate(labels):
        if i in skip:
            continue
        if any(k in lab for k in kws):
            return i
    return None


def build_header_layout(grid: Sequence[Sequence[Any]], header_row: int,
                        rules: ParseRules = DEFAULT_RULES) -> HeaderLayout:
    raw = grid[header_row]
    labels = tuple(norm_text(v) for v in raw)

    # a date in the header row labels an attendance column, unless the cell
    # also reads as a header keyword ("START DATE 01/02/2023" is not attendance)
    attendance: List[Tuple[int, str]] = []
    for c, v in enumerate(raw):
        if labels[c] and any(k in labels[c] for k in rules.header_keywords):
            continue
        iso = parse_plausible_date(v, rules)
        if iso is not None:
            attendance.append((c, iso))

    contact = _first_column(labels, CONTACT_KWS)
    start = _first_column(labels, START_KWS)
    due = _first_column(labels, DUE_KWS, skip=(start,))
    plan = _first_column(labels, PLAN_KWS, skip=(start, due))
    name = _first_column(labels, NAME_KWS, skip=(contact,))

    layout = HeaderLayout(
        row_index=header_row,
        labels=labels,
        attendance_columns=tuple(attendance),
        name_column=name,
        contact_column=contact,
        start_column=start,
        due_column=due,
        plan_column=plan,
    )
    logger.info(
        "Header layout: name=%s contact=%s start=%s due=%s plan=%s attendance_columns=%d",
        name, contact, start, due, plan, len(attendance),
    )
    return layout
# =========================

# Month sections
# =========================
def find_month_in_row(row: Sequence[Any], rules: ParseRules = DEFAULT_RULES) -> Optional[str]:
    """Month name contained in any text cell of the row, or None."""
    for v in row:
        kind, s = classify(v)
        if kind is not CellKind.TEXT:
            continue
        up = s.upper()
        for m in rules.month_names:
            if m in up:
                return m
    return None


def is_section_marker(row: Sequence[Any], rules: ParseRules = DEFAULT_RULES) -> Optional[str]:
    # a member row whose name happens to contain "MAY" still carries a phone number
    month = find_month_in_row(row, rules)
    if month is None:
        return None
    if any(is_phone_candidate(v, rules) for v in row):
        return None
    return month


def _year_in_row(row: Sequence[Any]) -> Optional[int]:
    for v in row:
        m = YEAR_RE.search(cell_text(v))
        if m:
            return int(m.group(1))
    return None


def _year_in_window(grid: Sequence[Sequence[Any]], start: int, rules: ParseRules,
                    column: Optional[int] = None) -> Optional[int]:
    stop = min(len(grid), start + rules.year_lookahead_rows)
    for r in range(start, stop):
        row = grid[r]
        cols = range(len(row)) if column is None else (column,)
        for c in cols:
            if c >= len(row):
                continue
            iso = parse_plausible_date(row[c], rules)
            if iso is not None:
                return int(iso[:4])
    return None


def infer_section_year(grid: Sequence[Sequence[Any]], row_index: int, *,
                       probe_column: int, is_first: bool,
                       previous_year: Optional[int], today: date,
                       rules: ParseRules = DEFAULT_RULES) -> Tuple[int, str]:
    """Year for a section marker row plus the name of the rule that produced it."""
    y = _year_in_row(grid[row_index])
    if y is not None:
        return y, "row"
    y = _year_in_window(grid, row_index + 1, rules, column=probe_column)
    if y is not None:
        return y, "probe_column"
    y = _year_in_window(grid, row_index + 1, rules)
    if y is not None:
        return y, "window"
    # known register layout: first marker on the second physical row
    if is_first and row_index == 1:
        return rules.first_section_fallback_year, "first_section_fallback"
    if previous_year is not None:
        return previous_year, "previous_section"
    return today.year, "current_year"


def _section_context(marker: DetectedSection, start: int, end: int, rules: ParseRules) -> SectionContext:
    month_no = rules.month_names.index(marker.month) + 1
    return SectionContext(
        row_range_start=start,
        row_range_end=end,
        month_label=marker.month,
        year=marker.year,
        import_month_key=f"{marker.month}-{marker.year}",
        import_month_iso=f"{marker.year:04d}-{month_no:02d}",
    )


def build_section_map(grid: Sequence[Sequence[Any]], layout: HeaderLayout, *,
                      today: Optional[date] = None,
                      rules: ParseRules = DEFAULT_RULES) -> SectionMap:
    """
    Find every month-section marker row and resolve one SectionContext per
    row index. Rows before the first marker are UNKNOWN; a marker's range
    runs up to the row before the next marker.
    """
    today = today or date.today()
    probe = layout.start_column if layout.start_column is not None else rules.year_probe_column

    markers: List[DetectedSection] = []
    for r, row in enumerate(grid):
        if r == layout.row_index:
            continue
        month = is_section_marker(row, rules)
        if month is None:
            continue
        year, how = infer_section_year(
            grid, r,
            probe_column=probe,
            is_first=not markers,
            previous_year=markers[-1].year if markers else None,
            today=today,
            rules=rules,
        )
        markers.append(DetectedSection(row_index=r, month=month, year=year))
        logger.info("Section marker at row %d: %s %d (year from %s)", r, month, year, how)

    n = len(grid)
    sections: List[SectionContext] = []
    first = markers[0].row_index if markers else n
    if first > 0:
        sections.append(SectionContext.unknown(0, first - 1))
    for i, m in enumerate(markers):
        end = markers[i + 1].row_index - 1 if i + 1 < len(markers) else n - 1
        sections.append(_section_context(m, m.row_index, end, rules))

    contexts: List[SectionContext] = []
    for sec in sections:
        contexts.extend([sec] * (sec.row_range_end - sec.row_range_start + 1))

    return SectionMap(contexts=tuple(contexts), sections=tuple(sections), markers=tuple(markers))
