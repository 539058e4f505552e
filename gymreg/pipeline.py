"""Two-pass register parse.

Pass 1 builds whole-sheet context: header row and layout, one section
context per row, one column per role. Pass 2 walks the data rows with that
context and folds them into members. No I/O happens here; `parse_register_file`
is the only entry point that touches the filesystem, through `ingest`.
"""
from __future__ import annotations

import logging
from datetime import date
from pathlib import Path
from typing import Any, List, Optional, Sequence

from .entity import build_members
from .extract import extract_rows
from .header_detect import build_header_layout, build_section_map, detect_header_row
from .infer import infer_column_roles
from .ingest import read_grid
from .models import Diagnostics, ParseResult
from .rules import DEFAULT_RULES, ParseRules

__all__ = ["InvalidGridError", "parse_register", "parse_register_file"]

logger = logging.getLogger(__name__)


class InvalidGridError(ValueError):
    """The value handed over is not a rows-of-cells grid."""


def _check_grid(grid: Any) -> List[Sequence[Any]]:
    if grid is None or isinstance(grid, (str, bytes)):
        raise InvalidGridError("grid must be a sequence of rows")
    rows = list(grid)
    for i, row in enumerate(rows):
        if isinstance(row, (str, bytes)) or not isinstance(row, Sequence):
            raise InvalidGridError(f"row {i} is not a sequence of cells")
    return rows


def parse_register(grid: Sequence[Sequence[Any]], rules: Optional[ParseRules] = None,
                   today: Optional[date] = None) -> ParseResult:
    """Parse one register grid into members, attendance, review items and diagnostics.

    Raises:
        InvalidGridError: `grid` is not rows of cells.
        HeaderNotFoundError: no column-header row in the scan window.
    """
    rules = rules or DEFAULT_RULES
    today = today or date.today()
    rows = _check_grid(grid)

    # pass 1
    header_row = detect_header_row(rows, rules)
    layout = build_header_layout(rows, header_row, rules)
    sections = build_section_map(rows, layout, today=today, rules=rules)
    roles, mobile_detection, plan_detection = infer_column_roles(rows, layout, sections.marker_rows, rules)

    # pass 2
    extraction = extract_rows(rows, layout, sections, roles, rules)
    members = build_members(extraction.fragments, today=today, rules=rules)

    diagnostics = Diagnostics(
        header_row_index=header_row,
        detected_headers=sections.markers,
        plan_column_detection=plan_detection,
        mobile_column_detection=mobile_detection,
        attendance_columns=layout.attendance_columns,
        raw_rows=len(rows),
        raw_cols=max((len(r) for r in rows), default=0),
        total_rows=extraction.total_rows,
        parsed_rows=extraction.parsed_rows,
        skipped_rows=extraction.skipped_rows,
    )
    return ParseResult(
        members=members,
        attendance=extraction.events,
        manual_review=extraction.reviews,
        diagnostics=diagnostics,
    )


def parse_register_file(path: Path, sheet: Optional[str] = None, rules: Optional[ParseRules] = None,
                        today: Optional[date] = None) -> ParseResult:
    grid = read_grid(Path(path), sheet=sheet)
    logger.info("Read %s: %d rows", path, len(grid))
    return parse_register(grid, rules=rules, today=today)
