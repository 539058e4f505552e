from __future__ import annotations
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple
from .cells import (
    is_likely_mobile, is_likely_upper_case_name, is_phone_candidate, is_present_mark,
    looks_like_plan_token, map_plan_token, normalize_mobile, parse_plausible_date,
)
from .header_detect import is_header_like
from .manual import make_review_item, review_reasons
from .models import (
    AttendanceEvent, ColumnRoles, HeaderLayout, ManualReviewItem, MemberFragment,
    SectionContext, SectionMap,
)
from .rules import DEFAULT_RULES, ParseRules
from .utils import cell_at, cell_text, is_blank, row_is_blank

logger = logging.getLogger(__name__)

# uuid5 namespace for members without a usable mobile
ANON_NAMESPACE = uuid.UUID("6f1c2a4e-9b7d-5e3f-8a21-4c0d9e7b3a15")
ANON_PREFIX = "anon-"


@dataclass(frozen=True)
class RowRecord:
    """Everything pass 2 pulled out of one data row."""
    row_index: int
    name: str
    mobile_raw: Optional[str]
    mobile_normalized: Optional[str]
    plan_raw: Optional[str]
    plan_type: Optional[str]
    plan_months: Optional[int]
    start_date: Optional[str]
    due_date: Optional[str]
    attendance: Tuple[str, ...]
    section: SectionContext
    review_tags: Tuple[str, ...] = ()

    @property
    def identity_key(self) -> str:
        if self.mobile_normalized:
            return self.mobile_normalized
        seed = f"{self.row_index}|{self.name}|{self.section.import_month_key}"
        return ANON_PREFIX + str(uuid.uuid5(ANON_NAMESPACE, seed))


@dataclass
class Extraction:
    fragments: Dict[str, MemberFragment] = field(default_factory=dict)
    events: List[AttendanceEvent] = field(default_factory=list)
    reviews: List[ManualReviewItem] = field(default_factory=list)
    total_rows: int = 0
    parsed_rows: int = 0

    @property
    def skipped_rows(self) -> int:
        return self.total_rows - self.parsed_rows
# =========================

# Per-field resolution
# =========================
def resolve_name(row: Sequence[Any], layout: HeaderLayout, rules: ParseRules = DEFAULT_RULES) -> str:
    v = cell_at(row, rules.name_column)
    if is_likely_upper_case_name(v, rules):
        return cell_text(v)
    for c in range(min(rules.name_scan_columns, len(row))):
        if is_likely_upper_case_name(row[c], rules):
            return cell_text(row[c])
    # raw text of the labelled column; may be digits, which the swap below fixes
    col = layout.name_column if layout.name_column is not None else rules.name_column
    return cell_text(cell_at(row, col))


def resolve_mobile_candidate(row: Sequence[Any], roles: ColumnRoles, layout: HeaderLayout,
                             rules: ParseRules = DEFAULT_RULES) -> str:
    if roles.mobile_column_index is not None:
        v = cell_at(row, roles.mobile_column_index)
        if not is_blank(v):
            return cell_text(v)
    for c in range(min(rules.mobile_scan_columns, len(row))):
        if is_phone_candidate(row[c], rules):
            return cell_text(row[c])
    return cell_text(cell_at(row, layout.contact_column))


def resolve_plan_raw(row: Sequence[Any], roles: ColumnRoles, layout: HeaderLayout,
                     rules: ParseRules = DEFAULT_RULES) -> Optional[str]:
    pc = roles.plan_column_index
    if pc is not None and looks_like_plan_token(cell_at(row, pc), rules):
        return cell_text(cell_at(row, pc))
    lo, hi = rules.plan_fallback_columns
    for c in range(lo, min(hi + 1, len(row))):
        if looks_like_plan_token(row[c], rules):
            return cell_text(row[c])
    # something is written where the plan belongs but it is not a known token
    for c in (pc, layout.plan_column):
        s = cell_text(cell_at(row, c))
        if s:
            return s
    return None


def resolve_start_date(row: Sequence[Any], roles: ColumnRoles, layout: HeaderLayout,
                       rules: ParseRules = DEFAULT_RULES) -> Optional[str]:
    if layout.start_column is not None:
        iso = parse_plausible_date(cell_at(row, layout.start_column), rules)
        if iso is not None:
            return iso
    skip = {roles.mobile_column_index, roles.plan_column_index, layout.due_column}
    for c in range(min(rules.start_date_scan_columns, len(row))):
        if c in skip:
            continue
        iso = parse_plausible_date(row[c], rules)
        if iso is not None:
            return iso
    return None


def resolve_attendance(row: Sequence[Any], layout: HeaderLayout,
                       rules: ParseRules = DEFAULT_RULES) -> Tuple[str, ...]:
    dates = {iso for c, iso in layout.attendance_columns if is_present_mark(cell_at(row, c), rules)}
    return tuple(sorted(dates))


def _is_repeated_header(row: Sequence[Any], rules: ParseRules) -> bool:
    # a header row copied under a month section carries no phone numbers
    return is_header_like(row, rules) and not any(is_phone_candidate(v, rules) for v in row)
# =========================

# Row -> record
# =========================
def extract_row(row: Sequence[Any], row_index: int, section: SectionContext, roles: ColumnRoles,
                layout: HeaderLayout, rules: ParseRules = DEFAULT_RULES) -> Optional[RowRecord]:
    """
    Pull one member observation out of a data row. Returns None for rows
    with no name, no mobile and no attendance marks. Never raises on bad data.
    """
    name = resolve_name(row, layout, rules)
    mobile = resolve_mobile_candidate(row, roles, layout, rules)

    # transposed name/mobile cells (merged-cell artifacts upstream)
    if not is_likely_mobile(mobile, rules) and is_likely_mobile(name, rules):
        logger.debug("row %d: swapping name/mobile (%r, %r)", row_index, name, mobile)
        name, mobile = mobile, name

    attendance = resolve_attendance(row, layout, rules)
    if not name and not mobile and not attendance:
        return None

    mobile_normalized = normalize_mobile(mobile, rules) if mobile else None
    if mobile and mobile_normalized is None:
        logger.debug("row %d: mobile candidate %r failed normalisation", row_index, mobile)

    plan_raw = resolve_plan_raw(row, roles, layout, rules)
    plan_type, plan_months = map_plan_token(plan_raw, rules) if plan_raw else (None, None)

    due = parse_plausible_date(cell_at(row, layout.due_column), rules) if layout.due_column is not None else None

    return RowRecord(
        row_index=row_index,
        name=name,
        mobile_raw=mobile or None,
        mobile_normalized=mobile_normalized,
        plan_raw=plan_raw,
        plan_type=plan_type,
        plan_months=plan_months,
        start_date=resolve_start_date(row, roles, layout, rules),
        due_date=due,
        attendance=attendance,
        section=section,
        review_tags=tuple(review_reasons(plan_raw, plan_type, mobile_normalized)),
    )
# =========================

# Fragment merge
# =========================
def new_fragment(rec: RowRecord) -> MemberFragment:
    return MemberFragment(
        identity_key=rec.identity_key,
        name=rec.name,
        mobile_raw=rec.mobile_raw,
        mobile_normalized=rec.mobile_normalized,
        plan_raw=rec.plan_raw,
        plan_type=rec.plan_type,
        plan_months=rec.plan_months,
        start_date=rec.start_date,
        section=rec.section,
        next_due_date=rec.due_date,
    )


def merge_into(frag: MemberFragment, rec: RowRecord) -> List[str]:
    """
    Fold a row into an existing fragment. First non-empty value wins for
    every scalar; a resolved plan is never replaced by an unresolved one.
    Returns the attendance dates that were new for this member.
    """
    if not frag.name and rec.name:
        frag.name = rec.name
    if frag.mobile_raw is None and rec.mobile_raw:
        frag.mobile_raw = rec.mobile_raw
    if frag.start_date is None and rec.start_date:
        frag.start_date = rec.start_date
    if frag.next_due_date is None and rec.due_date:
        frag.next_due_date = rec.due_date
    if frag.plan_type is None:
        if rec.plan_type is not None:
            frag.plan_raw, frag.plan_type, frag.plan_months = rec.plan_raw, rec.plan_type, rec.plan_months
        elif frag.plan_raw is None and rec.plan_raw:
            frag.plan_raw = rec.plan_raw

    fresh = [d for d in rec.attendance if d not in frag.attendance_dates]
    frag.attendance_dates.update(fresh)
    frag.row_indexes.append(rec.row_index)
    if rec.review_tags:
        frag.needs_review = True
    return fresh


def _event(frag: MemberFragment, iso: str, section: SectionContext) -> AttendanceEvent:
    return AttendanceEvent(
        member_mobile_or_id=frag.identity_key,
        member_name=frag.name,
        attendance_date=iso,
        attended_month=iso[:7],
        import_month=section.import_month_key,
    )


def extract_rows(grid: Sequence[Sequence[Any]], layout: HeaderLayout, sections: SectionMap,
                 roles: ColumnRoles, rules: ParseRules = DEFAULT_RULES) -> Extraction:
    """Pass 2: walk every row below the header using the pass-1 context."""
    out = Extraction(total_rows=max(0, len(grid) - layout.row_index - 1))
    markers = sections.marker_rows

    for r in range(layout.row_index + 1, len(grid)):
        row = grid[r]
        if r in markers or row_is_blank(row) or _is_repeated_header(row, rules):
            continue
        section = sections.for_row(r)
        if section.is_unknown:
            logger.debug("row %d: no month section above it", r)
        rec = extract_row(row, r, section, roles, layout, rules)
        if rec is None:
            continue
        out.parsed_rows += 1

        key = rec.identity_key
        frag = out.fragments.get(key)
        if frag is None:
            frag = new_fragment(rec)
            out.fragments[key] = frag
        fresh = merge_into(frag, rec)
        for iso in fresh:
            out.events.append(_event(frag, iso, section))

        if rec.review_tags:
            out.reviews.append(make_review_item(
                r, list(rec.review_tags),
                name=rec.name,
                mobile_candidate=rec.mobile_raw,
                mobile_normalized=rec.mobile_normalized,
                plan_raw=rec.plan_raw,
                section=section,
            ))

    logger.info(
        "Extracted %d rows into %d members (%d attendance events, %d for review, %d skipped)",
        out.parsed_rows, len(out.fragments), len(out.events), len(out.reviews), out.skipped_rows,
    )
    return out
