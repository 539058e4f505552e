"""Entities produced by one register parse.

Everything here is built fresh per `parse_register` call. Section contexts,
header layout and column roles are frozen once pass 1 has produced them;
`MemberFragment` is the only mutable accumulator and never leaves pass 2.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

__all__ = [
    "UNKNOWN_MONTH",
    "SectionContext",
    "DetectedSection",
    "SectionMap",
    "HeaderLayout",
    "ColumnRoles",
    "MobileColumnDetection",
    "PlanColumnDetection",
    "MemberFragment",
    "Member",
    "AttendanceEvent",
    "ManualReviewItem",
    "Diagnostics",
    "ParseResult",
]

UNKNOWN_MONTH = "UNKNOWN"


@dataclass(frozen=True)
class SectionContext:
    """Month section a contiguous row range belongs to."""
    row_range_start: int
    row_range_end: int  # inclusive
    month_label: str  # "FEBRUARY" or UNKNOWN
    year: Optional[int]
    import_month_key: str  # "FEBRUARY-2023" or UNKNOWN
    import_month_iso: str  # "2023-02" or ""

    @property
    def is_unknown(self) -> bool:
        return self.month_label == UNKNOWN_MONTH

    @staticmethod
    def unknown(start: int, end: int) -> SectionContext:
        return SectionContext(start, end, UNKNOWN_MONTH, None, UNKNOWN_MONTH, "")


@dataclass(frozen=True)
class DetectedSection:
    row_index: int
    month: str
    year: int


@dataclass(frozen=True)
class SectionMap:
    """Row index -> section context, precomputed for the whole grid."""
    contexts: Tuple[SectionContext, ...]
    sections: Tuple[SectionContext, ...]
    markers: Tuple[DetectedSection, ...]

    @property
    def marker_rows(self) -> Set[int]:
        return {m.row_index for m in self.markers}

    def for_row(self, row_index: int) -> SectionContext:
        return self.contexts[row_index]


@dataclass(frozen=True)
class HeaderLayout:
    """What the column-header row says about the sheet.

    attendance_columns holds (column index, ISO date) for every header cell
    that parses as a date; the named columns are header-text fallbacks.
    """
    row_index: int
    labels: Tuple[str, ...]
    attendance_columns: Tuple[Tuple[int, str], ...] = ()
    name_column: Optional[int] = None
    contact_column: Optional[int] = None
    start_column: Optional[int] = None
    due_column: Optional[int] = None
    plan_column: Optional[int] = None


@dataclass(frozen=True)
class ColumnRoles:
    """One best-guess column per role, applied to every row."""
    mobile_column_index: Optional[int]
    plan_column_index: Optional[int]


@dataclass(frozen=True)
class MobileColumnDetection:
    best_column: Optional[int]
    per_column_scores: Tuple[Tuple[int, float], ...]


@dataclass(frozen=True)
class PlanColumnDetection:
    best_column: Optional[int]
    per_column_match_counts: Tuple[Tuple[int, int], ...]


@dataclass
class MemberFragment:
    """Running merge of every row that shares one identity key."""
    identity_key: str
    name: str
    mobile_raw: Optional[str]
    mobile_normalized: Optional[str]
    plan_raw: Optional[str]
    plan_type: Optional[str]
    plan_months: Optional[int]
    start_date: Optional[str]
    section: SectionContext
    next_due_date: Optional[str] = None
    attendance_dates: Set[str] = field(default_factory=set)
    row_indexes: List[int] = field(default_factory=list)
    needs_review: bool = False


@dataclass(frozen=True)
class Member:
    id: str
    name: str
    mobile: str
    mobile_normalized: Optional[str]
    plan_raw: Optional[str]
    plan_type: Optional[str]
    plan_months: Optional[int]
    start_date: Optional[str]
    attendance: Tuple[str, ...]
    attended_months: Tuple[str, ...]
    attendance_count: int
    last_attendance: Optional[str]
    next_expected_attendance: Optional[str]
    next_payment_due_by_plan: Optional[str]
    next_due_date: Optional[str]
    status: str
    import_month: str
    import_month_iso: str
    needs_review: bool

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["attendance"] = list(self.attendance)
        d["attended_months"] = list(self.attended_months)
        return d


@dataclass(frozen=True)
class AttendanceEvent:
    member_mobile_or_id: str
    member_name: str
    attendance_date: str
    attended_month: str
    import_month: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ManualReviewItem:
    row_index: int
    reason: str  # "missing_plan;no_mobile"
    name: Optional[str] = None
    mobile_candidate: Optional[str] = None
    mobile_normalized: Optional[str] = None
    plan_raw: Optional[str] = None
    import_month: Optional[str] = None

    @property
    def tags(self) -> List[str]:
        return [t for t in self.reason.split(";") if t]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Diagnostics:
    header_row_index: int
    detected_headers: Tuple[DetectedSection, ...]
    plan_column_detection: PlanColumnDetection
    mobile_column_detection: MobileColumnDetection
    attendance_columns: Tuple[Tuple[int, str], ...]
    raw_rows: int
    raw_cols: int
    total_rows: int
    parsed_rows: int
    skipped_rows: int

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        # tuples of pairs read better as JSON arrays of objects
        d["detected_headers"] = [asdict(h) for h in self.detected_headers]
        d["plan_column_detection"] = {
            "best_column": self.plan_column_detection.best_column,
            "per_column_match_counts": {str(c): n for c, n in self.plan_column_detection.per_column_match_counts},
        }
        d["mobile_column_detection"] = {
            "best_column": self.mobile_column_detection.best_column,
            "per_column_scores": {str(c): s for c, s in self.mobile_column_detection.per_column_scores},
        }
        d["attendance_columns"] = [{"column": c, "date": iso} for c, iso in self.attendance_columns]
        return d


@dataclass(frozen=True)
class ParseResult:
    members: List[Member]
    attendance: List[AttendanceEvent]
    manual_review: List[ManualReviewItem]
    diagnostics: Diagnostics

    def member_by_name(self, name: str) -> Optional[Member]:
        for m in self.members:
            if m.name == name:
                return m
        return None
