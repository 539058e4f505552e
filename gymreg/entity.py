from __future__ import annotations
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional
from dateutil.relativedelta import relativedelta
from .models import Member, MemberFragment
from .rules import DEFAULT_RULES, ParseRules

STATUS_UNKNOWN = "Unknown"
STATUS_OVERDUE = "Overdue"
STATUS_DUE_SOON = "DueSoon"
STATUS_ACTIVE = "Active"


def add_months(iso: Optional[str], months: Optional[int]) -> Optional[str]:
    """
    Calendar-month addition on ISO dates. relativedelta clamps to the last
    day of the target month: 2023-01-31 + 1 -> 2023-02-28.
    """
    if not iso or months is None:
        return None
    d = date.fromisoformat(iso)
    return (d + relativedelta(months=int(months))).isoformat()


def membership_status(next_due_date: Optional[str], today: date,
                      rules: ParseRules = DEFAULT_RULES) -> str:
    if not next_due_date:
        return STATUS_UNKNOWN
    due = date.fromisoformat(next_due_date)
    if today > due:
        return STATUS_OVERDUE
    if today > due - timedelta(days=rules.due_soon_days):
        return STATUS_DUE_SOON
    return STATUS_ACTIVE


def derive_member_dates(attendance: Iterable[str], plan_months: Optional[int],
                        explicit_due: Optional[str] = None) -> Dict[str, object]:
    # trailing dates depend only on the attendance set and the plan, never on row order
    ordered = sorted(set(attendance))
    last = ordered[-1] if ordered else None
    by_plan = add_months(last, plan_months)
    return {
        "attendance": tuple(ordered),
        "attended_months": tuple(sorted({d[:7] for d in ordered})),
        "attendance_count": len(ordered),
        "last_attendance": last,
        "next_expected_attendance": add_months(last, 1),
        "next_payment_due_by_plan": by_plan,
        "next_due_date": explicit_due or by_plan,
    }


def member_from_fragment(frag: MemberFragment, today: date, not_available: str = "NA",
                         rules: ParseRules = DEFAULT_RULES) -> Member:
    derived = derive_member_dates(frag.attendance_dates, frag.plan_months, frag.next_due_date)
    mobile = frag.mobile_raw if frag.mobile_normalized else not_available
    return Member(
        id=frag.identity_key,
        name=frag.name,
        mobile=mobile or not_available,
        mobile_normalized=frag.mobile_normalized,
        plan_raw=frag.plan_raw,
        plan_type=frag.plan_type,
        plan_months=frag.plan_months,
        start_date=frag.start_date,
        status=membership_status(derived["next_due_date"], today, rules),
        import_month=frag.section.import_month_key,
        import_month_iso=frag.section.import_month_iso,
        needs_review=frag.needs_review,
        **derived,
    )


def build_members(fragments: Dict[str, MemberFragment], today: Optional[date] = None,
                  rules: ParseRules = DEFAULT_RULES) -> List[Member]:
    """One Member per identity key, in first-seen order."""
    today = today or date.today()
    return [member_from_fragment(f, today, rules.not_available, rules) for f in fragments.values()]
