from __future__ import annotations
from datetime import date

import pytest

from gymreg.entity import add_months, build_members, derive_member_dates, membership_status
from gymreg.models import MemberFragment, SectionContext

SECTION = SectionContext(0, 5, "FEBRUARY", 2023, "FEBRUARY-2023", "2023-02")


def _fragment(key="9876543210", **kw):
    base = dict(
        identity_key=key, name="RAVI", mobile_raw="98765 43210", mobile_normalized="9876543210",
        plan_raw="3M", plan_type="Quarterly", plan_months=3, start_date="2023-01-15", section=SECTION,
    )
    base.update(kw)
    return MemberFragment(**base)


@pytest.mark.parametrize("iso,months,expected", [
    ("2023-01-31", 1, "2023-02-28"),
    ("2024-01-31", 1, "2024-02-29"),
    ("2023-03-31", 3, "2023-06-30"),
    ("2023-02-01", 12, "2024-02-01"),
    ("2023-11-15", 3, "2024-02-15"),
])
def test_add_months_clamps_to_month_end(iso, months, expected):
    assert add_months(iso, months) == expected


def test_add_months_nulls():
    assert add_months(None, 3) is None
    assert add_months("2023-01-01", None) is None


def test_derived_dates():
    d = derive_member_dates(["2023-03-01", "2023-02-01", "2023-03-01"], 3)
    assert d["attendance"] == ("2023-02-01", "2023-03-01")
    assert d["attended_months"] == ("2023-02", "2023-03")
    assert d["attendance_count"] == 2
    assert d["last_attendance"] == "2023-03-01"
    assert d["next_expected_attendance"] == "2023-04-01"
    assert d["next_payment_due_by_plan"] == "2023-06-01"
    assert d["next_due_date"] == "2023-06-01"


def test_derived_dates_without_attendance_or_plan():
    d = derive_member_dates([], 3)
    assert d["last_attendance"] is None
    assert d["next_expected_attendance"] is None
    assert d["next_payment_due_by_plan"] is None

    d = derive_member_dates(["2023-02-01"], None)
    assert d["next_payment_due_by_plan"] is None
    assert d["next_expected_attendance"] == "2023-03-01"


def test_explicit_due_date_wins():
    d = derive_member_dates(["2023-02-01"], 1, explicit_due="2023-02-20")
    assert d["next_payment_due_by_plan"] == "2023-03-01"
    assert d["next_due_date"] == "2023-02-20"


@pytest.mark.parametrize("due,today,expected", [
    (None, date(2023, 2, 1), "Unknown"),
    ("2023-02-10", date(2023, 2, 11), "Overdue"),
    ("2023-02-10", date(2023, 2, 10), "DueSoon"),
    ("2023-02-10", date(2023, 2, 4), "DueSoon"),
    ("2023-02-10", date(2023, 2, 3), "Active"),
])
def test_membership_status(due, today, expected):
    assert membership_status(due, today) == expected


def test_build_members_keeps_first_seen_order_and_fields():
    f1 = _fragment()
    f1.attendance_dates.update({"2023-02-03", "2023-02-01"})
    f2 = _fragment("anon-1", name="NO MOBILE", mobile_raw=None, mobile_normalized=None,
                   plan_raw=None, plan_type=None, plan_months=None, needs_review=True)
    members = build_members({f1.identity_key: f1, f2.identity_key: f2}, today=date(2023, 2, 15))

    ravi, anon = members
    assert ravi.id == "9876543210"
    assert ravi.mobile == "98765 43210"
    assert ravi.attendance == ("2023-02-01", "2023-02-03")
    assert ravi.last_attendance == "2023-02-03"
    assert ravi.next_payment_due_by_plan == "2023-05-03"
    assert ravi.status == "Active"
    assert ravi.import_month == "FEBRUARY-2023"
    assert ravi.import_month_iso == "2023-02"

    assert anon.mobile == "NA"
    assert anon.mobile_normalized is None
    assert anon.status == "Unknown"
    assert anon.needs_review is True


def test_member_to_dict_is_json_ready():
    m = build_members({"k": _fragment("k")}, today=date(2023, 2, 15))[0]
    d = m.to_dict()
    assert d["attendance"] == []
    assert d["attended_months"] == []
    assert d["id"] == "k"
