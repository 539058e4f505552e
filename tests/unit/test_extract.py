from __future__ import annotations

from gymreg.extract import ANON_PREFIX, extract_row, extract_rows, merge_into, new_fragment
from gymreg.header_detect import build_header_layout, build_section_map, detect_header_row
from gymreg.infer import infer_column_roles
from gymreg.models import ColumnRoles, HeaderLayout, SectionContext


def _run(grid):
    layout = build_header_layout(grid, detect_header_row(grid))
    smap = build_section_map(grid, layout)
    roles, _, _ = infer_column_roles(grid, layout, smap.marker_rows)
    return extract_rows(grid, layout, smap, roles)


SECTION = SectionContext(0, 10, "MARCH", 2023, "MARCH-2023", "2023-03")
LAYOUT = HeaderLayout(row_index=0, labels=("SR NO.", "NAME", "CONTACT", "START", "PLAN", "01/03/2023"),
                      attendance_columns=((5, "2023-03-01"),), name_column=1, contact_column=2,
                      start_column=3, plan_column=4)
ROLES = ColumnRoles(mobile_column_index=2, plan_column_index=4)


def test_scenario_extraction(scenario_grid):
    out = _run(scenario_grid)
    assert out.total_rows == 3
    assert out.parsed_rows == 3
    assert out.skipped_rows == 0
    assert len(out.fragments) == 3
    assert [e.member_name for e in out.events] == ["JOHN DOE", "JANE SMITH"]
    assert all(e.attendance_date == "2023-02-01" and e.attended_month == "2023-02" for e in out.events)
    assert len(out.reviews) == 1
    review = out.reviews[0]
    assert review.reason == "no_mobile"
    assert review.row_index == 4
    assert review.name == "NO MOBILE"
    assert review.import_month == "FEBRUARY-2023"


def test_row_fields():
    rec = extract_row([7, "RAVI KUMAR", "+91 98765 43210", "15/02/2023", "3 months", "p"], 3, SECTION, ROLES, LAYOUT)
    assert rec.name == "RAVI KUMAR"
    assert rec.mobile_raw == "+91 98765 43210"
    assert rec.mobile_normalized == "9876543210"
    assert rec.identity_key == "9876543210"
    assert (rec.plan_raw, rec.plan_type, rec.plan_months) == ("3 months", "Quarterly", 3)
    assert rec.start_date == "2023-02-15"
    assert rec.attendance == ("2023-03-01",)
    assert rec.review_tags == ()


def test_swapped_name_and_mobile_are_recovered():
    layout = HeaderLayout(row_index=0, labels=("", "NAME", "CONTACT", "", "PLAN"), name_column=1, contact_column=2)
    rec = extract_row(["", "9876543210", "ravi kumar", "", "1M"], 2, SECTION, ROLES, layout)
    assert rec.mobile_normalized == "9876543210"
    assert rec.name == "ravi kumar"


def test_name_found_by_scanning_when_column_one_is_not_a_name():
    rec = extract_row(["RAVI KUMAR", "", "9876543210", "", "1M", ""], 2, SECTION, ROLES, LAYOUT)
    assert rec.name == "RAVI KUMAR"


def test_mobile_found_by_scanning_when_mobile_column_is_blank():
    rec = extract_row([1, "RAVI", "", "", "1M", "", "", "9876543210"], 2, SECTION, ROLES, LAYOUT)
    assert rec.mobile_normalized == "9876543210"


def test_text_date_is_not_taken_for_a_phone():
    rec = extract_row([1, "RAVI", "", "01/02/2023", "1M", ""], 2, SECTION, ROLES, LAYOUT)
    assert rec.mobile_normalized is None
    assert rec.review_tags == ("no_mobile",)


def test_plan_fallback_scan_and_unknown_plan():
    roles = ColumnRoles(mobile_column_index=2, plan_column_index=None)
    rec = extract_row([1, "RAVI", "9876543210", "", "", "", "6M"], 2, SECTION, roles, LAYOUT)
    assert rec.plan_type == "Half-Yearly"

    rec = extract_row([1, "RAVI", "9876543210", "", "2 weeks", ""], 2, SECTION, ROLES, LAYOUT)
    assert rec.plan_raw == "2 weeks"
    assert rec.plan_type is None
    assert rec.review_tags == ("unknown_plan",)


def test_missing_plan_and_mobile_tags_in_order():
    rec = extract_row([1, "RAVI", "", "", "", "P"], 2, SECTION, ROLES, LAYOUT)
    assert rec.review_tags == ("missing_plan", "no_mobile")


def test_rows_without_name_mobile_or_attendance_are_skipped():
    assert extract_row([5, "", "", "", "3M", ""], 2, SECTION, ROLES, LAYOUT) is None


def test_anonymous_identity_is_deterministic():
    row = [1, "RAVI", "", "", "1M", ""]
    a = extract_row(row, 4, SECTION, ROLES, LAYOUT)
    b = extract_row(row, 4, SECTION, ROLES, LAYOUT)
    c = extract_row(row, 5, SECTION, ROLES, LAYOUT)
    assert a.identity_key.startswith(ANON_PREFIX)
    assert a.identity_key == b.identity_key
    assert a.identity_key != c.identity_key


def test_merge_keeps_resolved_plan_and_first_start_date():
    first = extract_row([1, "RAVI", "9876543210", "01/02/2023", "3M", ""], 2, SECTION, ROLES, LAYOUT)
    later = extract_row([1, "RAVI", "9876543210", "05/02/2023", "NA", "P"], 3, SECTION, ROLES, LAYOUT)
    frag = new_fragment(first)
    assert merge_into(frag, first) == []
    assert merge_into(frag, later) == ["2023-03-01"]
    assert merge_into(frag, later) == []
    assert frag.plan_type == "Quarterly"
    assert frag.start_date == "2023-02-01"
    assert frag.attendance_dates == {"2023-03-01"}
    assert frag.row_indexes == [2, 3, 3]
    assert frag.needs_review is True


def test_two_month_register(two_month_grid):
    out = _run(two_month_grid)
    assert out.total_rows == 7
    assert out.parsed_rows == 4
    assert out.skipped_rows == 3
    assert len(out.fragments) == 3
    ravi = out.fragments["9876543210"]
    assert ravi.attendance_dates == {"2023-02-01", "2023-02-02", "2023-03-01"}
    assert ravi.section.import_month_key == "JANUARY-2023"
    assert [r.reason for r in out.reviews] == ["unknown_plan", "no_mobile"]
    assert len(out.events) == 5


def test_repeated_header_rows_are_skipped():
    grid = [
        ["NAME", "CONTACT", "PLAN"],
        ["RAVI", "9876543210", "3M"],
        ["MARCH 2023", "", ""],
        ["NAME", "CONTACT", "PLAN"],
        ["ANITA", "9123456780", "1M"],
    ]
    out = _run(grid)
    assert out.parsed_rows == 2
    assert set(out.fragments) == {"9876543210", "9123456780"}
    assert out.reviews == []
