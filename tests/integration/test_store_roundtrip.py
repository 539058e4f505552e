from __future__ import annotations

from gymreg import InMemoryStore, parse_register, write_members

HEADER = ["SR NO.", "MEMBER NAME", "CONTACT", "START DATE", "NO. OF MONTHS", "01/02/2023", "15/02/2023", "01/03/2023"]


def _import(month, mark_columns, today):
    row = [1, "RAVI KUMAR", "9876543210", "15/01/2023", "3M", "", "", ""]
    for c in mark_columns:
        row[c] = "P"
    return parse_register([HEADER, [month, "", "", "", "", "", "", ""], row], today=today)


def test_two_imports_union_attendance(today):
    store = InMemoryStore()
    feb = _import("FEBRUARY 2023", [5, 6], today)
    mar = _import("MARCH 2023", [6, 7], today)

    r1 = write_members(feb.members, store, today=today)
    r2 = write_members(mar.members, store, today=today)
    assert (r1.created, r2.updated) == (1, 1)
    assert len(store) == 1

    rec = store.get("9876543210")
    assert rec["attendance"] == ["2023-02-01", "2023-02-15", "2023-03-01"]
    assert rec["attendance_count"] == 3
    assert rec["last_attendance"] == "2023-03-01"
    assert rec["next_payment_due_by_plan"] == "2023-06-01"
    assert rec["import_month"] == "FEBRUARY-2023"

    r3 = write_members(mar.members, store, today=today)
    assert (r3.created, r3.updated, r3.unchanged) == (0, 0, 1)
    assert store.get("9876543210")["attendance_count"] == 3
