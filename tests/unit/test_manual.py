from gymreg.manual import make_review_item, review_reasons, summarize_reasons
from gymreg.models import SectionContext

SECTION = SectionContext(0, 9, "MARCH", 2023, "MARCH-2023", "2023-03")


def test_clean_row_has_no_tags():
    assert review_reasons("3M", "Quarterly", "9876543210") == []


def test_tags_come_in_fixed_order():
    assert review_reasons(None, None, None) == ["missing_plan", "no_mobile"]
    assert review_reasons("x", None, None) == ["unknown_plan", "no_mobile"]
    assert review_reasons("", None, "9876543210") == ["missing_plan"]


def test_review_item_and_summary():
    item = make_review_item(
        7, ["unknown_plan", "no_mobile"], name="", mobile_candidate="12345",
        mobile_normalized=None, plan_raw="x", section=SECTION,
    )
    assert item.reason == "unknown_plan;no_mobile"
    assert item.tags == ["unknown_plan", "no_mobile"]
    assert item.name is None
    assert item.import_month == "MARCH-2023"

    other = make_review_item(
        9, ["no_mobile"], name="SURESH", mobile_candidate=None,
        mobile_normalized=None, plan_raw="12M", section=SECTION,
    )
    assert summarize_reasons([item, other]) == {"missing_plan": 0, "unknown_plan": 1, "no_mobile": 2}
