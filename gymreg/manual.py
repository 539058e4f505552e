from __future__ import annotations
from typing import List, Optional
from .models import ManualReviewItem, SectionContext

MISSING_PLAN = "missing_plan"
UNKNOWN_PLAN = "unknown_plan"
NO_MOBILE = "no_mobile"

REVIEW_TAGS = (MISSING_PLAN, UNKNOWN_PLAN, NO_MOBILE)


def review_reasons(plan_raw: Optional[str], plan_type: Optional[str],
                   mobile_normalized: Optional[str]) -> List[str]:
    """
    Tags for one extracted row, in fixed order. Empty list means the row is clean.
    A plan cell that is present but unmapped is unknown_plan, never missing_plan.
    """
    tags: List[str] = []
    if not plan_raw:
        tags.append(MISSING_PLAN)
    elif plan_type is None:
        tags.append(UNKNOWN_PLAN)
    if not mobile_normalized:
        tags.append(NO_MOBILE)
    return tags


def make_review_item(row_index: int, tags: List[str], *, name: str,
                     mobile_candidate: Optional[str], mobile_normalized: Optional[str],
                     plan_raw: Optional[str], section: SectionContext) -> ManualReviewItem:
    return ManualReviewItem(
        row_index=row_index,
        reason=";".join(tags),
        name=name or None,
        mobile_candidate=mobile_candidate,
        mobile_normalized=mobile_normalized,
        plan_raw=plan_raw,
        import_month=section.import_month_key,
    )


def summarize_reasons(items: List[ManualReviewItem]) -> dict:
    # tag -> count, for the CLI summary and diagnostics
    out = {t: 0 for t in REVIEW_TAGS}
    for it in items:
        for t in it.tags:
            out[t] = out.get(t, 0) + 1
    return out
