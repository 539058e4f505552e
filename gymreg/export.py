from __future__ import annotations
import json
from io import BytesIO
from pathlib import Path
from typing import Dict, List
import pandas as pd
from .models import ParseResult

MEMBER_COLUMNS = [
    "id", "name", "mobile", "mobile_normalized", "plan_raw", "plan_type", "plan_months",
    "start_date", "attendance_count", "last_attendance", "next_expected_attendance",
    "next_payment_due_by_plan", "next_due_date", "status", "import_month", "needs_review",
]
ATTENDANCE_COLUMNS = ["member_mobile_or_id", "member_name", "attendance_date", "attended_month", "import_month"]
REVIEW_COLUMNS = ["row_index", "reason", "name", "mobile_candidate", "mobile_normalized", "plan_raw", "import_month"]

OUTPUT_FILES = {
    "members": "members.json",
    "attendance": "attendance.json",
    "manual_review": "manual_review.json",
    "diagnostics": "diagnostics.json",
}


def result_payloads(result: ParseResult) -> Dict[str, object]:
    return {
        "members": [m.to_dict() for m in result.members],
        "attendance": [a.to_dict() for a in result.attendance],
        "manual_review": [r.to_dict() for r in result.manual_review],
        "diagnostics": result.diagnostics.to_dict(),
    }


def write_outputs(result: ParseResult, out_dir: Path) -> Dict[str, Path]:
    """Four JSON artifacts, one per output collection. Returns name -> path."""
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    paths: Dict[str, Path] = {}
    for key, payload in result_payloads(result).items():
        p = out_dir / OUTPUT_FILES[key]
        with open(p, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
            f.write("\n")
        paths[key] = p
    return paths
# =========================

# Workbook for the front desk
# =========================
def _members_df(result: ParseResult) -> pd.DataFrame:
    rows = []
    for m in result.members:
        d = m.to_dict()
        row = {c: d.get(c) for c in MEMBER_COLUMNS}
        row["attendance"] = ", ".join(m.attendance)
        rows.append(row)
    return pd.DataFrame(rows, columns=MEMBER_COLUMNS + ["attendance"])


def _diagnostics_df(result: ParseResult) -> pd.DataFrame:
    d = result.diagnostics
    rows: List[Dict[str, object]] = [
        {"metric": "header_row_index", "value": d.header_row_index},
        {"metric": "total_rows", "value": d.total_rows},
        {"metric": "parsed_rows", "value": d.parsed_rows},
        {"metric": "skipped_rows", "value": d.skipped_rows},
        {"metric": "mobile_column", "value": d.mobile_column_detection.best_column},
        {"metric": "plan_column", "value": d.plan_column_detection.best_column},
    ]
    for h in d.detected_headers:
        rows.append({"metric": f"section_row_{h.row_index}", "value": f"{h.month} {h.year}"})
    for c, n in d.plan_column_detection.per_column_match_counts:
        rows.append({"metric": f"plan_matches_col_{c}", "value": n})
    for c, s in d.mobile_column_detection.per_column_scores:
        rows.append({"metric": f"mobile_score_col_{c}", "value": s})
    return pd.DataFrame(rows, columns=["metric", "value"])


def export_to_excel_bytes(result: ParseResult) -> bytes:
    members_df = _members_df(result)
    attendance_df = pd.DataFrame([a.to_dict() for a in result.attendance], columns=ATTENDANCE_COLUMNS)
    review_df = pd.DataFrame([r.to_dict() for r in result.manual_review], columns=REVIEW_COLUMNS)
    diag_df = _diagnostics_df(result)

    sheets = [
        ("Members", members_df),
        ("Attendance", attendance_df),
        ("Manual review", review_df),
        ("Diagnostics", diag_df),
    ]

    bio = BytesIO()
    with pd.ExcelWriter(bio, engine="xlsxwriter") as writer:
        for name, df in sheets:
            df.to_excel(writer, index=False, sheet_name=name)

        wb = writer.book
        fmt_header = wb.add_format({"bold": True, "bg_color": "#F2F2F2", "border": 1, "valign": "vcenter"})
        fmt_review = wb.add_format({"bg_color": "#FEF7E0"})

        for name, df in sheets:
            ws = writer.sheets[name]
            ws.freeze_panes(1, 0)
            ws.autofilter(0, 0, max(1, len(df)), max(0, len(df.columns) - 1))
            for col, title in enumerate(df.columns):
                ws.write(0, col, title, fmt_header)
                ws.set_column(col, col, max(12, min(40, len(str(title)) + 6)))

        # members flagged for review stand out on the main sheet
        ws = writer.sheets["Members"]
        for i, flagged in enumerate(members_df["needs_review"].tolist(), start=1):
            if flagged:
                ws.set_row(i, None, fmt_review)

    return bio.getvalue()
