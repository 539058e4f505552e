from __future__ import annotations
import json
from io import BytesIO

from openpyxl import load_workbook

from gymreg.export import OUTPUT_FILES, export_to_excel_bytes, write_outputs
from gymreg.pipeline import parse_register


def test_write_outputs_creates_four_json_files(tmp_path, scenario_grid, today):
    result = parse_register(scenario_grid, today=today)
    paths = write_outputs(result, tmp_path / "out")
    assert set(paths) == set(OUTPUT_FILES)
    for key, path in paths.items():
        assert path.name == OUTPUT_FILES[key]
        assert path.exists()

    members = json.loads(paths["members"].read_text(encoding="utf-8"))
    assert [m["name"] for m in members] == ["JOHN DOE", "JANE SMITH", "NO MOBILE"]
    diagnostics = json.loads(paths["diagnostics"].read_text(encoding="utf-8"))
    assert diagnostics["header_row_index"] == 1
    assert diagnostics["plan_column_detection"]["best_column"] == 4


def test_review_workbook_has_four_sheets(scenario_grid, today):
    result = parse_register(scenario_grid, today=today)
    wb = load_workbook(BytesIO(export_to_excel_bytes(result)))
    assert wb.sheetnames == ["Members", "Attendance", "Manual review", "Diagnostics"]

    ws = wb["Members"]
    assert ws.cell(1, 1).value == "id"
    assert ws.max_row == 1 + len(result.members)
    assert wb["Manual review"].cell(2, 2).value == "no_mobile"
