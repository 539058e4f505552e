from __future__ import annotations
from datetime import datetime

import pytest
from openpyxl import Workbook

from gymreg.ingest import GridReadError, list_sheets, read_grid, read_grid_bytes


@pytest.fixture()
def register_xlsx(tmp_path):
    wb = Workbook()
    ws = wb.active
    ws.title = "Register"
    ws.append(["FEBRUARY 2023"])
    ws.merge_cells("A1:C1")
    ws.append(["SR NO.", "MEMBER NAME", "CONTACT", "START DATE"])
    ws.append([1, "JOHN DOE", 9876543210, datetime(2023, 1, 31)])
    ws.append([None, None, None, None])
    notes = wb.create_sheet("Notes")
    notes.append(["ignore me"])
    path = tmp_path / "register.xlsx"
    wb.save(path)
    return path


def test_xlsx_expands_merged_cells_and_keeps_types(register_xlsx):
    grid = read_grid(register_xlsx)
    assert len(grid) == 3  # trailing blank row dropped
    assert all(len(r) == 4 for r in grid)
    assert grid[0] == ["FEBRUARY 2023", "FEBRUARY 2023", "FEBRUARY 2023", ""]
    assert grid[2][2] == 9876543210
    assert grid[2][3] == datetime(2023, 1, 31)


def test_xlsx_named_sheet(register_xlsx):
    assert read_grid(register_xlsx, sheet="Notes") == [["ignore me"]]
    with pytest.raises(GridReadError):
        read_grid(register_xlsx, sheet="Missing")


def test_list_sheets(register_xlsx, tmp_path):
    assert list_sheets(register_xlsx) == ["Register", "Notes"]
    assert list_sheets(tmp_path / "any.csv") == ["CSV"]


def test_csv_semicolons_and_ragged_rows(tmp_path):
    path = tmp_path / "register.csv"
    path.write_text(
        "SR NO.;MEMBER NAME;CONTACT\n"
        "1;JOHN DOE;9876543210\n"
        "2;JANE SMITH\n",
        encoding="utf-8",
    )
    grid = read_grid(path)
    assert grid == [
        ["SR NO.", "MEMBER NAME", "CONTACT"],
        ["1", "JOHN DOE", "9876543210"],
        ["2", "JANE SMITH", ""],
    ]


def test_csv_keeps_na_text_and_strips_bom():
    data = "\ufeffNAME,CONTACT\nRAVI,NA\n".encode("utf-8")
    grid = read_grid_bytes(data, "r.csv")
    assert grid == [["NAME", "CONTACT"], ["RAVI", "NA"]]


def test_missing_file(tmp_path):
    with pytest.raises(GridReadError):
        read_grid(tmp_path / "nope.xlsx")


def test_unsupported_and_corrupt_inputs():
    with pytest.raises(GridReadError):
        read_grid_bytes(b"whatever", "register.pdf")
    with pytest.raises(GridReadError):
        read_grid_bytes(b"not a zip file", "register.xlsx")
