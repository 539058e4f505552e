# Shared pytest fixtures
from __future__ import annotations
import tempfile
from datetime import date
from pathlib import Path
import pytest

from gymreg.log import reset_logging

TODAY = date(2023, 2, 15)


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "data").mkdir()
        (p / "out").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def today() -> date:
    return TODAY


@pytest.fixture()
def scenario_grid() -> list:
    # month marker, header row, two members with attendance, one row without a phone
    return [
        ["FEBRUARY 2023"],
        ["SR NO.", "MEMBER NAME", "CONTACT", "START DATE", "NO. OF MONTHS", "01/02/2023"],
        [1, "JOHN DOE", "9876543210", 44957, "3M", "P"],
        [2, "JANE SMITH", "1234567890", 44958, "1M", "P"],
        ["", "NO MOBILE", "", "", "6M", ""],
    ]


@pytest.fixture()
def two_month_grid() -> list:
    return [
        ["SR NO.", "MEMBER NAME", "CONTACT", "START DATE", "NO. OF MONTHS", "01/02/2023", "02/02/2023", "01/03/2023"],
        ["JANUARY 2023", "", "", "", "", "", "", ""],
        [1, "RAVI KUMAR", "+91 98765 43210", "15/01/2023", "3 months", "P", "", ""],
        [2, "ANITA SHAH", "9123456780", "20/01/2023", "x", "", "P", ""],
        ["MARCH", "", "", "", "", "", "", ""],
        [3, "RAVI KUMAR", "9876543210", "", "3M", "", "P", "P"],
        ["", "", "", "", "", "", "", ""],
        [4, "SURESH", "12345", "01/03/2023", "12M", "", "", "P"],
    ]
