from __future__ import annotations
import csv
import logging
import zipfile
from io import BytesIO, StringIO
from pathlib import Path
from typing import Any, List, Optional
import pandas as pd
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from .utils import is_blank

logger = logging.getLogger(__name__)

EXCEL_SUFFIXES = (".xlsx", ".xlsm")
CSV_SUFFIXES = (".csv", ".txt")
CSV_ENCODINGS = ("utf-8-sig", "utf-8", "cp1251")
CSV_DELIMITERS = (",", ";", "\t", "|")


class GridReadError(Exception):
    """Input file is missing, unsupported or unreadable."""


def _is_missing(v: Any) -> bool:
    # None from openpyxl, NaN from pandas when a csv row is short
    return v is None or (isinstance(v, float) and v != v)


def _finish(rows: List[List[Any]]) -> List[List[Any]]:
    # missing -> "", pad every row to the grid width, drop trailing blank rows
    rows = [["" if _is_missing(v) else v for v in r] for r in rows]
    while rows and all(is_blank(v) for v in rows[-1]):
        rows.pop()
    width = max((len(r) for r in rows), default=0)
    return [r + [""] * (width - len(r)) for r in rows]
# =========================

# Excel: sheet as a matrix, merged ranges expanded
# =========================
def _open_workbook(data: bytes):
    try:
        return load_workbook(BytesIO(data), read_only=False, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as e:
        raise GridReadError(f"not a readable xlsx workbook: {e}") from e


def _sheet_matrix(ws) -> List[List[Any]]:
    merged = {}
    for rng in ws.merged_cells.ranges:
        min_col, min_row, max_col, max_row = rng.bounds
        top = ws.cell(min_row, min_col).value
        for rr in range(min_row, max_row + 1):
            for cc in range(min_col, max_col + 1):
                merged[(rr, cc)] = top

    rows = []
    for r in range(1, ws.max_row + 1):
        vals = []
        for c in range(1, ws.max_column + 1):
            v = ws.cell(r, c).value
            if (r, c) in merged and is_blank(v):
                v = merged[(r, c)]
            vals.append(v)
        rows.append(vals)
    return rows


def read_excel_bytes(data: bytes, sheet: Optional[str] = None) -> List[List[Any]]:
    wb = _open_workbook(data)
    name = sheet or wb.sheetnames[0]
    if name not in wb.sheetnames:
        raise GridReadError(f"sheet {name!r} not found (have {', '.join(wb.sheetnames)})")
    rows = _finish(_sheet_matrix(wb[name]))
    logger.debug("xlsx sheet %s: %d rows", name, len(rows))
    return rows
# =========================

# CSV: delimiter and encoding sniffing
# =========================
def _guess_delimiter(sample: str) -> str:
    try:
        return csv.Sniffer().sniff(sample, delimiters="".join(CSV_DELIMITERS)).delimiter
    except csv.Error:
        pass
    # fallback: the delimiter with most occurrences per line
    lines = [ln for ln in sample.splitlines() if ln.strip()][:20]
    if not lines:
        return ","
    scores = {d: sum(ln.count(d) for ln in lines) / len(lines) for d in CSV_DELIMITERS}
    best = max(scores.items(), key=lambda x: x[1])[0]
    return best if scores[best] > 0 else ","


def _csv_frame(text: str, delim: str) -> pd.DataFrame:
    # ragged rows: fix the column count up front, pandas refuses longer rows otherwise
    width = max((len(r) for r in csv.reader(StringIO(text), delimiter=delim)), default=0)
    if width == 0:
        return pd.DataFrame()
    return pd.read_csv(
        StringIO(text),
        header=None,
        names=list(range(width)),
        sep=delim,
        engine="python",
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=False,
    )


def read_csv_bytes(data: bytes) -> List[List[Any]]:
    last_err: Optional[Exception] = None
    for enc in CSV_ENCODINGS:
        try:
            text = data.decode(enc)
        except UnicodeDecodeError as e:
            last_err = e
            continue
        delim = _guess_delimiter(text[:65536])
        try:
            df = _csv_frame(text, delim)
        except (pd.errors.ParserError, csv.Error) as e:
            last_err = e
            continue
        logger.debug("csv: encoding=%s delimiter=%r shape=%s", enc, delim, df.shape)
        return _finish(df.values.tolist())
    raise GridReadError(f"unreadable csv: {last_err}")
# =========================

def read_grid_bytes(data: bytes, filename: str, sheet: Optional[str] = None) -> List[List[Any]]:
    suffix = Path(filename).suffix.lower()
    if suffix in EXCEL_SUFFIXES:
        return read_excel_bytes(data, sheet=sheet)
    if suffix in CSV_SUFFIXES:
        return read_csv_bytes(data)
    raise GridReadError(f"unsupported file type: {filename}")


def read_grid(path: Path, sheet: Optional[str] = None) -> List[List[Any]]:
    """
    File -> RawGrid: rows of cells, padded to one width with "".
    xlsx keeps native cell types (numbers, datetimes); csv cells are strings.
    """
    path = Path(path)
    if not path.is_file():
        raise GridReadError(f"input file not found: {path}")
    try:
        data = path.read_bytes()
    except OSError as e:
        raise GridReadError(f"cannot read {path}: {e}") from e
    return read_grid_bytes(data, path.name, sheet=sheet)


def list_sheets(path: Path) -> List[str]:
    path = Path(path)
    if path.suffix.lower() in CSV_SUFFIXES:
        return ["CSV"]
    try:
        data = path.read_bytes()
    except OSError as e:
        raise GridReadError(f"cannot read {path}: {e}") from e
    return list(_open_workbook(data).sheetnames)
