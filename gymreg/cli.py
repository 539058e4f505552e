"""Command line entry: register file in, four JSON artifacts out.

Exit codes:
    0  parsed (and stored, when --store is given) without errors
    1  missing or unreadable input, broken rules file, no header row
    2  parsed, but at least one member could not be written to the store
"""
from __future__ import annotations

import argparse
import sys
from datetime import date
from pathlib import Path

from .export import export_to_excel_bytes, write_outputs
from .header_detect import HeaderNotFoundError
from .ingest import GridReadError, read_grid
from .log import log_summary, setup_logging
from .manual import summarize_reasons
from .pipeline import InvalidGridError, parse_register
from .rules import ConfigError, load_rules
from .store import JsonFileStore, StoreError, write_members

EXIT_SUCCESS = 0
EXIT_FATAL = 1
EXIT_PARTIAL_FAILURE = 2

REVIEW_WORKBOOK = "review.xlsx"


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="gymreg", description="Gym register spreadsheet -> members / attendance JSON")
    p.add_argument("input", help="Register file (.xlsx, .xlsm or .csv)")
    p.add_argument("--out", default="out", help="Output directory (default: ./out)")
    p.add_argument("--sheet", default=None, help="Sheet name (default: first sheet)")
    p.add_argument("--rules", default=None, help="JSON file overriding packaged rules")
    p.add_argument("--store", default=None, help="JSON member store to merge results into")
    p.add_argument("--xlsx", action="store_true", help=f"Also write {REVIEW_WORKBOOK}")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    return p.parse_args(argv)


def render_summary_line(result, report=None) -> str:
    d = result.diagnostics
    line = (
        f"members={len(result.members)} attendance={len(result.attendance)} "
        f"manual_review={len(result.manual_review)} rows={d.parsed_rows}/{d.total_rows}"
    )
    if report is not None:
        line += " " + report.as_summary()
    return line


def main(argv: list[str] | None = None) -> int:
    # an empty list means "no arguments", only None reads sys.argv
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    logger = setup_logging(debug=args.debug)

    src = Path(args.input)
    if not src.exists():
        logger.error(f"input not found: {src}")
        return EXIT_FATAL

    try:
        rules = load_rules(Path(args.rules) if args.rules else None)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    today = date.today()
    try:
        grid = read_grid(src, sheet=args.sheet)
        result = parse_register(grid, rules=rules, today=today)
    except (GridReadError, InvalidGridError) as e:
        logger.error(f"read: {e}")
        return EXIT_FATAL
    except HeaderNotFoundError as e:
        logger.error(f"parse: {e}")
        return EXIT_FATAL

    if result.manual_review:
        counts = summarize_reasons(result.manual_review)
        logger.info("manual review: " + " ".join(f"{k}={v}" for k, v in counts.items() if v))

    out_dir = Path(args.out)
    for key, path in write_outputs(result, out_dir).items():
        logger.info(f"wrote {key}: {path}")
    if args.xlsx:
        path = out_dir / REVIEW_WORKBOOK
        path.write_bytes(export_to_excel_bytes(result))
        logger.info(f"wrote workbook: {path}")

    report = None
    if args.store:
        try:
            store = JsonFileStore(Path(args.store))
        except StoreError as e:
            logger.error(f"store: {e}")
            return EXIT_FATAL
        report = write_members(result.members, store, today=today, rules=rules)
        for err in report.errors:
            logger.warning(f"store: {err}")
        for c in report.conflicts:
            logger.warning(f"conflict {c['id']}: {c['previous_name']!r} vs {c['imported_name']!r}")

    log_summary(render_summary_line(result, report))
    if report is not None and report.errored:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
