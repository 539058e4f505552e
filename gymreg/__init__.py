"""
Gym register import:
- grid readers (XLSX/CSV)
- header row, month sections and column roles (pass 1)
- row extraction and member aggregation (pass 2)
- manual review flags and diagnostics
- merge-on-write member store
- JSON and workbook export
"""
from .cells import map_plan_token, normalize_mobile, parse_date
from .header_detect import HeaderNotFoundError
from .ingest import GridReadError, list_sheets, read_grid
from .pipeline import InvalidGridError, parse_register, parse_register_file
from .rules import ConfigError, ParseRules, load_rules
from .store import InMemoryStore, JsonFileStore, StoreError, merge_member, write_members
from .export import export_to_excel_bytes, write_outputs

__all__ = [
    "parse_date",
    "normalize_mobile",
    "map_plan_token",
    "HeaderNotFoundError",
    "GridReadError",
    "list_sheets",
    "read_grid",
    "InvalidGridError",
    "parse_register",
    "parse_register_file",
    "ConfigError",
    "ParseRules",
    "load_rules",
    "InMemoryStore",
    "JsonFileStore",
    "StoreError",
    "merge_member",
    "write_members",
    "export_to_excel_bytes",
    "write_outputs",
]
