"""Merge-on-write persistence for member records.

Records are plain dicts keyed by identity key (the `Member.to_dict()` shape
plus `notes` and `conflict_info`). Merging is idempotent: writing the same
import twice leaves the stored records unchanged the second time.
"""
from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple

from rapidfuzz import fuzz

from .entity import derive_member_dates, membership_status
from .models import Member
from .rules import DEFAULT_RULES, ParseRules

__all__ = [
    "StoreError",
    "MemberStore",
    "InMemoryStore",
    "JsonFileStore",
    "WriteReport",
    "merge_member",
    "write_members",
]

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500

FILL_IF_ABSENT = ("start_date", "plan_raw", "plan_type", "plan_months")


class StoreError(Exception):
    """A store could not read or write a member record."""


class MemberStore(Protocol):
    def get(self, key: str) -> Optional[Dict[str, Any]]: ...

    def set(self, key: str, record: Dict[str, Any]) -> None: ...

    def batch_write(self, items: Iterable[Tuple[str, Dict[str, Any]]]) -> None: ...


class InMemoryStore:
    """Dict-backed store. Hands out copies so callers cannot mutate stored state."""

    def __init__(self, records: Optional[Dict[str, Dict[str, Any]]] = None):
        self.records: Dict[str, Dict[str, Any]] = copy.deepcopy(records or {})

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        rec = self.records.get(key)
        return copy.deepcopy(rec) if rec is not None else None

    def set(self, key: str, record: Dict[str, Any]) -> None:
        self.records[key] = copy.deepcopy(record)

    def batch_write(self, items: Iterable[Tuple[str, Dict[str, Any]]]) -> None:
        for key, record in items:
            self.set(key, record)

    def __len__(self) -> int:
        return len(self.records)


class JsonFileStore(InMemoryStore):
    """One JSON object on disk, keyed by identity key, replaced atomically on every write."""

    def __init__(self, path: Path):
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StoreError(f"cannot load store {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StoreError(f"store file must hold a JSON object: {self.path}")
        return data

    def _flush(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=self.path.name, suffix=".tmp", dir=self.path.parent)
        except OSError as e:
            raise StoreError(f"cannot write store {self.path}: {e}") from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self.records, f, ensure_ascii=False, indent=2, sort_keys=True)
            os.replace(tmp, self.path)
        except OSError as e:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise StoreError(f"cannot write store {self.path}: {e}") from e

    def _write_through(self, items: List[Tuple[str, Dict[str, Any]]]) -> None:
        # on a failed flush the cache goes back to what is on disk
        before = {key: self.records.get(key) for key, _ in items}
        for key, record in items:
            super().set(key, record)
        try:
            self._flush()
        except StoreError:
            for key, old in before.items():
                if old is None:
                    self.records.pop(key, None)
                else:
                    self.records[key] = old
            raise

    def set(self, key: str, record: Dict[str, Any]) -> None:
        self._write_through([(key, record)])

    def batch_write(self, items: Iterable[Tuple[str, Dict[str, Any]]]) -> None:
        self._write_through(list(items))
# =========================

# Merge
# =========================
def _names_match(a: str, b: str, threshold: float) -> bool:
    if not a or not b:
        return True
    return fuzz.ratio(a.upper(), b.upper()) >= threshold


def _explicit_due(rec: Dict[str, Any]) -> Optional[str]:
    # a due date that did not come from plan arithmetic was read from the sheet
    due = rec.get("next_due_date")
    if due and due != rec.get("next_payment_due_by_plan"):
        return due
    return None


def _add_note(rec: Dict[str, Any], note: str) -> None:
    notes = rec.setdefault("notes", [])
    if note not in notes:
        notes.append(note)


def merge_member(existing: Dict[str, Any], imported: Dict[str, Any], *,
                 today: Optional[date] = None,
                 rules: ParseRules = DEFAULT_RULES) -> Tuple[Dict[str, Any], Optional[Dict[str, Any]]]:
    """
    Merge an imported member record into the stored one.

    - attendance is the union of both sets
    - start date and plan fields are only filled where the stored record has none
    - a different known plan keeps the stored plan and leaves a note
    - a different name keeps the stored name and records `conflict_info`
    - derived dates and status are recomputed; `needs_review` never clears

    Returns the merged record and the conflict written by this merge, if any.
    """
    today = today or date.today()
    merged = copy.deepcopy(existing)
    conflict: Optional[Dict[str, Any]] = None

    for k in FILL_IF_ABSENT:
        if merged.get(k) in (None, "") and imported.get(k) not in (None, ""):
            merged[k] = imported[k]

    stored_plan, new_plan = existing.get("plan_type"), imported.get("plan_type")
    if stored_plan and new_plan and stored_plan != new_plan:
        _add_note(merged, f"plan_conflict: stored {stored_plan}, imported {new_plan} ({imported.get('import_month')})")

    stored_name, new_name = existing.get("name") or "", imported.get("name") or ""
    if not stored_name and new_name:
        merged["name"] = new_name
    elif not _names_match(stored_name, new_name, rules.name_match_threshold):
        info = {
            "previous_name": stored_name,
            "imported_name": new_name,
            "note": f"name mismatch on import {imported.get('import_month')}; stored name kept",
        }
        if existing.get("conflict_info") != info:
            conflict = info
        merged["conflict_info"] = info

    if merged.get("mobile") in (None, "", rules.not_available) and imported.get("mobile_normalized"):
        merged["mobile"] = imported.get("mobile")
        merged["mobile_normalized"] = imported.get("mobile_normalized")

    attendance = set(existing.get("attendance") or []) | set(imported.get("attendance") or [])
    derived = derive_member_dates(
        attendance, merged.get("plan_months"),
        _explicit_due(existing) or _explicit_due(imported),
    )
    derived["attendance"] = list(derived["attendance"])
    derived["attended_months"] = list(derived["attended_months"])
    merged.update(derived)
    merged["status"] = membership_status(merged["next_due_date"], today, rules)
    merged["needs_review"] = bool(existing.get("needs_review")) or bool(imported.get("needs_review"))
    return merged, conflict
# =========================

# Batch write
# =========================
@dataclass
class WriteReport:
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    errored: int = 0
    conflicts: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def as_summary(self) -> str:
        return f"created={self.created} updated={self.updated} unchanged={self.unchanged} errored={self.errored}"


def _flush_batch(store: MemberStore, batch: List[Tuple[str, Dict[str, Any], str]], report: WriteReport) -> None:
    if not batch:
        return
    try:
        store.batch_write([(k, rec) for k, rec, _ in batch])
        done = batch
    except StoreError as e:
        # isolate the failing members instead of losing the whole batch
        logger.warning("batch write of %d members failed (%s); retrying one by one", len(batch), e)
        done = []
        for item in batch:
            try:
                store.set(item[0], item[1])
                done.append(item)
            except StoreError as e2:
                report.errored += 1
                report.errors.append(f"{item[0]}: {e2}")
    for _, _, kind in done:
        if kind == "created":
            report.created += 1
        else:
            report.updated += 1
    batch.clear()


def write_members(members: Iterable[Member], store: MemberStore, *,
                  batch_size: int = DEFAULT_BATCH_SIZE,
                  today: Optional[date] = None,
                  rules: ParseRules = DEFAULT_RULES) -> WriteReport:
    """Insert or merge every member; one failing member never stops the rest."""
    today = today or date.today()
    report = WriteReport()
    batch: List[Tuple[str, Dict[str, Any], str]] = []

    for m in members:
        imported = m.to_dict()
        try:
            existing = store.get(m.id)
        except StoreError as e:
            report.errored += 1
            report.errors.append(f"{m.id}: {e}")
            continue

        if existing is None:
            batch.append((m.id, imported, "created"))
        else:
            merged, conflict = merge_member(existing, imported, today=today, rules=rules)
            if conflict is not None:
                report.conflicts.append({"id": m.id, **conflict})
            if merged == existing:
                report.unchanged += 1
            else:
                batch.append((m.id, merged, "updated"))

        if len(batch) >= batch_size:
            _flush_batch(store, batch, report)
    _flush_batch(store, batch, report)

    logger.info("Store write: %s conflicts=%d", report.as_summary(), len(report.conflicts))
    return report
