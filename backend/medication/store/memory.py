"""
InMemoryAdministrationStore — 纯内存实现。

用于测试和不接数据库的调用方。每个药品一把 threading.Lock 实现 guard；
guard 块内抛异常时回滚块内追加的记录。
"""

import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime

from ..types import AdministrationRecord, MedicationData
from .base import BaseAdministrationStore


class InMemoryAdministrationStore(BaseAdministrationStore):

    def __init__(self, medications: list[MedicationData] | None = None):
        self._medications: dict[str, MedicationData] = {m.id: m for m in (medications or [])}
        self._records: dict[str, AdministrationRecord] = {}
        self._links: dict[str, set[str]] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._journal = threading.local()

    def add_medication(self, medication: MedicationData) -> None:
        self._medications[medication.id] = medication

    # ── 药品目录 ─────────────────────────────────────────────────────────────

    def get_medication(self, medication_id):
        return self._medications.get(str(medication_id))

    def list_medications(self, care_plan_id):
        meds = [m for m in self._medications.values() if m.care_plan_id == str(care_plan_id)]
        return sorted(meds, key=lambda m: m.name)

    # ── 给药记录 ─────────────────────────────────────────────────────────────

    def _snapshot(self, record: AdministrationRecord) -> AdministrationRecord:
        successor = next(
            (r.id for r in list(self._records.values()) if r.supersedes == record.id),
            None,
        )
        return replace(
            record,
            conflict_of=tuple(sorted(self._links.get(record.id, ()))),
            superseded_by=successor,
        )

    def _in_range(self, medication_id, start, end):
        return [
            self._snapshot(r) for r in list(self._records.values())
            if r.medication_id == str(medication_id) and start <= r.administered_at <= end
        ]

    def find_active(self, medication_id, start: datetime, end: datetime):
        records = [r for r in self._in_range(medication_id, start, end) if r.is_active]
        return sorted(records, key=lambda r: r.administered_at)

    def list_administrations(self, medication_id, start: datetime, end: datetime):
        return sorted(self._in_range(medication_id, start, end), key=lambda r: r.administered_at, reverse=True)

    def get_records(self, record_ids):
        return [self._snapshot(self._records[rid]) for rid in record_ids if rid in self._records]

    def append(self, record):
        self._records[record.id] = replace(record, conflict_of=(), superseded_by=None)
        self._journal_entries().append(('record', record.id, None))
        return self._snapshot(self._records[record.id])

    def link_conflicts(self, record_id, conflicting_ids):
        for other_id in conflicting_ids:
            self._links.setdefault(record_id, set()).add(other_id)
            self._links.setdefault(other_id, set()).add(record_id)
            self._journal_entries().append(('link', record_id, other_id))

    # ── guard ────────────────────────────────────────────────────────────────

    def _lock_for(self, medication_id) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(str(medication_id), threading.Lock())

    def _journal_entries(self) -> list:
        if not hasattr(self._journal, 'entries'):
            self._journal.entries = []
        return self._journal.entries

    def _rollback(self, entries):
        for kind, first, second in reversed(entries):
            if kind == 'record':
                self._records.pop(first, None)
            else:
                self._links.get(first, set()).discard(second)
                self._links.get(second, set()).discard(first)

    @contextmanager
    def guard(self, medication_id):
        with self._lock_for(medication_id):
            self._journal.entries = []
            try:
                yield self
            except BaseException:
                self._rollback(self._journal.entries)
                raise
            finally:
                self._journal.entries = []
