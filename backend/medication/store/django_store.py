"""
DjangoAdministrationStore — 基于 Django ORM 的存储实现。

guard():
  transaction.atomic() + 对 medications 行 select_for_update()，
  同一药品的 "检测 → 写入" 在数据库层串行。
  SQLite 没有行锁，额外用进程内的 per-medication 锁兜底。

所有 DatabaseError 在这里统一包装成 StorageError。
"""

import logging
import threading
from contextlib import contextmanager

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, connection, transaction

from ..exceptions import StorageError, ValidationError
from ..models import AdministrationConflictLink, Medication, MedicationAdministration
from ..schedule import parse_schedule
from ..types import AdministrationRecord, MedicationData
from .base import BaseAdministrationStore

logger = logging.getLogger(__name__)

_process_locks: dict[str, threading.Lock] = {}
_process_locks_guard = threading.Lock()


def _process_lock(medication_id) -> threading.Lock:
    with _process_locks_guard:
        return _process_locks.setdefault(str(medication_id), threading.Lock())


@contextmanager
def _storage_errors(operation):
    try:
        yield
    except DatabaseError as exc:
        logger.error("[DjangoAdministrationStore] %s failed: %s", operation, exc)
        raise StorageError(
            message=f"Administration store unavailable ({operation}).",
            detail={'operation': operation},
        ) from exc


def to_medication_data(med: Medication) -> MedicationData:
    return MedicationData(
        id=str(med.id),
        care_plan_id=med.care_plan_id,
        name=med.name,
        dosage=med.dosage or '',
        instructions=med.instructions or '',
        schedule=parse_schedule(med.schedule),
    )


class DjangoAdministrationStore(BaseAdministrationStore):

    def _to_record(self, row: MedicationAdministration) -> AdministrationRecord:
        conflict_of = sorted(
            str(link.conflicts_with_id) for link in row.conflict_links.all()
        )
        successor = next(iter(row.successors.all()), None)
        return AdministrationRecord(
            id=str(row.id),
            medication_id=str(row.medication_id),
            administered_at=row.administered_at,
            administered_by=row.administered_by,
            administered_by_role=row.administered_by_role,
            status=row.status,
            notes=row.notes,
            conflict_of=tuple(conflict_of),
            supersedes=str(row.supersedes_id) if row.supersedes_id else None,
            superseded_by=str(successor.id) if successor else None,
            resolution_method=row.resolution_method,
            resolution_notes=row.resolution_notes,
            created_at=row.created_at,
        )

    def _records(self, queryset) -> list[AdministrationRecord]:
        rows = queryset.prefetch_related('conflict_links', 'successors')
        return [self._to_record(row) for row in rows]

    # ── 药品目录 ─────────────────────────────────────────────────────────────

    def get_medication(self, medication_id):
        with _storage_errors('get_medication'):
            try:
                med = Medication.objects.get(id=medication_id)
            except (Medication.DoesNotExist, DjangoValidationError, ValueError):
                return None
        return to_medication_data(med)

    def list_medications(self, care_plan_id):
        """排班 JSON 无法解析的药品跳过并记 warning，不影响同一 care plan 的其他药品。"""
        with _storage_errors('list_medications'):
            meds = list(Medication.objects.filter(care_plan_id=care_plan_id).order_by('name'))

        results = []
        for med in meds:
            try:
                results.append(to_medication_data(med))
            except ValidationError as exc:
                logger.warning(
                    "[DjangoAdministrationStore] care_plan=%s skipping medication %s: %s (%s)",
                    care_plan_id, med.id, exc.message, exc.code,
                )
        return results

    # ── 给药记录 ─────────────────────────────────────────────────────────────

    def find_active(self, medication_id, start, end):
        with _storage_errors('find_active'):
            queryset = MedicationAdministration.objects.filter(
                medication_id=medication_id,
                administered_at__gte=start,
                administered_at__lte=end,
                successors__isnull=True,
            ).order_by('administered_at')
            return self._records(queryset)

    def list_administrations(self, medication_id, start, end):
        with _storage_errors('list_administrations'):
            queryset = MedicationAdministration.objects.filter(
                medication_id=medication_id,
                administered_at__gte=start,
                administered_at__lte=end,
            ).order_by('-administered_at')
            return self._records(queryset)

    def get_records(self, record_ids):
        with _storage_errors('get_records'):
            rows = {
                str(r.id): r for r in
                MedicationAdministration.objects.filter(id__in=record_ids).prefetch_related('conflict_links', 'successors')
            }
        return [self._to_record(rows[rid]) for rid in record_ids if rid in rows]

    def append(self, record):
        with _storage_errors('append'):
            row = MedicationAdministration.objects.create(
                id=record.id,
                medication_id=record.medication_id,
                administered_at=record.administered_at,
                administered_by=record.administered_by,
                administered_by_role=record.administered_by_role,
                status=record.status,
                notes=record.notes,
                supersedes_id=record.supersedes,
                resolution_method=record.resolution_method,
                resolution_notes=record.resolution_notes,
            )
        logger.info(
            "[DjangoAdministrationStore] appended administration %s for medication %s",
            row.id, row.medication_id,
        )
        return self.get_records([str(row.id)])[0]

    def link_conflicts(self, record_id, conflicting_ids):
        with _storage_errors('link_conflicts'):
            links = []
            for other_id in conflicting_ids:
                links.append(AdministrationConflictLink(record_id=record_id, conflicts_with_id=other_id))
                links.append(AdministrationConflictLink(record_id=other_id, conflicts_with_id=record_id))
            AdministrationConflictLink.objects.bulk_create(links, ignore_conflicts=True)

    # ── guard ────────────────────────────────────────────────────────────────

    @contextmanager
    def guard(self, medication_id):
        if connection.features.has_select_for_update:
            with _storage_errors('guard'), transaction.atomic():
                list(Medication.objects.select_for_update().filter(id=medication_id).values_list('id', flat=True))
                yield self
            return

        with _process_lock(medication_id):
            with _storage_errors('guard'), transaction.atomic():
                yield self
