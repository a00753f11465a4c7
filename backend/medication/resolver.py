"""
Conflict Resolver — 根据调用方选择的策略决定写哪些记录。

三种策略，且只有这三种：
- DualEntry: 写新记录，新旧记录互相标记 conflict_of，全部保持 active
- Override:  写新记录，supersedes 指向最近的一条冲突记录；旧记录保留但不再 active
- Cancel:    什么都不写，返回空列表（合法终态，不是错误）

必须在 store.guard(medication_id) 内调用，由 service 保证。
"""

import logging
import uuid

from .exceptions import InvalidResolution
from .store.base import BaseAdministrationStore
from .types import (
    AdministrationInput,
    AdministrationRecord,
    Cancel,
    ConflictCandidate,
    DualEntry,
    Override,
    ResolutionRequest,
)

logger = logging.getLogger(__name__)


def build_record(
    proposed: AdministrationInput,
    supersedes: str | None = None,
    resolution: ResolutionRequest | None = None,
) -> AdministrationRecord:
    return AdministrationRecord(
        id=str(uuid.uuid4()),
        medication_id=str(proposed.medication_id),
        administered_at=proposed.administered_at,
        administered_by=proposed.caregiver_id,
        administered_by_role=proposed.role,
        status=proposed.status,
        notes=proposed.notes,
        supersedes=supersedes,
        resolution_method=resolution.method if resolution is not None else None,
        resolution_notes=getattr(resolution, 'notes', None),
    )


class ConflictResolver:

    def __init__(self, store: BaseAdministrationStore):
        self.store = store

    def resolve(
        self,
        proposed: AdministrationInput,
        conflicts: list[ConflictCandidate],
        resolution: ResolutionRequest,
    ) -> list[AdministrationRecord]:
        """
        Returns:
            DualEntry → [新记录, *冲突记录]（conflict_of 已互相指向）
            Override  → [新记录]
            Cancel    → []

        Raises:
            InvalidResolution: resolution 不是三种之一
            StorageError:      写入失败（外层 guard 回滚）
        """
        if isinstance(resolution, Cancel):
            logger.info("[ConflictResolver] medication %s: administration cancelled by %s",
                        proposed.medication_id, proposed.caregiver_id)
            return []

        if isinstance(resolution, DualEntry):
            return self._dual_entry(proposed, conflicts, resolution)

        if isinstance(resolution, Override):
            return self._override(proposed, conflicts, resolution)

        raise InvalidResolution(
            message=f"Unsupported conflict resolution: {resolution!r}.",
            detail={'allowed': ['dual_entry', 'override', 'cancel']},
        )

    def _dual_entry(self, proposed, conflicts, resolution):
        record = self.store.append(build_record(proposed, resolution=resolution))
        conflict_ids = [c.record.id for c in conflicts]
        if conflict_ids:
            self.store.link_conflicts(record.id, conflict_ids)

        logger.warning(
            "[ConflictResolver] medication %s: dual entry %s recorded alongside %s",
            proposed.medication_id, record.id, ', '.join(conflict_ids),
        )
        return self.store.get_records([record.id, *conflict_ids])

    def _override(self, proposed, conflicts, resolution):
        latest = max(conflicts, key=lambda c: c.record.administered_at, default=None)
        supersedes = latest.record.id if latest else None
        record = self.store.append(build_record(proposed, supersedes=supersedes, resolution=resolution))

        logger.warning(
            "[ConflictResolver] medication %s: administration %s supersedes %s",
            proposed.medication_id, record.id, supersedes,
        )
        return [record]
