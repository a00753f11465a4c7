"""
Administration Service — 把调度、冲突检测、冲突解决串成一次请求/响应。

单次给药的状态机：
  START --检测--> 无冲突 --写入--> RECORDED
  START --检测--> 有冲突、未带 resolution --> ConflictsFound（AWAITING_RESOLUTION，不在内存里保存）
  带 resolution 重新调用 --DualEntry/Override--> RECORDED
                        --Cancel-->              CANCELLED
  任意阶段存储出错 --> Failed

service 本身无状态：冲突报告交给调用方，调用方带 resolution 再调一次。
所有错误以 Failed 返回，不会有异常越过 record_administration。
"""

import logging
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone, tzinfo

from django.conf import settings

from .conflicts import find_conflicts
from .exceptions import BaseAppException, InvalidResolution, ValidationError
from .resolver import ConflictResolver, build_record
from .schedule import generate_doses
from .store import BaseAdministrationStore, get_administration_store
from .types import (
    ADMINISTRATION_STATUSES,
    RESOLUTION_TYPES,
    STATUS_ADMINISTERED,
    AdministrationInput,
    AdministrationRecord,
    AdministrationResult,
    BatchConflict,
    BatchFailure,
    BatchResult,
    Cancel,
    ConflictsFound,
    Failed,
    MatchWindows,
    Recorded,
    ResolutionRequest,
    ScheduledDose,
)

logger = logging.getLogger(__name__)


def _hours_setting(name, default) -> timedelta:
    return timedelta(hours=float(getattr(settings, name, default)))


def _text(value) -> str:
    # caregiver_id 来自外部 identity provider，可能是整数主键
    return str(value).strip() if value is not None else ''


def _normalise(item: AdministrationInput) -> AdministrationInput:
    return replace(
        item,
        medication_id=_text(item.medication_id),
        caregiver_id=_text(item.caregiver_id),
        role=_text(item.role),
    )


class AdministrationService:

    def __init__(
        self,
        store: BaseAdministrationStore | None = None,
        conflict_window: timedelta | None = None,
        match_windows: MatchWindows | None = None,
        exclude_same_caregiver: bool | None = None,
    ):
        self.store = store if store is not None else get_administration_store()
        if conflict_window is None:
            conflict_window = _hours_setting('MEDICATION_CONFLICT_WINDOW_HOURS', 2)
        self.conflict_window = conflict_window
        self.match_windows = match_windows if match_windows is not None else MatchWindows(
            flag=_hours_setting('MEDICATION_FLAG_MATCH_WINDOW_HOURS', 4),
            explicit=_hours_setting('MEDICATION_EXPLICIT_MATCH_WINDOW_HOURS', 2),
        )
        if exclude_same_caregiver is None:
            exclude_same_caregiver = bool(getattr(settings, 'MEDICATION_EXCLUDE_SAME_CAREGIVER', False))
        self.exclude_same_caregiver = exclude_same_caregiver
        self.resolver = ConflictResolver(self.store)

    # ── 校验 ─────────────────────────────────────────────────────────────────

    def _validate(self, item: AdministrationInput, resolution) -> None:
        errors = []

        if not item.medication_id:
            errors.append({'field': 'medication_id', 'message': 'medication_id is required.'})
        if not item.caregiver_id:
            errors.append({'field': 'caregiver_id', 'message': 'caregiver_id is required.'})
        if not item.role:
            errors.append({'field': 'role', 'message': 'role is required.'})
        if not isinstance(item.administered_at, datetime):
            errors.append({'field': 'administered_at', 'message': 'administered_at must be a datetime.'})
        elif item.administered_at.utcoffset() is None:
            errors.append({'field': 'administered_at', 'message': 'administered_at must include a timezone offset.'})
        if item.status not in ADMINISTRATION_STATUSES:
            errors.append({'field': 'status', 'message': f'status must be one of {list(ADMINISTRATION_STATUSES)}.'})

        if errors:
            raise ValidationError(
                message="Administration validation failed.",
                detail={'errors': errors},
            )

        if resolution is not None and not isinstance(resolution, RESOLUTION_TYPES):
            raise InvalidResolution(
                message=f"Unsupported conflict resolution: {resolution!r}.",
                detail={'allowed': ['dual_entry', 'override', 'cancel']},
            )

        if self.conflict_window <= timedelta(0):
            raise ValidationError(
                message="Conflict window must be a positive duration.",
                code="INVALID_WINDOW",
            )

    # ── 单次给药 ─────────────────────────────────────────────────────────────

    def record_administration(
        self,
        medication_id: str,
        administered_at: datetime,
        caregiver_id: str,
        role: str,
        notes: str | None = None,
        resolution: ResolutionRequest | None = None,
        status: str = STATUS_ADMINISTERED,
    ) -> AdministrationResult:
        item = AdministrationInput(
            medication_id=medication_id,
            administered_at=administered_at,
            caregiver_id=caregiver_id,
            role=role,
            notes=notes,
            status=status,
        )
        return self.record(item, resolution=resolution)

    def record(self, item: AdministrationInput, resolution: ResolutionRequest | None = None) -> AdministrationResult:
        item = _normalise(item)
        try:
            self._validate(item, resolution)
            if self.store.get_medication(item.medication_id) is None:
                raise ValidationError(
                    message=f"Medication {item.medication_id} does not exist.",
                    code='MEDICATION_NOT_FOUND',
                    detail={'medication_id': item.medication_id},
                )

            # 检测和写入在同一个 guard 里，并发请求对同一药品串行
            with self.store.guard(item.medication_id):
                return self._detect_and_write(item, resolution)

        except BaseAppException as exc:
            log = logger.error if exc.http_status >= 500 else logger.info
            log("[AdministrationService] medication %s failed: %s (%s)", item.medication_id, exc.message, exc.code)
            return Failed(reason=exc.message, code=exc.code, error=exc)

    def _detect_and_write(self, item, resolution) -> AdministrationResult:
        if item.status != STATUS_ADMINISTERED:
            # missed / refused 不是实际给药，不参与冲突检测
            record = self.store.append(build_record(item))
            return Recorded(records=(record,))

        conflicts = find_conflicts(
            self.store,
            item.medication_id,
            item.administered_at,
            exclude_caregiver_id=item.caregiver_id if self.exclude_same_caregiver else None,
            window=self.conflict_window,
        )

        if not conflicts:
            if isinstance(resolution, Cancel):
                return Recorded(records=(), cancelled=True)
            record = self.store.append(build_record(item))
            logger.info("[AdministrationService] medication %s: recorded %s by %s",
                        item.medication_id, record.id, item.caregiver_id)
            return Recorded(records=(record,))

        if resolution is None:
            return ConflictsFound(candidates=tuple(conflicts), window=self.conflict_window)

        records = self.resolver.resolve(item, conflicts, resolution)
        return Recorded(records=tuple(records), cancelled=isinstance(resolution, Cancel))

    # ── 批量给药 ─────────────────────────────────────────────────────────────

    def record_batch(
        self,
        items: list[AdministrationInput],
        resolution: ResolutionRequest | None = None,
    ) -> BatchResult:
        """
        按顺序逐条处理（不并发），遇到第一个冲突就停下。

        resolution 只作用于 items[0]，即上一次批量提交时报告的那条冲突；
        调用方选好策略后把剩余条目连同 resolution 一起重新提交。
        冲突之后的条目原样放在 unprocessed 里，不做任何尝试。
        Failed 的条目记入 failures，不阻塞后续条目。
        """
        recorded: list[AdministrationRecord] = []
        failures: list[BatchFailure] = []
        cancelled: list[AdministrationInput] = []

        for index, item in enumerate(items):
            result = self.record(item, resolution=resolution if index == 0 else None)

            if isinstance(result, ConflictsFound):
                logger.warning("[AdministrationService] batch stopped at item %d (medication %s)",
                               index, item.medication_id)
                return BatchResult(
                    recorded=tuple(recorded),
                    conflict=BatchConflict(index=index, item=item, candidates=result.candidates, window=result.window),
                    failures=tuple(failures),
                    cancelled=tuple(cancelled),
                    unprocessed=tuple(items[index + 1:]),
                )

            if isinstance(result, Failed):
                failures.append(BatchFailure(index=index, item=item, reason=result.reason, code=result.code))
            elif result.cancelled:
                cancelled.append(item)
            else:
                recorded.extend(result.records)

        return BatchResult(recorded=tuple(recorded), failures=tuple(failures), cancelled=tuple(cancelled))

    # ── 查询 ─────────────────────────────────────────────────────────────────

    def list_administrations(self, medication_id: str, start: datetime, end: datetime) -> list[AdministrationRecord]:
        """审计历史：含已被覆盖的记录，最新在前。"""
        if start > end:
            raise ValidationError(
                message="start must not be after end.",
                code='INVALID_DATE_RANGE',
                detail={'start': start.isoformat(), 'end': end.isoformat()},
            )
        return self.store.list_administrations(medication_id, start, end)

    def scheduled_doses(self, care_plan_id: str, on_date: date, tz: tzinfo | None = None) -> list[ScheduledDose]:
        """某个 care plan 在 on_date 当天的全部预期 dose。"""
        tz = tz or timezone.utc
        medications = self.store.list_medications(care_plan_id)

        records = []
        for med in medications:
            window = self.match_windows.for_schedule(med.schedule)
            day_start = datetime.combine(on_date, datetime.min.time(), tzinfo=tz) - window
            day_end = datetime.combine(on_date, datetime.max.time(), tzinfo=tz) + window
            records.extend(self.store.find_active(med.id, day_start, day_end))

        return generate_doses(medications, on_date, records, windows=self.match_windows, tz=tz)
