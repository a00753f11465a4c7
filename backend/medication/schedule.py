"""
Schedule Generator — 把药品排班展开成某一天的具体 dose。

纯函数，无副作用：同样的输入永远得到同样的输出，可以反复调用。
"""

import re
from datetime import date, datetime, time, timezone, tzinfo

from .exceptions import ValidationError
from .types import (
    FLAG_SLOT_TIMES,
    STATUS_ADMINISTERED,
    AdministrationRecord,
    ExplicitSchedule,
    FlagSchedule,
    MatchWindows,
    MedicationData,
    ScheduledDose,
    ScheduleSpec,
)

HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2})?$")


def parse_hhmm(value: str) -> time:
    """"8:05" / "08:05" / "08:05:00" → time(8, 5)。"""
    match = HHMM_RE.match((value or "").strip())
    if not match:
        raise ValidationError(
            message=f"Invalid schedule time: {value!r}.",
            code="INVALID_SCHEDULE_TIME",
            detail={"value": value},
        )
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValidationError(
            message=f"Invalid schedule time: {value!r}.",
            code="INVALID_SCHEDULE_TIME",
            detail={"value": value},
        )
    return time(hour, minute)


def parse_schedule(raw: dict | None) -> ScheduleSpec:
    """
    Medication.schedule JSON → ScheduleSpec。

    - {"times": ["08:00", "20:30"]}           → ExplicitSchedule
    - {"morning": true, "evening": true}      → FlagSchedule
    - 两种都填                                → ValidationError（一次只能有一种排班）
    - None / {} / 只有 custom 文本            → 空的 FlagSchedule（不产生 dose）
    """
    raw = raw or {}
    times = [t for t in (raw.get("times") or []) if t]
    slots = frozenset(slot for slot in FLAG_SLOT_TIMES if raw.get(slot))

    if times and slots:
        raise ValidationError(
            message="Schedule must use either time-slot flags or explicit times, not both.",
            code="AMBIGUOUS_SCHEDULE",
            detail={"slots": sorted(slots), "times": times},
        )

    if times:
        return ExplicitSchedule(times=tuple(parse_hhmm(t) for t in times))

    return FlagSchedule(slots=slots)


def _slots_for(schedule: ScheduleSpec) -> list[tuple[str, time]]:
    if isinstance(schedule, FlagSchedule):
        return [(label, FLAG_SLOT_TIMES[label]) for label in FLAG_SLOT_TIMES if label in schedule.slots]
    return [(t.strftime("%H:%M"), t) for t in schedule.times]


def _superseded_ids(records: list[AdministrationRecord]) -> set[str]:
    superseded = {r.supersedes for r in records if r.supersedes}
    superseded.update(r.id for r in records if r.superseded_by)
    return superseded


def generate_doses(
    medications: list[MedicationData],
    on_date: date,
    existing_records: list[AdministrationRecord] | None = None,
    windows: MatchWindows | None = None,
    tz: tzinfo | None = None,
) -> list[ScheduledDose]:
    """
    展开 medications 在 on_date 当天的全部预期 dose，按时间升序。

    dose 在 |administered_at - scheduled_at| <= window 范围内存在任意一条
    有效（未被覆盖）且 status=administered 的记录时，标记为 administered。
    window 按排班形式取 MatchWindows.flag / MatchWindows.explicit。

    tz 是被照护者本地时区，slot 时间按墙上时间解释；默认 UTC。
    """
    windows = windows or MatchWindows()
    tz = tz or timezone.utc
    existing_records = existing_records or []
    superseded = _superseded_ids(existing_records)

    by_medication: dict[str, list[AdministrationRecord]] = {}
    for record in existing_records:
        if record.status != STATUS_ADMINISTERED or record.id in superseded:
            continue
        by_medication.setdefault(record.medication_id, []).append(record)

    doses = []
    for med in medications:
        window = windows.for_schedule(med.schedule)
        records = by_medication.get(med.id, [])

        for label, slot_time in _slots_for(med.schedule):
            scheduled_at = datetime.combine(on_date, slot_time, tzinfo=tz)

            matches = [r for r in records if abs(r.administered_at - scheduled_at) <= window]
            # 多条命中时引用离 slot 最近的那条
            closest = min(matches, key=lambda r: abs(r.administered_at - scheduled_at), default=None)

            doses.append(ScheduledDose(
                medication_id=med.id,
                date=on_date,
                slot_time=slot_time,
                slot_label=label,
                scheduled_at=scheduled_at,
                administered=closest is not None,
                administration_id=closest.id if closest else None,
            ))

    # 同一时间的多个药按药品 id 排，保证输出稳定
    return sorted(doses, key=lambda d: (d.slot_time, d.medication_id))
