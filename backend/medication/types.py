"""
领域 dataclass — 调度、冲突检测、冲突解决、service 层共同认识的标准格式。

这些结构不依赖 Django ORM：
store 把 ORM 行转成这里的对象，业务层（schedule / conflicts / resolver / services）只消费这些对象。
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta


# ── Schedule ────────────────────────────────────────────────────────────────

FLAG_SLOT_TIMES: dict[str, time] = {
    'morning':   time(8, 0),
    'afternoon': time(13, 0),
    'evening':   time(18, 0),
    'night':     time(22, 0),
}

SCHEDULE_FORM_FLAG = 'flag'
SCHEDULE_FORM_EXPLICIT = 'explicit'


@dataclass(frozen=True)
class FlagSchedule:
    """morning / afternoon / evening / night 开关式排班。"""

    slots: frozenset[str] = frozenset()
    form = SCHEDULE_FORM_FLAG


@dataclass(frozen=True)
class ExplicitSchedule:
    """旧版排班：显式的 "HH:MM" 时间列表。"""

    times: tuple[time, ...] = ()
    form = SCHEDULE_FORM_EXPLICIT


ScheduleSpec = FlagSchedule | ExplicitSchedule


@dataclass(frozen=True)
class MedicationData:
    id: str
    name: str
    schedule: ScheduleSpec
    dosage: str = ""
    instructions: str = ""
    care_plan_id: str = ""


@dataclass(frozen=True)
class MatchWindows:
    """把 dose 标记为已给药时使用的时间容差，按排班形式区分。"""

    flag: timedelta = timedelta(hours=4)
    explicit: timedelta = timedelta(hours=2)

    def for_schedule(self, schedule: ScheduleSpec) -> timedelta:
        if isinstance(schedule, FlagSchedule):
            return self.flag
        return self.explicit


# ── Administration records ─────────────────────────────────────────────────

STATUS_ADMINISTERED = 'administered'
STATUS_MISSED = 'missed'
STATUS_REFUSED = 'refused'
ADMINISTRATION_STATUSES = (STATUS_ADMINISTERED, STATUS_MISSED, STATUS_REFUSED)

METHOD_DUAL_ENTRY = 'dual_entry'
METHOD_OVERRIDE = 'override'
METHOD_CANCEL = 'cancel'


@dataclass(frozen=True)
class AdministrationInput:
    """一次拟写入的给药记录（尚未落库）。"""

    medication_id: str
    administered_at: datetime
    caregiver_id: str
    role: str
    notes: str | None = None
    status: str = STATUS_ADMINISTERED


@dataclass(frozen=True)
class AdministrationRecord:
    """
    已落库的给药记录快照。写入后不可变。

    conflict_of    与之互相标记冲突的记录 id（双向，来自 link 表）
    supersedes     本记录覆盖的旧记录 id
    superseded_by  覆盖本记录的新记录 id（由 store 推导，只读）
    """

    id: str
    medication_id: str
    administered_at: datetime
    administered_by: str
    administered_by_role: str
    status: str = STATUS_ADMINISTERED
    notes: str | None = None
    conflict_of: tuple[str, ...] = ()
    supersedes: str | None = None
    superseded_by: str | None = None
    resolution_method: str | None = None
    resolution_notes: str | None = None
    created_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.superseded_by is None


@dataclass(frozen=True)
class ScheduledDose:
    """某天的一个预期 dose。按需计算，从不持久化。"""

    medication_id: str
    date: date
    slot_time: time
    slot_label: str
    scheduled_at: datetime
    administered: bool = False
    administration_id: str | None = None


@dataclass(frozen=True)
class ConflictCandidate:
    record: AdministrationRecord
    display_role: str


# ── Resolution（封闭的三种策略）───────────────────────────────────────────

@dataclass(frozen=True)
class DualEntry:
    notes: str | None = None
    method = METHOD_DUAL_ENTRY


@dataclass(frozen=True)
class Override:
    notes: str | None = None
    method = METHOD_OVERRIDE


@dataclass(frozen=True)
class Cancel:
    method = METHOD_CANCEL


ResolutionRequest = DualEntry | Override | Cancel
RESOLUTION_TYPES = (DualEntry, Override, Cancel)


# ── Service results ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Recorded:
    """
    写入成功（或 Cancel 明确不写）。

    Cancel 时 records 为空、cancelled=True，是合法终态，不是错误。
    """

    records: tuple[AdministrationRecord, ...] = ()
    cancelled: bool = False

    @property
    def record(self) -> AdministrationRecord | None:
        return self.records[0] if self.records else None


@dataclass(frozen=True)
class ConflictsFound:
    candidates: tuple[ConflictCandidate, ...]
    window: timedelta


@dataclass(frozen=True)
class Failed:
    reason: str
    code: str
    error: Exception | None = field(default=None, repr=False, compare=False)


AdministrationResult = Recorded | ConflictsFound | Failed


@dataclass(frozen=True)
class BatchConflict:
    index: int
    item: AdministrationInput
    candidates: tuple[ConflictCandidate, ...]
    window: timedelta


@dataclass(frozen=True)
class BatchFailure:
    index: int
    item: AdministrationInput
    reason: str
    code: str


@dataclass(frozen=True)
class BatchResult:
    """
    recorded     已写入的记录（按处理顺序）
    conflict     第一个遇到的冲突；None 表示整批处理完
    failures     校验/存储失败的条目（不阻塞后续条目）
    unprocessed  冲突之后未尝试的条目，调用方解决冲突后重新提交
    """

    recorded: tuple[AdministrationRecord, ...] = ()
    conflict: BatchConflict | None = None
    failures: tuple[BatchFailure, ...] = ()
    cancelled: tuple[AdministrationInput, ...] = ()
    unprocessed: tuple[AdministrationInput, ...] = ()

    @property
    def completed(self) -> bool:
        return self.conflict is None
