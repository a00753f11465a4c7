"""
BaseAdministrationStore — 给药记录存储的抽象基类。

给药日志只追加（append-only）：
- 记录写入后不可修改、不可删除
- "覆盖" 通过新记录的 supersedes 表达，旧记录保留
- 双向冲突标记写在独立的 link 关系里，不改动已有记录

guard(medication_id) 是整个子系统最关键的正确性保证：
service 在 guard 内完成 "检测冲突 → 写入"，两个并发请求对同一药品必须串行，
否则两边都看不到对方，产生未被检测到的重复给药。

新增存储实现只需：
1. 继承 BaseAdministrationStore
2. 实现所有抽象方法
3. 在 factory.py 的 _build_registry 注册一行
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import datetime

from ..types import AdministrationRecord, MedicationData


class BaseAdministrationStore(ABC):

    # ── 药品目录（只读，外部协作方维护）─────────────────────────────────────

    @abstractmethod
    def get_medication(self, medication_id: str) -> MedicationData | None:
        """按 id 取药品；不存在返回 None。"""

    @abstractmethod
    def list_medications(self, care_plan_id: str) -> list[MedicationData]:
        """某个 care plan 下的全部药品，按名称排序。"""

    # ── 给药记录 ─────────────────────────────────────────────────────────────

    @abstractmethod
    def find_active(self, medication_id: str, start: datetime, end: datetime) -> list[AdministrationRecord]:
        """
        [start, end] 闭区间内、尚未被覆盖的记录，按 administered_at 升序。
        不区分 status，由调用方过滤。
        """

    @abstractmethod
    def list_administrations(self, medication_id: str, start: datetime, end: datetime) -> list[AdministrationRecord]:
        """审计用：区间内全部记录（含已被覆盖的），按 administered_at 降序。"""

    @abstractmethod
    def get_records(self, record_ids: list[str]) -> list[AdministrationRecord]:
        """按 id 批量取记录（返回顺序与 record_ids 一致，缺失的跳过）。"""

    @abstractmethod
    def append(self, record: AdministrationRecord) -> AdministrationRecord:
        """
        追加一条记录。record.supersedes 指向的记录从此不再是 active。

        Raises:
            StorageError: 写入失败
        """

    @abstractmethod
    def link_conflicts(self, record_id: str, conflicting_ids: list[str]) -> None:
        """在 record_id 与每个 conflicting_id 之间建立双向冲突标记。"""

    @abstractmethod
    def guard(self, medication_id: str) -> AbstractContextManager:
        """
        针对单个药品的事务 + 互斥区。

        进入后读到的数据与退出前写入的数据之间不会插入其他请求的写入；
        块内抛异常时，块内的写入全部回滚。
        """
