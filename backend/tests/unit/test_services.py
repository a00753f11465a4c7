"""
Unit tests for AdministrationService.record_administration / list_administrations / scheduled_doses.

用内存 store，不需要数据库。覆盖状态机的每条边：
1. 无冲突 → Recorded
2. 有冲突、无 resolution → ConflictsFound（只含第一条记录）
3. DualEntry / Override → Recorded
4. Cancel → Recorded(cancelled=True)，store 不变
5. 校验失败 / 药品不存在 / 存储故障 / 非法 resolution → Failed（不抛异常）
"""
import uuid

import pytest
from datetime import date, timedelta, timezone
from unittest.mock import patch

from medication.exceptions import StorageError
from medication.services import AdministrationService
from medication.types import (
    Cancel,
    ConflictsFound,
    DualEntry,
    Failed,
    Override,
    Recorded,
)
from tests.conftest import at


def record_a(service, when=None, **kwargs):
    return service.record_administration('med-lisinopril', when or at(8, 5), 'caregiver-a', 'family', **kwargs)


def record_b(service, when=None, **kwargs):
    return service.record_administration('med-lisinopril', when or at(9, 40), 'caregiver-b', 'professional', **kwargs)


class TestRecordAdministration:

    def test_no_conflict_records(self, service):
        result = record_a(service, notes='after breakfast')

        assert isinstance(result, Recorded)
        assert result.cancelled is False
        assert result.record.administered_by == 'caregiver-a'
        assert result.record.notes == 'after breakfast'

    def test_second_caregiver_gets_conflict_with_first_record(self, service):
        first = record_a(service)

        second = record_b(service)

        assert isinstance(second, ConflictsFound)
        assert [c.record.id for c in second.candidates] == [first.record.id]
        assert second.window == timedelta(hours=2)

    def test_conflict_report_writes_nothing(self, service, memory_store):
        record_a(service)
        record_b(service)

        assert len(memory_store.list_administrations('med-lisinopril', at(0), at(23))) == 1

    def test_outside_window_no_conflict(self, service):
        record_a(service, when=at(8, 0))
        assert isinstance(record_b(service, when=at(18, 0)), Recorded)

    def test_dual_entry_resolution(self, service, memory_store):
        first = record_a(service)

        result = record_b(service, resolution=DualEntry(notes='confirmed with family'))

        assert isinstance(result, Recorded)
        new, old = result.records
        assert new.conflict_of == (first.record.id,)
        assert old.conflict_of == (new.id,)
        active = memory_store.find_active('med-lisinopril', at(0), at(23))
        assert {r.id for r in active} == {first.record.id, new.id}

    def test_override_resolution(self, service, memory_store):
        first = record_a(service)

        result = record_b(service, resolution=Override(notes='first entry was a mistake'))

        assert isinstance(result, Recorded)
        assert result.record.supersedes == first.record.id
        active = memory_store.find_active('med-lisinopril', at(0), at(23))
        assert [r.id for r in active] == [result.record.id]

    def test_cancel_resolution_leaves_store_unchanged(self, service, memory_store):
        record_a(service)
        before = memory_store.list_administrations('med-lisinopril', at(0), at(23))

        result = record_b(service, resolution=Cancel())

        assert isinstance(result, Recorded)
        assert result.cancelled is True
        assert result.records == ()
        assert memory_store.list_administrations('med-lisinopril', at(0), at(23)) == before

    def test_resolution_without_conflict_records_plainly(self, service):
        result = record_a(service, resolution=DualEntry())

        assert isinstance(result, Recorded)
        assert result.record.conflict_of == ()
        assert result.record.resolution_method is None

    def test_same_caregiver_is_conflict_by_default(self, service):
        record_a(service, when=at(8, 0))
        assert isinstance(record_a(service, when=at(8, 30)), ConflictsFound)

    def test_exclude_same_caregiver(self, memory_store):
        service = AdministrationService(store=memory_store, exclude_same_caregiver=True)
        record_a(service, when=at(8, 0))

        assert isinstance(record_a(service, when=at(8, 30)), Recorded)
        assert isinstance(record_b(service, when=at(8, 45)), ConflictsFound)

    def test_custom_conflict_window(self, memory_store):
        service = AdministrationService(store=memory_store, conflict_window=timedelta(hours=4))
        record_a(service, when=at(8, 0))

        result = record_b(service, when=at(11, 30))

        assert isinstance(result, ConflictsFound)
        assert result.window == timedelta(hours=4)

    def test_missed_status_skips_conflict_detection(self, service):
        record_a(service, when=at(8, 0))

        result = record_b(service, when=at(8, 10), status='missed')

        assert isinstance(result, Recorded)
        assert result.record.status == 'missed'


class TestRecordAdministrationFailures:

    def test_unknown_medication(self, service):
        result = service.record_administration('nope', at(8), 'caregiver-a', 'family')

        assert isinstance(result, Failed)
        assert result.code == 'MEDICATION_NOT_FOUND'

    @pytest.mark.parametrize('kwargs, field', [
        ({'medication_id': ''}, 'medication_id'),
        ({'caregiver_id': ''}, 'caregiver_id'),
        ({'role': ' '}, 'role'),
        ({'administered_at': '2024-03-01T08:00'}, 'administered_at'),
        ({'administered_at': at(8).replace(tzinfo=None)}, 'administered_at'),
        ({'status': 'spilled'}, 'status'),
    ])
    def test_validation_failures(self, service, memory_store, kwargs, field):
        params = {
            'medication_id': 'med-lisinopril',
            'administered_at': at(8),
            'caregiver_id': 'caregiver-a',
            'role': 'family',
            **kwargs,
        }

        with patch.object(memory_store, 'get_medication', wraps=memory_store.get_medication) as lookup:
            result = service.record_administration(**params)

        assert isinstance(result, Failed)
        assert result.code == 'VALIDATION_ERROR'
        assert field in [e['field'] for e in result.error.detail['errors']]
        lookup.assert_not_called()

    def test_invalid_resolution_is_failed_not_raised(self, service):
        record_a(service)

        result = record_b(service, resolution='override')

        assert isinstance(result, Failed)
        assert result.code == 'INVALID_RESOLUTION'

    def test_storage_error_on_write(self, service, memory_store):
        with patch.object(memory_store, 'append', side_effect=StorageError('database down')):
            result = record_a(service)

        assert isinstance(result, Failed)
        assert result.code == 'STORAGE_UNAVAILABLE'
        assert memory_store.list_administrations('med-lisinopril', at(0), at(23)) == []

    def test_storage_error_during_dual_entry_rolls_back(self, service, memory_store):
        record_a(service)

        with patch.object(memory_store, 'link_conflicts', side_effect=StorageError('database down')):
            result = record_b(service, resolution=DualEntry())

        assert isinstance(result, Failed)
        # 新记录已回滚，只剩第一条
        assert len(memory_store.list_administrations('med-lisinopril', at(0), at(23))) == 1

    def test_retry_after_storage_error_redetects(self, service, memory_store):
        record_a(service)
        with patch.object(memory_store, 'find_active', side_effect=StorageError('timeout')):
            assert isinstance(record_b(service), Failed)

        assert isinstance(record_b(service), ConflictsFound)

    @pytest.mark.parametrize('window', [timedelta(0), timedelta(minutes=-5)])
    def test_non_positive_window_rejected(self, memory_store, window):
        service = AdministrationService(store=memory_store, conflict_window=window)
        assert service.conflict_window == window

        result = record_a(service)

        assert isinstance(result, Failed)
        assert result.code == 'INVALID_WINDOW'


class TestListAdministrations:

    def test_history_newest_first_includes_superseded(self, service):
        first = record_a(service, when=at(8, 0))
        record_b(service, when=at(9, 0), resolution=Override())

        history = service.list_administrations('med-lisinopril', at(0), at(23))

        assert [r.administered_at for r in history] == [at(9, 0), at(8, 0)]
        assert history[1].id == first.record.id
        assert history[1].is_active is False

    def test_range_filter(self, service):
        record_a(service, when=at(8, 0))
        record_a(service, when=at(8, 0, day=2))

        assert len(service.list_administrations('med-lisinopril', at(0, day=2), at(23, day=2))) == 1

    def test_inverted_range_rejected(self, service):
        from medication.exceptions import ValidationError

        with pytest.raises(ValidationError) as exc_info:
            service.list_administrations('med-lisinopril', at(23), at(0))
        assert exc_info.value.code == 'INVALID_DATE_RANGE'


class TestScheduledDoses:

    def test_lisinopril_example_scenario(self, service):
        """A 08:05 记录 → morning 已给药；B 09:40 冲突 → DualEntry → 两条记录互相引用。"""
        first = record_a(service, when=at(8, 5))

        doses = service.scheduled_doses('plan-1', date(2024, 3, 1), tz=timezone.utc)
        assert [(d.slot_label, d.administered) for d in doses] == [('morning', True), ('evening', False)]

        conflict = record_b(service, when=at(9, 40))
        assert isinstance(conflict, ConflictsFound)
        assert [c.record.id for c in conflict.candidates] == [first.record.id]

        resolved = record_b(service, when=at(9, 40), resolution=DualEntry(notes='confirmed with family'))
        new, old = resolved.records
        assert {new.administered_at, old.administered_at} == {at(8, 5), at(9, 40)}
        assert new.conflict_of == (old.id,) and old.conflict_of == (new.id,)

    def test_unknown_care_plan_has_no_doses(self, service):
        assert service.scheduled_doses('plan-unknown', date(2024, 3, 1)) == []

    def test_early_record_counts_for_morning_slot(self, service):
        # 04:30 距 morning 08:00 3.5 小时，在 flag 4h 窗口内
        record_a(service, when=at(4, 30))

        doses = service.scheduled_doses('plan-1', date(2024, 3, 1))

        assert doses[0].slot_label == 'morning'
        assert doses[0].administered is True

    def test_previous_day_record_ignored(self, service):
        record_a(service, when=at(23, 30) - timedelta(days=1))

        doses = service.scheduled_doses('plan-1', date(2024, 3, 1))

        assert doses[0].administered is False


class TestCaregiverIdentity:

    def test_integer_caregiver_id_recorded_as_text(self, service):
        result = service.record_administration('med-lisinopril', at(8), 42, 'family')

        assert isinstance(result, Recorded)
        assert result.record.administered_by == '42'

    def test_integer_caregiver_id_matches_own_records(self, memory_store):
        service = AdministrationService(store=memory_store, exclude_same_caregiver=True)
        service.record_administration('med-lisinopril', at(8), 42, 'family')

        assert isinstance(service.record_administration('med-lisinopril', at(8, 30), '42', 'family'), Recorded)

    @pytest.mark.parametrize('caregiver_id, role, field', [
        (None, 'family', 'caregiver_id'),
        ('caregiver-a', None, 'role'),
        (uuid.UUID('6f1c2a34-0000-4000-8000-000000000042'), 'professional', None),
    ])
    def test_odd_identity_values_never_raise(self, service, caregiver_id, role, field):
        result = service.record_administration('med-lisinopril', at(8), caregiver_id, role)

        if field is None:
            assert isinstance(result, Recorded)
        else:
            assert isinstance(result, Failed)
            assert field in [e['field'] for e in result.error.detail['errors']]

    def test_zero_match_windows_kept(self, memory_store):
        from medication.types import MatchWindows

        windows = MatchWindows(flag=timedelta(0), explicit=timedelta(0))
        service = AdministrationService(store=memory_store, match_windows=windows)

        assert service.match_windows is windows
