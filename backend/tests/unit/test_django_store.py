"""
Tests for DjangoAdministrationStore and the append-only models.

需要数据库（@pytest.mark.django_db）。
"""
import uuid
from unittest.mock import patch

import pytest
from django.db import DatabaseError

from medication.exceptions import StorageError
from medication.models import AppendOnlyError, MedicationAdministration
from medication.resolver import build_record
from medication.store.django_store import DjangoAdministrationStore
from medication.types import AdministrationInput, ExplicitSchedule, FlagSchedule
from tests.conftest import AdministrationFactory, MedicationFactory, at


def new_record(medication_id, when, caregiver='caregiver-b', supersedes=None):
    item = AdministrationInput(
        medication_id=str(medication_id),
        administered_at=when,
        caregiver_id=caregiver,
        role='professional',
    )
    return build_record(item, supersedes=supersedes)


@pytest.mark.django_db
class TestAppendOnlyModel:

    def test_update_rejected(self):
        row = AdministrationFactory()
        row.notes = 'edited'

        with pytest.raises(AppendOnlyError):
            row.save()

    def test_delete_rejected(self):
        row = AdministrationFactory()

        with pytest.raises(AppendOnlyError):
            row.delete()
        assert MedicationAdministration.objects.filter(id=row.id).exists()


@pytest.mark.django_db
class TestMedicationCatalog:

    def test_get_medication_parses_flag_schedule(self):
        med = MedicationFactory(schedule={'morning': True, 'evening': True, 'night': False})

        data = DjangoAdministrationStore().get_medication(str(med.id))

        assert data.id == str(med.id)
        assert data.schedule == FlagSchedule(slots=frozenset({'morning', 'evening'}))

    def test_get_medication_parses_explicit_schedule(self):
        med = MedicationFactory(schedule={'times': ['07:30', '19:30']})

        data = DjangoAdministrationStore().get_medication(str(med.id))

        assert isinstance(data.schedule, ExplicitSchedule)
        assert len(data.schedule.times) == 2

    @pytest.mark.parametrize('medication_id', ['not-a-uuid', str(uuid.uuid4())])
    def test_get_medication_unknown_returns_none(self, medication_id):
        assert DjangoAdministrationStore().get_medication(medication_id) is None

    def test_list_medications_by_care_plan(self):
        MedicationFactory(care_plan_id='plan-1', name='B med')
        MedicationFactory(care_plan_id='plan-1', name='A med')
        MedicationFactory(care_plan_id='plan-2')

        meds = DjangoAdministrationStore().list_medications('plan-1')

        assert [m.name for m in meds] == ['A med', 'B med']

    def test_list_medications_skips_unparsable_schedule(self, caplog):
        MedicationFactory(care_plan_id='plan-1', name='Good')
        broken = MedicationFactory(
            care_plan_id='plan-1', name='Broken', schedule={'morning': True, 'times': ['08:00']},
        )

        with caplog.at_level('WARNING', logger='medication.store.django_store'):
            meds = DjangoAdministrationStore().list_medications('plan-1')

        assert [m.name for m in meds] == ['Good']
        assert str(broken.id) in caplog.text
        assert 'AMBIGUOUS_SCHEDULE' in caplog.text


@pytest.mark.django_db
class TestAdministrationRecords:

    def test_append_and_find_active(self):
        med = MedicationFactory()
        store = DjangoAdministrationStore()

        saved = store.append(new_record(med.id, at(8, 5)))
        active = store.find_active(str(med.id), at(0), at(23))

        assert [r.id for r in active] == [saved.id]
        assert saved.is_active
        assert saved.created_at is not None

    def test_find_active_ascending(self):
        med = MedicationFactory()
        store = DjangoAdministrationStore()
        store.append(new_record(med.id, at(10)))
        store.append(new_record(med.id, at(8)))

        active = store.find_active(str(med.id), at(0), at(23))

        assert [r.administered_at for r in active] == [at(8), at(10)]

    def test_superseded_record_excluded_from_active_but_kept_in_history(self):
        med = MedicationFactory()
        store = DjangoAdministrationStore()
        old = store.append(new_record(med.id, at(8)))
        new = store.append(new_record(med.id, at(9), supersedes=old.id))

        active = store.find_active(str(med.id), at(0), at(23))
        history = store.list_administrations(str(med.id), at(0), at(23))

        assert [r.id for r in active] == [new.id]
        assert [r.id for r in history] == [new.id, old.id]
        assert history[1].superseded_by == new.id

    def test_link_conflicts_is_bidirectional(self):
        med = MedicationFactory()
        store = DjangoAdministrationStore()
        first = store.append(new_record(med.id, at(8)))
        second = store.append(new_record(med.id, at(9)))

        store.link_conflicts(second.id, [first.id])
        store.link_conflicts(second.id, [first.id])

        refreshed_second, refreshed_first = store.get_records([second.id, first.id])
        assert refreshed_second.conflict_of == (first.id,)
        assert refreshed_first.conflict_of == (second.id,)

    def test_guard_rolls_back_on_error(self):
        med = MedicationFactory()
        store = DjangoAdministrationStore()

        with pytest.raises(RuntimeError):
            with store.guard(str(med.id)):
                store.append(new_record(med.id, at(8)))
                raise RuntimeError('boom')

        assert store.list_administrations(str(med.id), at(0), at(23)) == []


@pytest.mark.django_db
class TestStorageErrors:

    def test_database_error_wrapped(self):
        med = MedicationFactory()
        store = DjangoAdministrationStore()

        with patch.object(MedicationAdministration.objects, 'filter', side_effect=DatabaseError('connection lost')):
            with pytest.raises(StorageError) as exc_info:
                store.find_active(str(med.id), at(0), at(23))

        assert exc_info.value.code == 'STORAGE_UNAVAILABLE'
        assert exc_info.value.detail == {'operation': 'find_active'}
