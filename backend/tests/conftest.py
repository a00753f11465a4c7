"""
Shared fixtures for all tests.

factory-boy factories live here so both unit/ and integration/ can import them.
内存 store 的 fixture 不需要数据库；Django store 的测试需要 @pytest.mark.django_db。
"""
import pytest
from datetime import datetime, timedelta, timezone
from django.test import Client

import factory
from medication.models import Medication, MedicationAdministration
from medication.services import AdministrationService
from medication.store.memory import InMemoryAdministrationStore
from medication.types import FlagSchedule, MedicationData


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

class MedicationFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Medication

    care_plan_id = 'plan-1'
    name = factory.Sequence(lambda n: f'Medication {n}')
    dosage = '10mg'
    instructions = 'Take with water'
    schedule = factory.LazyFunction(lambda: {'morning': True, 'evening': True})


class AdministrationFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = MedicationAdministration

    medication = factory.SubFactory(MedicationFactory)
    administered_at = datetime(2024, 3, 1, 8, 5, tzinfo=timezone.utc)
    administered_by = 'caregiver-a'
    administered_by_role = 'family'
    status = 'administered'


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def at(hour, minute=0, day=1):
    """2024-03-<day> hour:minute UTC"""
    return datetime(2024, 3, day, hour, minute, tzinfo=timezone.utc)


LISINOPRIL = MedicationData(
    id='med-lisinopril',
    care_plan_id='plan-1',
    name='Lisinopril',
    dosage='10mg',
    schedule=FlagSchedule(slots=frozenset({'morning', 'evening'})),
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def api_client():
    """Django test client for integration tests."""
    return Client()


@pytest.fixture
def memory_store():
    return InMemoryAdministrationStore(medications=[LISINOPRIL])


@pytest.fixture
def service(memory_store):
    """内存 store + 默认窗口（冲突 2h，flag 4h，explicit 2h）。"""
    return AdministrationService(store=memory_store)


@pytest.fixture
def lisinopril():
    return LISINOPRIL


@pytest.fixture
def conflict_window():
    return timedelta(hours=2)
