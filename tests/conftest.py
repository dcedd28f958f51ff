'''
Pytest configuration for the billing engine.

This file sets up fixtures for:
1. Forcing the application into TEST_MODE before any app code is imported.
2. The rate schedule and family records most tests price against.
3. An in-memory prepaid store, swapped in for the SQL store in API tests.
4. A FastAPI TestClient for endpoint testing.
'''
import os

# Must happen before the settings object is created on import.
os.environ["TEST_MODE"] = "True"

import pytest
from fastapi.testclient import TestClient

from src.tutor_billing.main import app
from src.tutor_billing.common.config import settings
from src.tutor_billing.core.prepaid import InMemoryPrepaidAccountStore
from src.tutor_billing.models.lessons import Parent, Student
from src.tutor_billing.models.rates import RateSchedule, SubjectRateConfig
from src.tutor_billing.services.billing_service import BillingService, LessonLifecycleService
from src.tutor_billing.services.prepaid_store import SqlPrepaidAccountStore

from tests.constants import (
    TEST_COMBINED_RATE,
    TEST_DEFAULT_BASE_DURATION,
    TEST_DEFAULT_RATE,
    TEST_PARENT_ID,
    TEST_PARENT_NAME,
    TEST_PIANO_45_PRICE,
    TEST_PIANO_BASE_DURATION,
    TEST_PIANO_RATE,
    TEST_STUDENT_ID,
    TEST_STUDENT_NAME,
    TEST_TUTOR_ID,
)


@pytest.fixture(scope="session")
def anyio_backend():
    """
    Override the default 'anyio_backend' fixture.
    1. Forces the backend to 'asyncio'.
    2. Promotes the scope to 'session'.
    """
    return "asyncio"


# --- 1. Rate Fixtures ---

@pytest.fixture(scope="function")
def rate_schedule() -> RateSchedule:
    """$45/60min default, $40 combined, piano at $35/30min with a $50 45-minute tier."""
    return RateSchedule(
        tutor_id=TEST_TUTOR_ID,
        default_rate=TEST_DEFAULT_RATE,
        default_base_duration=TEST_DEFAULT_BASE_DURATION,
        combined_session_rate=TEST_COMBINED_RATE,
        subject_rates={
            "Piano": SubjectRateConfig(
                rate=TEST_PIANO_RATE,
                base_duration=TEST_PIANO_BASE_DURATION,
                duration_prices={"45": TEST_PIANO_45_PRICE},
            ),
        },
    )


# --- 2. Family Fixtures ---

@pytest.fixture(scope="function")
def legacy_parent() -> Parent:
    """A family with no per-subject prepaid list."""
    return Parent(id=TEST_PARENT_ID, name=TEST_PARENT_NAME, prepaid_subjects=[])


@pytest.fixture(scope="function")
def per_subject_parent() -> Parent:
    """The same family after switching to per-subject prepaid billing (piano only)."""
    return Parent(id=TEST_PARENT_ID, name=TEST_PARENT_NAME, prepaid_subjects=["Piano"])


@pytest.fixture(scope="function")
def legacy_student(legacy_parent: Parent) -> Student:
    return Student(id=TEST_STUDENT_ID, name=TEST_STUDENT_NAME, parent=legacy_parent)


@pytest.fixture(scope="function")
def per_subject_student(per_subject_parent: Parent) -> Student:
    return Student(id=TEST_STUDENT_ID, name=TEST_STUDENT_NAME, parent=per_subject_parent)


# --- 3. Service Fixtures ---

@pytest.fixture(scope="function")
def prepaid_store() -> InMemoryPrepaidAccountStore:
    return InMemoryPrepaidAccountStore()


@pytest.fixture(scope="function")
def billing_service() -> BillingService:
    return BillingService()


@pytest.fixture(scope="function")
def lifecycle_service(prepaid_store: InMemoryPrepaidAccountStore) -> LessonLifecycleService:
    return LessonLifecycleService(prepaid_store=prepaid_store)


# --- 4. API Client ---

@pytest.fixture(scope="function")
def client(prepaid_store: InMemoryPrepaidAccountStore) -> TestClient:
    """
    Runs the app's lifespan and swaps the SQL prepaid store for the
    in-memory one, so no database is needed.
    """
    assert settings.TEST_MODE is True, \
        "TEST_MODE was not set to True! Check your .env file or environment."

    app.dependency_overrides[SqlPrepaidAccountStore] = lambda: prepaid_store

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
