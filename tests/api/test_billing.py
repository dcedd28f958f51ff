"""
Tests for the Billing API endpoints.
"""
import pytest
from decimal import Decimal
from fastapi.testclient import TestClient

from src.tutor_billing.core.prepaid import InMemoryPrepaidAccountStore
from src.tutor_billing.models.lessons import Student
from src.tutor_billing.models.prepaid import PrepaidAccount
from src.tutor_billing.models.rates import RateSchedule

from tests.constants import TEST_LEGACY_ACCOUNT_ID, TEST_MONTH, TEST_PARENT_ID
from tests.factories import LessonFactory, PaymentFactory


def as_json(model) -> dict:
    return model.model_dump(mode="json")


class TestHealthCheck:

    def test_root(self, client: TestClient):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestPricingAPI:
    """POST /billing/price"""

    def test_price_tier_lesson(self, client: TestClient, rate_schedule: RateSchedule):
        payload = {
            "lesson": as_json(LessonFactory(subject="piano", duration_min=45)),
            "rate_schedule": as_json(rate_schedule),
        }
        response = client.post("/billing/price", json=payload)

        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["amount"]) == Decimal("50")
        assert data["is_explicit_tier"] is True
        assert data["formula"] == "tier price for 45 min"

    def test_string_tier_keys_from_saved_settings(self, client: TestClient):
        payload = {
            "lesson": as_json(LessonFactory(subject="Piano", duration_min=45)),
            "rate_schedule": {
                "default_rate": "45",
                "default_base_duration": 60,
                "combined_session_rate": "40",
                "subject_rates": {"piano": {"rate": "35", "base_duration": 30, "duration_prices": {"45": "50"}}},
            },
        }
        response = client.post("/billing/price", json=payload)

        assert response.status_code == 200
        assert Decimal(response.json()["amount"]) == Decimal("50")

    def test_unknown_tier_key_is_rejected(self, client: TestClient):
        payload = {
            "lesson": as_json(LessonFactory()),
            "rate_schedule": {
                "default_rate": "45",
                "default_base_duration": 60,
                "combined_session_rate": "40",
                "subject_rates": {"piano": {"rate": "35", "base_duration": 30, "duration_prices": {"50": "55"}}},
            },
        }
        assert client.post("/billing/price", json=payload).status_code == 422

    def test_zero_duration_is_rejected(self, client: TestClient):
        response = client.post("/billing/price", json={"lesson": as_json(LessonFactory(duration_min=0))})

        assert response.status_code == 422
        assert "non-positive duration" in response.json()["detail"]


class TestMonthlyAPI:

    def test_monthly_summary(self, client: TestClient, rate_schedule: RateSchedule, legacy_student: Student):
        lessons = [
            LessonFactory(student=legacy_student, completed=True),
            LessonFactory(student=legacy_student, cancelled=True),
        ]
        payload = {
            "month": TEST_MONTH.isoformat(),
            "lessons": [as_json(lesson) for lesson in lessons],
            "rate_schedule": as_json(rate_schedule),
        }
        response = client.post("/billing/monthly-summary", json=payload)

        assert response.status_code == 200
        data = response.json()
        assert len(data["families"]) == 1
        assert data["families"][0]["parent_id"] == str(TEST_PARENT_ID)
        assert data["totals"]["completed_count"] == 1
        assert data["totals"]["cancelled_count"] == 1
        assert Decimal(data["totals"]["expected_amount"]) == Decimal("45")

    def test_monthly_report_download(self, client: TestClient, rate_schedule: RateSchedule, legacy_student: Student):
        payload = {
            "month": TEST_MONTH.isoformat(),
            "lessons": [as_json(lesson) for lesson in LessonFactory.build_batch(2, student=legacy_student, completed=True)],
            "rate_schedule": as_json(rate_schedule),
        }
        response = client.post("/billing/monthly-report", json=payload)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"] == "attachment; filename=Payment_Report_Oct_2026.csv"
        assert "Expected Revenue,$90.00" in response.text.splitlines()

    def test_draft_invoice(self, client: TestClient, rate_schedule: RateSchedule, legacy_student: Student):
        lesson = LessonFactory(student=legacy_student, completed=True, duration_min=90)
        payload = {
            "parent_id": str(TEST_PARENT_ID),
            "month": TEST_MONTH.isoformat(),
            "lessons": [as_json(lesson)],
            "rate_schedule": as_json(rate_schedule),
        }
        response = client.post("/billing/invoices/draft", json=payload)

        assert response.status_code == 200
        data = response.json()
        assert Decimal(data["amount_due"]) == Decimal("67.50")
        assert data["lines"][0]["lesson_id"] == str(lesson.id)


class TestLessonLifecycleAPI:

    @pytest.fixture
    def prepaid_payment(self, prepaid_store: InMemoryPrepaidAccountStore):
        payment = PaymentFactory(prepaid=True, id=TEST_LEGACY_ACCOUNT_ID, parent_id=TEST_PARENT_ID)
        prepaid_store.register(PrepaidAccount.from_payment(payment))
        return payment

    def test_complete_and_uncomplete(
        self, client: TestClient, prepaid_store: InMemoryPrepaidAccountStore,
        legacy_student: Student, prepaid_payment
    ):
        lesson = LessonFactory(student=legacy_student)
        response = client.post("/billing/lessons/complete", json={
            "lesson": as_json(lesson), "payments": [as_json(prepaid_payment)],
        })

        assert response.status_code == 200
        data = response.json()
        assert data["lesson"]["status"] == "completed"
        assert data["usage"]["sessions_used_after"] == 1
        assert prepaid_store.sessions_used(TEST_LEGACY_ACCOUNT_ID) == 1

        response = client.post("/billing/lessons/uncomplete", json={
            "lesson": data["lesson"], "payments": [as_json(prepaid_payment)],
        })

        assert response.status_code == 200
        assert response.json()["lesson"]["status"] == "scheduled"
        assert prepaid_store.sessions_used(TEST_LEGACY_ACCOUNT_ID) == 0

    def test_completing_a_completed_lesson_conflicts(self, client: TestClient, legacy_student: Student):
        response = client.post("/billing/lessons/complete", json={
            "lesson": as_json(LessonFactory(student=legacy_student, completed=True)),
        })
        assert response.status_code == 409

    def test_unknown_prepaid_account_fails(self, client: TestClient, legacy_student: Student):
        payment = PaymentFactory(prepaid=True, parent_id=TEST_PARENT_ID)
        response = client.post("/billing/lessons/complete", json={
            "lesson": as_json(LessonFactory(student=legacy_student)), "payments": [as_json(payment)],
        })
        assert response.status_code == 500
        assert response.json()["detail"] == "Could not update prepaid sessions. The lesson was not changed."

    def test_cancel(self, client: TestClient, legacy_student: Student):
        response = client.post("/billing/lessons/cancel", json={
            "lesson": as_json(LessonFactory(student=legacy_student)), "reason": "Family holiday",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["lesson"]["status"] == "cancelled"
        assert data["lesson"]["notes"] == "Family holiday"
        assert data["link_removals"] == []
