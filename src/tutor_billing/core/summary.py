'''
This file builds the monthly lesson summary: every lesson of the month priced,
bucketed by status and payment state, and grouped by family.
'''
from collections import Counter
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from ..common.config import settings
from ..common.logger import log
from ..database.db_enums import LessonPaymentStatus, LessonStatus
from ..models.lessons import Lesson, Payment, month_start
from ..models.rates import RateSchedule
from ..models.summaries import (
    FamilyLessonSummary,
    LessonDetail,
    MonthlyLessonSummary,
    SummaryTotals,
)
from .pricing import PriceResolver
from .prepaid import PrepaidLedger


def combined_session_ids(
    lessons: Iterable[Lesson],
    solo_session_is_combined: bool = False
) -> set[UUID]:
    """
    Session ids that count as combined sessions. A session is combined when
    two or more lessons share its id; with `solo_session_is_combined`, any
    non-null session id counts.
    """
    counts = Counter(lesson.session_id for lesson in lessons if lesson.session_id is not None)
    if solo_session_is_combined:
        return set(counts)
    return {session_id for session_id, count in counts.items() if count >= 2}


class MonthlySummaryAggregator:
    """
    Aggregates one calendar month of lessons into per-family summaries.

    Dependencies are explicit: the tutor's RateSchedule, the month, and an
    optional PrepaidLedger used to tell prepaid lessons apart from lessons
    that are ready to invoice. `aggregate` reads only its arguments.
    """
    def __init__(
        self,
        rate_schedule: RateSchedule,
        month: date,
        ledger: Optional[PrepaidLedger] = None,
        solo_session_is_combined: Optional[bool] = None
    ):
        self.resolver = PriceResolver(rate_schedule)
        self.month = month_start(month)
        self.ledger = ledger
        if solo_session_is_combined is None:
            solo_session_is_combined = settings.SOLO_SESSION_IS_COMBINED
        self.solo_session_is_combined = solo_session_is_combined

    def aggregate(self, lessons: Iterable[Lesson], payments: Iterable[Payment]) -> MonthlyLessonSummary:
        lessons = list(lessons)
        payments = [p for p in payments if month_start(p.month) == self.month]
        log.info(
            f"Aggregating {len(lessons)} lesson(s) and {len(payments)} payment(s) "
            f"for {self.month:%Y-%m}."
        )

        # --- 1. Payment lookups ---
        payment_by_lesson: dict[UUID, Payment] = {}
        payments_by_parent: dict[UUID, list[Payment]] = {}
        for payment in payments:
            payments_by_parent.setdefault(payment.parent_id, []).append(payment)
            for link in payment.lessons:
                payment_by_lesson[link.lesson_id] = payment

        # --- 2. Drop orphaned and out-of-month lessons ---
        kept: list[Lesson] = []
        skipped: list[UUID] = []
        for lesson in lessons:
            if lesson.parent is None:
                log.warning(f"OrphanedLessonSkipped: lesson {lesson.id} has no student or parent record.")
                skipped.append(lesson.id)
                continue
            if lesson.month != self.month:
                log.warning(
                    f"Lesson {lesson.id} is scheduled in {lesson.month:%Y-%m}, "
                    f"not {self.month:%Y-%m}; leaving it out."
                )
                skipped.append(lesson.id)
                continue
            kept.append(lesson)

        combined_ids = combined_session_ids(kept, self.solo_session_is_combined)

        # --- 3. Walk lessons into families ---
        families: dict[UUID, FamilyLessonSummary] = {}
        seen_sessions: dict[UUID, set[UUID]] = {}

        for lesson in kept:
            parent = lesson.parent
            family = families.get(parent.id)
            if family is None:
                family = FamilyLessonSummary(parent_id=parent.id, parent_name=parent.name)
                families[parent.id] = family

            is_combined = lesson.session_id in combined_ids
            price = self.resolver.resolve(lesson, is_combined)
            payment = payment_by_lesson.get(lesson.id)
            payment_status = self._payment_status(lesson, payment)

            family.lessons.append(LessonDetail(
                id=lesson.id,
                student_id=lesson.student_id,
                student_name=lesson.student.name if lesson.student else "Unknown",
                subject=lesson.subject,
                scheduled_at=lesson.scheduled_at,
                duration_min=lesson.duration_min,
                status=lesson.status,
                payment_status=payment_status,
                session_id=lesson.session_id,
                is_combined_session=is_combined,
                override_amount=lesson.override_amount,
                amount=price.amount,
                formula=price.formula,
                is_explicit_tier=price.is_explicit_tier,
                rate=price.rate,
                base_duration=price.base_duration,
                rate_display=price.rate_display,
            ))

            if is_combined:
                sessions = seen_sessions.setdefault(parent.id, set())
                if lesson.session_id not in sessions:
                    sessions.add(lesson.session_id)
                    family.combined_session_count += 1
                family.combined_session_amount += price.amount

            self._bucket(family, lesson, price.amount, payment_status)

        # --- 4. Amounts taken from the payments themselves ---
        for parent_id, family in families.items():
            for payment in payments_by_parent.get(parent_id, []):
                family.collected_amount += payment.amount_paid
                if not payment.is_paid:
                    family.invoiced_amount += payment.amount_due
            family.lessons.sort(key=lambda detail: detail.scheduled_at)

        # --- 5. Totals ---
        totals = SummaryTotals()
        for family in families.values():
            totals.add(family.totals_only())

        return MonthlyLessonSummary(
            month=self.month,
            families=list(families.values()),
            totals=totals,
            skipped_lesson_ids=skipped,
        )

    def _payment_status(self, lesson: Lesson, payment: Optional[Payment]) -> LessonPaymentStatus:
        if payment is not None:
            return LessonPaymentStatus.PAID if payment.is_paid else LessonPaymentStatus.INVOICED
        if lesson.status == LessonStatus.COMPLETED and self.ledger is not None:
            parent = lesson.parent
            ref = self.ledger.should_consume_prepaid(
                parent.id, lesson.month, lesson.subject, parent.prepaid_subjects
            )
            if ref is not None:
                return LessonPaymentStatus.PREPAID
        return LessonPaymentStatus.NONE

    @staticmethod
    def _bucket(
        family: FamilyLessonSummary,
        lesson: Lesson,
        amount: Decimal,
        payment_status: LessonPaymentStatus
    ) -> None:
        """Counts the lesson in exactly one bucket."""
        if lesson.status == LessonStatus.CANCELLED:
            family.cancelled_count += 1
            return

        family.expected_amount += amount
        if lesson.status == LessonStatus.SCHEDULED:
            family.scheduled_count += 1
        elif payment_status == LessonPaymentStatus.PAID:
            family.paid_count += 1
        elif payment_status == LessonPaymentStatus.INVOICED:
            family.invoiced_count += 1
        elif payment_status == LessonPaymentStatus.PREPAID:
            family.prepaid_count += 1
        else:
            family.completed_count += 1
            family.billable_amount += amount


def aggregate(
    lessons: Iterable[Lesson],
    rate_schedule: RateSchedule,
    payments: Iterable[Payment],
    month: date,
    ledger: Optional[PrepaidLedger] = None
) -> MonthlyLessonSummary:
    """Functional entry point for MonthlySummaryAggregator."""
    return MonthlySummaryAggregator(rate_schedule, month, ledger=ledger).aggregate(lessons, payments)
