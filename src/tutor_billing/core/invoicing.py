'''
Invoice drafting, payment status, and lesson status transitions.
Everything here is pure: it returns commands, the caller persists them.
'''
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional
from uuid import UUID

from ..common.config import settings
from ..common.exceptions import LessonTransitionError
from ..common.logger import log
from ..database.db_enums import LessonStatus, PaymentStatus
from ..models.invoices import InvoiceDraft, InvoiceLine, PaymentLinkRemoval
from ..models.lessons import Lesson, Payment, month_start
from ..models.rates import RateSchedule
from .pricing import PriceResolver
from .prepaid import PrepaidLedger
from .summary import combined_session_ids

CENT = Decimal("0.01")


def round_cents(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def payment_status_for(amount_due: Decimal, amount_paid: Decimal) -> PaymentStatus:
    """paid once the amount due is covered, partial for any payment short of it."""
    if amount_paid >= amount_due:
        return PaymentStatus.PAID
    if amount_paid > 0:
        return PaymentStatus.PARTIAL
    return PaymentStatus.UNPAID


# --- 1. Quick Invoice ---

def draft_invoice(
    parent_id: UUID,
    month: date,
    lessons: Iterable[Lesson],
    rate_schedule: RateSchedule,
    payments: Iterable[Payment] = (),
    ledger: Optional[PrepaidLedger] = None,
    solo_session_is_combined: Optional[bool] = None
) -> InvoiceDraft:
    """
    Drafts an invoice for a family's completed lessons in `month` that are
    not yet linked to a payment and not covered by a prepaid account.
    Line amounts are rounded to cents here because they become stored money.
    """
    month = month_start(month)
    lessons = list(lessons)
    if solo_session_is_combined is None:
        solo_session_is_combined = settings.SOLO_SESSION_IS_COMBINED
    already_linked: set[UUID] = set()
    for payment in payments:
        already_linked |= payment.linked_lesson_ids()

    # Orphaned and other-month lessons never make a partner combined
    in_month = [lesson for lesson in lessons if lesson.parent is not None and lesson.month == month]
    combined_ids = combined_session_ids(in_month, solo_session_is_combined)
    resolver = PriceResolver(rate_schedule)

    lines: list[InvoiceLine] = []
    for lesson in in_month:
        if lesson.parent_id != parent_id:
            continue
        if lesson.status != LessonStatus.COMPLETED or lesson.id in already_linked:
            continue
        if ledger is not None and ledger.plan_usage(lesson, 1) is not None:
            continue
        price = resolver.resolve(lesson, lesson.session_id in combined_ids)
        lines.append(InvoiceLine(
            lesson_id=lesson.id,
            amount=round_cents(price.amount),
            formula=price.formula,
        ))

    log.info(f"Drafted invoice for parent {parent_id}, {month:%Y-%m}: {len(lines)} lesson(s).")
    return InvoiceDraft(parent_id=parent_id, month=month, lines=lines)


# --- 2. Lesson Status Transitions ---

def mark_completed(lesson: Lesson) -> Lesson:
    if lesson.status != LessonStatus.SCHEDULED:
        raise LessonTransitionError(
            f"Only scheduled lessons can be completed; lesson {lesson.id} is {lesson.status.value}."
        )
    return lesson.model_copy(update={"status": LessonStatus.COMPLETED})


def mark_uncompleted(lesson: Lesson) -> Lesson:
    if lesson.status != LessonStatus.COMPLETED:
        raise LessonTransitionError(
            f"Only completed lessons can be reverted; lesson {lesson.id} is {lesson.status.value}."
        )
    return lesson.model_copy(update={"status": LessonStatus.SCHEDULED})


def mark_cancelled(lesson: Lesson, reason: Optional[str] = None) -> Lesson:
    """Cancelling an already-cancelled lesson returns it unchanged."""
    if lesson.status == LessonStatus.CANCELLED:
        return lesson
    return lesson.model_copy(update={
        "status": LessonStatus.CANCELLED,
        "notes": reason or "Lesson cancelled",
    })


def cancellation_cleanup(lesson_id: UUID, payments: Iterable[Payment]) -> list[PaymentLinkRemoval]:
    """
    Unlinks a cancelled lesson from every payment that bills it and reduces
    those payments' amount due. Running it against a lesson with no links
    returns an empty list.
    """
    removals: list[PaymentLinkRemoval] = []
    for payment in payments:
        for link in payment.lessons:
            if link.lesson_id != lesson_id:
                continue
            new_amount_due = max(round_cents(payment.amount_due - link.amount), Decimal("0"))
            removals.append(PaymentLinkRemoval(
                payment_id=payment.id,
                lesson_id=lesson_id,
                amount_removed=link.amount,
                new_amount_due=new_amount_due,
                new_status=payment_status_for(new_amount_due, payment.amount_paid),
            ))
    if removals:
        log.info(f"Lesson {lesson_id} unlinked from {len(removals)} payment(s).")
    return removals


def cancel_lesson(
    lesson: Lesson,
    payments: Iterable[Payment],
    reason: Optional[str] = None
) -> tuple[Lesson, list[PaymentLinkRemoval]]:
    """Cancels a lesson and returns the payment unlinks its cancellation requires."""
    cancelled = mark_cancelled(lesson, reason)
    return cancelled, cancellation_cleanup(lesson.id, payments)


def apply_link_removals(payments: Iterable[Payment], removals: Iterable[PaymentLinkRemoval]) -> list[Payment]:
    """
    Returns the payment snapshot with the removals applied. Each removal's
    `new_amount_due` is computed against the untouched payment, so several
    removals on one payment are summed here instead.
    """
    by_payment: dict[UUID, list[PaymentLinkRemoval]] = {}
    for removal in removals:
        by_payment.setdefault(removal.payment_id, []).append(removal)

    updated: list[Payment] = []
    for payment in payments:
        changes = by_payment.get(payment.id)
        if not changes:
            updated.append(payment)
            continue
        removed_ids = {change.lesson_id for change in changes}
        removed_amount = sum((change.amount_removed for change in changes), Decimal("0"))
        amount_due = max(round_cents(payment.amount_due - removed_amount), Decimal("0"))
        updated.append(payment.model_copy(update={
            "lessons": [link for link in payment.lessons if link.lesson_id not in removed_ids],
            "amount_due": amount_due,
            "status": payment_status_for(amount_due, payment.amount_paid),
        }))
    return updated
