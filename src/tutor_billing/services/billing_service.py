'''
Services behind the billing API. They turn request snapshots into engine
calls and translate engine errors into HTTP errors.
'''
from typing import Annotated, Awaitable, Optional

from fastapi import Depends, HTTPException, status

from ..common.exceptions import (
    InvalidRateInput,
    LessonTransitionError,
    PrepaidLedgerError,
    ReportExportError,
)
from ..common.logger import log
from ..core.export import ReportExporter, report_filename
from ..core.invoicing import cancel_lesson, draft_invoice, mark_completed, mark_uncompleted
from ..core.prepaid import PrepaidAccountStore, PrepaidLedger
from ..core.pricing import resolve_price
from ..core.summary import MonthlySummaryAggregator
from ..database.db_enums import LessonStatus
from ..models.invoices import InvoiceDraft, LessonTransitionResult
from ..models.lessons import Lesson, Parent, Payment
from ..models.prepaid import UsageAdjustment
from ..models.requests import (
    InvoiceDraftRequest,
    LessonTransitionRequest,
    MonthlySummaryRequest,
    PriceRequest,
)
from ..models.summaries import MonthlyLessonSummary, PriceResolution
from .prepaid_store import SqlPrepaidAccountStore


def _families_of(lessons: list[Lesson], parents: list[Parent]) -> list[Parent]:
    """Explicit parents first, then any parent reachable through a lesson."""
    families = {parent.id: parent for parent in parents}
    for lesson in lessons:
        parent = lesson.parent
        if parent is not None and parent.id not in families:
            families[parent.id] = parent
    return list(families.values())


# --- Service 1: Pricing, Summaries, Reports and Invoices ---

class BillingService:
    """
    Read-only billing computations. Nothing here writes anywhere, so the
    service has no database dependency.
    """

    def price_lesson(self, request: PriceRequest) -> PriceResolution:
        try:
            return resolve_price(request.lesson, request.rate_schedule, request.is_combined_session)
        except InvalidRateInput as e:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    def monthly_summary(self, request: MonthlySummaryRequest) -> MonthlyLessonSummary:
        ledger = PrepaidLedger.from_payments(
            _families_of(request.lessons, request.parents),
            request.payments,
        )
        aggregator = MonthlySummaryAggregator(request.rate_schedule, request.month, ledger=ledger)
        try:
            return aggregator.aggregate(request.lessons, request.payments)
        except InvalidRateInput as e:
            log.warning(f"Monthly summary for {request.month:%Y-%m} rejected: {e}")
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    def monthly_report(self, request: MonthlySummaryRequest) -> tuple[str, str]:
        """Returns (filename, csv text) for the month's payment report."""
        summary = self.monthly_summary(request)
        try:
            content = ReportExporter().to_csv(summary, request.payments, request.month)
        except ReportExportError as e:
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
        return report_filename(summary.month), content

    def draft_invoice(self, request: InvoiceDraftRequest) -> InvoiceDraft:
        ledger = PrepaidLedger.from_payments(
            _families_of(request.lessons, request.parents),
            request.payments,
        )
        try:
            return draft_invoice(
                request.parent_id,
                request.month,
                request.lessons,
                request.rate_schedule,
                request.payments,
                ledger=ledger,
            )
        except InvalidRateInput as e:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


# --- Service 2: Lesson Status Transitions ---

class LessonLifecycleService:
    """
    Pairs each lesson status change with its prepaid usage change.
    If the prepaid write fails the request fails, and the request's
    database session rolls back with it.
    """
    def __init__(
        self,
        prepaid_store: Annotated[PrepaidAccountStore, Depends(SqlPrepaidAccountStore)]
    ):
        self.prepaid_store = prepaid_store

    def _ledger_for(self, lesson: Lesson, payments: list[Payment]) -> PrepaidLedger:
        return PrepaidLedger.from_payments(_families_of([lesson], []), payments, store=self.prepaid_store)

    async def complete_lesson(self, request: LessonTransitionRequest) -> LessonTransitionResult:
        try:
            completed = mark_completed(request.lesson)
        except LessonTransitionError as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

        usage = await self._apply_prepaid(
            self._ledger_for(completed, request.payments).record_completion(completed)
        )
        log.info(f"Completed {completed}.")
        return LessonTransitionResult(lesson=completed, usage=usage)

    async def uncomplete_lesson(self, request: LessonTransitionRequest) -> LessonTransitionResult:
        try:
            reverted = mark_uncompleted(request.lesson)
        except LessonTransitionError as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

        usage = await self._apply_prepaid(
            self._ledger_for(request.lesson, request.payments).reverse_completion(request.lesson)
        )
        log.info(f"Reverted completion of {reverted}.")
        return LessonTransitionResult(lesson=reverted, usage=usage)

    async def cancel_lesson(self, request: LessonTransitionRequest) -> LessonTransitionResult:
        """
        Cancels a lesson and unlinks it from any payment billing it.
        A completed lesson also gives back the prepaid session it drew.
        """
        cancelled, removals = cancel_lesson(request.lesson, request.payments, request.reason)

        usage = None
        if request.lesson.status == LessonStatus.COMPLETED:
            usage = await self._apply_prepaid(
                self._ledger_for(request.lesson, request.payments).reverse_completion(request.lesson)
            )
        log.info(f"Cancelled {cancelled}; {len(removals)} payment link(s) removed.")
        return LessonTransitionResult(lesson=cancelled, usage=usage, link_removals=removals)

    @staticmethod
    async def _apply_prepaid(pending: Awaitable[Optional[UsageAdjustment]]) -> Optional[UsageAdjustment]:
        try:
            return await pending
        except PrepaidLedgerError as e:
            log.error(f"Prepaid usage update failed; lesson change not applied: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Could not update prepaid sessions. The lesson was not changed."
            )
