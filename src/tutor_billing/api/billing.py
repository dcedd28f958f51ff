'''
API endpoints for lesson pricing, monthly summaries, reports and lesson status changes.
'''
from typing import Annotated, Any
from fastapi import APIRouter, Depends, Response

from ..models import requests as request_models
from ..models.invoices import InvoiceDraft, LessonTransitionResult
from ..models.summaries import MonthlyLessonSummary, PriceResolution
from ..services.billing_service import BillingService, LessonLifecycleService

class BillingAPI:
    """
    A class to encapsulate endpoints for Billing.
    """
    def __init__(self):
        self.router = APIRouter(
            prefix="/billing",
            tags=["Billing"]
        )
        self._register_routes()

    def _register_routes(self):
        """Registers all the API routes for this class."""
        self.router.add_api_route(
                "/price",
                self.price_lesson,
                methods=["POST"],
                response_model=PriceResolution)
        self.router.add_api_route(
                "/monthly-summary",
                self.get_monthly_summary,
                methods=["POST"],
                response_model=MonthlyLessonSummary)
        self.router.add_api_route(
                "/monthly-report",
                self.export_monthly_report,
                methods=["POST"],
                response_class=Response)
        self.router.add_api_route(
                "/lessons/complete",
                self.complete_lesson,
                methods=["POST"],
                response_model=LessonTransitionResult)
        self.router.add_api_route(
                "/lessons/uncomplete",
                self.uncomplete_lesson,
                methods=["POST"],
                response_model=LessonTransitionResult)
        self.router.add_api_route(
                "/lessons/cancel",
                self.cancel_lesson,
                methods=["POST"],
                response_model=LessonTransitionResult)
        self.router.add_api_route(
                "/invoices/draft",
                self.draft_invoice,
                methods=["POST"],
                response_model=InvoiceDraft)

    async def price_lesson(
        self,
        price_request: request_models.PriceRequest,
        billing_service: Annotated[BillingService, Depends(BillingService)]
    ) -> Any:
        """
        Prices a single lesson and explains how the amount was reached.
        """
        return billing_service.price_lesson(price_request)

    async def get_monthly_summary(
        self,
        summary_request: request_models.MonthlySummaryRequest,
        billing_service: Annotated[BillingService, Depends(BillingService)]
    ) -> Any:
        """
        Builds the per-family lesson summary for one month.
        """
        return billing_service.monthly_summary(summary_request)

    async def export_monthly_report(
        self,
        summary_request: request_models.MonthlySummaryRequest,
        billing_service: Annotated[BillingService, Depends(BillingService)]
    ) -> Response:
        """
        Downloads the monthly payment report as CSV.
        """
        filename, content = billing_service.monthly_report(summary_request)
        return Response(
            content=content,
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"}
        )

    async def complete_lesson(
        self,
        transition_request: request_models.LessonTransitionRequest,
        lifecycle_service: Annotated[LessonLifecycleService, Depends(LessonLifecycleService)]
    ) -> Any:
        """
        Marks a scheduled lesson completed, drawing a prepaid session if one applies.
        """
        return await lifecycle_service.complete_lesson(transition_request)

    async def uncomplete_lesson(
        self,
        transition_request: request_models.LessonTransitionRequest,
        lifecycle_service: Annotated[LessonLifecycleService, Depends(LessonLifecycleService)]
    ) -> Any:
        """
        Moves a completed lesson back to scheduled and returns its prepaid session.
        """
        return await lifecycle_service.uncomplete_lesson(transition_request)

    async def cancel_lesson(
        self,
        transition_request: request_models.LessonTransitionRequest,
        lifecycle_service: Annotated[LessonLifecycleService, Depends(LessonLifecycleService)]
    ) -> Any:
        """
        Cancels a lesson and returns the payment unlinks the cancellation requires.
        """
        return await lifecycle_service.cancel_lesson(transition_request)

    async def draft_invoice(
        self,
        draft_request: request_models.InvoiceDraftRequest,
        billing_service: Annotated[BillingService, Depends(BillingService)]
    ) -> Any:
        """
        Drafts a quick invoice for a family's completed, unbilled lessons.
        """
        return billing_service.draft_invoice(draft_request)

# Instantiate the class and export its router
billing_api = BillingAPI()
router = billing_api.router
