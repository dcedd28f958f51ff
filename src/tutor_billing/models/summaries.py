'''
Output models: price resolutions and the monthly family summaries.
Amounts are kept exact here; rounding happens only when rendering.
'''
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..database.db_enums import LessonStatus, LessonPaymentStatus

ZERO = Decimal("0")


class PriceResolution(BaseModel):
    """The amount owed for one lesson and how it was derived."""
    amount: Decimal
    formula: str
    is_explicit_tier: bool = False
    rate: Optional[Decimal] = None  # None for overrides, cancellations and flat combined rates
    base_duration: Optional[int] = None
    rate_display: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class LessonDetail(BaseModel):
    """One lesson inside a family summary, with its pricing breakdown."""
    id: UUID
    student_id: UUID
    student_name: str
    subject: str
    scheduled_at: datetime
    duration_min: int
    status: LessonStatus
    payment_status: LessonPaymentStatus = LessonPaymentStatus.NONE
    session_id: Optional[UUID] = None
    is_combined_session: bool = False
    override_amount: Optional[Decimal] = None
    amount: Decimal
    formula: str
    is_explicit_tier: bool = False
    rate: Optional[Decimal] = None
    base_duration: Optional[int] = None
    rate_display: Optional[str] = None


class SummaryTotals(BaseModel):
    """Bucketed counts and amounts. Used both per family and across all families."""
    scheduled_count: int = 0
    completed_count: int = 0  # completed, not yet invoiced or prepaid
    invoiced_count: int = 0   # linked to an unpaid / partial payment
    paid_count: int = 0       # linked to a fully paid payment
    prepaid_count: int = 0    # covered by a prepaid account
    cancelled_count: int = 0
    combined_session_count: int = 0
    expected_amount: Decimal = ZERO
    billable_amount: Decimal = ZERO
    invoiced_amount: Decimal = ZERO
    collected_amount: Decimal = ZERO
    combined_session_amount: Decimal = ZERO

    @property
    def total_lessons(self) -> int:
        """Every non-cancelled lesson."""
        return (
            self.scheduled_count + self.completed_count + self.invoiced_count
            + self.paid_count + self.prepaid_count
        )

    @property
    def total_completed(self) -> int:
        return self.completed_count + self.invoiced_count + self.paid_count + self.prepaid_count

    def add(self, other: "SummaryTotals") -> None:
        """Adds every bucket of `other` into this record."""
        for field_name in SummaryTotals.model_fields:
            setattr(self, field_name, getattr(self, field_name) + getattr(other, field_name))


class FamilyLessonSummary(SummaryTotals):
    parent_id: UUID
    parent_name: str
    lessons: list[LessonDetail] = Field(default_factory=list)

    def totals_only(self) -> SummaryTotals:
        return SummaryTotals(**{name: getattr(self, name) for name in SummaryTotals.model_fields})


class MonthlyLessonSummary(BaseModel):
    month: date
    families: list[FamilyLessonSummary] = Field(default_factory=list)
    totals: SummaryTotals = Field(default_factory=SummaryTotals)
    skipped_lesson_ids: list[UUID] = Field(default_factory=list)

    def family(self, parent_id: UUID) -> Optional[FamilyLessonSummary]:
        for family in self.families:
            if family.parent_id == parent_id:
                return family
        return None
