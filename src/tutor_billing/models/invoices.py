'''
Mutation commands emitted by the engine for invoicing and cancellation.
The engine never writes them itself; the calling layer persists them.
'''
from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field

from ..database.db_enums import PaymentStatus
from .lessons import Lesson
from .prepaid import UsageAdjustment


class InvoiceLine(BaseModel):
    """The amount to invoice for one lesson."""
    lesson_id: UUID
    amount: Decimal
    formula: str

    model_config = ConfigDict(frozen=True)


class InvoiceDraft(BaseModel):
    """An invoice payment ready to be created for a family and month."""
    parent_id: UUID
    month: date
    lines: list[InvoiceLine] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @computed_field
    @property
    def amount_due(self) -> Decimal:
        return sum((line.amount for line in self.lines), Decimal("0"))

    @computed_field
    @property
    def notes(self) -> str:
        return f"Quick invoice for {len(self.lines)} lesson(s)"


class PaymentLinkRemoval(BaseModel):
    """Unlink a cancelled lesson from a payment and shrink that payment's amount due."""
    payment_id: UUID
    lesson_id: UUID
    amount_removed: Decimal
    new_amount_due: Decimal
    new_status: PaymentStatus

    model_config = ConfigDict(frozen=True)


class LessonTransitionResult(BaseModel):
    """A lesson after a status change, plus the side effects the change produced."""
    lesson: Lesson
    usage: Optional[UsageAdjustment] = None
    link_removals: list[PaymentLinkRemoval] = Field(default_factory=list)
