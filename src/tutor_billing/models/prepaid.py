'''
Prepaid session accounting models.
'''
from datetime import date
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from ..database.db_enums import PaymentType
from .lessons import Payment, month_start


class PrepaidAccountRef(BaseModel):
    """Identifies the prepaid account a lesson draws from."""
    account_id: UUID
    parent_id: UUID
    month: date
    subject: Optional[str] = None  # None is the legacy all-subjects account

    model_config = ConfigDict(frozen=True)

    @property
    def is_legacy(self) -> bool:
        return self.subject is None


class PrepaidAccount(BaseModel):
    """
    Sessions a family prepaid for one month, either for one subject or,
    with `subject=None`, for all subjects.
    """
    id: UUID
    parent_id: UUID
    month: date
    subject: Optional[str] = None
    sessions_prepaid: int = Field(default=0, ge=0)
    sessions_used: int = Field(default=0, ge=0)
    sessions_rolled_over: int = Field(default=0, ge=0)

    model_config = ConfigDict(frozen=True, from_attributes=True)

    @field_validator("month")
    @classmethod
    def _first_of_month(cls, value: date) -> date:
        return month_start(value)

    @field_validator("subject")
    @classmethod
    def _lower_subject(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip().lower() or None

    @computed_field
    @property
    def sessions_remaining(self) -> int:
        return max(self.sessions_prepaid - self.sessions_used, 0)

    @property
    def ref(self) -> PrepaidAccountRef:
        return PrepaidAccountRef(
            account_id=self.id,
            parent_id=self.parent_id,
            month=self.month,
            subject=self.subject,
        )

    @classmethod
    def from_payment(cls, payment: Payment) -> "PrepaidAccount":
        if payment.payment_type != PaymentType.PREPAID:
            raise ValueError(f"Payment {payment.id} is not a prepaid payment.")
        return cls(
            id=payment.id,
            parent_id=payment.parent_id,
            month=payment.month,
            subject=payment.subject,
            sessions_prepaid=payment.sessions_prepaid,
            sessions_used=payment.sessions_used,
            sessions_rolled_over=payment.sessions_rolled_over,
        )


class PrepaidUsageCommand(BaseModel):
    """
    The outward mutation "increment/decrement prepaid usage for account X",
    emitted as plain data for the persistence layer to apply.
    """
    account: PrepaidAccountRef
    lesson_id: Optional[UUID] = None
    delta: Literal[1, -1]

    model_config = ConfigDict(frozen=True)


class UsageAdjustment(BaseModel):
    """The outcome of applying a PrepaidUsageCommand."""
    account_id: UUID
    lesson_id: Optional[UUID] = None
    delta: Literal[1, -1]
    sessions_used_before: int
    sessions_used_after: int
    applied: bool  # False when the lesson was already counted / never counted
    underflow: bool = False  # a decrement that hit zero and was clamped

    model_config = ConfigDict(frozen=True)
