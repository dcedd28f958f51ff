'''
Snapshot models for lessons, the families they belong to, and payments.
These are the already-fetched records the engine computes over.
'''
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..database.db_enums import LessonStatus, PaymentStatus, PaymentType


def month_start(value: date | datetime) -> date:
    """Returns the first day of the calendar month containing `value`."""
    if isinstance(value, datetime):
        value = value.date()
    return value.replace(day=1)


# --- 1. Family Records ---

class Parent(BaseModel):
    """
    A family. `prepaid_subjects` lists the subjects this family prepays for;
    an empty list means the family is on legacy all-subjects billing.
    """
    id: UUID
    name: str
    prepaid_subjects: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, from_attributes=True)

    @field_validator("prepaid_subjects", mode="before")
    @classmethod
    def _lower_subjects(cls, value: Any) -> Any:
        if value is None:
            return []
        return [str(subject).strip().lower() for subject in value]


class Student(BaseModel):
    id: UUID
    name: str
    parent: Optional[Parent] = None

    model_config = ConfigDict(frozen=True, from_attributes=True)


# --- 2. Lessons ---

class Lesson(BaseModel):
    """
    A single scheduled lesson with its student -> parent join already resolved.
    `student` is None when the student row has been deleted.
    """
    id: UUID
    student_id: UUID
    student: Optional[Student] = None
    subject: str
    scheduled_at: datetime
    duration_min: int
    status: LessonStatus = LessonStatus.SCHEDULED
    session_id: Optional[UUID] = None
    override_amount: Optional[Decimal] = None
    notes: Optional[str] = None

    model_config = ConfigDict(frozen=True, from_attributes=True)

    @field_validator("subject", mode="before")
    @classmethod
    def _lower_subject(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def parent(self) -> Optional[Parent]:
        if self.student is None:
            return None
        return self.student.parent

    @property
    def parent_id(self) -> Optional[UUID]:
        parent = self.parent
        return parent.id if parent else None

    @property
    def month(self) -> date:
        return month_start(self.scheduled_at)

    def __str__(self) -> str:
        student_name = self.student.name if self.student else "orphaned student"
        when = self.scheduled_at.strftime("%b %d at %H:%M")
        return f"{self.subject} lesson for {student_name} on {when} [{self.status.value}]"


# --- 3. Payments ---

class PaymentLesson(BaseModel):
    """Links a lesson to the payment that bills it, with the amount billed."""
    lesson_id: UUID
    amount: Decimal

    model_config = ConfigDict(frozen=True, from_attributes=True)


class Payment(BaseModel):
    """
    A payment record for one family and month. Invoice payments bill linked
    lessons; prepaid payments carry the prepaid session counters.
    """
    id: UUID
    parent_id: UUID
    month: date
    payment_type: PaymentType = PaymentType.INVOICE
    subject: Optional[str] = None
    amount_due: Decimal = Field(default=Decimal("0"), ge=0)
    amount_paid: Decimal = Field(default=Decimal("0"), ge=0)
    status: PaymentStatus = PaymentStatus.UNPAID
    sessions_prepaid: int = Field(default=0, ge=0)
    sessions_used: int = Field(default=0, ge=0)
    sessions_rolled_over: int = Field(default=0, ge=0)
    notes: Optional[str] = None
    lessons: list[PaymentLesson] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, from_attributes=True)

    @field_validator("month", mode="before")
    @classmethod
    def _date_from_datetime(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return value.date()
        return value

    @field_validator("month")
    @classmethod
    def _first_of_month(cls, value: date) -> date:
        return month_start(value)

    @field_validator("subject", mode="before")
    @classmethod
    def _lower_subject(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower() or None
        return value

    @property
    def is_paid(self) -> bool:
        return self.status == PaymentStatus.PAID

    def linked_lesson_ids(self) -> set[UUID]:
        return {link.lesson_id for link in self.lessons}
