'''
Request bodies for the billing API. Each request carries the snapshot the
engine computes over; nothing is looked up behind the caller's back.
'''
from datetime import date
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .lessons import Lesson, Parent, Payment
from .rates import RateSchedule


class PriceRequest(BaseModel):
    lesson: Lesson
    rate_schedule: RateSchedule = Field(default_factory=RateSchedule.default)
    is_combined_session: bool = False


class MonthlySummaryRequest(BaseModel):
    month: date
    lessons: list[Lesson] = Field(default_factory=list)
    payments: list[Payment] = Field(default_factory=list)
    parents: list[Parent] = Field(default_factory=list)
    rate_schedule: RateSchedule = Field(default_factory=RateSchedule.default)


class LessonTransitionRequest(BaseModel):
    """
    A lesson status change. `payments` holds the family's payments for the
    lesson's month, which is where its prepaid accounts and links live.
    """
    lesson: Lesson
    payments: list[Payment] = Field(default_factory=list)
    reason: Optional[str] = None


class InvoiceDraftRequest(BaseModel):
    parent_id: UUID
    month: date
    lessons: list[Lesson] = Field(default_factory=list)
    payments: list[Payment] = Field(default_factory=list)
    parents: list[Parent] = Field(default_factory=list)
    rate_schedule: RateSchedule = Field(default_factory=RateSchedule.default)
