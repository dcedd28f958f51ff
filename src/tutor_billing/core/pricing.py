'''
This file handles lesson price resolution.

Given a tutor's RateSchedule, the price of a lesson is decided in this order:
1. cancellation (always free, even with an override)
2. a manual override on the lesson
3. the flat combined-session rate
4. an explicit tier price for the lesson's exact duration
5. the linear rate: rate * duration / base_duration

No rounding happens here. Callers round at presentation time.
'''
from decimal import Decimal
from typing import Optional

from ..common.exceptions import InvalidRateInput
from ..common.config import settings
from ..common.logger import log
from ..database.db_enums import LessonStatus
from ..models.lessons import Lesson
from ..models.rates import RateSchedule, format_rate_display
from ..models.summaries import PriceResolution

ZERO = Decimal("0")


def _money(value: Decimal) -> str:
    return format(value.normalize(), "f")


class PriceResolver:
    """
    Resolves lesson prices against one tutor's RateSchedule.
    The schedule is injected once; `resolve` is pure.
    """
    def __init__(self, rate_schedule: RateSchedule):
        self.rate_schedule = rate_schedule

    def resolve(self, lesson: Lesson, is_combined_session: bool) -> PriceResolution:
        return resolve_price(lesson, self.rate_schedule, is_combined_session)

    def amount(self, lesson: Lesson, is_combined_session: bool) -> Decimal:
        return self.resolve(lesson, is_combined_session).amount


def resolve_price(
    lesson: Lesson,
    rate_schedule: RateSchedule,
    is_combined_session: bool
) -> PriceResolution:
    """
    Computes the amount owed for one lesson.
    Raises InvalidRateInput for a non-positive duration, a negative rate or
    override, or a non-positive base duration.
    """
    # --- 1. Cancelled lessons are never billed ---
    if lesson.status == LessonStatus.CANCELLED:
        return PriceResolution(amount=ZERO, formula="cancelled")

    # --- 2. Manual override wins over computed pricing ---
    if lesson.override_amount is not None:
        if lesson.override_amount < 0:
            raise InvalidRateInput(
                f"Lesson {lesson.id} has a negative override amount ({lesson.override_amount})."
            )
        return PriceResolution(amount=lesson.override_amount, formula="manual override")

    _validate_duration(lesson.id, lesson.duration_min)

    # --- 3. Combined sessions bill a flat per-student rate ---
    if is_combined_session:
        flat_rate = rate_schedule.combined_session_rate
        if flat_rate < 0:
            raise InvalidRateInput(f"Combined session rate is negative ({flat_rate}).")
        return PriceResolution(amount=flat_rate, formula="combined session rate")

    # --- 4. Subject config (or the default rate) ---
    config = rate_schedule.config_for(lesson.subject)
    if config.rate < 0:
        raise InvalidRateInput(f"Rate for '{lesson.subject}' is negative ({config.rate}).")
    if config.base_duration <= 0:
        raise InvalidRateInput(
            f"Base duration for '{lesson.subject}' must be positive, got {config.base_duration}."
        )
    rate_display = format_rate_display(config.rate, config.base_duration)

    # --- 5. Explicit tier price for this exact duration ---
    tier_price = config.tier_price(lesson.duration_min)
    if tier_price is not None:
        return PriceResolution(
            amount=tier_price,
            formula=f"tier price for {lesson.duration_min} min",
            is_explicit_tier=True,
            rate=config.rate,
            base_duration=config.base_duration,
            rate_display=rate_display,
        )

    # --- 6. Linear fallback ---
    # Multiply before dividing so whole-cent results stay exact.
    amount = config.rate * Decimal(lesson.duration_min) / Decimal(config.base_duration)
    formula = (
        f"{settings.CURRENCY_SYMBOL}{_money(config.rate)} per {config.base_duration} min "
        f"× ({lesson.duration_min}/{config.base_duration})"
    )
    return PriceResolution(
        amount=amount,
        formula=formula,
        is_explicit_tier=False,
        rate=config.rate,
        base_duration=config.base_duration,
        rate_display=rate_display,
    )


def _validate_duration(lesson_id, duration_min: Optional[int]) -> None:
    if duration_min is None or duration_min <= 0:
        log.warning(f"Refusing to price lesson {lesson_id}: duration {duration_min} min.")
        raise InvalidRateInput(
            f"Lesson {lesson_id} has a non-positive duration ({duration_min} min)."
        )
