'''
Rate schedule models: how a tutor prices lessons.
'''
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..database.db_enums import DurationTier
from ..common.config import settings


class SubjectRateConfig(BaseModel):
    """
    Pricing for one subject: a base rate per base duration, plus optional
    explicit prices for common lesson lengths.
    """
    rate: Decimal = Field(..., gt=0)
    base_duration: int = Field(..., gt=0)
    duration_prices: Optional[dict[DurationTier, Decimal]] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("duration_prices", mode="before")
    @classmethod
    def _coerce_tier_keys(cls, value: Any) -> Any:
        """
        Saved settings arrive as JSON, so tier keys may be strings ("45").
        Convert them to DurationTier here so lookups never depend on key type.
        """
        if value is None:
            return None
        if not isinstance(value, dict):
            raise ValueError("duration_prices must be a mapping of minutes to price")
        coerced = {}
        for raw_key, price in value.items():
            try:
                minutes = int(raw_key) if isinstance(raw_key, int) else int(str(raw_key).strip())
            except ValueError:
                raise ValueError(f"duration tier key {raw_key!r} is not a whole number of minutes")
            try:
                tier = DurationTier(minutes)
            except ValueError:
                allowed = ", ".join(str(t.value) for t in DurationTier)
                raise ValueError(f"{minutes} min is not a supported duration tier (allowed: {allowed})")
            coerced[tier] = price
        return coerced or None

    @field_validator("duration_prices")
    @classmethod
    def _check_tier_prices(cls, value: Optional[dict[DurationTier, Decimal]]) -> Optional[dict[DurationTier, Decimal]]:
        if value is None:
            return None
        for tier, price in value.items():
            if price <= 0:
                raise ValueError(f"tier price for {tier.value} min must be positive, got {price}")
        return value

    def tier_price(self, duration_min: int) -> Optional[Decimal]:
        """Returns the explicit price for this exact duration, if one is configured."""
        if not self.duration_prices:
            return None
        try:
            tier = DurationTier(duration_min)
        except ValueError:
            return None
        price = self.duration_prices.get(tier)
        if price is not None and price > 0:
            return price
        return None


class RateSchedule(BaseModel):
    """
    A tutor's complete rate configuration. One per tutor.
    """
    tutor_id: Optional[UUID] = None
    default_rate: Decimal = Field(..., gt=0)
    default_base_duration: int = Field(..., gt=0)
    combined_session_rate: Decimal = Field(..., gt=0)
    subject_rates: dict[str, SubjectRateConfig] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @field_validator("subject_rates", mode="before")
    @classmethod
    def _normalise_subjects(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {str(subject).strip().lower(): config for subject, config in value.items()}
        return value

    @classmethod
    def default(cls, tutor_id: Optional[UUID] = None) -> "RateSchedule":
        """The schedule used for a tutor who has never saved rate settings."""
        return cls(
            tutor_id=tutor_id,
            default_rate=settings.DEFAULT_RATE,
            default_base_duration=settings.DEFAULT_BASE_DURATION,
            combined_session_rate=settings.COMBINED_SESSION_RATE,
        )

    def config_for(self, subject: str) -> SubjectRateConfig:
        """
        Returns the subject's own config, or one built from the default
        rate and base duration when the subject has no entry.
        """
        config = self.subject_rates.get(subject.strip().lower())
        if config is not None:
            return config
        return SubjectRateConfig.model_construct(
            rate=self.default_rate,
            base_duration=self.default_base_duration,
            duration_prices=None,
        )

    def has_subject_rate(self, subject: str) -> bool:
        return subject.strip().lower() in self.subject_rates


def format_rate_display(rate: Decimal, base_duration: int) -> str:
    """Formats a rate for display, e.g. "$45/hr" or "$35/30min"."""
    symbol = settings.CURRENCY_SYMBOL
    rate_text = format(rate.normalize(), "f")
    if base_duration == 60:
        return f"{symbol}{rate_text}/hr"
    return f"{symbol}{rate_text}/{base_duration}min"
