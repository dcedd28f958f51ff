import pytest
from decimal import Decimal
from pydantic import ValidationError

from src.tutor_billing.database.db_enums import DurationTier
from src.tutor_billing.models.rates import RateSchedule, SubjectRateConfig, format_rate_display


class TestSubjectRateConfig:

    def test_string_tier_keys_are_coerced(self):
        config = SubjectRateConfig(rate="35", base_duration=30, duration_prices={"45": "50", " 60 ": 65})

        assert config.duration_prices == {
            DurationTier.MIN_45: Decimal("50"),
            DurationTier.MIN_60: Decimal("65"),
        }
        assert config.tier_price(45) == Decimal("50")
        assert config.tier_price(60) == Decimal("65")

    def test_int_tier_keys_are_accepted(self):
        config = SubjectRateConfig(rate=Decimal("35"), base_duration=30, duration_prices={90: Decimal("95")})
        assert config.tier_price(90) == Decimal("95")

    def test_tier_lookup_misses_for_unpriced_durations(self):
        config = SubjectRateConfig(rate=Decimal("35"), base_duration=30, duration_prices={"45": "50"})

        assert config.tier_price(30) is None
        assert config.tier_price(50) is None  # not a tier at all

    @pytest.mark.parametrize("bad_key", ["50", "forty-five", 10])
    def test_unknown_tier_keys_are_rejected_at_load(self, bad_key):
        with pytest.raises(ValidationError):
            SubjectRateConfig(rate=Decimal("35"), base_duration=30, duration_prices={bad_key: "50"})

    @pytest.mark.parametrize("price", ["0", "-10"])
    def test_non_positive_tier_prices_are_rejected(self, price: str):
        with pytest.raises(ValidationError):
            SubjectRateConfig(rate=Decimal("35"), base_duration=30, duration_prices={"45": price})

    def test_empty_tier_mapping_means_no_tiers(self):
        config = SubjectRateConfig(rate=Decimal("35"), base_duration=30, duration_prices={})
        assert config.duration_prices is None

    @pytest.mark.parametrize("field, value", [("rate", "0"), ("rate", "-1"), ("base_duration", 0)])
    def test_rate_and_base_duration_must_be_positive(self, field: str, value):
        data = {"rate": Decimal("35"), "base_duration": 30}
        data[field] = value
        with pytest.raises(ValidationError):
            SubjectRateConfig(**data)


class TestRateSchedule:

    def test_default_schedule_comes_from_settings(self):
        schedule = RateSchedule.default()

        assert schedule.default_rate == Decimal("45")
        assert schedule.default_base_duration == 60
        assert schedule.combined_session_rate == Decimal("40")
        assert schedule.subject_rates == {}

    def test_subject_keys_are_lower_cased(self, rate_schedule: RateSchedule):
        assert rate_schedule.has_subject_rate("PIANO")
        assert "piano" in rate_schedule.subject_rates

    def test_unknown_subject_uses_default_rate(self, rate_schedule: RateSchedule):
        config = rate_schedule.config_for("chemistry")

        assert config.rate == Decimal("45")
        assert config.base_duration == 60
        assert config.tier_price(45) is None

    def test_loads_from_saved_json(self):
        schedule = RateSchedule.model_validate_json(
            '{"default_rate": "45", "default_base_duration": 60, "combined_session_rate": "40",'
            ' "subject_rates": {"Piano": {"rate": "35", "base_duration": 30,'
            ' "duration_prices": {"45": "50"}}}}'
        )
        assert schedule.config_for("piano").tier_price(45) == Decimal("50")


class TestRateDisplay:

    def test_hourly_rate(self):
        assert format_rate_display(Decimal("45"), 60) == "$45/hr"

    def test_other_base_durations(self):
        assert format_rate_display(Decimal("35"), 30) == "$35/30min"

    def test_trailing_zeros_are_dropped(self):
        assert format_rate_display(Decimal("42.50"), 60) == "$42.5/hr"
