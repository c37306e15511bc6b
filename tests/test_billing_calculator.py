"""
Tests for the billing calculator and charge resolution
"""

from datetime import date
from unittest.mock import Mock

import pytest

from cabin_buddy.domain.billing.calculator import (
    FLAT_RATE_PER_DAY,
    FLAT_RATE_PER_SEASON,
    FLAT_RATE_PER_WEEK,
    PER_PERSON_PER_DAY,
    PER_PERSON_PER_WEEK,
    BillingCalculator,
    normalize_method_name,
    require_billing_method,
    resolve_billing_method,
    validate_billing_config,
)
from cabin_buddy.domain.billing.charges import (
    AWAITING,
    LOCKED,
    OCCUPANCY,
    SPLIT_COSTS,
    resolve_payment_charge,
)
from cabin_buddy.domain.billing.schemas import BillingConfig, StayDetails
from cabin_buddy.errors import BillingConfigError, ValidationError
from cabin_buddy.shared.validators import stay_nights

STAY = (date(2025, 10, 6), date(2025, 10, 11))


class TestMethodResolution:
    def test_method_names_are_case_and_separator_insensitive(self):
        assert normalize_method_name("Per_Person_Per_Day") == PER_PERSON_PER_DAY
        assert normalize_method_name("FLAT RATE PER WEEK") == FLAT_RATE_PER_WEEK

    def test_night_is_a_synonym_for_day(self):
        assert resolve_billing_method("per-person-per-night").method == PER_PERSON_PER_DAY
        assert resolve_billing_method("flat_rate_per_night").method == FLAT_RATE_PER_DAY

    def test_unknown_method_defaults_with_flag(self):
        resolution = resolve_billing_method("per-hamster")
        assert resolution.method == PER_PERSON_PER_DAY
        assert resolution.defaulted is True
        assert "per-hamster" in resolution.error

    def test_missing_method_defaults_with_flag(self):
        assert resolve_billing_method(None).defaulted is True

    def test_strict_resolution_raises(self):
        with pytest.raises(BillingConfigError):
            require_billing_method("per-hamster")
        assert require_billing_method("Flat-Rate-Per-Season") == FLAT_RATE_PER_SEASON

    def test_validate_billing_config(self):
        assert validate_billing_config(BillingConfig(method=PER_PERSON_PER_DAY, amount=10)) == []
        problems = validate_billing_config(
            BillingConfig(method="bogus", amount=0, tax_rate=150, cleaning_fee=-1)
        )
        assert len(problems) == 4


class TestDailyOccupancyBilling:
    def test_per_person_per_day_scenario(self):
        config = BillingConfig(method=PER_PERSON_PER_DAY, amount=10)
        breakdown = BillingCalculator.calculate_from_daily_occupancy(
            config, {"2025-10-06": 2, "2025-10-07": 3}, STAY
        )
        assert breakdown.base_amount == 50
        assert breakdown.total == 50
        assert breakdown.tax == 0
        assert breakdown.method_defaulted is False

    def test_fees_and_tax(self):
        config = BillingConfig(
            method=PER_PERSON_PER_DAY,
            amount=10,
            cleaning_fee=20,
            pet_fee=10,
            tax_rate=10,
            damage_deposit=200,
        )
        breakdown = BillingCalculator.calculate_from_daily_occupancy(
            config, {"2025-10-06": 2}, STAY
        )
        assert breakdown.subtotal == 50
        assert breakdown.tax == pytest.approx(5.0)
        assert breakdown.total == pytest.approx(55.0)
        # Deposit is refundable and reported separately
        assert breakdown.damage_deposit == 200

    def test_increasing_guests_strictly_increases_total(self):
        config = BillingConfig(method=PER_PERSON_PER_DAY, amount=12.5, tax_rate=8, cleaning_fee=15)
        base_map = {"2025-10-06": 2, "2025-10-07": 0, "2025-10-08": 4}
        base_total = BillingCalculator.calculate_from_daily_occupancy(config, base_map, STAY).total

        for day in base_map:
            bumped = dict(base_map)
            bumped[day] += 1
            total = BillingCalculator.calculate_from_daily_occupancy(config, bumped, STAY).total
            assert total > base_total

    @pytest.mark.parametrize(
        "method",
        [
            PER_PERSON_PER_DAY,
            PER_PERSON_PER_WEEK,
            FLAT_RATE_PER_DAY,
            FLAT_RATE_PER_WEEK,
            FLAT_RATE_PER_SEASON,
            "garbage",
        ],
    )
    def test_totals_are_never_negative(self, method):
        config = BillingConfig(method=method, amount=35, tax_rate=5)
        for occupancy_map in ({}, {"2025-10-06": 0}, {"2025-10-06": 3, "2025-10-09": 1}):
            breakdown = BillingCalculator.calculate_from_daily_occupancy(config, occupancy_map, STAY)
            assert breakdown.total >= 0
            assert breakdown.base_amount >= 0

    def test_flat_rate_per_day_ignores_head_count(self):
        config = BillingConfig(method=FLAT_RATE_PER_DAY, amount=100)
        breakdown = BillingCalculator.calculate_from_daily_occupancy(
            config, {"2025-10-06": 1}, STAY
        )
        assert breakdown.base_amount == 500
        assert len(breakdown.day_breakdown) == 5

    def test_weekly_rate_is_prorated_per_day(self):
        config = BillingConfig(method=PER_PERSON_PER_WEEK, amount=70)
        breakdown = BillingCalculator.calculate_from_daily_occupancy(
            config, {"2025-10-06": 2, "2025-10-07": 1}, STAY
        )
        assert breakdown.base_amount == pytest.approx(30.0)

    def test_season_rate_is_charged_once(self):
        config = BillingConfig(method=FLAT_RATE_PER_SEASON, amount=400)
        breakdown = BillingCalculator.calculate_from_daily_occupancy(
            config, {"2025-10-06": 2, "2025-10-07": 2}, STAY
        )
        assert breakdown.base_amount == 400

    def test_days_outside_stay_are_ignored_with_warning(self):
        config = BillingConfig(method=PER_PERSON_PER_DAY, amount=10)
        breakdown = BillingCalculator.calculate_from_daily_occupancy(
            config, {"2025-10-06": 2, "2025-10-11": 5}, STAY
        )
        assert breakdown.base_amount == 20
        assert any("2025-10-11" in w for w in breakdown.warnings)

    def test_unknown_method_is_billed_per_person_per_day_and_flagged(self):
        config = BillingConfig(method="per-hamster", amount=10)
        breakdown = BillingCalculator.calculate_from_daily_occupancy(
            config, {"2025-10-06": 2}, STAY
        )
        assert breakdown.base_amount == 20
        assert breakdown.method_defaulted is True
        assert breakdown.warnings

    def test_occupancy_key_must_be_a_date(self):
        config = BillingConfig(method=PER_PERSON_PER_DAY, amount=10)
        with pytest.raises(ValidationError):
            BillingCalculator.calculate_from_daily_occupancy(config, {"day-1": 4}, STAY)

    @pytest.mark.parametrize("guests", [-3, 2.5, "two"])
    def test_guest_counts_must_be_non_negative_whole_numbers(self, guests):
        config = BillingConfig(method=PER_PERSON_PER_DAY, amount=10)
        with pytest.raises(ValidationError):
            BillingCalculator.calculate_from_daily_occupancy(
                config, {"2025-10-06": 2, "2025-10-07": guests}, STAY
            )

    def test_negative_count_outside_stay_is_still_rejected(self):
        config = BillingConfig(method=PER_PERSON_PER_DAY, amount=10)
        with pytest.raises(ValidationError):
            BillingCalculator.calculate_from_daily_occupancy(config, {"2025-10-20": -1}, STAY)


class TestStayBilling:
    def test_weeks_round_up_for_stay_level_billing(self):
        config = BillingConfig(method=PER_PERSON_PER_WEEK, amount=100)
        breakdown = BillingCalculator.calculate_stay_billing(config, StayDetails(guests=2, nights=8))
        assert breakdown.base_amount == 400

    def test_flat_rate_per_week(self):
        config = BillingConfig(method=FLAT_RATE_PER_WEEK, amount=700)
        breakdown = BillingCalculator.calculate_stay_billing(config, StayDetails(guests=6, nights=7))
        assert breakdown.base_amount == 700

    def test_season_rate_needs_at_least_one_night(self):
        config = BillingConfig(method=FLAT_RATE_PER_SEASON, amount=500)
        assert BillingCalculator.calculate_stay_billing(config, StayDetails(nights=3)).base_amount == 500
        assert BillingCalculator.calculate_stay_billing(config, StayDetails(nights=0)).base_amount == 0

    def test_stay_nights_exclude_checkout_day(self):
        nights = stay_nights(date(2025, 10, 6), date(2025, 10, 11))
        assert [d.day for d in nights] == [6, 7, 8, 9, 10]


class TestChargeResolution:
    """Charge priority: locked, then occupancy, then awaiting data"""

    def setup_method(self):
        self.config = BillingConfig(method=PER_PERSON_PER_DAY, amount=10)
        self.reservation = Mock()
        self.reservation.family_group = "Alpha"
        self.reservation.start_date, self.reservation.end_date = STAY

        self.payment = Mock()
        self.payment.family_group = "Alpha"
        self.payment.reservation = self.reservation
        self.payment.amount = 80.0
        self.payment.manual_adjustment_amount = 10.0
        self.payment.billing_locked = False
        self.payment.daily_occupancy = []

    def test_locked_payment_ignores_occupancy(self):
        self.payment.billing_locked = True
        self.payment.daily_occupancy = [{"date": "2025-10-06", "guests": 9}]
        resolution = resolve_payment_charge(self.payment, self.config)
        assert resolution.charge == 90
        assert resolution.source == LOCKED

    def test_occupancy_charge_includes_adjustment(self):
        self.payment.daily_occupancy = [{"date": "2025-10-06", "guests": 2}]
        resolution = resolve_payment_charge(self.payment, self.config)
        assert resolution.charge == 30
        assert resolution.source == OCCUPANCY

    def test_split_priced_occupancy_uses_stored_amount(self):
        self.payment.daily_occupancy = [{"date": "2025-10-06", "guests": 2, "cost": 80.0}]
        resolution = resolve_payment_charge(self.payment, self.config)
        assert resolution.charge == 90
        assert resolution.source == SPLIT_COSTS

    def test_no_occupancy_is_awaiting_data(self):
        resolution = resolve_payment_charge(self.payment, self.config)
        assert resolution.charge == 0
        assert resolution.awaiting_data is True
        assert resolution.source == AWAITING
