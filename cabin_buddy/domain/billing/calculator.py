"""
Occupancy-based billing calculator.

Pure functions: no database or network access. Money values are returned
unrounded; rounding to cents happens only where amounts are displayed or
exported.

Week-based methods:
    * stay-level billing (aggregate counts) charges whole weeks,
      ``ceil(nights / 7)``;
    * occupancy-level billing prorates the weekly rate per day, ``rate / 7``.
"""

import logging
import math
from datetime import date
from typing import Dict, List, Optional, Tuple

from ...errors import BillingConfigError, ValidationError
from ...shared.validators import parse_iso_date, stay_nights
from .schemas import BillingBreakdown, BillingConfig, DayCost, MethodResolution, StayDetails

logger = logging.getLogger(__name__)

PER_PERSON_PER_DAY = "per-person-per-day"
PER_PERSON_PER_WEEK = "per-person-per-week"
FLAT_RATE_PER_DAY = "flat-rate-per-day"
FLAT_RATE_PER_WEEK = "flat-rate-per-week"
FLAT_RATE_PER_SEASON = "flat-rate-per-season"

BILLING_METHODS = (
    PER_PERSON_PER_DAY,
    PER_PERSON_PER_WEEK,
    FLAT_RATE_PER_DAY,
    FLAT_RATE_PER_WEEK,
    FLAT_RATE_PER_SEASON,
)
DEFAULT_METHOD = PER_PERSON_PER_DAY


def normalize_method_name(raw: str) -> str:
    """``Per_Person_Per_Night`` -> ``per-person-per-day``"""
    return str(raw).strip().lower().replace("_", "-").replace(" ", "-").replace("night", "day")


def resolve_billing_method(raw: Optional[str]) -> MethodResolution:
    """
    Resolve a configured method name.

    Unknown or missing methods resolve to per-person-per-day with
    ``defaulted=True`` so callers can tell a computed charge from a defaulted one.
    """
    if not raw:
        return MethodResolution(
            method=DEFAULT_METHOD, defaulted=True, error="Billing method is not configured"
        )
    normalized = normalize_method_name(raw)
    if normalized in BILLING_METHODS:
        return MethodResolution(method=normalized)
    return MethodResolution(
        method=DEFAULT_METHOD, defaulted=True, error=f"Unknown billing method '{raw}'"
    )


def require_billing_method(raw: Optional[str]) -> str:
    """Strict variant of resolve_billing_method. Raises BillingConfigError instead of defaulting."""
    resolution = resolve_billing_method(raw)
    if resolution.defaulted:
        raise BillingConfigError(resolution.error)
    return resolution.method


def validate_billing_config(config: BillingConfig) -> List[str]:
    """Return a list of human-readable problems with a billing config (empty when valid)."""
    errors = []
    if not config.method:
        errors.append("Billing method is required")
    elif resolve_billing_method(config.method).defaulted:
        errors.append(f"Unknown billing method '{config.method}'")
    if config.amount is None or config.amount <= 0:
        errors.append("Billing amount must be greater than 0")
    if config.tax_rate is not None and not 0 <= config.tax_rate <= 100:
        errors.append("Tax rate must be between 0 and 100")
    for label, value in (
        ("Cleaning fee", config.cleaning_fee),
        ("Pet fee", config.pet_fee),
        ("Damage deposit", config.damage_deposit),
    ):
        if value is not None and value < 0:
            errors.append(f"{label} cannot be negative")
    return errors


def _resolve(config: BillingConfig) -> MethodResolution:
    resolution = resolve_billing_method(config.method)
    if resolution.defaulted:
        logger.warning(
            f"⚠️ {resolution.error}; billing with {DEFAULT_METHOD} rates instead"
        )
    return resolution


def _guest_count(day: date, guests) -> int:
    if guests is None:
        return 0
    if isinstance(guests, bool) or not isinstance(guests, (int, float)) or guests != int(guests):
        raise ValidationError(f"Guest count for {day.isoformat()} must be a whole number")
    if guests < 0:
        raise ValidationError(f"Guest count for {day.isoformat()} cannot be negative")
    return int(guests)


def _finish(
    config: BillingConfig,
    resolution: MethodResolution,
    base_amount: float,
    details: str,
    day_breakdown: Optional[List[DayCost]] = None,
    warnings: Optional[List[str]] = None,
) -> BillingBreakdown:
    cleaning_fee = config.cleaning_fee or 0.0
    pet_fee = config.pet_fee or 0.0
    subtotal = base_amount + cleaning_fee + pet_fee
    tax = subtotal * (config.tax_rate or 0.0) / 100
    warnings = list(warnings or [])
    if resolution.defaulted:
        warnings.insert(0, f"{resolution.error}; charged as {DEFAULT_METHOD}")

    return BillingBreakdown(
        base_amount=base_amount,
        cleaning_fee=cleaning_fee,
        pet_fee=pet_fee,
        damage_deposit=config.damage_deposit or 0.0,
        subtotal=subtotal,
        tax=tax,
        total=subtotal + tax,
        details=details,
        method=resolution.method,
        method_defaulted=resolution.defaulted,
        day_breakdown=day_breakdown or [],
        warnings=warnings,
    )


class BillingCalculator:
    @staticmethod
    def calculate_stay_billing(config: BillingConfig, stay: StayDetails) -> BillingBreakdown:
        """Charge for a stay from aggregate guest and night counts."""
        resolution = _resolve(config)
        method = resolution.method
        rate = config.amount or 0.0
        guests, nights = stay.guests, stay.nights
        weeks = stay.weeks if stay.weeks is not None else math.ceil(nights / 7)

        if method == PER_PERSON_PER_WEEK:
            base = guests * weeks * rate
            details = f"{guests} guests × {weeks} weeks × ${rate:.2f}/person/week"
        elif method == FLAT_RATE_PER_DAY:
            base = nights * rate
            details = f"{nights} nights × ${rate:.2f}/night"
        elif method == FLAT_RATE_PER_WEEK:
            base = weeks * rate
            details = f"{weeks} weeks × ${rate:.2f}/week"
        elif method == FLAT_RATE_PER_SEASON:
            base = rate if nights > 0 else 0.0
            details = f"Season rate ${rate:.2f}"
        else:
            base = guests * nights * rate
            details = f"{guests} guests × {nights} nights × ${rate:.2f}/person/night"

        return _finish(config, resolution, base, details)

    @staticmethod
    def calculate_from_daily_occupancy(
        config: BillingConfig,
        daily_occupancy: Dict[str, int],
        stay_interval: Optional[Tuple[date, date]] = None,
    ) -> BillingBreakdown:
        """
        Charge for a stay from a ``{iso_date: guests}`` map.

        ``stay_interval`` is the half-open ``(check_in, check_out)`` pair. Days in
        the map outside it are ignored with a warning. Flat-rate methods charge
        every night of the interval regardless of head count.
        """
        nights_in_stay = stay_nights(*stay_interval) if stay_interval else None

        if not daily_occupancy:
            nights = len(nights_in_stay) if nights_in_stay is not None else 0
            return BillingCalculator.calculate_stay_billing(
                config, StayDetails(guests=0, nights=nights)
            )

        resolution = _resolve(config)
        method = resolution.method
        rate = config.amount or 0.0
        warnings = []

        guests_by_day = {}
        for day_str, guests in daily_occupancy.items():
            day = parse_iso_date(str(day_str), "occupancy date")
            count = _guest_count(day, guests)
            if nights_in_stay is not None and day not in nights_in_stay:
                warnings.append(f"Ignored occupancy for {day.isoformat()} outside the stay")
                continue
            guests_by_day[day] = count

        if warnings:
            logger.warning(f"⚠️ {len(warnings)} occupancy day(s) outside the stay were ignored")

        if method in (FLAT_RATE_PER_DAY, FLAT_RATE_PER_WEEK, FLAT_RATE_PER_SEASON):
            billed_days = nights_in_stay if nights_in_stay is not None else sorted(guests_by_day)
        else:
            billed_days = sorted(guests_by_day)

        day_breakdown = []
        for day in billed_days:
            guests = guests_by_day.get(day, 0)
            if method == PER_PERSON_PER_WEEK:
                cost = guests * rate / 7
            elif method == FLAT_RATE_PER_DAY:
                cost = rate
            elif method == FLAT_RATE_PER_WEEK:
                cost = rate / 7
            elif method == FLAT_RATE_PER_SEASON:
                cost = 0.0
            else:
                cost = guests * rate
            day_breakdown.append(DayCost(date=day.isoformat(), guests=guests, cost=cost))

        base = sum(item.cost for item in day_breakdown)
        person_nights = sum(item.guests for item in day_breakdown)
        if method == FLAT_RATE_PER_SEASON:
            base = rate if billed_days else 0.0
            details = f"Season rate ${rate:.2f}"
        elif method in (FLAT_RATE_PER_DAY, FLAT_RATE_PER_WEEK):
            details = f"{len(billed_days)} nights at {method} ${rate:.2f}"
        else:
            details = f"{person_nights} person-nights over {len(billed_days)} days at {method} ${rate:.2f}"

        return _finish(config, resolution, base, details, day_breakdown, warnings)
