"""Charge resolution for a stored Payment row"""

import logging
from typing import Optional

from ...shared.validators import occupancy_map
from .calculator import BillingCalculator
from .schemas import BillingConfig

logger = logging.getLogger(__name__)

LOCKED = "locked"
OCCUPANCY = "occupancy"
SPLIT_COSTS = "split_costs"
AWAITING = "awaiting_data"


class ChargeResolution:
    def __init__(self, charge: float, source: str, breakdown=None):
        self.charge = charge
        self.source = source
        self.breakdown = breakdown

    @property
    def awaiting_data(self) -> bool:
        return self.source == AWAITING

    def __repr__(self) -> str:
        return f"<ChargeResolution {self.charge} from {self.source}>"


def _stay_interval(payment):
    reservation = getattr(payment, "reservation", None)
    if reservation is None or payment.family_group != reservation.family_group:
        return None
    return reservation.start_date, reservation.end_date


def resolve_payment_charge(payment, config: Optional[BillingConfig]) -> ChargeResolution:
    """
    Total charge of a payment.

    1. billing locked: ``amount + manual adjustment``, occupancy ignored
    2. occupancy present: occupancy charge + manual adjustment. Occupancy written
       by a cost split carries per-day costs and its amount was fixed by the
       split, so the stored amount is used
    3. otherwise 0, awaiting data
    """
    adjustment = payment.manual_adjustment_amount or 0.0

    if payment.billing_locked:
        return ChargeResolution((payment.amount or 0.0) + adjustment, LOCKED)

    entries = payment.daily_occupancy or []
    if entries:
        if all(entry.get("cost") is not None for entry in entries):
            return ChargeResolution((payment.amount or 0.0) + adjustment, SPLIT_COSTS)
        breakdown = BillingCalculator.calculate_from_daily_occupancy(
            config or BillingConfig(), occupancy_map(entries), _stay_interval(payment)
        )
        return ChargeResolution(breakdown.total + adjustment, OCCUPANCY, breakdown)

    return ChargeResolution(0.0, AWAITING)
