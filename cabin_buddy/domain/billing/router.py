"""Billing router - calculator preview endpoint"""

import logging

from fastapi import APIRouter, Depends

from ...auth import get_current_user
from ...models import User
from .calculator import BillingCalculator, validate_billing_config
from .schemas import BillingBreakdown, CalculateRequest, StayDetails

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["Billing"])


@router.post("/calculate", response_model=BillingBreakdown)
async def calculate_billing(
    data: CalculateRequest,
    current_user: User = Depends(get_current_user),
):
    """Preview a charge with a billing config, from daily occupancy or aggregate counts"""
    problems = validate_billing_config(data.config)
    if problems:
        logger.warning(f"⚠️ Billing preview with invalid config for user {current_user.id}: {problems}")

    if data.dailyOccupancy is not None:
        interval = (data.startDate, data.endDate) if data.startDate and data.endDate else None
        breakdown = BillingCalculator.calculate_from_daily_occupancy(
            data.config, data.dailyOccupancy, interval
        )
    else:
        breakdown = BillingCalculator.calculate_stay_billing(
            data.config, StayDetails(guests=data.guests, nights=data.nights)
        )

    breakdown.warnings = problems + breakdown.warnings
    return breakdown
