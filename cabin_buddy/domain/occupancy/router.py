"""Occupancy router - daily occupancy, billing lock and adjustment endpoints"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_organization_context
from ...database import get_db
from ...shared.secure_queries import OrganizationContext
from .schemas import BillingAdjustment, OccupancyUpdate, SplitOccupancyUpdate
from .service import OccupancyService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/organizations/{organization_id}", tags=["Occupancy"])


def get_occupancy_service(
    context: OrganizationContext = Depends(get_organization_context),
    db: Session = Depends(get_db),
) -> OccupancyService:
    """Dependency injection for OccupancyService"""
    return OccupancyService(db, context)


# ============================================================================
# RESERVATION OCCUPANCY
# ============================================================================


@router.put("/reservations/{reservation_id}/occupancy")
async def update_occupancy(
    reservation_id: str,
    data: OccupancyUpdate,
    service: OccupancyService = Depends(get_occupancy_service),
):
    """Save per-day guest counts; recomputes the charge unless billing is locked"""
    return service.update_occupancy(reservation_id, data.occupancy, data.skipBillingRecalc)


@router.get("/reservations/{reservation_id}/billing-lock")
async def get_billing_lock_status(
    reservation_id: str,
    service: OccupancyService = Depends(get_occupancy_service),
):
    return {"billingLocked": service.get_billing_lock_status(reservation_id)}


@router.post("/reservations/{reservation_id}/recalculate")
async def recalculate_billing(
    reservation_id: str,
    service: OccupancyService = Depends(get_occupancy_service),
):
    result = service.recalculate_billing(reservation_id)
    result["breakdown"] = result["breakdown"].model_dump()
    return result


# ============================================================================
# SPLIT OCCUPANCY
# ============================================================================


@router.put("/splits/{split_id}/occupancy")
async def update_split_occupancy(
    split_id: str,
    data: SplitOccupancyUpdate,
    service: OccupancyService = Depends(get_occupancy_service),
):
    return service.update_split_occupancy(split_id, data.splitPaymentId, data.occupancy)


# ============================================================================
# MANUAL ADJUSTMENTS
# ============================================================================


@router.patch("/payments/{payment_id}/adjustment")
async def adjust_billing(
    payment_id: str,
    data: BillingAdjustment,
    service: OccupancyService = Depends(get_occupancy_service),
):
    payment = service.adjust_billing(payment_id, data.adjustment, data.notes, data.locked)
    return {
        "success": True,
        "paymentId": payment.id,
        "amount": payment.amount,
        "manualAdjustmentAmount": payment.manual_adjustment_amount,
        "adjustmentNotes": payment.adjustment_notes,
        "billingLocked": payment.billing_locked,
    }
