"""Season router - season summary, CSV export and payment sync endpoints"""

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from ...auth import get_organization_context
from ...database import get_db
from ...shared.secure_queries import OrganizationContext
from .export import build_season_csv, season_export_filename
from .schemas import PaymentSyncResult, SeasonSummary
from .service import SeasonService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/organizations/{organization_id}/seasons", tags=["Seasons"])


def get_season_service(
    context: OrganizationContext = Depends(get_organization_context),
    db: Session = Depends(get_db),
) -> SeasonService:
    """Dependency injection for SeasonService"""
    return SeasonService(db, context)


@router.get("/{season_year}/summary", response_model=SeasonSummary)
async def get_season_summary(
    season_year: int,
    service: SeasonService = Depends(get_season_service),
):
    return service.get_summary_for_caller(season_year)


@router.get("/{season_year}/export")
async def export_season_csv(
    season_year: int,
    include_billing: bool = Query(True),
    include_payments: bool = Query(True),
    include_occupancy: bool = Query(True),
    service: SeasonService = Depends(get_season_service),
):
    """Export the season summary as a CSV download"""
    summary = service.get_summary_for_caller(season_year)
    content = build_season_csv(summary, include_billing, include_payments, include_occupancy)
    filename = season_export_filename(season_year)
    logger.info(f"📤 Exporting season {season_year} as {filename}")
    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/{season_year}/sync-payments", response_model=PaymentSyncResult)
async def sync_season_payments(
    season_year: int,
    service: SeasonService = Depends(get_season_service),
):
    """Create missing payments for in-season stays with check-in data (admins only)"""
    return service.sync_reservations_to_payments(season_year)
