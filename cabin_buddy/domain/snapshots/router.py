"""Snapshot router - create, list, delete and restore stay-history snapshots"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_organization_context, require_role
from ...database import get_db
from ...shared.secure_queries import OrganizationContext
from ...utils.snapshot_storage import SnapshotStorage
from .schemas import CreateSnapshotRequest, RestoreRequest, SnapshotResponse
from .service import MANUAL, SnapshotService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/organizations/{organization_id}/snapshots", tags=["Snapshots"])


def get_snapshot_storage() -> SnapshotStorage:
    """Dependency for the snapshot object store"""
    return SnapshotStorage()


def get_snapshot_service(
    context: OrganizationContext = Depends(get_organization_context),
    db: Session = Depends(get_db),
    storage: SnapshotStorage = Depends(get_snapshot_storage),
) -> SnapshotService:
    """Dependency injection for SnapshotService"""
    return SnapshotService(db, context, storage=storage)


@router.get("", response_model=List[SnapshotResponse])
async def list_snapshots(
    season_year: Optional[int] = Query(None),
    service: SnapshotService = Depends(get_snapshot_service),
):
    return service.list_snapshots(season_year)


@router.post("", response_model=SnapshotResponse)
async def create_snapshot(
    data: CreateSnapshotRequest,
    service: SnapshotService = Depends(get_snapshot_service),
):
    """Take a manual snapshot. Manual snapshots are never removed by retention."""
    require_role(service.context, "admin", "treasurer")
    return service.create_snapshot(data.seasonYear, MANUAL)


@router.delete("/{snapshot_id}")
async def delete_snapshot(
    snapshot_id: str,
    service: SnapshotService = Depends(get_snapshot_service),
):
    return service.delete_snapshot(snapshot_id)


@router.post("/restore")
async def restore_snapshot(
    data: RestoreRequest,
    service: SnapshotService = Depends(get_snapshot_service),
):
    """Preview a restore, or apply it with ``confirm: true``"""
    return service.restore_snapshot(data.filePath, data.scope, data.confirm)
