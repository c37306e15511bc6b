"""Selection router - selection-period extensions"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_organization_context
from ...database import get_db
from ...shared.secure_queries import OrganizationContext
from .schemas import ExtensionRequest
from .service import SelectionService

router = APIRouter(
    prefix="/organizations/{organization_id}/selection-extensions", tags=["Selection Periods"]
)


def get_selection_service(
    context: OrganizationContext = Depends(get_organization_context),
    db: Session = Depends(get_db),
) -> SelectionService:
    return SelectionService(db, context)


@router.get("")
async def list_extensions(
    rotation_year: int = Query(...),
    service: SelectionService = Depends(get_selection_service),
):
    return service.list_extensions(rotation_year)


@router.put("")
async def create_or_update_extension(
    data: ExtensionRequest,
    service: SelectionService = Depends(get_selection_service),
):
    return service.create_or_update_extension(
        data.rotationYear, data.familyGroup, data.extendedUntil, data.reason
    )


@router.delete("")
async def delete_extension(
    rotation_year: int = Query(...),
    family_group: str = Query(...),
    service: SelectionService = Depends(get_selection_service),
):
    return service.delete_extension(rotation_year, family_group)
