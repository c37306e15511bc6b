"""Split router - split-payment RPC and split listing"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, get_organization_context, resolve_organization_context
from ...database import get_db
from ...email_service import send_guest_split_notification
from ...models import User
from ...shared.secure_queries import OrganizationContext
from .schemas import CreateSplitRequest
from .service import SplitService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Splits"])


def get_split_notifier():
    """Dependency for the split notification sender"""
    return send_guest_split_notification


@router.post("/split-payments")
async def create_split_payments(
    data: CreateSplitRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier=Depends(get_split_notifier),
):
    """
    Divide one stay's charge among guest families.

    Membership in ``organizationId`` is verified before any write.
    """
    context = resolve_organization_context(db, current_user, data.organizationId)
    service = SplitService(db, context, notifier=notifier)
    return await service.create_split(data)


@router.get("/organizations/{organization_id}/splits")
async def list_splits(
    payment_id: Optional[str] = Query(None),
    context: OrganizationContext = Depends(get_organization_context),
    db: Session = Depends(get_db),
):
    return SplitService(db, context).list_splits(payment_id)
