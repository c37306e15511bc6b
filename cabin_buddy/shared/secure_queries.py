"""
Tenant-scoped data access.

Every read and write issued by the domain repositories goes through
``SecureQuery``, which filters by (or injects) the caller's organization id.
Code that reaches the database without an ``OrganizationContext`` fails with
``OrganizationContextError`` instead of silently reading across tenants.
"""

import logging
from typing import Any, Optional

from sqlalchemy.orm import Query, Session

from ..errors import NotFoundError, OrganizationContextError

logger = logging.getLogger(__name__)


class OrganizationContext:
    """The organization and user a request acts for."""

    def __init__(
        self,
        organization_id: str,
        user_id: Optional[str] = None,
        role: str = "member",
        family_group: Optional[str] = None,
        is_test_organization: bool = False,
    ):
        self.organization_id = organization_id
        self.user_id = user_id
        self.role = role
        self.family_group = family_group
        self.is_test_organization = is_test_organization

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def has_role(self, *roles: str) -> bool:
        return self.role in roles

    def __repr__(self) -> str:
        return f"<OrganizationContext org={self.organization_id} user={self.user_id} role={self.role}>"


class SecureQuery:
    def __init__(self, db: Session, context: Optional[OrganizationContext]):
        if context is None or not context.organization_id:
            raise OrganizationContextError("Organization context is required for data access")
        self.db = db
        self.context = context

    @property
    def organization_id(self) -> str:
        return self.context.organization_id

    def select(self, model) -> Query:
        return self.db.query(model).filter(model.organization_id == self.organization_id)

    def get(self, model, record_id: str):
        return self.select(model).filter(model.id == record_id).first()

    def get_or_404(self, model, record_id: str, label: Optional[str] = None):
        record = self.get(model, record_id)
        if not record:
            raise NotFoundError(f"{label or model.__name__} not found")
        return record

    def insert(self, obj):
        """Attach a new row to the session with the organization id injected."""
        existing = getattr(obj, "organization_id", None)
        if existing and existing != self.organization_id:
            logger.error(
                f"❌ Blocked cross-tenant insert of {type(obj).__name__} "
                f"into {existing} from {self.organization_id}"
            )
            raise OrganizationContextError("Cannot write records for another organization")
        obj.organization_id = self.organization_id
        if self.context.is_test_organization and hasattr(type(obj), "is_test_data"):
            obj.is_test_data = True
        self.db.add(obj)
        return obj

    def update(self, model, record_id: str, values: dict[str, Any]):
        record = self.get_or_404(model, record_id)
        values = {k: v for k, v in values.items() if k not in ("id", "organization_id")}
        for key, value in values.items():
            setattr(record, key, value)
        return record

    def delete(self, model, record_id: str) -> bool:
        record = self.get(model, record_id)
        if not record:
            return False
        self.db.delete(record)
        return True

    def delete_where(self, model, *criteria) -> int:
        # "fetch" evicts the deleted rows from the session so their ids can be re-inserted
        return self.select(model).filter(*criteria).delete(synchronize_session="fetch")
