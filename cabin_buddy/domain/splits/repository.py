"""Split repository - Database operations for payment splits"""

from typing import List, Optional

from ...models import Organization, Payment, PaymentSplit, UserOrganization
from ...shared.secure_queries import SecureQuery


class SplitRepository:
    """Repository for payment split database operations"""

    @staticmethod
    def get_by_operation_id(q: SecureQuery, operation_id: str) -> List[PaymentSplit]:
        return (
            q.select(PaymentSplit)
            .filter(PaymentSplit.operation_id == operation_id)
            .order_by(PaymentSplit.created_at.asc(), PaymentSplit.id.asc())
            .all()
        )

    @staticmethod
    def get_membership(q: SecureQuery, user_id: str) -> Optional[UserOrganization]:
        return q.select(UserOrganization).filter(UserOrganization.user_id == user_id).first()

    @staticmethod
    def get_organization(q: SecureQuery) -> Optional[Organization]:
        return q.db.query(Organization).filter(Organization.id == q.organization_id).first()

    @staticmethod
    def list_splits(q: SecureQuery, payment_id: Optional[str] = None) -> List[PaymentSplit]:
        query = q.select(PaymentSplit)
        if payment_id:
            query = query.filter(
                (PaymentSplit.source_payment_id == payment_id)
                | (PaymentSplit.split_payment_id == payment_id)
            )
        return query.order_by(PaymentSplit.created_at.desc()).all()

    @staticmethod
    def delete_unpaid_duplicates(q: SecureQuery, keep: Payment, candidates: List[Payment]) -> int:
        """Remove zero-paid duplicate payments that no split references"""
        removed = 0
        for payment in candidates:
            if payment.id == keep.id or (payment.amount_paid or 0) > 0:
                continue
            referenced = (
                q.select(PaymentSplit)
                .filter(
                    (PaymentSplit.source_payment_id == payment.id)
                    | (PaymentSplit.split_payment_id == payment.id)
                )
                .first()
            )
            if referenced:
                continue
            q.db.delete(payment)
            removed += 1
        return removed
