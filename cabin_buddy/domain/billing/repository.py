"""Billing repository - settings and payment lookups shared by the billing domains"""

from typing import List, Optional

from ...models import Payment, PaymentSplit, Reservation, ReservationSettings
from ...shared.secure_queries import SecureQuery
from .schemas import BillingConfig


class BillingRepository:
    """Repository for organization billing settings and reservation payments"""

    @staticmethod
    def get_settings(q: SecureQuery) -> Optional[ReservationSettings]:
        return q.select(ReservationSettings).first()

    @staticmethod
    def get_billing_config(q: SecureQuery) -> BillingConfig:
        return BillingConfig.from_settings(BillingRepository.get_settings(q))

    @staticmethod
    def get_reservation_payments(q: SecureQuery, reservation: Reservation) -> List[Payment]:
        """Payments owned by the reservation's own family group, oldest first"""
        return (
            q.select(Payment)
            .filter(
                Payment.reservation_id == reservation.id,
                Payment.family_group == reservation.family_group,
            )
            .order_by(Payment.created_at.asc(), Payment.id.asc())
            .all()
        )

    @staticmethod
    def select_primary_payment(payments: List[Payment]) -> Optional[Payment]:
        """
        Pick the payment that represents a reservation when duplicates exist.

        Preference: money already received, then recorded guests, then a
        non-zero charge, then the oldest row.
        """
        if not payments:
            return None
        for candidate in payments:
            if (candidate.amount_paid or 0) > 0:
                return candidate
        for candidate in payments:
            if any((entry.get("guests") or 0) > 0 for entry in candidate.daily_occupancy or []):
                return candidate
        for candidate in payments:
            if (candidate.amount or 0) > 0:
                return candidate
        return payments[0]

    @staticmethod
    def get_primary_payment(q: SecureQuery, reservation: Reservation) -> Optional[Payment]:
        return BillingRepository.select_primary_payment(
            BillingRepository.get_reservation_payments(q, reservation)
        )

    @staticmethod
    def is_split_source(q: SecureQuery, payment_id: str) -> bool:
        return (
            q.select(PaymentSplit).filter(PaymentSplit.source_payment_id == payment_id).first()
            is not None
        )
