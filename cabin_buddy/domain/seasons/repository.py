"""Season repository - Database reads for season aggregation"""

from datetime import date
from typing import List

from ...models import CheckinSession, FamilyGroup, Payment, Reservation
from ...shared.secure_queries import SecureQuery


class SeasonRepository:
    """Repository for season-scoped reads"""

    @staticmethod
    def get_family_groups(q: SecureQuery) -> List[FamilyGroup]:
        return q.select(FamilyGroup).order_by(FamilyGroup.name.asc()).all()

    @staticmethod
    def get_season_reservations(q: SecureQuery, start: date, end: date) -> List[Reservation]:
        """Non-cancelled reservations whose check-in falls inside the season"""
        return (
            q.select(Reservation)
            .filter(
                Reservation.start_date >= start,
                Reservation.start_date <= end,
                Reservation.status != "cancelled",
            )
            .order_by(Reservation.start_date.asc())
            .all()
        )

    @staticmethod
    def get_payments_for_reservations(q: SecureQuery, reservation_ids: List[str]) -> List[Payment]:
        if not reservation_ids:
            return []
        return (
            q.select(Payment)
            .filter(Payment.reservation_id.isnot(None), Payment.reservation_id.in_(reservation_ids))
            .order_by(Payment.created_at.asc(), Payment.id.asc())
            .all()
        )

    @staticmethod
    def get_checkin_sessions(q: SecureQuery, reservation_id: str) -> List[CheckinSession]:
        return (
            q.select(CheckinSession)
            .filter(CheckinSession.reservation_id == reservation_id)
            .order_by(CheckinSession.check_date.asc(), CheckinSession.created_at.asc())
            .all()
        )
