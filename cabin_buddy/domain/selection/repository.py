"""Selection repository - rotation periods and their extensions"""

from typing import List, Optional

from ...models import ReservationPeriod, SelectionPeriodExtension
from ...shared.secure_queries import SecureQuery


class SelectionRepository:
    @staticmethod
    def get_periods(q: SecureQuery, rotation_year: int) -> List[ReservationPeriod]:
        """Selection windows of a rotation year in rotation order"""
        return (
            q.select(ReservationPeriod)
            .filter(ReservationPeriod.rotation_year == rotation_year)
            .order_by(ReservationPeriod.current_group_index.asc())
            .all()
        )

    @staticmethod
    def get_extension(
        q: SecureQuery, rotation_year: int, family_group: str
    ) -> Optional[SelectionPeriodExtension]:
        return (
            q.select(SelectionPeriodExtension)
            .filter(
                SelectionPeriodExtension.rotation_year == rotation_year,
                SelectionPeriodExtension.family_group == family_group,
            )
            .first()
        )

    @staticmethod
    def list_extensions(q: SecureQuery, rotation_year: int) -> List[SelectionPeriodExtension]:
        return (
            q.select(SelectionPeriodExtension)
            .filter(SelectionPeriodExtension.rotation_year == rotation_year)
            .order_by(SelectionPeriodExtension.family_group.asc())
            .all()
        )
