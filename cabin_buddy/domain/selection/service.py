"""
Selection service - extending a family group's selection window.

Extending one window pushes every later window in the rotation by the same
number of days; removing the extension pulls them back.
"""

import logging
from datetime import date, timedelta
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from ...errors import AuthorizationError, NotFoundError, ValidationError
from ...models import ReservationPeriod, SelectionPeriodExtension
from ...shared.secure_queries import OrganizationContext, SecureQuery
from .repository import SelectionRepository
from .schemas import SelectionWindow

logger = logging.getLogger(__name__)

EXTENSION_ROLES = ("admin", "calendar_keeper")


def shift_subsequent_periods(
    periods: Sequence[SelectionWindow], from_index: int, delta_days: int
) -> List[SelectionWindow]:
    """
    Return copies of ``periods`` with every window after position ``from_index``
    moved by ``delta_days``. Order and each window's duration are unchanged and
    the input list is not modified.
    """
    delta = timedelta(days=delta_days)
    shifted = []
    for position, period in enumerate(periods):
        if position > from_index and delta_days:
            shifted.append(
                period.model_copy(
                    update={"start_date": period.start_date + delta, "end_date": period.end_date + delta}
                )
            )
        else:
            shifted.append(period.model_copy())
    return shifted


def _to_window(period: ReservationPeriod) -> SelectionWindow:
    return SelectionWindow(
        family_group=period.current_family_group,
        group_index=period.current_group_index,
        start_date=period.selection_start_date,
        end_date=period.selection_end_date,
    )


def _extension_to_dict(extension: SelectionPeriodExtension) -> dict:
    return {
        "id": extension.id,
        "rotationYear": extension.rotation_year,
        "familyGroup": extension.family_group,
        "originalEndDate": extension.original_end_date.isoformat(),
        "extendedUntil": extension.extended_until.isoformat(),
        "extensionReason": extension.extension_reason,
    }


class SelectionService:
    def __init__(self, db: Session, context: OrganizationContext):
        self.db = db
        self.context = context
        self.q = SecureQuery(db, context)
        self.repo = SelectionRepository()

    def _require_editor(self) -> None:
        if not self.context.has_role(*EXTENSION_ROLES):
            raise AuthorizationError("Only admins and calendar keepers can change selection periods")

    def _locate(self, rotation_year: int, family_group: str):
        periods = self.repo.get_periods(self.q, rotation_year)
        for position, period in enumerate(periods):
            if period.current_family_group == family_group:
                return periods, position
        raise NotFoundError(f"No selection period for {family_group} in {rotation_year}")

    def _apply_shift(self, periods: List[ReservationPeriod], position: int, delta_days: int) -> None:
        windows = shift_subsequent_periods([_to_window(p) for p in periods], position, delta_days)
        for period, window in zip(periods, windows):
            period.selection_start_date = window.start_date
            period.selection_end_date = window.end_date

    def list_extensions(self, rotation_year: int) -> List[dict]:
        return [_extension_to_dict(e) for e in self.repo.list_extensions(self.q, rotation_year)]

    def create_or_update_extension(
        self,
        rotation_year: int,
        family_group: str,
        extended_until: date,
        reason: Optional[str] = None,
    ) -> dict:
        """Extend a family's window to ``extended_until`` and push later windows by the change"""
        self._require_editor()
        periods, position = self._locate(rotation_year, family_group)
        period = periods[position]
        extension = self.repo.get_extension(self.q, rotation_year, family_group)
        original_end = extension.original_end_date if extension else period.selection_end_date

        if extended_until < original_end:
            raise ValidationError("extendedUntil cannot be earlier than the original end date")

        delta_days = (extended_until - period.selection_end_date).days
        self._apply_shift(periods, position, delta_days)
        period.selection_end_date = extended_until

        if extension:
            extension.extended_until = extended_until
            extension.extension_reason = reason
            extension.extended_by_user_id = self.context.user_id
        else:
            extension = self.q.insert(
                SelectionPeriodExtension(
                    rotation_year=rotation_year,
                    family_group=family_group,
                    original_end_date=original_end,
                    extended_until=extended_until,
                    extension_reason=reason,
                    extended_by_user_id=self.context.user_id,
                )
            )
        self.db.commit()
        logger.info(
            f"📅 Selection period for {family_group} ({rotation_year}) extended to "
            f"{extended_until}; {len(periods) - position - 1} later period(s) moved {delta_days} day(s)"
        )
        return {
            "success": True,
            "extension": _extension_to_dict(extension),
            "shiftedDays": delta_days,
        }

    def delete_extension(self, rotation_year: int, family_group: str) -> dict:
        """Restore the original end date and pull later windows back"""
        self._require_editor()
        extension = self.repo.get_extension(self.q, rotation_year, family_group)
        if not extension:
            raise NotFoundError(f"No extension for {family_group} in {rotation_year}")
        periods, position = self._locate(rotation_year, family_group)
        period = periods[position]

        delta_days = (extension.original_end_date - period.selection_end_date).days
        self._apply_shift(periods, position, delta_days)
        period.selection_end_date = extension.original_end_date
        self.q.delete(SelectionPeriodExtension, extension.id)
        self.db.commit()
        logger.info(f"🗑️ Selection extension for {family_group} ({rotation_year}) removed")
        return {"success": True, "shiftedDays": delta_days}
