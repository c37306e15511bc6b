"""Occupancy service - daily occupancy sync, billing lock and manual adjustments"""

import logging
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ...errors import AuthorizationError, ValidationError
from ...models import Payment, PaymentSplit, Reservation
from ...shared.secure_queries import OrganizationContext, SecureQuery
from ...shared.validators import normalize_occupancy, occupancy_map, parse_iso_date
from ..billing.calculator import (
    PER_PERSON_PER_WEEK,
    BillingCalculator,
    resolve_billing_method,
)
from ..billing.repository import BillingRepository

logger = logging.getLogger(__name__)

LOCKED_WARNING = "Billing is locked - costs remain unchanged"
SPLIT_EDITOR_ROLES = ("admin", "calendar_keeper")
ADJUSTMENT_ROLES = ("admin", "treasurer")


class OccupancyService:
    """Service layer for per-day occupancy and the charges derived from it"""

    def __init__(self, db: Session, context: OrganizationContext):
        self.db = db
        self.context = context
        self.q = SecureQuery(db, context)
        self.billing_repo = BillingRepository()

    def _get_reservation(self, reservation_id: str) -> Reservation:
        return self.q.get_or_404(Reservation, reservation_id, "Reservation")

    def _price(self, payment: Payment, reservation: Reservation):
        config = self.billing_repo.get_billing_config(self.q)
        return BillingCalculator.calculate_from_daily_occupancy(
            config,
            occupancy_map(payment.daily_occupancy),
            (reservation.start_date, reservation.end_date),
        )

    # ------------------------------------------------------------------
    # Reservation occupancy
    # ------------------------------------------------------------------

    def update_occupancy(
        self, reservation_id: str, occupancy: Iterable, skip_billing_recalc: bool = False
    ) -> dict:
        """
        Persist a reservation's daily occupancy onto its payment.

        The charge is recomputed unless billing is locked, in which case only
        the occupancy record changes and a warning is returned.
        """
        reservation = self._get_reservation(reservation_id)
        if reservation.status == "cancelled":
            raise ValidationError("Cannot record occupancy for a cancelled reservation")

        entries = normalize_occupancy(occupancy, reservation.start_date, reservation.end_date)

        payment = self.billing_repo.get_primary_payment(self.q, reservation)
        if payment and self.billing_repo.is_split_source(self.q, payment.id):
            raise ValidationError(
                "This stay's cost has been split; edit the split occupancy instead"
            )
        if payment is None:
            payment = self.q.insert(
                Payment(
                    reservation_id=reservation.id,
                    family_group=reservation.family_group,
                    amount=0.0,
                    status="pending",
                    description=(
                        f"Use fee - {reservation.start_date.isoformat()} to "
                        f"{reservation.end_date.isoformat()}"
                    ),
                    created_by_user_id=self.context.user_id,
                )
            )
            logger.info(f"🆕 Created payment for reservation {reservation.id}")

        payment.daily_occupancy = entries
        result = {
            "success": True,
            "paymentId": payment.id,
            "billingLocked": bool(payment.billing_locked),
            "recalculated": False,
            "warnings": [],
        }

        if payment.billing_locked:
            logger.info(f"🔒 Occupancy saved for locked payment {payment.id}; charge unchanged")
            result["warning"] = LOCKED_WARNING
            result["warnings"].append(LOCKED_WARNING)
        elif not skip_billing_recalc:
            breakdown = self._price(payment, reservation)
            payment.amount = breakdown.total
            result["recalculated"] = True
            result["warnings"].extend(breakdown.warnings)

        self.db.commit()
        self.db.refresh(payment)
        result["paymentId"] = payment.id
        result["amount"] = payment.amount
        logger.info(
            f"✅ Occupancy updated for reservation {reservation.id}: {len(entries)} days, "
            f"amount={payment.amount}"
        )
        return result

    def get_billing_lock_status(self, reservation_id: str) -> bool:
        reservation = self._get_reservation(reservation_id)
        payment = self.billing_repo.get_primary_payment(self.q, reservation)
        return bool(payment and payment.billing_locked)

    def recalculate_billing(self, reservation_id: str) -> dict:
        """Recompute a reservation's charge from its stored occupancy"""
        reservation = self._get_reservation(reservation_id)
        payment = self.billing_repo.get_primary_payment(self.q, reservation)
        if not payment or not payment.daily_occupancy:
            raise ValidationError("No occupancy recorded for this reservation")
        if payment.billing_locked:
            raise ValidationError("Billing is locked - unlock billing before recalculating")
        if self.billing_repo.is_split_source(self.q, payment.id):
            raise ValidationError("This stay's cost has been split and cannot be recalculated")

        breakdown = self._price(payment, reservation)
        payment.amount = breakdown.total
        self.db.commit()
        logger.info(f"✅ Recalculated payment {payment.id}: {payment.amount}")
        return {"success": True, "paymentId": payment.id, "amount": payment.amount, "breakdown": breakdown}

    # ------------------------------------------------------------------
    # Split occupancy
    # ------------------------------------------------------------------

    def _split_rate(self, split: PaymentSplit) -> float:
        """Per guest-night rate the split was priced with"""
        old_entries = split.daily_occupancy_split or []
        guests = sum(int(entry.get("guests") or 0) for entry in old_entries)
        cost = sum(float(entry.get("cost") or 0) for entry in old_entries)
        if guests > 0 and cost > 0:
            return cost / guests

        config = self.billing_repo.get_billing_config(self.q)
        method = resolve_billing_method(config.method).method
        if method == PER_PERSON_PER_WEEK:
            return config.amount / 7
        return config.amount

    def _split_bounds(self, source_payment: Payment, split: PaymentSplit):
        reservation = source_payment.reservation
        if reservation is not None:
            return reservation.start_date, reservation.end_date, False
        days = [
            parse_iso_date(entry["date"])
            for entry in (source_payment.daily_occupancy or []) + (split.daily_occupancy_split or [])
        ]
        if not days:
            raise ValidationError("Split has no stay dates to validate against")
        return min(days), max(days), True

    def update_split_occupancy(
        self, split_id: str, split_payment_id: str, occupancy: Iterable
    ) -> dict:
        """
        Change the guest-days attributed to one split recipient.

        The recipient is re-priced at the split's per guest-night rate and the
        source payment absorbs the difference, so source plus splits still
        equals the original charge.
        """
        split = self.q.get_or_404(PaymentSplit, split_id, "Split")
        if split.split_payment_id != split_payment_id:
            raise ValidationError("Split payment does not belong to this split")
        if self.context.user_id != split.source_user_id and not self.context.has_role(
            *SPLIT_EDITOR_ROLES
        ):
            raise AuthorizationError("Only the person who created the split can edit it")

        split_payment = self.q.get_or_404(Payment, split_payment_id, "Split payment")
        source_payment = self.q.get_or_404(Payment, split.source_payment_id, "Source payment")
        if (split_payment.amount_paid or 0) > 0:
            raise ValidationError("Cannot edit split after recipient has made payments")

        start, end, inclusive = self._split_bounds(source_payment, split)
        entries = normalize_occupancy(occupancy, start, end, inclusive_end=inclusive)
        if not any(entry["guests"] > 0 for entry in entries):
            raise ValidationError("A split must include at least one guest-day")

        rate = self._split_rate(split)
        for entry in entries:
            entry["cost"] = entry["guests"] * rate
        new_amount = sum(entry["cost"] for entry in entries)

        result = {"success": True, "splitId": split.id, "warnings": []}
        if split_payment.billing_locked:
            result["warning"] = LOCKED_WARNING
            result["warnings"].append(LOCKED_WARNING)
        else:
            delta = new_amount - (split_payment.amount or 0)
            new_source_amount = (source_payment.amount or 0) - delta
            if new_source_amount < -0.005:
                raise ValidationError("Split amount cannot exceed the source payment's charge")
            split_payment.amount = new_amount
            source_payment.amount = max(new_source_amount, 0.0)
            result["delta"] = delta

        split.daily_occupancy_split = entries
        split_payment.daily_occupancy = [dict(entry) for entry in entries]
        self.db.commit()

        result["splitAmount"] = split_payment.amount
        result["sourceAmount"] = source_payment.amount
        logger.info(
            f"✅ Split {split.id} occupancy updated: split={split_payment.amount} "
            f"source={source_payment.amount}"
        )
        return result

    # ------------------------------------------------------------------
    # Manual adjustments
    # ------------------------------------------------------------------

    def adjust_billing(
        self,
        payment_id: str,
        adjustment: float,
        notes: Optional[str] = None,
        locked: Optional[bool] = None,
    ) -> Payment:
        """Set the manual adjustment and optionally lock or unlock the charge"""
        if not self.context.has_role(*ADJUSTMENT_ROLES):
            raise AuthorizationError("Only admins and treasurers can adjust billing")
        try:
            adjustment = float(adjustment)
        except (TypeError, ValueError) as e:
            raise ValidationError("Adjustment must be a number") from e
        if adjustment != adjustment or adjustment in (float("inf"), float("-inf")):
            raise ValidationError("Adjustment must be a finite number")

        payment = self.q.get_or_404(Payment, payment_id, "Payment")

        if locked and not payment.billing_locked:
            reservation = payment.reservation
            entries = payment.daily_occupancy or []
            priced_by_split = entries and all(entry.get("cost") is not None for entry in entries)
            if entries and reservation is not None and not priced_by_split:
                # Freeze the charge the family currently sees
                payment.amount = self._price(payment, reservation).total
            logger.info(f"🔒 Billing locked for payment {payment.id} at {payment.amount}")

        payment.manual_adjustment_amount = adjustment
        payment.adjustment_notes = notes
        if locked is not None:
            payment.billing_locked = locked

        self.db.commit()
        self.db.refresh(payment)
        return payment
