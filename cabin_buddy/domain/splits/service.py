"""
Split service - divides one stay's charge among guest families.

All payment and split rows of one request are written in a single database
transaction: either every row is committed or none is. Notifications are
sent after the commit and never affect the stored payments.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, List, Optional

from sqlalchemy.orm import Session

from ...email_service import send_guest_split_notification
from ...errors import AuthorizationError, CabinBuddyError, PartialFailure, ValidationError
from ...models import Payment, PaymentSplit, Reservation
from ...shared.secure_queries import OrganizationContext, SecureQuery
from ...shared.validators import normalize_occupancy, stay_nights, validate_amount
from ..billing.repository import BillingRepository
from ..seasons.service import build_season_config
from .repository import SplitRepository
from .schemas import CreateSplitRequest

logger = logging.getLogger(__name__)

AMOUNT_TOLERANCE = 0.01
SPLIT_ON_BEHALF_ROLES = ("admin", "calendar_keeper")

Notifier = Callable[..., Awaitable[dict]]


def payment_to_dict(payment: Payment) -> dict:
    return {
        "id": payment.id,
        "reservationId": payment.reservation_id,
        "familyGroup": payment.family_group,
        "amount": payment.amount,
        "amountPaid": payment.amount_paid,
        "status": payment.status,
        "paymentType": payment.payment_type,
        "dueDate": payment.due_date.isoformat() if payment.due_date else None,
        "dailyOccupancy": payment.daily_occupancy or [],
        "billingLocked": payment.billing_locked,
        "description": payment.description,
        "notes": payment.notes,
    }


def split_to_dict(split: PaymentSplit) -> dict:
    return {
        "id": split.id,
        "operationId": split.operation_id,
        "sourcePaymentId": split.source_payment_id,
        "splitPaymentId": split.split_payment_id,
        "sourceFamilyGroup": split.source_family_group,
        "sourceUserId": split.source_user_id,
        "splitToFamilyGroup": split.split_to_family_group,
        "splitToUserId": split.split_to_user_id,
        "dailyOccupancySplit": split.daily_occupancy_split or [],
        "notificationStatus": split.notification_status,
        "notificationSentAt": split.notification_sent_at.isoformat()
        if split.notification_sent_at
        else None,
    }


def attach_costs(entries: List[dict], amount: float, label: str) -> float:
    """
    Make every occupancy entry carry a per-day cost.

    Entries that already carry costs define the amount (reconciled when the
    client's amount disagrees). Entries without costs get the amount spread
    by guest count, or evenly when nobody was recorded.
    """
    if not entries:
        return amount
    with_cost = [entry for entry in entries if entry.get("cost") is not None]
    if with_cost and len(with_cost) != len(entries):
        raise ValidationError(f"Provide a cost for every day or for none ({label})")

    if with_cost:
        calculated = sum(entry["cost"] for entry in entries)
        if abs(calculated - amount) > AMOUNT_TOLERANCE:
            logger.warning(
                f"⚠️ Amount mismatch for {label}: provided {amount}, daily costs sum to "
                f"{calculated}; using the daily costs"
            )
        return calculated

    total_guests = sum(entry["guests"] for entry in entries)
    for entry in entries:
        if total_guests > 0:
            entry["cost"] = amount * entry["guests"] / total_guests
        else:
            entry["cost"] = amount / len(entries)
    return amount


class PreparedGuest:
    def __init__(self, user_id, family_group, display_name, email, amount, entries):
        self.user_id = user_id
        self.family_group = family_group
        self.display_name = display_name
        self.email = email
        self.amount = amount
        self.entries = entries


class SplitService:
    """Service layer for guest cost splitting"""

    def __init__(
        self,
        db: Session,
        context: OrganizationContext,
        notifier: Optional[Notifier] = None,
    ):
        self.db = db
        self.context = context
        self.q = SecureQuery(db, context)
        self.repo = SplitRepository()
        self.billing_repo = BillingRepository()
        self.notifier = notifier or send_guest_split_notification

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _resolve_source_user(self, data: CreateSplitRequest) -> str:
        if data.sourceUserId and data.sourceUserId != self.context.user_id:
            if not self.context.has_role(*SPLIT_ON_BEHALF_ROLES):
                raise AuthorizationError("You can only split costs for your own stays")
            return data.sourceUserId
        return self.context.user_id

    def _stay_bounds(self, data: CreateSplitRequest, reservation: Optional[Reservation]):
        if data.dateRange.end < data.dateRange.start:
            raise ValidationError("dateRange end cannot be before start")
        if reservation is not None:
            return reservation.start_date, reservation.end_date, False
        return data.dateRange.start, data.dateRange.end, True

    def _prepare_guests(self, data: CreateSplitRequest, bounds) -> List[PreparedGuest]:
        start, end, inclusive = bounds
        guests = []
        seen_users = set()
        for split_user in data.splitUsers:
            label = split_user.displayName or split_user.familyGroup
            if split_user.userId in seen_users:
                raise ValidationError(f"{label} appears more than once in the split")
            seen_users.add(split_user.userId)
            if split_user.familyGroup == data.sourceFamilyGroup:
                raise ValidationError(f"Cannot split a cost with the source family group ({label})")
            if not split_user.dailyOccupancy:
                raise ValidationError(f"Daily occupancy is required for {label}")

            amount = validate_amount(split_user.amount, f"amount for {label}")
            entries = normalize_occupancy(split_user.dailyOccupancy, start, end, inclusive_end=inclusive)
            if sum(entry["guests"] for entry in entries) <= 0:
                raise ValidationError(f"{label} must have at least one guest-day")
            amount = attach_costs(entries, amount, label)

            membership = self.repo.get_membership(self.q, split_user.userId)
            if not membership:
                raise ValidationError(f"{label} is not a member of this organization")

            guests.append(
                PreparedGuest(
                    user_id=split_user.userId,
                    family_group=split_user.familyGroup,
                    display_name=split_user.displayName,
                    email=membership.user.email if membership.user else None,
                    amount=amount,
                    entries=entries,
                )
            )
        return guests

    def _source_entries(self, data, bounds, primary: Optional[Payment], source_amount: float):
        start, end, inclusive = bounds
        entries = normalize_occupancy(
            data.sourceDailyOccupancy, start, end, inclusive_end=inclusive
        )
        if not entries and primary is not None and primary.daily_occupancy:
            entries = normalize_occupancy(primary.daily_occupancy, start, end, inclusive_end=inclusive)
            for entry in entries:
                entry.pop("cost", None)
        if not entries:
            last = end + timedelta(days=1) if inclusive else end
            entries = [{"date": day.isoformat(), "guests": 0} for day in stay_nights(start, last)]
        return entries, attach_costs(entries, source_amount, data.sourceFamilyGroup)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def _replay(self, existing: List[PaymentSplit]) -> dict:
        logger.info(f"🔁 Split operation {existing[0].operation_id} already applied; returning it")
        return {
            "success": True,
            "idempotentReplay": True,
            "operationId": existing[0].operation_id,
            "sourcePayment": payment_to_dict(existing[0].source_payment),
            "splits": [
                {
                    "split": split_to_dict(split),
                    "payment": payment_to_dict(split.split_payment),
                }
                for split in existing
            ],
            "wasUpdated": False,
            "warnings": [],
        }

    async def create_split(self, data: CreateSplitRequest) -> dict:
        """
        Divide one stay's charge between the source family and guest families.

        Invariant checked before any write:
        ``sourceAmount + sum(guest amounts) == original charge`` (within a cent).
        """
        if data.operationId:
            existing = self.repo.get_by_operation_id(self.q, data.operationId)
            if existing:
                return self._replay(existing)

        if not data.splitUsers:
            raise ValidationError("At least one split user is required")
        source_user_id = self._resolve_source_user(data)

        reservation = None
        if data.reservationId:
            reservation = self.q.get_or_404(Reservation, data.reservationId, "Reservation")
            if reservation.family_group != data.sourceFamilyGroup:
                raise ValidationError("Source family group does not own this reservation")
            if reservation.status == "cancelled":
                raise ValidationError("Cannot split the cost of a cancelled reservation")
        bounds = self._stay_bounds(data, reservation)

        source_amount = validate_amount(data.sourceAmount, "sourceAmount")
        guests = self._prepare_guests(data, bounds)

        candidates = (
            self.billing_repo.get_reservation_payments(self.q, reservation) if reservation else []
        )
        primary = self.billing_repo.select_primary_payment(candidates)
        source_entries, source_amount = self._source_entries(data, bounds, primary, source_amount)

        split_total = sum(guest.amount for guest in guests)
        if data.originalAmount is not None:
            original = validate_amount(data.originalAmount, "originalAmount")
        elif primary is not None:
            original = primary.amount or 0.0
        else:
            original = source_amount + split_total
        if abs(source_amount + split_total - original) > AMOUNT_TOLERANCE:
            raise ValidationError(
                f"Split amounts do not add up: source {source_amount:.2f} + guests "
                f"{split_total:.2f} != original charge {original:.2f}"
            )

        season = build_season_config(
            self.billing_repo.get_settings(self.q), bounds[0].year
        )
        organization = self.repo.get_organization(self.q)
        guest_names = ", ".join(guest.display_name for guest in guests)
        stay_label = f"{data.dateRange.start.isoformat()} to {data.dateRange.end.isoformat()}"

        try:
            was_updated = primary is not None
            if primary is not None:
                source = primary
                source.amount = source_amount
                source.daily_occupancy = source_entries
                source.notes = f"Cost split with: {guest_names}"
                if (source.amount_paid or 0) <= 0:
                    source.status = "deferred"
                removed = self.repo.delete_unpaid_duplicates(self.q, source, candidates)
                if removed:
                    logger.info(f"🧹 Removed {removed} duplicate payment(s) for {reservation.id}")
            else:
                source = self.q.insert(
                    Payment(
                        reservation_id=reservation.id if reservation else None,
                        family_group=data.sourceFamilyGroup,
                        payment_type="use_fee",
                        amount=source_amount,
                        status="deferred",
                        due_date=season.payment_deadline,
                        daily_occupancy=source_entries,
                        description=data.description or f"Use fee - {stay_label}",
                        notes=f"Cost split with: {guest_names}",
                        created_by_user_id=source_user_id,
                    )
                )
            # Source row is flushed before any guest row references it
            self.db.flush()

            created = []
            for guest in guests:
                payment = self.q.insert(
                    Payment(
                        reservation_id=reservation.id if reservation else None,
                        family_group=guest.family_group,
                        payment_type="use_fee",
                        amount=guest.amount,
                        status="pending",
                        due_date=season.payment_deadline,
                        daily_occupancy=[dict(entry) for entry in guest.entries],
                        description=f"Guest cost split - {stay_label}",
                        notes=f"Split from {data.sourceFamilyGroup}",
                        created_by_user_id=source_user_id,
                    )
                )
                self.db.flush()
                split = self.q.insert(
                    PaymentSplit(
                        operation_id=data.operationId,
                        source_payment_id=source.id,
                        split_payment_id=payment.id,
                        source_family_group=data.sourceFamilyGroup,
                        source_user_id=source_user_id,
                        split_to_family_group=guest.family_group,
                        split_to_user_id=guest.user_id,
                        daily_occupancy_split=[dict(entry) for entry in guest.entries],
                        notification_status="pending",
                    )
                )
                created.append((guest, payment, split))

            self.db.commit()
        except CabinBuddyError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Split creation rolled back for {data.sourceFamilyGroup}: {e}")
            raise PartialFailure("Failed to create split payments", rolled_back=True) from e

        logger.info(
            f"✅ Split {data.sourceFamilyGroup} stay {stay_label}: source={source.amount}, "
            f"{len(created)} guest payment(s) totalling {split_total}"
        )

        warnings = []
        for guest, payment, split in created:
            warning = await self._notify(split, guest, data, organization)
            if warning:
                warnings.append(warning)

        return {
            "success": True,
            "operationId": data.operationId,
            "sourcePayment": payment_to_dict(source),
            "splits": [
                {
                    "split": split_to_dict(split),
                    "payment": payment_to_dict(payment),
                    "displayName": guest.display_name,
                }
                for guest, payment, split in created
            ],
            "wasUpdated": was_updated,
            "warnings": warnings,
        }

    async def _notify(self, split: PaymentSplit, guest: PreparedGuest, data, organization) -> Optional[str]:
        """Send one split notification. Failures are recorded on the split, never raised."""
        organization_name = organization.name if organization else "your organization"
        try:
            if not guest.email:
                raise ValueError("recipient has no email address")
            await self.notifier(
                to=guest.email,
                recipient_name=guest.display_name,
                organization_name=organization_name,
                source_family_group=data.sourceFamilyGroup,
                daily_breakdown=guest.entries,
                total_amount=guest.amount,
                description=data.description,
            )
            split.notification_status = "sent"
            split.notification_sent_at = datetime.now(timezone.utc)
            split.notification_error = None
            logger.info(f"📧 Split notification sent to {guest.email}")
            warning = None
        except Exception as e:
            split.notification_status = "failed"
            split.notification_error = str(e)
            logger.warning(f"⚠️ Split notification to {guest.display_name} failed: {e}")
            warning = f"Could not notify {guest.display_name}: {e}"
        self.db.commit()
        return warning

    def list_splits(self, payment_id: Optional[str] = None) -> List[dict]:
        return [split_to_dict(split) for split in self.repo.list_splits(self.q, payment_id)]
