"""Season service - per-family and organization-wide season totals"""

import logging
from collections import OrderedDict
from datetime import date, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ...errors import AuthorizationError
from ...models import Payment, Reservation, ReservationSettings
from ...shared.secure_queries import OrganizationContext, SecureQuery
from ...shared.validators import normalize_occupancy, occupancy_map, parse_iso_date
from ..billing.calculator import BillingCalculator
from ..billing.charges import AWAITING, OCCUPANCY, resolve_payment_charge
from ..billing.repository import BillingRepository
from ..billing.schemas import BillingConfig
from .repository import SeasonRepository
from .schemas import (
    FamilyError,
    FamilySummary,
    PaymentSyncResult,
    SeasonConfig,
    SeasonSummary,
    SeasonTotals,
    SplitCharge,
    StaySummary,
)

logger = logging.getLogger(__name__)

DEFAULT_SEASON = {"start_month": 10, "start_day": 1, "end_month": 10, "end_day": 31}
SUMMARY_ROLES = ("admin", "treasurer", "calendar_keeper")


def build_season_config(settings: Optional[ReservationSettings], season_year: int) -> SeasonConfig:
    """
    Season boundaries for a year. Falls back to Oct 1 - Oct 31 when the
    organization has not configured a season or configured an impossible date.
    A season whose end month precedes its start month ends the following year.
    """
    offset = (settings.season_payment_deadline_offset_days if settings else None) or 0
    is_default = settings is None or not all(
        [
            settings.season_start_month,
            settings.season_start_day,
            settings.season_end_month,
            settings.season_end_day,
        ]
    )
    try:
        if is_default:
            raise ValueError("season not configured")
        start = date(season_year, settings.season_start_month, settings.season_start_day)
        end = date(season_year, settings.season_end_month, settings.season_end_day)
        if end < start:
            end = date(season_year + 1, settings.season_end_month, settings.season_end_day)
    except ValueError as e:
        if not is_default:
            logger.warning(f"⚠️ Invalid season settings ({e}); using default season")
        is_default = True
        start = date(season_year, DEFAULT_SEASON["start_month"], DEFAULT_SEASON["start_day"])
        end = date(season_year, DEFAULT_SEASON["end_month"], DEFAULT_SEASON["end_day"])

    return SeasonConfig(
        season_year=season_year,
        season_name=f"{season_year} Season",
        season_start=start,
        season_end=end,
        payment_deadline=end + timedelta(days=offset),
        payment_deadline_offset_days=offset,
        is_default=is_default,
    )


def _payment_status(charged: float, paid: float, fallback: Optional[str]) -> str:
    if charged <= 0 and paid <= 0:
        return "awaiting"
    if paid >= charged - 0.005:
        return "paid"
    if paid > 0:
        return "partial"
    return fallback or "pending"


class SeasonService:
    """Service layer for season aggregation and payment sync"""

    def __init__(self, db: Session, context: OrganizationContext):
        self.db = db
        self.context = context
        self.q = SecureQuery(db, context)
        self.repo = SeasonRepository()
        self.billing_repo = BillingRepository()

    def get_season_config(self, season_year: int) -> SeasonConfig:
        return build_season_config(self.billing_repo.get_settings(self.q), season_year)

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    def _build_stay(
        self, reservation: Reservation, payment: Optional[Payment], config: BillingConfig
    ) -> StaySummary:
        nights = (reservation.end_date - reservation.start_date).days
        stay = StaySummary(
            reservation_id=reservation.id,
            check_in=reservation.start_date,
            check_out=reservation.end_date,
            nights=nights,
            status=reservation.status,
        )
        if payment is None:
            return stay

        resolution = resolve_payment_charge(payment, config)
        paid = payment.amount_paid or 0.0
        stay.payment_id = payment.id
        stay.total_charged = resolution.charge
        stay.base_charge = (
            resolution.breakdown.base_amount if resolution.source == OCCUPANCY else resolution.charge
        )
        stay.amount_paid = paid
        stay.balance_due = resolution.charge - paid
        stay.charge_source = resolution.source
        stay.billing_locked = bool(payment.billing_locked)
        stay.payment_status = _payment_status(resolution.charge, paid, payment.status)

        entries = payment.daily_occupancy or []
        if entries:
            stay.occupancy_days = len(entries)
            stay.average_occupancy = sum(int(e.get("guests") or 0) for e in entries) / len(entries)
        return stay

    def _build_split_charge(self, payment: Payment, config: BillingConfig) -> SplitCharge:
        resolution = resolve_payment_charge(payment, config)
        paid = payment.amount_paid or 0.0
        days = sorted(parse_iso_date(e["date"]) for e in payment.daily_occupancy or [])
        reservation = payment.reservation
        return SplitCharge(
            payment_id=payment.id,
            reservation_id=payment.reservation_id,
            source_family_group=reservation.family_group if reservation else None,
            description=payment.description,
            check_in=days[0] if days else (reservation.start_date if reservation else None),
            check_out=(days[-1] + timedelta(days=1))
            if days
            else (reservation.end_date if reservation else None),
            total_charged=resolution.charge,
            amount_paid=paid,
            balance_due=resolution.charge - paid,
            payment_status=_payment_status(resolution.charge, paid, payment.status),
        )

    def _summarize_family(
        self,
        family_group: str,
        family,
        reservations: List[Reservation],
        payment_map: Dict[str, Payment],
        split_payments: List[Payment],
        config: BillingConfig,
    ) -> FamilySummary:
        summary = FamilySummary(
            family_group=family_group,
            lead_email=family.lead_email if family else None,
            lead_phone=family.lead_phone if family else None,
        )
        for reservation in reservations:
            stay = self._build_stay(reservation, payment_map.get(reservation.id), config)
            summary.stays.append(stay)
            summary.total_stays += 1
            summary.total_nights += stay.nights
            summary.total_charged += stay.total_charged
            summary.total_paid += stay.amount_paid
            if stay.charge_source == AWAITING:
                summary.missing_occupancy += 1

        for payment in split_payments:
            charge = self._build_split_charge(payment, config)
            summary.split_charges.append(charge)
            summary.total_charged += charge.total_charged
            summary.total_paid += charge.amount_paid

        summary.outstanding = summary.total_charged - summary.total_paid
        return summary

    def compute_season_summary(
        self, season_year: int, family_group: Optional[str] = None
    ) -> SeasonSummary:
        """
        Per-family and organization-wide totals for one season.

        Amounts are accumulated unrounded. A family whose data cannot be
        processed is reported in ``errors`` and the remaining families still
        render.
        """
        settings = self.billing_repo.get_settings(self.q)
        season = build_season_config(settings, season_year)
        config = BillingConfig.from_settings(settings)
        warnings = []
        if season.is_default:
            warnings.append("Season dates are not configured; using October 1 - October 31")

        families = {f.name: f for f in self.repo.get_family_groups(self.q)}
        reservations = self.repo.get_season_reservations(
            self.q, season.season_start, season.season_end
        )
        reservations_by_id = {r.id: r for r in reservations}
        payments = self.repo.get_payments_for_reservations(self.q, list(reservations_by_id))

        owned: Dict[str, List[Payment]] = {}
        split_in: Dict[str, List[Payment]] = {}
        for payment in payments:
            reservation = reservations_by_id[payment.reservation_id]
            if payment.family_group == reservation.family_group:
                owned.setdefault(reservation.id, []).append(payment)
            else:
                split_in.setdefault(payment.family_group, []).append(payment)

        payment_map = {}
        for reservation_id, candidates in owned.items():
            if len(candidates) > 1:
                message = (
                    f"Reservation {reservation_id} has {len(candidates)} payments; "
                    "using the primary one"
                )
                logger.warning(f"⚠️ {message}")
                warnings.append(message)
            payment_map[reservation_id] = self.billing_repo.select_primary_payment(candidates)

        by_family: Dict[str, List[Reservation]] = OrderedDict((name, []) for name in families)
        for reservation in reservations:
            by_family.setdefault(reservation.family_group, []).append(reservation)
        for name in split_in:
            by_family.setdefault(name, [])

        family_summaries = []
        errors = []
        for name, family_reservations in by_family.items():
            if family_group and name != family_group:
                continue
            if not family_reservations and not split_in.get(name):
                continue
            try:
                family_summaries.append(
                    self._summarize_family(
                        name,
                        families.get(name),
                        family_reservations,
                        payment_map,
                        split_in.get(name, []),
                        config,
                    )
                )
            except Exception as e:
                logger.error(f"❌ Season summary failed for family {name}: {e}")
                errors.append(FamilyError(family_group=name, error=str(e)))

        totals = SeasonTotals(total_families=len(family_summaries))
        for family in family_summaries:
            totals.total_stays += family.total_stays
            totals.total_nights += family.total_nights
            totals.total_charged += family.total_charged
            totals.total_paid += family.total_paid
        totals.outstanding = totals.total_charged - totals.total_paid

        logger.info(
            f"📊 Season {season_year} for org {self.q.organization_id}: "
            f"{totals.total_families} families, {totals.total_stays} stays, "
            f"charged={totals.total_charged:.2f} paid={totals.total_paid:.2f}"
        )
        return SeasonSummary(
            config=season,
            family_summaries=family_summaries,
            totals=totals,
            errors=errors,
            warnings=warnings,
        )

    def get_summary_for_caller(self, season_year: int) -> SeasonSummary:
        """Admins, treasurers and calendar keepers see every family; members see their own"""
        if self.context.has_role(*SUMMARY_ROLES):
            return self.compute_season_summary(season_year)
        if not self.context.family_group:
            raise AuthorizationError("You are not assigned to a family group")
        return self.compute_season_summary(season_year, family_group=self.context.family_group)

    # ------------------------------------------------------------------
    # Payment sync
    # ------------------------------------------------------------------

    def _occupancy_from_checkins(self, reservation: Reservation) -> List[dict]:
        latest = {}
        for session in self.repo.get_checkin_sessions(self.q, reservation.id):
            if session.guest_count is None:
                continue
            if reservation.start_date <= session.check_date < reservation.end_date:
                latest[session.check_date] = session.guest_count
        return normalize_occupancy(
            [{"date": day, "guests": guests} for day, guests in latest.items()],
            reservation.start_date,
            reservation.end_date,
        )

    def sync_reservations_to_payments(self, season_year: int) -> PaymentSyncResult:
        """
        Create a payment for every in-season reservation that has check-in
        occupancy but no payment yet. Existing payments are left untouched.
        """
        if not self.context.is_admin:
            raise AuthorizationError("Only admins can sync season payments")

        season = self.get_season_config(season_year)
        config = self.billing_repo.get_billing_config(self.q)
        reservations = self.repo.get_season_reservations(
            self.q, season.season_start, season.season_end
        )
        result = PaymentSyncResult(total=len(reservations))

        for reservation in reservations:
            if self.billing_repo.get_primary_payment(self.q, reservation):
                result.existing += 1
                continue
            try:
                entries = self._occupancy_from_checkins(reservation)
                if not entries:
                    result.skipped += 1
                    continue
                breakdown = BillingCalculator.calculate_from_daily_occupancy(
                    config, occupancy_map(entries), (reservation.start_date, reservation.end_date)
                )
                self.q.insert(
                    Payment(
                        reservation_id=reservation.id,
                        family_group=reservation.family_group,
                        amount=breakdown.total,
                        status="pending",
                        due_date=season.payment_deadline,
                        daily_occupancy=entries,
                        description=(
                            f"Use fee - {reservation.start_date.isoformat()} to "
                            f"{reservation.end_date.isoformat()}"
                        ),
                        created_by_user_id=self.context.user_id,
                    )
                )
                self.db.flush()
                result.created += 1
            except Exception as e:
                logger.error(f"❌ Payment sync failed for reservation {reservation.id}: {e}")
                result.errors.append(f"{reservation.family_group} {reservation.start_date}: {e}")

        self.db.commit()
        logger.info(
            f"✅ Season {season_year} payment sync: created={result.created} "
            f"existing={result.existing} skipped={result.skipped}"
        )
        return result
