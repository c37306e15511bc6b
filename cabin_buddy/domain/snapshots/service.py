"""
Snapshot service - immutable JSON exports of a year's stay history.

Automatic snapshots are retention-managed; manual snapshots are kept until a
user deletes them.
"""

import json
import logging
import uuid
from datetime import date, datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from ...config import DEFAULT_SNAPSHOT_RETENTION
from ...errors import (
    AuthorizationError,
    CabinBuddyError,
    NotFoundError,
    PartialFailure,
    RestoreConflict,
    ValidationError,
)
from ...models import (
    CheckinSession,
    Organization,
    Payment,
    PaymentSplit,
    Receipt,
    Reservation,
    SnapshotMetadata,
)
from ...shared.secure_queries import OrganizationContext, SecureQuery
from ...utils.snapshot_storage import SnapshotStorage, StorageError
from .serialization import COLLECTION_KEYS, dict_to_row, normalize_document, row_to_dict

logger = logging.getLogger(__name__)

AUTO = "auto"
MANUAL = "manual"
SNAPSHOT_SOURCES = (AUTO, MANUAL)

# Hours since the last auto snapshot before another is due (1h scheduler tolerance)
FREQUENCY_THRESHOLD_HOURS = {
    "daily": 23,
    "weekly": 167,
    "biweekly": 335,
    "monthly": 671,
}

RESTORE_SCOPES = {
    "full": ("reservations", "payments", "paymentSplits", "checkinSessions", "receipts"),
    "payments_only": ("payments", "paymentSplits"),
    "reservations_only": ("reservations",),
}

MODELS = {
    "reservations": Reservation,
    "payments": Payment,
    "paymentSplits": PaymentSplit,
    "checkinSessions": CheckinSession,
    "receipts": Receipt,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_snapshot_due(frequency: Optional[str], last_created_at: Optional[datetime], now: datetime) -> bool:
    """Whether an auto snapshot is due for the given frequency"""
    threshold = FREQUENCY_THRESHOLD_HOURS.get((frequency or "").lower())
    if threshold is None:
        return False
    if last_created_at is None:
        return True
    elapsed_hours = (_as_utc(now) - _as_utc(last_created_at)).total_seconds() / 3600
    return elapsed_hours >= threshold


def sweep_years(now: datetime) -> List[int]:
    """The current year, plus last year during January and February"""
    years = [now.year]
    if now.month <= 2:
        years.append(now.year - 1)
    return years


def retention_count(configured: Optional[int]) -> int:
    """Auto snapshots kept per year. Unset means the default; 0 keeps none."""
    if configured is None:
        return DEFAULT_SNAPSHOT_RETENTION
    return max(int(configured), 0)


class SnapshotService:
    """Service layer for stay-history snapshots"""

    def __init__(
        self,
        db: Session,
        context: OrganizationContext,
        storage: Optional[SnapshotStorage] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.context = context
        self.q = SecureQuery(db, context)
        self.storage = storage or SnapshotStorage()
        self.clock = clock

    # ------------------------------------------------------------------
    # Collection
    # ------------------------------------------------------------------

    def _year_rows(self, season_year: int) -> dict:
        """Every row of the year's stay history, per collection"""
        year_start, year_end = date(season_year, 1, 1), date(season_year, 12, 31)

        reservations = (
            self.q.select(Reservation)
            .filter(Reservation.start_date >= year_start, Reservation.start_date <= year_end)
            .order_by(Reservation.start_date.asc())
            .all()
        )
        reservation_ids = [r.id for r in reservations]
        payments = (
            self.q.select(Payment)
            .filter(
                or_(
                    Payment.reservation_id.in_(reservation_ids),
                    and_(Payment.due_date >= year_start, Payment.due_date <= year_end),
                )
            )
            .all()
        )
        payment_ids = [p.id for p in payments]
        splits = (
            self.q.select(PaymentSplit)
            .filter(
                or_(
                    PaymentSplit.source_payment_id.in_(payment_ids),
                    PaymentSplit.split_payment_id.in_(payment_ids),
                )
            )
            .all()
        )
        checkins = (
            self.q.select(CheckinSession)
            .filter(CheckinSession.check_date >= year_start, CheckinSession.check_date <= year_end)
            .all()
        )
        receipts = (
            self.q.select(Receipt)
            .filter(Receipt.receipt_date >= year_start, Receipt.receipt_date <= year_end)
            .all()
        )
        return {
            "reservations": reservations,
            "payments": payments,
            "paymentSplits": splits,
            "checkinSessions": checkins,
            "receipts": receipts,
        }

    def build_document(self, season_year: int, snapshot_type: str, source: str) -> dict:
        organization = self.db.query(Organization).filter(Organization.id == self.q.organization_id).first()
        rows = self._year_rows(season_year)
        payments = rows["payments"]
        return {
            "metadata": {
                "organizationId": self.q.organization_id,
                "organizationName": organization.name if organization else None,
                "seasonYear": season_year,
                "snapshotDate": self.clock().isoformat(),
                "snapshotType": snapshot_type,
                "snapshotSource": source,
                "createdByUserId": self.context.user_id,
            },
            "data": {key: [row_to_dict(row) for row in rows[key]] for key in COLLECTION_KEYS},
            "summary": {
                "totalReservations": len(rows["reservations"]),
                "totalPayments": len(payments),
                "totalPaymentSplits": len(rows["paymentSplits"]),
                "totalCheckinSessions": len(rows["checkinSessions"]),
                "totalReceipts": len(rows["receipts"]),
                "totalAmountBilled": sum(p.amount or 0.0 for p in payments),
                "totalAmountPaid": sum(p.amount_paid or 0.0 for p in payments),
            },
        }

    def _file_path(self, prefix: str, season_year: int) -> str:
        timestamp = self.clock().strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        return (
            f"{self.q.organization_id}/{prefix}stay_history_{season_year}_"
            f"{timestamp}_{uuid.uuid4().hex[:8]}.json"
        )

    def _upload(self, path: str, document: dict) -> int:
        return self.storage.upload(path, json.dumps(document, indent=2, default=str).encode("utf-8"))

    def _discard_upload(self, path: str) -> None:
        """Remove a file whose metadata row was rolled back"""
        if not self.storage.delete(path):
            logger.warning(f"⚠️ Orphaned snapshot file left in storage: {path}")

    # ------------------------------------------------------------------
    # Create / list / delete
    # ------------------------------------------------------------------

    def create_snapshot(self, season_year: int, source: str = MANUAL) -> SnapshotMetadata:
        """
        Export the year's stay history to storage and record its metadata.

        Every call produces a new, independently deletable snapshot.
        """
        if source not in SNAPSHOT_SOURCES:
            raise ValidationError(f"Unknown snapshot source '{source}'")
        if not 2000 <= season_year <= 2100:
            raise ValidationError(f"Invalid season year {season_year}")

        document = self.build_document(season_year, "stay_history", source)
        path = self._file_path("auto_" if source == AUTO else "", season_year)
        try:
            size = self._upload(path, document)
        except StorageError as e:
            raise PartialFailure("Could not upload snapshot", rolled_back=True) from e

        snapshot = self.q.insert(
            SnapshotMetadata(
                backup_type=f"stay_history_{season_year}",
                file_path=path,
                file_size=size,
                snapshot_source=source,
                season_year=season_year,
                status="completed",
                created_by_user_id=self.context.user_id,
                created_at=self.clock(),
            )
        )
        self.db.commit()
        self.db.refresh(snapshot)
        logger.info(
            f"✅ {source.capitalize()} snapshot for {self.q.organization_id} {season_year}: "
            f"{document['summary']['totalReservations']} reservations, "
            f"{document['summary']['totalPayments']} payments"
        )
        return snapshot

    def list_snapshots(self, season_year: Optional[int] = None) -> List[SnapshotMetadata]:
        query = self.q.select(SnapshotMetadata).filter(
            SnapshotMetadata.backup_type.like("%stay_history_%")
        )
        if season_year is not None:
            query = query.filter(SnapshotMetadata.season_year == season_year)
        return query.order_by(SnapshotMetadata.created_at.desc()).all()

    def delete_snapshot(self, snapshot_id: str) -> dict:
        """Explicit user deletion; the only way a manual snapshot is removed"""
        if not self.context.is_admin:
            raise AuthorizationError("Only admins can delete snapshots")
        snapshot = self.q.get_or_404(SnapshotMetadata, snapshot_id, "Snapshot")
        if snapshot.file_path and not self.storage.delete(snapshot.file_path):
            raise PartialFailure("Could not delete snapshot file", rolled_back=True)
        self.q.delete(SnapshotMetadata, snapshot.id)
        self.db.commit()
        logger.info(f"🗑️ Snapshot {snapshot_id} deleted by {self.context.user_id}")
        return {"success": True, "id": snapshot_id}

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def latest_auto_snapshot(self, season_year: int) -> Optional[SnapshotMetadata]:
        return (
            self.q.select(SnapshotMetadata)
            .filter(
                SnapshotMetadata.snapshot_source == AUTO,
                SnapshotMetadata.season_year == season_year,
                SnapshotMetadata.backup_type == f"stay_history_{season_year}",
            )
            .order_by(SnapshotMetadata.created_at.desc())
            .first()
        )

    def enforce_retention(self, season_year: int, keep: int) -> int:
        """Delete the oldest auto snapshots beyond ``keep``. Manual snapshots are never candidates."""
        keep = max(int(keep), 0)
        auto_snapshots = (
            self.q.select(SnapshotMetadata)
            .filter(
                SnapshotMetadata.snapshot_source == AUTO,
                SnapshotMetadata.season_year == season_year,
                SnapshotMetadata.backup_type == f"stay_history_{season_year}",
            )
            .order_by(SnapshotMetadata.created_at.desc(), SnapshotMetadata.id.desc())
            .all()
        )

        deleted = 0
        for snapshot in auto_snapshots[keep:]:
            if snapshot.snapshot_source != AUTO:
                continue
            if snapshot.file_path and not self.storage.delete(snapshot.file_path):
                logger.warning(f"⚠️ Kept metadata for {snapshot.id}; file delete failed")
                continue
            self.db.delete(snapshot)
            deleted += 1

        if deleted:
            self.db.commit()
            logger.info(f"🧹 Removed {deleted} old auto snapshot(s) for {self.q.organization_id} {season_year}")
        return deleted

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def _load_document(self, file_path: str) -> dict:
        if not file_path.startswith(f"{self.q.organization_id}/"):
            raise RestoreConflict("Snapshot belongs to another organization")
        try:
            raw = self.storage.download(file_path)
        except StorageError as e:
            raise NotFoundError("Snapshot file not found") from e
        try:
            document = normalize_document(json.loads(raw))
        except (ValueError, AttributeError) as e:
            raise ValidationError("Snapshot file is not a valid snapshot document") from e
        if document["metadata"]["organizationId"] != self.q.organization_id:
            raise RestoreConflict("Snapshot belongs to another organization")
        if not document["metadata"]["seasonYear"]:
            raise ValidationError("Snapshot has no season year")
        return document

    def _delete_current(self, scope_keys, current_rows: dict) -> None:
        payment_ids = [p.id for p in current_rows["payments"]]
        reservation_ids = [r.id for r in current_rows["reservations"]]

        if "paymentSplits" in scope_keys:
            self.q.delete_where(
                PaymentSplit,
                or_(
                    PaymentSplit.source_payment_id.in_(payment_ids),
                    PaymentSplit.split_payment_id.in_(payment_ids),
                ),
            )
        if "payments" in scope_keys:
            self.q.delete_where(Payment, Payment.id.in_(payment_ids))
        for key in ("checkinSessions", "receipts"):
            if key in scope_keys:
                self.q.delete_where(MODELS[key], MODELS[key].id.in_([r.id for r in current_rows[key]]))
        self.db.flush()

        if "reservations" in scope_keys:
            referenced = {
                row[0]
                for row in self.db.query(Payment.reservation_id)
                .filter(Payment.reservation_id.in_(reservation_ids))
                .all()
            } | {
                row[0]
                for row in self.db.query(CheckinSession.reservation_id)
                .filter(CheckinSession.reservation_id.in_(reservation_ids))
                .all()
            }
            # Referenced reservations are overwritten in place by merge
            self.q.delete_where(
                Reservation,
                Reservation.id.in_([rid for rid in reservation_ids if rid not in referenced]),
            )
            self.db.flush()

    def restore_snapshot(self, file_path: str, scope: str = "full", confirm: bool = False) -> dict:
        """
        Two-phase restore.

        ``confirm=False`` returns a preview and changes nothing. ``confirm=True``
        saves a pre-restore snapshot of current data, then replaces the scoped
        collections in one transaction.
        """
        if scope not in RESTORE_SCOPES:
            raise ValidationError(
                f"Invalid restore scope '{scope}'. Use one of: {', '.join(RESTORE_SCOPES)}"
            )
        if not self.context.is_admin:
            raise AuthorizationError("Only admins can restore snapshots")

        document = self._load_document(file_path)
        metadata = document["metadata"]
        season_year = int(metadata["seasonYear"])

        if not confirm:
            return {
                "success": True,
                "preview": True,
                "requiresConfirmation": True,
                "organization": metadata["organizationName"],
                "seasonYear": season_year,
                "snapshotDate": metadata["snapshotDate"],
                "snapshotType": metadata["snapshotType"],
                "summary": document["summary"],
                "restoreScope": scope,
                "restoreScopeOptions": list(RESTORE_SCOPES),
            }

        pre_restore = self.build_document(season_year, "pre_restore", MANUAL)
        pre_restore_path = self._file_path("pre_restore_", season_year)
        try:
            pre_restore_size = self._upload(pre_restore_path, pre_restore)
        except StorageError as e:
            raise PartialFailure("Could not save a pre-restore backup", rolled_back=True) from e

        scope_keys = RESTORE_SCOPES[scope]
        restored_counts = {}
        try:
            self._delete_current(scope_keys, self._year_rows(season_year))
            for key in COLLECTION_KEYS:
                if key not in scope_keys:
                    continue
                for row in document["data"][key]:
                    obj = dict_to_row(MODELS[key], row, self.q.organization_id)
                    if key == "reservations":
                        self.db.merge(obj)
                    else:
                        self.db.add(obj)
                restored_counts[key] = len(document["data"][key])
                self.db.flush()

            self.q.insert(
                SnapshotMetadata(
                    backup_type=f"pre_restore_stay_history_{season_year}",
                    file_path=pre_restore_path,
                    file_size=pre_restore_size,
                    snapshot_source=MANUAL,
                    season_year=season_year,
                    status="completed",
                    created_by_user_id=self.context.user_id,
                    created_at=self.clock(),
                )
            )
            self.q.insert(
                SnapshotMetadata(
                    backup_type=f"restore_stay_history_{season_year}",
                    file_path=file_path,
                    snapshot_source=MANUAL,
                    season_year=season_year,
                    status="completed",
                    created_by_user_id=self.context.user_id,
                    created_at=self.clock(),
                )
            )
            self.db.commit()
        except CabinBuddyError:
            self.db.rollback()
            self._discard_upload(pre_restore_path)
            raise
        except Exception as e:
            self.db.rollback()
            self._discard_upload(pre_restore_path)
            logger.error(f"❌ Restore of {file_path} rolled back: {e}")
            raise PartialFailure("Restore failed; current data was left unchanged", rolled_back=True) from e

        logger.info(f"✅ Restored {file_path} ({scope}): {restored_counts}")
        return {
            "success": True,
            "preview": False,
            "restoreScope": scope,
            "restoredCounts": restored_counts,
            "preRestoreSnapshot": pre_restore_path,
        }


def run_auto_snapshot_sweep(
    db: Session,
    storage: Optional[SnapshotStorage] = None,
    now: Optional[datetime] = None,
) -> dict:
    """
    Create due auto snapshots for every organization with snapshots enabled,
    then enforce each organization's retention count. One organization's
    failure does not stop the sweep.
    """
    now = now or utcnow()
    storage = storage or SnapshotStorage()
    organizations = (
        db.query(Organization)
        .filter(Organization.snapshot_frequency.isnot(None), Organization.snapshot_frequency != "off")
        .all()
    )
    years = sweep_years(now)
    result = {"organizations": len(organizations), "created": 0, "deleted": 0, "errors": []}

    for organization in organizations:
        try:
            context = OrganizationContext(
                organization_id=organization.id,
                role="system",
                is_test_organization=organization.is_test_organization,
            )
            service = SnapshotService(db, context, storage=storage, clock=lambda: now)
            retention = retention_count(organization.snapshot_retention_count)
            for year in years:
                last = service.latest_auto_snapshot(year)
                # Retention 0 keeps no auto snapshots, so none are taken
                if retention and is_snapshot_due(
                    organization.snapshot_frequency, last.created_at if last else None, now
                ):
                    service.create_snapshot(year, AUTO)
                    result["created"] += 1
                result["deleted"] += service.enforce_retention(year, retention)
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Auto snapshot failed for organization {organization.id}: {e}")
            result["errors"].append({"organizationId": organization.id, "error": str(e)})
            continue

    logger.info(
        f"📦 Auto snapshot sweep: {result['created']} created, {result['deleted']} deleted, "
        f"{len(result['errors'])} error(s)"
    )
    return result
