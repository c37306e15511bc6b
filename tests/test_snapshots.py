"""
Tests for stay-history snapshots: creation, retention sweep and restore
"""

import json
import re
from datetime import date, datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from cabin_buddy.domain.snapshots.service import (
    AUTO,
    MANUAL,
    SnapshotService,
    is_snapshot_due,
    retention_count,
    run_auto_snapshot_sweep,
    sweep_years,
)
from cabin_buddy.errors import (
    AuthorizationError,
    NotFoundError,
    PartialFailure,
    RestoreConflict,
    ValidationError,
)
from cabin_buddy.models import Payment, PaymentSplit, Reservation, SnapshotMetadata
from tests.factories import (
    FakeStorage,
    context_for,
    make_session,
    occupancy,
    seed_member,
    seed_organization,
    seed_payment,
    seed_reservation,
)

NOW = datetime(2025, 6, 1, 3, 0, tzinfo=timezone.utc)


class TestSnapshotSchedule:
    def test_first_auto_snapshot_is_always_due(self):
        assert is_snapshot_due("weekly", None, NOW) is True

    def test_daily_threshold_allows_one_hour_of_jitter(self):
        assert is_snapshot_due("daily", NOW - timedelta(hours=22), NOW) is False
        assert is_snapshot_due("daily", NOW - timedelta(hours=23), NOW) is True

    def test_monthly_threshold(self):
        assert is_snapshot_due("monthly", NOW - timedelta(hours=670), NOW) is False
        assert is_snapshot_due("monthly", NOW - timedelta(hours=671), NOW) is True

    def test_off_and_unknown_frequencies_are_never_due(self):
        assert is_snapshot_due("off", None, NOW) is False
        assert is_snapshot_due("hourly", None, NOW) is False

    def test_naive_timestamps_are_treated_as_utc(self):
        last = (NOW - timedelta(hours=24)).replace(tzinfo=None)
        assert is_snapshot_due("daily", last, NOW) is True

    def test_previous_year_is_swept_early_in_the_year(self):
        assert sweep_years(datetime(2026, 2, 10, tzinfo=timezone.utc)) == [2026, 2025]
        assert sweep_years(datetime(2026, 3, 1, tzinfo=timezone.utc)) == [2026]


class TestCreateSnapshot:
    def setup_method(self):
        self.db = make_session()
        self.storage = FakeStorage()
        self.org = seed_organization(self.db)
        self.admin = seed_member(self.db, self.org, "Alpha", role="admin")
        stay = seed_reservation(self.db, self.org, "Alpha", date(2025, 10, 6), date(2025, 10, 11))
        seed_payment(
            self.db,
            stay,
            amount=100.0,
            amount_paid=25.0,
            daily_occupancy=occupancy(date(2025, 10, 6), [2] * 5),
        )
        seed_reservation(self.db, self.org, "Alpha", date(2024, 10, 6), date(2024, 10, 8))
        self.service = SnapshotService(
            self.db, context_for(self.org, self.admin, role="admin"), storage=self.storage
        )

    def teardown_method(self):
        self.db.close()

    def test_document_layout(self):
        snapshot = self.service.create_snapshot(2025, MANUAL)
        document = json.loads(self.storage.objects[snapshot.file_path])

        assert set(document) == {"metadata", "data", "summary"}
        assert document["metadata"]["organizationId"] == self.org.id
        assert document["metadata"]["organizationName"] == "Lakeside Cabin"
        assert document["metadata"]["seasonYear"] == 2025
        assert document["metadata"]["snapshotSource"] == MANUAL
        assert set(document["data"]) == {
            "reservations",
            "payments",
            "paymentSplits",
            "checkinSessions",
            "receipts",
        }
        assert document["summary"]["totalReservations"] == 1
        assert document["summary"]["totalAmountBilled"] == 100.0
        assert document["summary"]["totalAmountPaid"] == 25.0

    def test_snapshot_metadata(self):
        snapshot = self.service.create_snapshot(2025, MANUAL)
        assert snapshot.backup_type == "stay_history_2025"
        assert snapshot.snapshot_source == MANUAL
        assert snapshot.file_path.startswith(f"{self.org.id}/stay_history_2025_")
        assert snapshot.file_size == len(self.storage.objects[snapshot.file_path])

    def test_auto_snapshot_path_prefix(self):
        snapshot = self.service.create_snapshot(2025, AUTO)
        assert snapshot.file_path.startswith(f"{self.org.id}/auto_stay_history_2025_")

    def test_snapshots_taken_in_the_same_instant_get_distinct_files(self):
        self.service.clock = lambda: NOW
        first = self.service.create_snapshot(2025, MANUAL)
        second = self.service.create_snapshot(2025, MANUAL)

        pattern = re.compile(
            rf"{self.org.id}/stay_history_2025_2025-06-01T03-00-00-000000Z_[0-9a-f]{{8}}\.json"
        )
        assert pattern.fullmatch(first.file_path)
        assert pattern.fullmatch(second.file_path)
        assert first.file_path != second.file_path

    def test_manual_snapshots_are_never_deduplicated(self):
        first = self.service.create_snapshot(2025, MANUAL)
        second = self.service.create_snapshot(2025, MANUAL)

        assert first.id != second.id
        assert first.file_path != second.file_path
        assert len(self.service.list_snapshots(2025)) == 2

        self.service.delete_snapshot(first.id)

        remaining = self.service.list_snapshots(2025)
        assert [s.id for s in remaining] == [second.id]
        assert list(self.storage.objects) == [second.file_path]

    def test_only_admins_delete_snapshots(self):
        snapshot = self.service.create_snapshot(2025, MANUAL)
        member = seed_member(self.db, self.org, "Bravo")
        service = SnapshotService(
            self.db, context_for(self.org, member, role="member"), storage=self.storage
        )
        with pytest.raises(AuthorizationError):
            service.delete_snapshot(snapshot.id)

    def test_invalid_source_is_rejected(self):
        with pytest.raises(ValidationError):
            self.service.create_snapshot(2025, "nightly")


class TestAutoSnapshotSweep:
    def setup_method(self):
        self.db = make_session()
        self.storage = FakeStorage()
        self.org = seed_organization(self.db)
        self.org.snapshot_frequency = "daily"
        self.org.snapshot_retention_count = 2
        self.db.commit()
        self.admin = seed_member(self.db, self.org, "Alpha", role="admin")
        seed_reservation(self.db, self.org, "Alpha", date(2025, 5, 20), date(2025, 5, 23))

        self.disabled_org = seed_organization(self.db, name="Quiet Cabin")

        self.service = SnapshotService(
            self.db, context_for(self.org, self.admin, role="admin"), storage=self.storage
        )

    def teardown_method(self):
        self.db.close()

    def _snapshots(self, source):
        return (
            self.db.query(SnapshotMetadata)
            .filter(SnapshotMetadata.snapshot_source == source)
            .all()
        )

    def test_sweep_creates_due_snapshots_only(self):
        first = run_auto_snapshot_sweep(self.db, self.storage, NOW)
        assert first["created"] == 1
        assert first["organizations"] == 1

        too_soon = run_auto_snapshot_sweep(self.db, self.storage, NOW + timedelta(hours=2))
        assert too_soon["created"] == 0

        next_day = run_auto_snapshot_sweep(self.db, self.storage, NOW + timedelta(hours=24))
        assert next_day["created"] == 1

    def test_sweep_never_deletes_manual_snapshots(self):
        manual = [self.service.create_snapshot(2025, MANUAL) for _ in range(3)]

        for day in range(5):
            run_auto_snapshot_sweep(self.db, self.storage, NOW + timedelta(days=day))

        assert {s.id for s in self._snapshots(MANUAL)} == {s.id for s in manual}
        for snapshot in manual:
            assert snapshot.file_path in self.storage.objects

    def test_retention_keeps_newest_auto_snapshots(self):
        for day in range(5):
            run_auto_snapshot_sweep(self.db, self.storage, NOW + timedelta(days=day))

        auto = self._snapshots(AUTO)
        assert len(auto) == 2
        kept_days = sorted(s.created_at.day for s in auto)
        assert kept_days == [4, 5]
        assert len(self.storage.objects) == 2

    def test_metadata_kept_when_file_delete_fails(self):
        run_auto_snapshot_sweep(self.db, self.storage, NOW)
        oldest = self._snapshots(AUTO)[0]
        self.storage.failing_deletes.add(oldest.file_path)

        for day in range(1, 4):
            run_auto_snapshot_sweep(self.db, self.storage, NOW + timedelta(days=day))

        assert oldest.id in {s.id for s in self._snapshots(AUTO)}

    def test_one_failing_organization_does_not_stop_the_sweep(self):
        broken = seed_organization(self.db, name="Broken Cabin")
        broken.snapshot_frequency = "weekly"
        self.db.commit()

        class ExplodingStorage(FakeStorage):
            def upload(self, key, content, content_type="application/json"):
                if key.startswith(broken.id):
                    raise RuntimeError("bucket unavailable")
                return super().upload(key, content, content_type)

        result = run_auto_snapshot_sweep(self.db, ExplodingStorage(), NOW)

        assert result["organizations"] == 2
        assert result["created"] == 1
        assert [e["organizationId"] for e in result["errors"]] == [broken.id]

    def test_retention_defaults_only_when_unset(self):
        assert retention_count(None) == 4
        assert retention_count(0) == 0
        assert retention_count(3) == 3

    def test_zero_retention_keeps_no_auto_snapshots(self):
        existing_path = self.service.create_snapshot(2025, AUTO).file_path
        self.org.snapshot_retention_count = 0
        self.db.commit()

        for day in range(3):
            result = run_auto_snapshot_sweep(self.db, self.storage, NOW + timedelta(days=day))
            assert result["created"] == 0

        assert self._snapshots(AUTO) == []
        assert existing_path not in self.storage.objects


class TestRestoreSnapshot:
    def setup_method(self):
        self.db = make_session()
        self.storage = FakeStorage()
        self.org = seed_organization(self.db)
        self.admin = seed_member(self.db, self.org, "Alpha", role="admin")
        self.guest = seed_member(self.db, self.org, "Bravo")
        self.stay = seed_reservation(
            self.db, self.org, "Alpha", date(2025, 10, 6), date(2025, 10, 11)
        )
        self.payment = seed_payment(
            self.db, self.stay, amount=100.0, daily_occupancy=occupancy(date(2025, 10, 6), [2] * 5)
        )
        self.service = SnapshotService(
            self.db, context_for(self.org, self.admin, role="admin"), storage=self.storage
        )
        self.snapshot = self.service.create_snapshot(2025, MANUAL)

    def teardown_method(self):
        self.db.close()

    def test_preview_changes_nothing(self):
        self.payment.amount = 250.0
        self.db.commit()

        preview = self.service.restore_snapshot(self.snapshot.file_path, "full", confirm=False)

        assert preview["requiresConfirmation"] is True
        assert preview["seasonYear"] == 2025
        assert preview["summary"]["totalPayments"] == 1
        assert preview["restoreScopeOptions"] == ["full", "payments_only", "reservations_only"]
        assert self.db.query(Payment).one().amount == 250.0
        assert self.db.query(SnapshotMetadata).count() == 1

    def test_confirmed_restore_replaces_current_data(self):
        payment_id = self.payment.id
        self.payment.amount = 250.0
        extra = seed_reservation(self.db, self.org, "Bravo", date(2025, 8, 1), date(2025, 8, 3))
        extra_id = extra.id
        self.db.commit()

        result = self.service.restore_snapshot(self.snapshot.file_path, "full", confirm=True)

        assert result["success"] is True
        assert result["restoredCounts"]["reservations"] == 1
        assert result["restoredCounts"]["payments"] == 1
        assert self.db.query(Payment).filter(Payment.id == payment_id).one().amount == 100.0
        assert self.db.query(Reservation).filter(Reservation.id == extra_id).first() is None

        pre_restore = result["preRestoreSnapshot"]
        assert pre_restore.startswith(f"{self.org.id}/pre_restore_stay_history_2025_")
        saved = json.loads(self.storage.objects[pre_restore])
        assert saved["summary"]["totalReservations"] == 2
        backup_types = {s.backup_type for s in self.db.query(SnapshotMetadata).all()}
        assert "pre_restore_stay_history_2025" in backup_types
        assert "restore_stay_history_2025" in backup_types

    def test_failed_restore_removes_its_pre_restore_file(self):
        with patch.object(
            self.service, "_delete_current", side_effect=RuntimeError("connection lost")
        ):
            with pytest.raises(PartialFailure) as exc_info:
                self.service.restore_snapshot(self.snapshot.file_path, "full", confirm=True)

        assert exc_info.value.rolled_back is True
        assert list(self.storage.objects) == [self.snapshot.file_path]
        assert self.db.query(SnapshotMetadata).count() == 1
        assert self.db.query(Payment).one().amount == 100.0

    def test_payments_only_restore_keeps_reservations(self):
        extra = seed_reservation(self.db, self.org, "Bravo", date(2025, 8, 1), date(2025, 8, 3))
        extra_id = extra.id

        result = self.service.restore_snapshot(
            self.snapshot.file_path, "payments_only", confirm=True
        )

        assert set(result["restoredCounts"]) == {"payments", "paymentSplits"}
        assert self.db.query(Reservation).filter(Reservation.id == extra_id).first() is not None
        assert self.db.query(PaymentSplit).count() == 0

    def test_snapshot_of_another_organization_conflicts(self):
        other = seed_organization(self.db, name="Other Cabin")
        other_admin = seed_member(self.db, other, "Charlie", role="admin")
        service = SnapshotService(
            self.db, context_for(other, other_admin, role="admin"), storage=self.storage
        )
        with pytest.raises(RestoreConflict):
            service.restore_snapshot(self.snapshot.file_path, "full", confirm=False)

    def test_forged_document_organization_conflicts(self):
        other = seed_organization(self.db, name="Other Cabin")
        other_admin = seed_member(self.db, other, "Charlie", role="admin")
        forged_path = f"{other.id}/stay_history_2025_forged.json"
        self.storage.objects[forged_path] = self.storage.objects[self.snapshot.file_path]
        service = SnapshotService(
            self.db, context_for(other, other_admin, role="admin"), storage=self.storage
        )
        with pytest.raises(RestoreConflict):
            service.restore_snapshot(forged_path, "full", confirm=True)

    def test_legacy_snake_case_document_is_accepted(self):
        legacy_path = f"{self.org.id}/stay_history_2024_legacy.json"
        self.storage.objects[legacy_path] = json.dumps(
            {
                "metadata": {
                    "organization_id": self.org.id,
                    "organization_name": "Lakeside Cabin",
                    "season_year": 2024,
                    "snapshot_date": "2024-12-01T00:00:00+00:00",
                    "snapshot_type": "stay_history",
                },
                "data": {"reservations": [], "payments": [], "payment_splits": []},
                "summary": {"total_reservations": 0, "total_payments": 0},
            }
        ).encode("utf-8")

        preview = self.service.restore_snapshot(legacy_path, "full", confirm=False)

        assert preview["seasonYear"] == 2024
        assert preview["summary"]["totalReservations"] == 0

    def test_invalid_scope_is_rejected(self):
        with pytest.raises(ValidationError):
            self.service.restore_snapshot(self.snapshot.file_path, "everything", confirm=True)

    def test_missing_file_is_not_found(self):
        with pytest.raises(NotFoundError):
            self.service.restore_snapshot(f"{self.org.id}/missing.json", "full")

    def test_members_cannot_restore(self):
        service = SnapshotService(
            self.db, context_for(self.org, self.guest, role="member"), storage=self.storage
        )
        with pytest.raises(AuthorizationError):
            service.restore_snapshot(self.snapshot.file_path, "full", confirm=True)
