"""
Tests for season configuration, aggregation and payment sync
"""

from datetime import date

import pytest

from cabin_buddy.domain.seasons.service import SeasonService, build_season_config
from cabin_buddy.errors import AuthorizationError
from cabin_buddy.models import CheckinSession, Payment, ReservationSettings
from tests.factories import (
    context_for,
    make_session,
    occupancy,
    seed_family,
    seed_member,
    seed_organization,
    seed_payment,
    seed_reservation,
)


class TestSeasonConfig:
    def test_unconfigured_season_defaults_to_october(self):
        season = build_season_config(None, 2025)
        assert season.season_start == date(2025, 10, 1)
        assert season.season_end == date(2025, 10, 31)
        assert season.is_default is True

    def test_season_wrapping_the_new_year(self):
        settings = ReservationSettings(
            season_start_month=11,
            season_start_day=15,
            season_end_month=2,
            season_end_day=28,
            season_payment_deadline_offset_days=30,
        )
        season = build_season_config(settings, 2025)
        assert season.season_start == date(2025, 11, 15)
        assert season.season_end == date(2026, 2, 28)
        assert season.payment_deadline == date(2026, 3, 30)
        assert season.is_default is False

    def test_impossible_date_falls_back_to_default(self):
        settings = ReservationSettings(
            season_start_month=2, season_start_day=30, season_end_month=3, season_end_day=1
        )
        assert build_season_config(settings, 2025).is_default is True


class TestSeasonSummary:
    def setup_method(self):
        self.db = make_session()
        self.org = seed_organization(self.db)
        self.admin = seed_member(self.db, self.org, "Alpha", role="admin")
        seed_family(self.db, self.org, "Alpha")
        seed_family(self.db, self.org, "Bravo")

        alpha_stay = seed_reservation(self.db, self.org, "Alpha", date(2025, 10, 6), date(2025, 10, 11))
        seed_payment(
            self.db,
            alpha_stay,
            amount=100.0,
            amount_paid=40.0,
            daily_occupancy=occupancy(date(2025, 10, 6), [2] * 5),
        )
        bravo_stay = seed_reservation(self.db, self.org, "Bravo", date(2025, 10, 20), date(2025, 10, 22))
        seed_payment(
            self.db,
            bravo_stay,
            amount=80.0,
            amount_paid=90.0,
            manual_adjustment_amount=10.0,
            billing_locked=True,
            daily_occupancy=occupancy(date(2025, 10, 20), [5, 5]),
        )
        # Out of season and cancelled stays are not counted
        seed_reservation(self.db, self.org, "Bravo", date(2025, 7, 1), date(2025, 7, 5))
        seed_reservation(
            self.db, self.org, "Alpha", date(2025, 10, 25), date(2025, 10, 27), status="cancelled"
        )

        self.service = SeasonService(self.db, context_for(self.org, self.admin, role="admin"))

    def teardown_method(self):
        self.db.close()

    def test_totals(self):
        summary = self.service.compute_season_summary(2025)

        assert summary.totals.total_families == 2
        assert summary.totals.total_stays == 2
        assert summary.totals.total_nights == 7
        assert summary.totals.total_charged == pytest.approx(190.0)
        assert summary.totals.total_paid == pytest.approx(130.0)
        assert summary.totals.outstanding == pytest.approx(60.0)
        assert summary.config.is_default is True
        assert summary.warnings

    def test_family_summaries(self):
        summary = self.service.compute_season_summary(2025)
        families = {f.family_group: f for f in summary.family_summaries}

        alpha = families["Alpha"]
        assert alpha.total_charged == pytest.approx(100.0)
        assert alpha.stays[0].payment_status == "partial"
        assert alpha.stays[0].average_occupancy == 2

        bravo = families["Bravo"]
        assert bravo.total_charged == pytest.approx(90.0)
        assert bravo.stays[0].charge_source == "locked"
        assert bravo.stays[0].payment_status == "paid"

    def test_stay_without_occupancy_is_awaiting_data(self):
        seed_reservation(self.db, self.org, "Alpha", date(2025, 10, 15), date(2025, 10, 18))
        summary = self.service.compute_season_summary(2025)
        alpha = next(f for f in summary.family_summaries if f.family_group == "Alpha")
        assert alpha.missing_occupancy == 1
        assert alpha.total_charged == pytest.approx(100.0)

    def test_other_organizations_are_not_counted(self):
        other = seed_organization(self.db, name="Other Cabin")
        stay = seed_reservation(self.db, other, "Alpha", date(2025, 10, 6), date(2025, 10, 11))
        seed_payment(self.db, stay, amount=999.0, daily_occupancy=occupancy(date(2025, 10, 6), [9]))

        summary = self.service.compute_season_summary(2025)
        assert summary.totals.total_charged == pytest.approx(190.0)

    def test_one_broken_family_does_not_blank_the_season(self):
        broken = seed_reservation(self.db, self.org, "Charlie", date(2025, 10, 2), date(2025, 10, 4))
        seed_payment(self.db, broken, daily_occupancy=[{"date": "not-a-date", "guests": 2}])

        summary = self.service.compute_season_summary(2025)

        assert [e.family_group for e in summary.errors] == ["Charlie"]
        assert summary.totals.total_families == 2
        assert summary.totals.total_charged == pytest.approx(190.0)

    def test_duplicate_payments_use_primary_and_warn(self):
        alpha_stay = self.db.query(Payment).filter(Payment.family_group == "Alpha").one().reservation
        seed_payment(self.db, alpha_stay, amount=0.0)

        summary = self.service.compute_season_summary(2025)
        assert summary.totals.total_charged == pytest.approx(190.0)
        assert any("2 payments" in w for w in summary.warnings)

    def test_members_only_see_their_family(self):
        member = seed_member(self.db, self.org, "Bravo")
        service = SeasonService(
            self.db, context_for(self.org, member, role="member", family_group="Bravo")
        )
        summary = service.get_summary_for_caller(2025)
        assert [f.family_group for f in summary.family_summaries] == ["Bravo"]


class TestPaymentSync:
    def setup_method(self):
        self.db = make_session()
        self.org = seed_organization(self.db)
        self.admin = seed_member(self.db, self.org, "Alpha", role="admin")
        self.stay = seed_reservation(self.db, self.org, "Alpha", date(2025, 10, 6), date(2025, 10, 9))
        self.empty_stay = seed_reservation(
            self.db, self.org, "Bravo", date(2025, 10, 12), date(2025, 10, 14)
        )
        for day, guests in ((date(2025, 10, 6), 3), (date(2025, 10, 7), 4)):
            self.db.add(
                CheckinSession(
                    organization_id=self.org.id,
                    reservation_id=self.stay.id,
                    check_date=day,
                    guest_count=guests,
                )
            )
        self.db.commit()

    def teardown_method(self):
        self.db.close()

    def test_creates_payments_from_checkins(self):
        service = SeasonService(self.db, context_for(self.org, self.admin, role="admin"))
        result = service.sync_reservations_to_payments(2025)

        assert result.created == 1
        assert result.skipped == 1
        payment = self.db.query(Payment).one()
        assert payment.amount == pytest.approx(70.0)
        assert payment.due_date == date(2025, 10, 31)

        again = service.sync_reservations_to_payments(2025)
        assert again.created == 0
        assert again.existing == 1

    def test_requires_admin(self):
        service = SeasonService(self.db, context_for(self.org, self.admin, role="treasurer"))
        with pytest.raises(AuthorizationError):
            service.sync_reservations_to_payments(2025)
