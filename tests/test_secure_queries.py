"""
Tests for tenant-scoped data access
"""

from datetime import date

import pytest

from cabin_buddy.errors import NotFoundError, OrganizationContextError
from cabin_buddy.models import Payment, Reservation
from cabin_buddy.shared.secure_queries import OrganizationContext, SecureQuery
from tests.factories import context_for, make_session, seed_organization, seed_reservation


class TestSecureQuery:
    def setup_method(self):
        self.db = make_session()
        self.org = seed_organization(self.db)
        self.other_org = seed_organization(self.db, name="Other Cabin")
        self.own = seed_reservation(self.db, self.org, "Alpha", date(2025, 10, 1), date(2025, 10, 3))
        self.foreign = seed_reservation(
            self.db, self.other_org, "Alpha", date(2025, 10, 1), date(2025, 10, 3)
        )
        self.q = SecureQuery(self.db, context_for(self.org))

    def teardown_method(self):
        self.db.close()

    def test_missing_context_is_refused(self):
        with pytest.raises(OrganizationContextError):
            SecureQuery(self.db, None)
        with pytest.raises(OrganizationContextError):
            SecureQuery(self.db, OrganizationContext(organization_id=""))

    def test_select_is_scoped_to_organization(self):
        assert [r.id for r in self.q.select(Reservation).all()] == [self.own.id]

    def test_get_other_organization_row_is_not_found(self):
        assert self.q.get(Reservation, self.foreign.id) is None
        with pytest.raises(NotFoundError):
            self.q.get_or_404(Reservation, self.foreign.id, "Reservation")

    def test_insert_injects_organization(self):
        payment = self.q.insert(Payment(family_group="Alpha", amount=10.0))
        self.db.commit()
        assert payment.organization_id == self.org.id

    def test_cross_tenant_insert_is_blocked(self):
        with pytest.raises(OrganizationContextError):
            self.q.insert(Payment(organization_id=self.other_org.id, family_group="Alpha"))

    def test_test_organization_rows_are_flagged(self):
        self.org.is_test_organization = True
        self.db.commit()
        q = SecureQuery(self.db, context_for(self.org))
        payment = q.insert(Payment(family_group="Alpha", amount=1.0))
        assert payment.is_test_data is True

    def test_update_cannot_move_row_to_another_organization(self):
        self.q.update(
            Reservation, self.own.id, {"organization_id": self.other_org.id, "guest_count": 4}
        )
        self.db.commit()
        self.db.refresh(self.own)
        assert self.own.organization_id == self.org.id
        assert self.own.guest_count == 4

    def test_delete_where_leaves_other_organizations_alone(self):
        deleted = self.q.delete_where(Reservation, Reservation.family_group == "Alpha")
        self.db.commit()
        assert deleted == 1
        assert self.db.query(Reservation).count() == 1
        assert self.db.query(Reservation).one().id == self.foreign.id

    def test_delete_only_reaches_own_rows(self):
        assert self.q.delete(Reservation, self.foreign.id) is False
        assert self.q.delete(Reservation, self.own.id) is True
        self.db.commit()
        assert [r.id for r in self.db.query(Reservation).all()] == [self.foreign.id]
