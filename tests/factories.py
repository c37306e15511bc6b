"""
Test helpers: in-memory database sessions, seed rows and fakes for the
object store and the email notifier.
"""

from datetime import date

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cabin_buddy.database import Base
from cabin_buddy.models import (
    FamilyGroup,
    Organization,
    Payment,
    Reservation,
    ReservationSettings,
    User,
    UserOrganization,
    generate_id,
)
from cabin_buddy.shared.secure_queries import OrganizationContext
from cabin_buddy.utils.snapshot_storage import StorageError


def make_session():
    """A session on a fresh in-memory SQLite database"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)()


def seed_organization(
    db,
    name="Lakeside Cabin",
    billing_method="per-person-per-day",
    billing_amount=10.0,
    **settings,
):
    organization = Organization(name=name)
    db.add(organization)
    db.flush()
    db.add(
        ReservationSettings(
            organization_id=organization.id,
            billing_method=billing_method,
            billing_amount=billing_amount,
            **settings,
        )
    )
    db.commit()
    return organization


def seed_family(db, organization, name, email=None):
    family = FamilyGroup(
        organization_id=organization.id,
        name=name,
        lead_name=f"{name} Lead",
        lead_email=email or f"{name.lower()}@example.com",
    )
    db.add(family)
    db.commit()
    return family


def seed_member(db, organization, family_group, role="member", email=None, display_name=None):
    user = User(
        firebase_uid=generate_id(),
        email=email or f"{family_group.lower()}@example.com",
        display_name=display_name or f"{family_group} Lead",
    )
    db.add(user)
    db.flush()
    db.add(
        UserOrganization(
            user_id=user.id,
            organization_id=organization.id,
            role=role,
            family_group=family_group,
        )
    )
    db.commit()
    return user


def context_for(organization, user=None, role="admin", family_group=None):
    return OrganizationContext(
        organization_id=organization.id,
        user_id=user.id if user else None,
        role=role,
        family_group=family_group,
        is_test_organization=bool(organization.is_test_organization),
    )


def seed_reservation(db, organization, family_group, start, end, status="confirmed"):
    reservation = Reservation(
        organization_id=organization.id,
        family_group=family_group,
        start_date=start,
        end_date=end,
        status=status,
    )
    db.add(reservation)
    db.commit()
    return reservation


def seed_payment(db, reservation, amount=0.0, daily_occupancy=None, **fields):
    payment = Payment(
        organization_id=reservation.organization_id,
        reservation_id=reservation.id,
        family_group=fields.pop("family_group", reservation.family_group),
        amount=amount,
        daily_occupancy=daily_occupancy,
        **fields,
    )
    db.add(payment)
    db.commit()
    return payment


def occupancy(start: date, guests_per_day):
    """``[{date, guests}]`` for consecutive days starting at ``start``"""
    return [
        {"date": date.fromordinal(start.toordinal() + offset).isoformat(), "guests": guests}
        for offset, guests in enumerate(guests_per_day)
    ]


class FakeStorage:
    """In-memory stand-in for the R2 snapshot store"""

    def __init__(self):
        self.objects = {}
        self.failing_deletes = set()

    def upload(self, key, content, content_type="application/json"):
        self.objects[key] = content
        return len(content)

    def download(self, key):
        if key not in self.objects:
            raise StorageError(f"Failed to download {key}")
        return self.objects[key]

    def delete(self, key):
        if key in self.failing_deletes:
            return False
        self.objects.pop(key, None)
        return True


class RecordingNotifier:
    """Async notifier that records calls, optionally failing or running a hook first"""

    def __init__(self, error=None, on_call=None):
        self.calls = []
        self.error = error
        self.on_call = on_call

    async def __call__(self, **kwargs):
        if self.on_call:
            self.on_call(kwargs)
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return {"success": True, "id": f"email-{len(self.calls)}"}
