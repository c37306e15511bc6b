import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_id():
    """Generate a UUID string primary key"""
    return str(uuid.uuid4())


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    code = Column(String(50), unique=True, nullable=True)
    is_test_organization = Column(Boolean, default=False, nullable=False)
    # off, daily, weekly, biweekly, monthly
    snapshot_frequency = Column(String(20), default="off", nullable=False)
    snapshot_retention_count = Column(Integer, default=4, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    memberships = relationship("UserOrganization", back_populates="organization")
    settings = relationship(
        "ReservationSettings", back_populates="organization", uselist=False
    )


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    firebase_uid = Column(String(255), unique=True, index=True, nullable=False)
    email = Column(String(255), index=True, nullable=True)
    display_name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    memberships = relationship("UserOrganization", back_populates="user")


class UserOrganization(Base):
    __tablename__ = "user_organizations"
    __table_args__ = (UniqueConstraint("user_id", "organization_id", name="uq_user_org"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    organization_id = Column(
        String(36), ForeignKey("organizations.id"), nullable=False, index=True
    )
    role = Column(String(30), default="member", nullable=False)  # admin, treasurer, calendar_keeper, member
    family_group = Column(String(255), nullable=True)

    user = relationship("User", back_populates="memberships")
    organization = relationship("Organization", back_populates="memberships")


class FamilyGroup(Base):
    __tablename__ = "family_groups"

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id"), nullable=False, index=True
    )
    name = Column(String(255), nullable=False)
    lead_name = Column(String(255), nullable=True)
    lead_email = Column(String(255), nullable=True)
    lead_phone = Column(String(50), nullable=True)


class ReservationSettings(Base):
    __tablename__ = "reservation_settings"

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id"), unique=True, nullable=False
    )
    season_start_month = Column(Integer, nullable=True)
    season_start_day = Column(Integer, nullable=True)
    season_end_month = Column(Integer, nullable=True)
    season_end_day = Column(Integer, nullable=True)
    season_payment_deadline_offset_days = Column(Integer, default=0, nullable=True)
    # Financial settings consumed by the billing calculator
    billing_method = Column(String(50), nullable=True)
    billing_amount = Column(Float, nullable=True)
    tax_rate = Column(Float, nullable=True)
    cleaning_fee = Column(Float, nullable=True)
    pet_fee = Column(Float, nullable=True)
    damage_deposit = Column(Float, nullable=True)

    organization = relationship("Organization", back_populates="settings")


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id"), nullable=False, index=True
    )
    family_group = Column(String(255), nullable=False, index=True)
    property_name = Column(String(255), nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)  # checkout day, excluded from occupancy
    status = Column(String(20), default="pending", nullable=False)  # pending, confirmed, cancelled, completed
    guest_count = Column(Integer, default=0, nullable=True)
    is_test_data = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id"), nullable=False, index=True
    )
    reservation_id = Column(String(36), ForeignKey("reservations.id"), nullable=True, index=True)
    family_group = Column(String(255), nullable=False, index=True)
    payment_type = Column(String(30), default="use_fee", nullable=False)
    amount = Column(Float, default=0.0, nullable=False)
    amount_paid = Column(Float, default=0.0, nullable=False)
    status = Column(String(20), default="pending", nullable=False)  # pending, deferred, paid
    due_date = Column(Date, nullable=True)
    paid_date = Column(Date, nullable=True)
    # Ordered list of {date, guests, names?, cost?}
    daily_occupancy = Column(JSON, nullable=True)
    billing_locked = Column(Boolean, default=False, nullable=False)
    manual_adjustment_amount = Column(Float, default=0.0, nullable=False)
    adjustment_notes = Column(Text, nullable=True)
    description = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)
    created_by_user_id = Column(String(36), nullable=True)
    is_test_data = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    reservation = relationship("Reservation")


class PaymentSplit(Base):
    __tablename__ = "payment_splits"

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id"), nullable=False, index=True
    )
    operation_id = Column(String(64), nullable=True, index=True)
    source_payment_id = Column(String(36), ForeignKey("payments.id"), nullable=False)
    split_payment_id = Column(String(36), ForeignKey("payments.id"), nullable=False)
    source_family_group = Column(String(255), nullable=False)
    source_user_id = Column(String(36), nullable=True)
    split_to_family_group = Column(String(255), nullable=False)
    split_to_user_id = Column(String(36), nullable=True)
    daily_occupancy_split = Column(JSON, nullable=True)
    notification_status = Column(String(20), default="pending", nullable=False)  # pending, sent, failed
    notification_sent_at = Column(DateTime(timezone=True), nullable=True)
    notification_error = Column(Text, nullable=True)
    is_test_data = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    source_payment = relationship("Payment", foreign_keys=[source_payment_id])
    split_payment = relationship("Payment", foreign_keys=[split_payment_id])


class CheckinSession(Base):
    __tablename__ = "checkin_sessions"

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id"), nullable=False, index=True
    )
    reservation_id = Column(String(36), ForeignKey("reservations.id"), nullable=True, index=True)
    user_id = Column(String(36), nullable=True)
    session_type = Column(String(20), default="daily", nullable=False)  # arrival, daily, departure
    check_date = Column(Date, nullable=False)
    guest_count = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Receipt(Base):
    __tablename__ = "receipts"

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id"), nullable=False, index=True
    )
    family_group = Column(String(255), nullable=True)
    amount = Column(Float, default=0.0, nullable=False)
    description = Column(String(500), nullable=True)
    receipt_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class SnapshotMetadata(Base):
    __tablename__ = "backup_metadata"

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id"), nullable=False, index=True
    )
    backup_type = Column(String(100), nullable=False)  # e.g. stay_history_2025
    file_path = Column(String(500), nullable=True)
    file_size = Column(Integer, nullable=True)
    snapshot_source = Column(String(20), default="manual", nullable=False)  # auto, manual
    season_year = Column(Integer, nullable=True, index=True)
    status = Column(String(20), default="completed", nullable=False)
    created_by_user_id = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ReservationPeriod(Base):
    __tablename__ = "reservation_periods"

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id"), nullable=False, index=True
    )
    rotation_year = Column(Integer, nullable=False)
    current_family_group = Column(String(255), nullable=False)
    current_group_index = Column(Integer, nullable=False)
    selection_start_date = Column(Date, nullable=False)
    selection_end_date = Column(Date, nullable=False)


class SelectionPeriodExtension(Base):
    __tablename__ = "selection_period_extensions"
    __table_args__ = (
        UniqueConstraint(
            "organization_id", "rotation_year", "family_group", name="uq_selection_extension"
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id"), nullable=False, index=True
    )
    rotation_year = Column(Integer, nullable=False)
    family_group = Column(String(255), nullable=False)
    original_end_date = Column(Date, nullable=False)
    extended_until = Column(Date, nullable=False)
    extension_reason = Column(Text, nullable=True)
    extended_by_user_id = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
