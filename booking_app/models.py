import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
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
    """Generate a string primary key"""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    email_verified = Column(Boolean, default=False, nullable=False)
    image = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    sessions = relationship("AuthSession", back_populates="user", cascade="all, delete-orphan")
    memberships = relationship("Member", back_populates="user", cascade="all, delete-orphan")
    provider_accounts = relationship(
        "ProviderAccount", back_populates="user", cascade="all, delete-orphan"
    )


class AuthSession(Base):
    """Session rows are issued by the external auth service; this API only reads them"""

    __tablename__ = "sessions"

    id = Column(String(36), primary_key=True, default=generate_id)
    token = Column(String(255), unique=True, index=True, nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    active_organization_id = Column(String(36), nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    user = relationship("User", back_populates="sessions")


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, index=True, nullable=False)
    logo = Column(String(500), nullable=True)
    timezone = Column(String(64), nullable=True)  # IANA name, e.g. "America/New_York"
    day_schedules = Column(
        JSON, nullable=True
    )  # Business hours: {"monday": {"enabled": true, "startTime": "09:00", "endTime": "17:00"}, ...}
    off_work_periods = Column(
        JSON, nullable=True
    )  # [{"id": "...", "name": "Holiday", "startDate": "2026-12-24", "endDate": "2026-12-26", "allDay": true}]
    created_at = Column(DateTime, server_default=func.now())

    members = relationship("Member", back_populates="organization", cascade="all, delete-orphan")
    booking_forms = relationship(
        "BookingForm", back_populates="organization", cascade="all, delete-orphan"
    )
    employees = relationship(
        "OrganizationEmployee", back_populates="organization", cascade="all, delete-orphan"
    )


class Member(Base):
    __tablename__ = "members"
    __table_args__ = (UniqueConstraint("organization_id", "user_id", name="uq_member_org_user"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), default="member", nullable=False)  # owner, admin, member
    created_at = Column(DateTime, server_default=func.now())

    organization = relationship("Organization", back_populates="members")
    user = relationship("User", back_populates="memberships")


class ProviderAccount(Base):
    """OAuth account linked to a user (SimPro). Tokens are Fernet-encrypted at rest."""

    __tablename__ = "provider_accounts"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    provider_id = Column(String(50), default="simpro", nullable=False)
    account_id = Column(String(255), nullable=True)  # Provider-side user/company id
    access_token = Column(Text, nullable=True)  # Encrypted
    refresh_token = Column(Text, nullable=True)  # Encrypted
    access_token_expires_at = Column(DateTime, nullable=True)
    refresh_token_expires_at = Column(DateTime, nullable=True)
    build_name = Column(String(255), nullable=True)  # e.g. "acme" for acme.simprosuite.com
    domain = Column(String(255), nullable=True)
    company_name = Column(String(255), nullable=True)
    last_refresh_error = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="provider_accounts")


class BookingForm(Base):
    __tablename__ = "booking_forms"
    __table_args__ = (UniqueConstraint("organization_id", "slug", name="uq_booking_form_org_slug"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    form_config = Column(JSON, nullable=True)  # Serialized BookingFlowData
    theme = Column(String(10), default="light", nullable=False)
    primary_color = Column(String(7), default="#3B82F6", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime, nullable=True, index=True)  # Soft delete marker

    organization = relationship("Organization", back_populates="booking_forms")


class OrganizationEmployee(Base):
    __tablename__ = "organization_employees"
    __table_args__ = (
        UniqueConstraint("organization_id", "simpro_employee_id", name="uq_org_simpro_employee"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    simpro_employee_id = Column(Integer, nullable=False)
    simpro_employee_name = Column(String(255), nullable=False)
    simpro_employee_email = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)  # Bookable; toggled by admins
    is_removed = Column(Boolean, default=False, nullable=False)  # No longer present in SimPro
    display_on_schedule = Column(Boolean, default=True, nullable=False)
    last_sync_at = Column(DateTime, nullable=True)
    sync_error = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    organization = relationship("Organization", back_populates="employees")
    service_assignments = relationship(
        "ServiceEmployee", back_populates="employee", cascade="all, delete-orphan"
    )


class ServiceEmployee(Base):
    """Employee assigned to a service node of a booking form tree"""

    __tablename__ = "service_employees"
    __table_args__ = (
        UniqueConstraint("service_id", "organization_employee_id", name="uq_service_employee"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    service_id = Column(String(255), nullable=False, index=True)  # FlowNode id of the service
    organization_employee_id = Column(
        String(36), ForeignKey("organization_employees.id", ondelete="CASCADE"), nullable=False
    )
    is_default = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    employee = relationship("OrganizationEmployee", back_populates="service_assignments")
