"""SQLAlchemy ORM models for the RentFlow leasing core.

All models use SQLite-compatible types:
- String(36) for UUID primary keys
- JSON for structured data (no JSONB)
- DateTime for timestamps (no TIMESTAMPTZ)
"""

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from rentflow.infra.database import Base


# ---------------------------------------------------------------------------
# Directory (users + properties are referenced, not owned, by the workflow)
# ---------------------------------------------------------------------------


class User(Base):
    """Platform user. ``role`` is written by the activation transition only."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    role = Column(String(30), nullable=False, default="prospective_tenant")
    wallet_address = Column(String(120), nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=func.now())
    last_login_at = Column(DateTime, nullable=True)


class Property(Base):
    """Rental listing. Source of default lease terms."""

    __tablename__ = "properties"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    manager_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    address = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    monthly_rent = Column(Float, nullable=False)
    security_deposit = Column(Float, nullable=False)
    rent_due_day = Column(Integer, nullable=True)
    lease_term_months = Column(Integer, nullable=True)
    is_available = Column(Boolean, default=True)
    created_at = Column(DateTime, default=func.now())

    manager = relationship("User")
    applications = relationship("Application", back_populates="property")
    leases = relationship("Lease", back_populates="property")


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------


class Application(Base):
    """A rental application, scored once at submission."""

    __tablename__ = "applications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    property_id = Column(String(36), ForeignKey("properties.id"), nullable=False, index=True)
    applicant_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    # Financial / behavioral inputs
    monthly_income = Column(Float, nullable=False)
    employment_status = Column(String(30), nullable=False)
    employer_name = Column(String(255), nullable=True)
    employment_years = Column(Float, nullable=False, default=0)
    previous_rental_years = Column(Float, nullable=False, default=0)
    reference_count = Column(Integer, nullable=False, default=0)
    cover_letter = Column(Text, nullable=True)
    cover_letter_length = Column(Integer, nullable=False, default=0)
    reason_for_moving = Column(Text, nullable=True)
    requested_move_in_date = Column(Date, nullable=True)

    # Derived at submission; never rewritten
    monthly_rent_at_scoring = Column(Float, nullable=True)
    compatibility_score = Column(Integer, nullable=False)
    risk_score = Column(Integer, nullable=False)
    score_factors = Column(JSON, default=lambda: [])

    status = Column(String(20), nullable=False, default="submitted")
    reviewed_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    review_notes = Column(Text, nullable=True)
    superseded_by_lease_id = Column(String(36), nullable=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    property = relationship("Property", back_populates="applications")
    applicant = relationship("User", foreign_keys=[applicant_id])


# ---------------------------------------------------------------------------
# Leases
# ---------------------------------------------------------------------------


class Lease(Base):
    """A lease moving from signing through payment-gated activation."""

    __tablename__ = "leases"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    application_id = Column(String(36), ForeignKey("applications.id"), nullable=True, index=True)
    property_id = Column(String(36), ForeignKey("properties.id"), nullable=False, index=True)
    manager_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    tenant_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    # Terms (immutable once active)
    monthly_rent = Column(Float, nullable=False)
    security_deposit = Column(Float, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    rent_due_day = Column(Integer, nullable=False, default=1)

    # Signatures (opaque values reported by the signing collaborator)
    manager_signature = Column(Text, nullable=True)
    manager_signer_address = Column(String(120), nullable=True)
    manager_signed_at = Column(DateTime, nullable=True)
    manager_wallet = Column(JSON, nullable=True)
    tenant_signature = Column(Text, nullable=True)
    tenant_signer_address = Column(String(120), nullable=True)
    tenant_signed_at = Column(DateTime, nullable=True)
    tenant_wallet = Column(JSON, nullable=True)

    status = Column(String(30), nullable=False, default="draft")
    version = Column(Integer, nullable=False, default=1)
    activated_at = Column(DateTime, nullable=True)
    terminated_at = Column(DateTime, nullable=True)
    termination_reason = Column(Text, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    property = relationship("Property", back_populates="leases")
    application = relationship("Application")
    obligations = relationship("PaymentObligation", back_populates="lease")
    events = relationship("LeaseEvent", back_populates="lease")


class PaymentObligation(Base):
    """Mandatory payment (security deposit or first month rent) for a lease."""

    __tablename__ = "payment_obligations"
    __table_args__ = (
        UniqueConstraint("lease_id", "obligation_type", name="uq_obligation_lease_type"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    lease_id = Column(String(36), ForeignKey("leases.id"), nullable=False, index=True)
    tenant_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    obligation_type = Column(String(30), nullable=False)
    amount = Column(Float, nullable=False)
    due_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    settlement_reference = Column(String(255), nullable=True)
    failure_reason = Column(Text, nullable=True)
    settled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    lease = relationship("Lease", back_populates="obligations")


class LeaseEvent(Base):
    """Immutable event log entry for a lease."""

    __tablename__ = "lease_events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    lease_id = Column(String(36), ForeignKey("leases.id"), nullable=False, index=True)
    event_type = Column(String(50), nullable=False)
    actor_id = Column(String(36), nullable=True)
    from_status = Column(String(30), nullable=True)
    to_status = Column(String(30), nullable=True)
    data = Column(JSON, default=lambda: {})
    created_at = Column(DateTime, default=func.now())

    # Relationships
    lease = relationship("Lease", back_populates="events")
