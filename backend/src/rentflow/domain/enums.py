"""Domain enumerations for the RentFlow leasing core.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
"""

from enum import Enum


class UserRole(str, Enum):
    """Role held by a platform user."""

    PROSPECTIVE_TENANT = "prospective_tenant"
    TENANT = "tenant"
    MANAGER = "manager"
    AI_AGENT = "ai_agent"


class EmploymentStatus(str, Enum):
    """Applicant's self-reported employment status."""

    EMPLOYED = "employed"
    SELF_EMPLOYED = "self_employed"
    UNEMPLOYED = "unemployed"
    STUDENT = "student"
    RETIRED = "retired"


class ApplicationStatus(str, Enum):
    """Status of a rental application."""

    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class ReviewDecision(str, Enum):
    """Decision a manager can record on an application."""

    APPROVED = "approved"
    REJECTED = "rejected"


class LeaseStatus(str, Enum):
    """Status of a lease through its signing and activation lifecycle."""

    DRAFT = "draft"
    AWAITING_SIGNATURES = "awaiting_signatures"
    FULLY_SIGNED = "fully_signed"
    AWAITING_PAYMENT = "awaiting_payment"
    ACTIVE = "active"
    TERMINATED = "terminated"
    COMPLETED = "completed"


class SignerParty(str, Enum):
    """Which side of the lease a signature belongs to."""

    MANAGER = "manager"
    TENANT = "tenant"


class ObligationType(str, Enum):
    """Mandatory payments required before a lease activates."""

    SECURITY_DEPOSIT = "security_deposit"
    FIRST_MONTH_RENT = "first_month_rent"


MANDATORY_OBLIGATION_TYPES: tuple[ObligationType, ...] = (
    ObligationType.SECURITY_DEPOSIT,
    ObligationType.FIRST_MONTH_RENT,
)


class ObligationStatus(str, Enum):
    """Status of a payment obligation."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class WalletType(str, Enum):
    """Signing / payment wallet modes accepted from the collaborator."""

    CIRCLE = "circle"
    EXTERNAL = "external"


class ScoreBand(str, Enum):
    """Presentation band derived from a compatibility score."""

    HIGHLY_RECOMMENDED = "highly recommended"
    RECOMMENDED = "recommended"
    CONSIDER_WITH_CAUTION = "consider with caution"
    NOT_RECOMMENDED = "not recommended"


class LeaseEventType(str, Enum):
    """Types of events recorded in the lease audit log."""

    CREATED = "created"
    OPENED_FOR_SIGNING = "opened_for_signing"
    SIGNATURE_RECORDED = "signature_recorded"
    FULLY_SIGNED = "fully_signed"
    OBLIGATIONS_CREATED = "obligations_created"
    PAYMENT_SETTLED = "payment_settled"
    PAYMENT_FAILED = "payment_failed"
    ACTIVATED = "activated"
    ROLE_TRANSITIONED = "role_transitioned"
    TERMINATED = "terminated"
    COMPLETED = "completed"


class LeaseActor(str, Enum):
    """Who is allowed to drive a given lease transition."""

    MANAGER = "manager"
    TENANT = "tenant"
    SYSTEM = "system"
