"""Pydantic v2 schemas for API request/response validation."""

from datetime import date, datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from rentflow.domain.enums import (
    ObligationType,
    ReviewDecision,
    SignerParty,
)


# ---------------------------------------------------------------------------
# Auth / Users
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Schema for creating a new user."""

    email: str
    password: str
    name: str
    role: str = "prospective_tenant"
    phone: str | None = None


class UserLogin(BaseModel):
    """Schema for user login."""

    email: str
    password: str


class UserResponse(BaseModel):
    """Schema for user API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: str
    role: str
    phone: str | None = None
    wallet_address: str | None = None
    is_active: bool


class TokenResponse(BaseModel):
    """Schema for JWT token responses."""

    access_token: str
    token_type: str = "bearer"
    user: UserResponse


# ---------------------------------------------------------------------------
# Wallets (closed set of signing / payment modes)
# ---------------------------------------------------------------------------


class CircleWallet(BaseModel):
    """Custodial wallet managed by the payment/signing collaborator."""

    type: Literal["circle"] = "circle"
    wallet_id: str = Field(min_length=1)
    address: str = Field(min_length=1)


class ExternalWallet(BaseModel):
    """Self-custodied wallet; only the address is known to us."""

    type: Literal["external"] = "external"
    address: str = Field(min_length=1)


SigningWallet = Annotated[Union[CircleWallet, ExternalWallet], Field(discriminator="type")]


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------


class ApplicationCreate(BaseModel):
    """Rental application as submitted by the applicant.

    Required-field checks happen in the application service so that every
    missing field is reported together.
    """

    property_id: str
    monthly_income: float | None = Field(default=None, allow_inf_nan=False)
    employment_status: str | None = None
    employer_name: str | None = None
    employment_years: float = Field(default=0, ge=0, allow_inf_nan=False)
    previous_rental_years: float = Field(default=0, ge=0, allow_inf_nan=False)
    reference_count: int = Field(default=0, ge=0)
    cover_letter: str | None = None
    reason_for_moving: str | None = None
    requested_move_in_date: date | None = None


class ApplicationReview(BaseModel):
    decision: ReviewDecision
    notes: str | None = None


class ScoreFactorOut(BaseModel):
    factor: str
    weight: int
    compatibility_delta: int
    risk_delta: int
    detail: str


class ApplicationAnalysis(BaseModel):
    income_to_rent_ratio: float | None = None
    income_verification: str
    employment_stability: str
    rental_history: str
    reference_count: int
    recommendation: str


class ApplicationResponse(BaseModel):
    """Scored application record."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    property_id: str
    applicant_id: str
    monthly_income: float
    employment_status: str
    employer_name: str | None = None
    employment_years: float
    previous_rental_years: float
    reference_count: int
    cover_letter_length: int
    requested_move_in_date: date | None = None
    compatibility_score: int
    risk_score: int
    score_factors: list[ScoreFactorOut] = []
    status: str
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    review_notes: str | None = None
    superseded_by_lease_id: str | None = None
    created_at: datetime | None = None
    analysis: ApplicationAnalysis | None = None


# ---------------------------------------------------------------------------
# Leases
# ---------------------------------------------------------------------------


class LeaseGenerateRequest(BaseModel):
    application_id: str
    start_date: date | None = None
    term_months: int | None = Field(default=None, ge=1, le=60)


class LeaseCreateRequest(BaseModel):
    """Manual lease creation (no originating application)."""

    property_id: str
    tenant_id: str
    start_date: date
    end_date: date | None = None
    monthly_rent: float | None = Field(default=None, gt=0)
    security_deposit: float | None = Field(default=None, ge=0)
    rent_due_day: int | None = Field(default=None, ge=1, le=28)


class SignatureRequest(BaseModel):
    party: SignerParty
    signature: str = Field(min_length=1)
    signer_address: str = Field(min_length=1)
    wallet: Optional[SigningWallet] = None


class SignatureInitiateRequest(BaseModel):
    party: SignerParty
    wallet: SigningWallet


class TerminateRequest(BaseModel):
    reason: str = Field(min_length=1)


class SignatureState(BaseModel):
    signed: bool
    signer_address: str | None = None
    signed_at: datetime | None = None
    wallet_type: str | None = None


class ObligationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    lease_id: str
    tenant_id: str
    obligation_type: ObligationType
    amount: float
    due_date: date
    status: str
    settlement_reference: str | None = None
    failure_reason: str | None = None
    settled_at: datetime | None = None


class LeaseResponse(BaseModel):
    """Full lease snapshot returned by every lease read and mutation."""

    id: str
    application_id: str | None = None
    property_id: str
    manager_id: str
    tenant_id: str
    monthly_rent: float
    security_deposit: float
    start_date: date
    end_date: date
    rent_due_day: int
    status: str
    manager_signature: SignatureState
    tenant_signature: SignatureState
    fully_signed: bool
    obligations: list[ObligationResponse] = []
    outstanding_requirements: list[str] = []
    requires_payment: bool = False
    lease_activated: bool = False
    activated_at: datetime | None = None
    terminated_at: datetime | None = None
    termination_reason: str | None = None
    completed_at: datetime | None = None


class LeaseEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    lease_id: str
    event_type: str
    actor_id: str | None = None
    from_status: str | None = None
    to_status: str | None = None
    data: dict = {}
    created_at: datetime | None = None


# ---------------------------------------------------------------------------
# Payment obligations
# ---------------------------------------------------------------------------


class SettlementRequest(BaseModel):
    settlement_reference: str = Field(min_length=1)


class PaymentFailureRequest(BaseModel):
    reason: str = Field(min_length=1)


class PaymentInitiateRequest(BaseModel):
    wallet: SigningWallet


class SettlementResponse(BaseModel):
    obligation: ObligationResponse
    lease_activated: bool
    lease: LeaseResponse
