"""Lease serialization - builds the full lease snapshot returned to callers."""

from rentflow.domain.enums import LeaseStatus
from rentflow.domain.models import Lease, PaymentObligation
from rentflow.domain.schemas import LeaseResponse, ObligationResponse, SignatureState
from rentflow.services.lease_state_machine import IMMUTABLE_STATES
from rentflow.services.payment_tracker import outstanding_payments


def _signature_state(signature, signer_address, signed_at, wallet) -> SignatureState:
    return SignatureState(
        signed=bool(signature),
        signer_address=signer_address,
        signed_at=signed_at,
        wallet_type=(wallet or {}).get("type"),
    )


def outstanding_requirements(lease: Lease, obligations: list[PaymentObligation]) -> list[str]:
    """Everything still missing before *lease* may activate."""
    if LeaseStatus(lease.status) in IMMUTABLE_STATES:
        return []
    items = []
    if not lease.manager_signature:
        items.append("manager_signature")
    if not lease.tenant_signature:
        items.append("tenant_signature")
    items.extend(outstanding_payments(obligations))
    return items


def serialize_lease(lease: Lease, obligations: list[PaymentObligation]) -> LeaseResponse:
    """Convert a Lease and its obligations into a LeaseResponse."""
    return LeaseResponse(
        id=lease.id,
        application_id=lease.application_id,
        property_id=lease.property_id,
        manager_id=lease.manager_id,
        tenant_id=lease.tenant_id,
        monthly_rent=lease.monthly_rent,
        security_deposit=lease.security_deposit,
        start_date=lease.start_date,
        end_date=lease.end_date,
        rent_due_day=lease.rent_due_day,
        status=lease.status,
        manager_signature=_signature_state(
            lease.manager_signature,
            lease.manager_signer_address,
            lease.manager_signed_at,
            lease.manager_wallet,
        ),
        tenant_signature=_signature_state(
            lease.tenant_signature,
            lease.tenant_signer_address,
            lease.tenant_signed_at,
            lease.tenant_wallet,
        ),
        fully_signed=bool(lease.manager_signature and lease.tenant_signature),
        obligations=[ObligationResponse.model_validate(o) for o in obligations],
        outstanding_requirements=outstanding_requirements(lease, obligations),
        requires_payment=lease.status == LeaseStatus.AWAITING_PAYMENT.value,
        lease_activated=lease.status == LeaseStatus.ACTIVE.value,
        activated_at=lease.activated_at,
        terminated_at=lease.terminated_at,
        termination_reason=lease.termination_reason,
        completed_at=lease.completed_at,
    )
