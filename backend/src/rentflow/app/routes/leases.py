"""Lease routes: generation, signing, activation and end of tenancy.

Every mutating endpoint returns the full lease snapshot, including
``requires_payment``, ``lease_activated`` and ``outstanding_requirements``.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rentflow.app.providers import get_coordinator
from rentflow.app.routes.auth import get_caller
from rentflow.domain.identity import CallerIdentity
from rentflow.domain.schemas import (
    LeaseCreateRequest,
    LeaseEventResponse,
    LeaseGenerateRequest,
    LeaseResponse,
    ObligationResponse,
    SignatureInitiateRequest,
    SignatureRequest,
    TerminateRequest,
)
from rentflow.infra.database import get_db
from rentflow.services.lease_coordinator import LeaseActivationCoordinator

router = APIRouter(prefix="/api/leases", tags=["leases"])


@router.post("/generate", response_model=LeaseResponse, status_code=201)
async def generate_lease(
    data: LeaseGenerateRequest,
    caller: CallerIdentity = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    coordinator: LeaseActivationCoordinator = Depends(get_coordinator),
):
    return await coordinator.generate_lease(
        db,
        caller,
        data.application_id,
        start_date=data.start_date,
        term_months=data.term_months,
    )


@router.post("", response_model=LeaseResponse, status_code=201)
async def create_lease(
    data: LeaseCreateRequest,
    caller: CallerIdentity = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    coordinator: LeaseActivationCoordinator = Depends(get_coordinator),
):
    return await coordinator.create_manual_lease(
        db,
        caller,
        property_id=data.property_id,
        tenant_id=data.tenant_id,
        start_date=data.start_date,
        end_date=data.end_date,
        monthly_rent=data.monthly_rent,
        security_deposit=data.security_deposit,
        rent_due_day=data.rent_due_day,
    )


@router.get("", response_model=list[LeaseResponse])
async def list_leases(
    caller: CallerIdentity = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    coordinator: LeaseActivationCoordinator = Depends(get_coordinator),
):
    return await coordinator.list_leases(db, caller)


@router.get("/{lease_id}", response_model=LeaseResponse)
async def get_lease(
    lease_id: str,
    caller: CallerIdentity = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    coordinator: LeaseActivationCoordinator = Depends(get_coordinator),
):
    return await coordinator.get_lease_state(db, caller, lease_id)


@router.post("/{lease_id}/sign", response_model=LeaseResponse)
async def sign_lease(
    lease_id: str,
    data: SignatureRequest,
    caller: CallerIdentity = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    coordinator: LeaseActivationCoordinator = Depends(get_coordinator),
):
    return await coordinator.submit_signature(
        db,
        caller,
        lease_id,
        data.party,
        data.signature,
        data.signer_address,
        wallet=data.wallet.model_dump() if data.wallet else None,
    )


@router.post("/{lease_id}/sign/initiate", response_model=LeaseResponse)
async def initiate_signature(
    lease_id: str,
    data: SignatureInitiateRequest,
    caller: CallerIdentity = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    coordinator: LeaseActivationCoordinator = Depends(get_coordinator),
):
    return await coordinator.initiate_signature(
        db, caller, lease_id, data.party, data.wallet.model_dump()
    )


@router.post("/{lease_id}/activate", response_model=LeaseResponse)
async def activate_lease(
    lease_id: str,
    caller: CallerIdentity = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    coordinator: LeaseActivationCoordinator = Depends(get_coordinator),
):
    """Run the activation gate. Fails with 412 while anything is outstanding."""
    return await coordinator.attempt_activation(db, caller, lease_id)


@router.post("/{lease_id}/terminate", response_model=LeaseResponse)
async def terminate_lease(
    lease_id: str,
    data: TerminateRequest,
    caller: CallerIdentity = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    coordinator: LeaseActivationCoordinator = Depends(get_coordinator),
):
    return await coordinator.terminate(db, caller, lease_id, data.reason)


@router.post("/{lease_id}/complete", response_model=LeaseResponse)
async def complete_lease(
    lease_id: str,
    caller: CallerIdentity = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    coordinator: LeaseActivationCoordinator = Depends(get_coordinator),
):
    return await coordinator.complete(db, caller, lease_id)


@router.get("/{lease_id}/events", response_model=list[LeaseEventResponse])
async def list_lease_events(
    lease_id: str,
    caller: CallerIdentity = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    coordinator: LeaseActivationCoordinator = Depends(get_coordinator),
):
    events = await coordinator.list_events(db, caller, lease_id)
    return [LeaseEventResponse.model_validate(e) for e in events]


@router.get("/{lease_id}/payment-obligations", response_model=list[ObligationResponse])
async def list_lease_obligations(
    lease_id: str,
    caller: CallerIdentity = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    coordinator: LeaseActivationCoordinator = Depends(get_coordinator),
):
    return await coordinator.list_obligations(db, caller, lease_id)
