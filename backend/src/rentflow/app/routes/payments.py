"""Payment obligation routes: settlement callbacks, failures and tenant-initiated payments."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from rentflow.app.providers import get_coordinator
from rentflow.app.routes.auth import get_caller
from rentflow.domain.identity import CallerIdentity
from rentflow.domain.schemas import (
    ObligationResponse,
    PaymentFailureRequest,
    PaymentInitiateRequest,
    SettlementRequest,
    SettlementResponse,
)
from rentflow.infra.database import get_db
from rentflow.services.lease_coordinator import LeaseActivationCoordinator

router = APIRouter(prefix="/api/payment-obligations", tags=["payments"])


@router.get("/{obligation_id}", response_model=ObligationResponse)
async def get_obligation(
    obligation_id: str,
    caller: CallerIdentity = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    coordinator: LeaseActivationCoordinator = Depends(get_coordinator),
):
    return await coordinator.get_obligation(db, caller, obligation_id)


@router.post("/{obligation_id}/settle", response_model=SettlementResponse)
async def settle_obligation(
    obligation_id: str,
    data: SettlementRequest,
    caller: CallerIdentity = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    coordinator: LeaseActivationCoordinator = Depends(get_coordinator),
):
    """Record a settlement. ``lease_activated`` is true when this call activated the lease."""
    return await coordinator.record_payment_settlement(
        db, caller, obligation_id, data.settlement_reference
    )


@router.post("/{obligation_id}/fail", response_model=ObligationResponse)
async def fail_obligation(
    obligation_id: str,
    data: PaymentFailureRequest,
    caller: CallerIdentity = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    coordinator: LeaseActivationCoordinator = Depends(get_coordinator),
):
    return await coordinator.record_payment_failure(db, caller, obligation_id, data.reason)


@router.post("/{obligation_id}/initiate", response_model=SettlementResponse)
async def initiate_payment(
    obligation_id: str,
    data: PaymentInitiateRequest,
    caller: CallerIdentity = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    coordinator: LeaseActivationCoordinator = Depends(get_coordinator),
):
    return await coordinator.initiate_payment(
        db, caller, obligation_id, data.wallet.model_dump()
    )
