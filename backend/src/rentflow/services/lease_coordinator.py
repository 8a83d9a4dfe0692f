"""Lease Activation Coordinator - drives a lease from generation to activation.

This is NOT an AI agent. It is business logic that orchestrates the lease
lifecycle: generation from an approved application (or manual creation),
dual signature collection, mandatory payment tracking, and the payment-gated
activation that promotes the tenant from ``prospective_tenant`` to ``tenant``.

CONCURRENCY: every mutation of a lease runs under that lease's asyncio lock and
commits before the lock is released. Inside the transaction the lease row is
locked first (``SELECT ... FOR UPDATE``; SQLite serializes writers instead),
so settle-then-check is atomic across workers as well. The transitions
themselves are conditional UPDATEs, so ``fully_signed``, obligation creation,
activation and the role write each happen exactly once.

ACTIVATION GATE: ``active`` is only ever written by ``_activate_if_ready``,
whose UPDATE requires both signatures and both completed mandatory
obligations in the same statement. No other code path writes it.
"""

import calendar
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rentflow.app.config import get_settings
from rentflow.domain.enums import (
    MANDATORY_OBLIGATION_TYPES,
    ApplicationStatus,
    LeaseActor,
    LeaseEventType,
    LeaseStatus,
    ObligationStatus,
    SignerParty,
    UserRole,
)
from rentflow.domain.errors import (
    Conflict,
    Forbidden,
    NotFound,
    PreconditionFailed,
    UpstreamFailure,
    ValidationError,
)
from rentflow.domain.identity import CallerIdentity
from rentflow.domain.models import (
    Application,
    Lease,
    LeaseEvent,
    PaymentObligation,
    Property,
    User,
)
from rentflow.domain.schemas import (
    LeaseResponse,
    ObligationResponse,
    SettlementResponse,
)
from rentflow.infra.payment_gateway import PaymentSigningClient
from rentflow.services import lease_events
from rentflow.services.lease_locks import LeaseLockRegistry, lease_locks
from rentflow.services.lease_serializer import outstanding_requirements, serialize_lease
from rentflow.services.lease_state_machine import (
    SIGNABLE_STATES,
    TERMINAL_STATES,
    validate_transition,
)
from rentflow.services.notification_dispatcher import NotificationDispatcher
from rentflow.services.payment_tracker import PaymentRequirementTracker
from rentflow.services.signature_collector import SignatureCollector

logger = logging.getLogger(__name__)


def add_months(start: date, months: int) -> date:
    """Same day *months* later, clamped to the end of shorter months."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def lease_row_lock(lease_id: str):
    """Row lock on one lease, held until the surrounding transaction ends."""
    return select(Lease.id).where(Lease.id == lease_id).with_for_update()


class LeaseActivationCoordinator:
    """Orchestrates lease generation, signing, payment and activation.

    All methods are async, accept a SQLAlchemy AsyncSession and an explicit
    ``CallerIdentity``, and commit their own transaction. Mutating methods
    return the full resulting lease state.
    """

    def __init__(
        self,
        notifier: Optional[NotificationDispatcher] = None,
        gateway: Optional[PaymentSigningClient] = None,
        locks: Optional[LeaseLockRegistry] = None,
        settings=None,
    ):
        self.settings = settings or get_settings()
        self.notifier = notifier or NotificationDispatcher()
        self.gateway = gateway or PaymentSigningClient.from_settings(self.settings)
        self.locks = locks or lease_locks
        self.signatures = SignatureCollector()
        self.payments = PaymentRequirementTracker(payment_due_days=self.settings.payment_due_days)

    # ------------------------------------------------------------------
    # Lease creation
    # ------------------------------------------------------------------

    async def generate_lease(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        application_id: str,
        start_date: Optional[date] = None,
        term_months: Optional[int] = None,
    ) -> LeaseResponse:
        """Generate a lease from an approved application.

        Steps:
            1. Load the application and its property
            2. Check the caller manages the property
            3. Check the application is approved and not yet superseded
            4. Derive terms from the property (request overrides start/term)
            5. Claim the application (conditional UPDATE) and create the lease
            6. Open the lease for signing

        Raises:
            NotFound: Unknown application.
            Forbidden: Caller is not the property's manager.
            Conflict: Application not approved, or a lease already exists for it.
        """
        # 1. Load application + property
        result = await db.execute(select(Application).where(Application.id == application_id))
        application = result.scalar_one_or_none()
        if application is None:
            raise NotFound(f"Application {application_id} not found")
        prop = await self._get_property(db, application.property_id)

        # 2. Authorization
        if caller.user_id != prop.manager_id:
            raise Forbidden("Only the property's manager may generate a lease")

        # 3. Application state
        if application.status != ApplicationStatus.APPROVED.value:
            raise Conflict(
                f"Application {application_id} is {application.status}; only approved "
                f"applications can produce a lease"
            )
        if application.superseded_by_lease_id:
            raise Conflict(
                f"Application {application_id} already produced lease "
                f"{application.superseded_by_lease_id}"
            )

        # 4. Terms
        start = start_date or application.requested_move_in_date or date.today()
        months = term_months or prop.lease_term_months or self.settings.default_lease_term_months
        lease_id = str(uuid.uuid4())

        # 5. Claim the application so a second generate cannot also succeed
        claimed = await db.execute(
            update(Application)
            .where(
                Application.id == application_id,
                Application.status == ApplicationStatus.APPROVED.value,
                Application.superseded_by_lease_id.is_(None),
            )
            .values(superseded_by_lease_id=lease_id)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            await db.rollback()
            raise Conflict(f"Application {application_id} already produced a lease")

        lease = Lease(
            id=lease_id,
            application_id=application.id,
            property_id=prop.id,
            manager_id=prop.manager_id,
            tenant_id=application.applicant_id,
            monthly_rent=prop.monthly_rent,
            security_deposit=prop.security_deposit,
            start_date=start,
            end_date=add_months(start, months),
            rent_due_day=prop.rent_due_day or self.settings.default_rent_due_day,
            status=LeaseStatus.DRAFT.value,
        )
        return await self._create_and_open(db, caller, lease, source="application")

    async def create_manual_lease(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        property_id: str,
        tenant_id: str,
        start_date: date,
        end_date: Optional[date] = None,
        monthly_rent: Optional[float] = None,
        security_deposit: Optional[float] = None,
        rent_due_day: Optional[int] = None,
    ) -> LeaseResponse:
        """Create a lease directly, without an originating application."""
        prop = await self._get_property(db, property_id, as_validation=True)
        if caller.user_id != prop.manager_id:
            raise Forbidden("Only the property's manager may create a lease")

        result = await db.execute(select(User).where(User.id == tenant_id))
        tenant = result.scalar_one_or_none()
        errors = []
        if tenant is None:
            errors.append(f"Tenant {tenant_id} not found")
        elif tenant.id == prop.manager_id:
            errors.append("A manager cannot lease their own property")

        months = prop.lease_term_months or self.settings.default_lease_term_months
        end = end_date or add_months(start_date, months)
        if end <= start_date:
            errors.append("end_date must be after start_date")
        if errors:
            raise ValidationError("Invalid lease request", errors)

        lease = Lease(
            id=str(uuid.uuid4()),
            application_id=None,
            property_id=prop.id,
            manager_id=prop.manager_id,
            tenant_id=tenant_id,
            monthly_rent=monthly_rent if monthly_rent is not None else prop.monthly_rent,
            security_deposit=(
                security_deposit if security_deposit is not None else prop.security_deposit
            ),
            start_date=start_date,
            end_date=end,
            rent_due_day=rent_due_day or prop.rent_due_day or self.settings.default_rent_due_day,
            status=LeaseStatus.DRAFT.value,
        )
        return await self._create_and_open(db, caller, lease, source="manual")

    async def _create_and_open(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        lease: Lease,
        source: str,
    ) -> LeaseResponse:
        try:
            db.add(lease)
            lease_events.record_event(
                db,
                lease.id,
                LeaseEventType.CREATED,
                actor_id=caller.user_id,
                to_status=LeaseStatus.DRAFT,
                data={"source": source, "application_id": lease.application_id},
            )

            validate_transition(LeaseStatus.DRAFT, LeaseStatus.AWAITING_SIGNATURES, LeaseActor.SYSTEM)
            lease.status = LeaseStatus.AWAITING_SIGNATURES.value
            lease_events.record_event(
                db,
                lease.id,
                LeaseEventType.OPENED_FOR_SIGNING,
                actor_id=caller.user_id,
                from_status=LeaseStatus.DRAFT,
                to_status=LeaseStatus.AWAITING_SIGNATURES,
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "Lease %s created (%s) for property %s, tenant %s -> %s",
            lease.id,
            source,
            lease.property_id,
            lease.tenant_id,
            LeaseStatus.AWAITING_SIGNATURES.value,
        )
        return await self._snapshot(db, lease.id)

    # ------------------------------------------------------------------
    # Signatures
    # ------------------------------------------------------------------

    async def submit_signature(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        lease_id: str,
        party: SignerParty,
        signature: str,
        signer_address: str,
        wallet: Optional[dict] = None,
    ) -> LeaseResponse:
        """Record a signature; on the second one, create obligations and await payment.

        Raises:
            NotFound: Unknown lease.
            Forbidden: Caller is not the user behind *party*.
            Conflict: Different signature already recorded, or lease not signable.
        """
        created: list[PaymentObligation] = []
        async with self._lease_transaction(db, lease_id):
            lease = await self._get_lease(db, lease_id)
            outcome = await self.signatures.submit_signature(
                db, lease, party, signature, signer_address, caller, wallet=wallet
            )
            if outcome["transitioned"]:
                lease = await self._get_lease(db, lease_id)
                created = await self.payments.create_mandatory_obligations(db, lease)
                await self._advance(
                    db,
                    lease,
                    LeaseStatus.FULLY_SIGNED,
                    LeaseStatus.AWAITING_PAYMENT,
                    actor_id=caller.user_id,
                    data={"obligation_ids": [o.id for o in created]},
                )

        if created:
            await self._notify_fully_signed(db, lease, created)
        return await self._snapshot(db, lease_id)

    async def initiate_signature(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        lease_id: str,
        party: SignerParty,
        wallet: dict,
    ) -> LeaseResponse:
        """Sign through the signing collaborator, then record the result."""
        lease = await self._get_lease(db, lease_id)
        self.signatures.authorize(lease, party, caller)
        if LeaseStatus(lease.status) not in SIGNABLE_STATES:
            raise Conflict(f"Lease {lease_id} is {lease.status} and no longer accepts signatures")

        signed = await self.gateway.initiate_signature(lease_id, party.value, wallet)
        return await self.submit_signature(
            db,
            caller,
            lease_id,
            party,
            signed["signature"],
            signed["signer_address"],
            wallet=wallet,
        )

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    async def record_payment_settlement(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        obligation_id: str,
        settlement_reference: str,
    ) -> SettlementResponse:
        """Mark an obligation completed, then activate the lease if it is now ready.

        Returns:
            SettlementResponse whose ``lease_activated`` is True only when this
            call performed the activation.

        Raises:
            NotFound: Unknown obligation.
            Forbidden: Caller is not a party to the lease (or the system).
            Conflict: Lease is not awaiting payment, or the obligation was
                settled under a different reference.
        """
        obligation = await self.payments.get_obligation(db, obligation_id)
        lease_id = obligation.lease_id
        activated = False

        async with self._lease_transaction(db, lease_id):
            lease = await self._get_lease(db, lease_id)
            self._authorize_payment(lease, caller)

            if lease.status != LeaseStatus.AWAITING_PAYMENT.value:
                obligation = await self.payments.get_obligation(db, obligation_id)
                if (
                    obligation.status == ObligationStatus.COMPLETED.value
                    and obligation.settlement_reference == settlement_reference
                ):
                    logger.info("Settlement %s replayed on lease %s", obligation_id, lease_id)
                else:
                    raise Conflict(f"Lease {lease_id} is {lease.status}, not awaiting payment")
            else:
                obligation, newly_settled = await self.payments.mark_settled(
                    db, obligation_id, settlement_reference
                )
                if newly_settled:
                    lease_events.record_event(
                        db,
                        lease_id,
                        LeaseEventType.PAYMENT_SETTLED,
                        actor_id=caller.user_id,
                        data={
                            "obligation_id": obligation.id,
                            "obligation_type": obligation.obligation_type,
                            "settlement_reference": settlement_reference,
                        },
                    )
                activated = await self._activate_if_ready(db, lease, actor_id=caller.user_id)

        if activated:
            await self._notify_activated(db, lease_id)

        return SettlementResponse(
            obligation=ObligationResponse.model_validate(obligation),
            lease_activated=activated,
            lease=await self._snapshot(db, lease_id),
        )

    async def record_payment_failure(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        obligation_id: str,
        reason: str,
    ) -> ObligationResponse:
        """Record that a payment attempt failed. The lease stays awaiting payment."""
        obligation = await self.payments.get_obligation(db, obligation_id)
        async with self._lease_transaction(db, obligation.lease_id):
            lease = await self._get_lease(db, obligation.lease_id)
            self._authorize_payment(lease, caller)
            obligation = await self._fail_obligation(db, caller, obligation_id, reason)
        return ObligationResponse.model_validate(obligation)

    async def initiate_payment(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        obligation_id: str,
        wallet: dict,
    ) -> SettlementResponse:
        """Pay an obligation through the payment collaborator.

        A collaborator failure marks the obligation ``failed`` and re-raises
        ``UpstreamFailure``; a later settlement can still complete it.
        """
        obligation = await self.payments.get_obligation(db, obligation_id)
        lease = await self._get_lease(db, obligation.lease_id)
        if caller.user_id != lease.tenant_id:
            raise Forbidden("Only the lease tenant may pay its obligations")
        if lease.status != LeaseStatus.AWAITING_PAYMENT.value:
            raise Conflict(f"Lease {lease.id} is {lease.status}, not awaiting payment")
        if obligation.status == ObligationStatus.COMPLETED.value:
            raise Conflict(f"Obligation {obligation_id} is already settled")

        try:
            paid = await self.gateway.initiate_payment(obligation_id, obligation.amount, wallet)
        except UpstreamFailure as exc:
            async with self._lease_transaction(db, lease.id):
                await self._fail_obligation(db, caller, obligation_id, exc.message)
            raise

        return await self.record_payment_settlement(
            db, caller, obligation_id, paid["settlement_reference"]
        )

    async def _fail_obligation(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        obligation_id: str,
        reason: str,
    ) -> PaymentObligation:
        obligation = await self.payments.mark_failed(db, obligation_id, reason)
        lease_events.record_event(
            db,
            obligation.lease_id,
            LeaseEventType.PAYMENT_FAILED,
            actor_id=caller.user_id,
            data={
                "obligation_id": obligation.id,
                "obligation_type": obligation.obligation_type,
                "reason": reason,
            },
        )
        return obligation

    # ------------------------------------------------------------------
    # Activation
    # ------------------------------------------------------------------

    async def attempt_activation(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        lease_id: str,
    ) -> LeaseResponse:
        """Run the activation gate explicitly.

        An already active lease is returned unchanged.

        Raises:
            Forbidden: Caller is neither the lease manager nor the system.
            PreconditionFailed: Signatures or payments are outstanding.
            Conflict: Lease has already ended.
        """
        activated = False
        async with self._lease_transaction(db, lease_id):
            lease = await self._get_lease(db, lease_id)
            if caller.user_id != lease.manager_id and not caller.is_system:
                raise Forbidden("Only the lease manager may activate a lease")

            status = LeaseStatus(lease.status)
            if status == LeaseStatus.ACTIVE:
                logger.info("Lease %s already active", lease_id)
            elif status in TERMINAL_STATES:
                validate_transition(status, LeaseStatus.ACTIVE, LeaseActor.SYSTEM)
            else:
                obligations = await self.payments.list_for_lease(db, lease_id)
                outstanding = outstanding_requirements(lease, obligations)
                if outstanding:
                    raise PreconditionFailed(
                        f"Lease {lease_id} cannot activate; outstanding: {', '.join(outstanding)}",
                        outstanding,
                    )
                activated = await self._activate_if_ready(db, lease, actor_id=caller.user_id)
                if not activated:
                    raise Conflict(f"Lease {lease_id} changed while activating; retry")

        if activated:
            await self._notify_activated(db, lease_id)
        return await self._snapshot(db, lease_id)

    async def _activate_if_ready(
        self,
        db: AsyncSession,
        lease: Lease,
        actor_id: Optional[str],
    ) -> bool:
        """The only writer of ``active``. Returns True if this call activated the lease."""
        if not await self.payments.is_fully_settled(db, lease.id):
            return False
        validate_transition(LeaseStatus(lease.status), LeaseStatus.ACTIVE, LeaseActor.SYSTEM)

        completed_mandatory = (
            select(func.count(PaymentObligation.id))
            .where(
                PaymentObligation.lease_id == lease.id,
                PaymentObligation.obligation_type.in_(
                    [t.value for t in MANDATORY_OBLIGATION_TYPES]
                ),
                PaymentObligation.status == ObligationStatus.COMPLETED.value,
            )
            .scalar_subquery()
        )
        result = await db.execute(
            update(Lease)
            .where(
                Lease.id == lease.id,
                Lease.status == LeaseStatus.AWAITING_PAYMENT.value,
                Lease.manager_signature.is_not(None),
                Lease.tenant_signature.is_not(None),
                completed_mandatory == len(MANDATORY_OBLIGATION_TYPES),
            )
            .values(
                status=LeaseStatus.ACTIVE.value,
                activated_at=datetime.now(timezone.utc),
                version=Lease.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False

        lease_events.record_event(
            db,
            lease.id,
            LeaseEventType.ACTIVATED,
            actor_id=actor_id,
            from_status=LeaseStatus.AWAITING_PAYMENT,
            to_status=LeaseStatus.ACTIVE,
        )
        logger.info(
            "Lease %s: %s -> %s",
            lease.id,
            LeaseStatus.AWAITING_PAYMENT.value,
            LeaseStatus.ACTIVE.value,
        )

        # Role transition: only matches a tenant who is still prospective
        role_result = await db.execute(
            update(User)
            .where(
                User.id == lease.tenant_id,
                User.role == UserRole.PROSPECTIVE_TENANT.value,
            )
            .values(role=UserRole.TENANT.value)
            .execution_options(synchronize_session=False)
        )
        if role_result.rowcount == 1:
            lease_events.record_event(
                db,
                lease.id,
                LeaseEventType.ROLE_TRANSITIONED,
                actor_id=actor_id,
                data={
                    "user_id": lease.tenant_id,
                    "from_role": UserRole.PROSPECTIVE_TENANT.value,
                    "to_role": UserRole.TENANT.value,
                },
            )
            logger.info("User %s promoted to tenant by lease %s", lease.tenant_id, lease.id)
        return True

    # ------------------------------------------------------------------
    # End of tenancy
    # ------------------------------------------------------------------

    async def terminate(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        lease_id: str,
        reason: str,
    ) -> LeaseResponse:
        """Terminate an active lease. The tenant keeps the ``tenant`` role."""
        async with self._lease_transaction(db, lease_id):
            lease = await self._get_lease(db, lease_id)
            if caller.user_id != lease.manager_id:
                raise Forbidden("Only the lease manager may terminate a lease")
            await self._advance(
                db,
                lease,
                LeaseStatus.ACTIVE,
                LeaseStatus.TERMINATED,
                actor_id=caller.user_id,
                actor=LeaseActor.MANAGER,
                values={
                    "terminated_at": datetime.now(timezone.utc),
                    "termination_reason": reason,
                },
                data={"reason": reason},
            )

        await self._notify_terminated(db, lease, reason)
        return await self._snapshot(db, lease_id)

    async def complete(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        lease_id: str,
        today: Optional[date] = None,
    ) -> LeaseResponse:
        """Close out an active lease whose term has ended."""
        async with self._lease_transaction(db, lease_id):
            lease = await self._get_lease(db, lease_id)
            if caller.is_system:
                actor = LeaseActor.SYSTEM
            elif caller.user_id == lease.manager_id:
                actor = LeaseActor.MANAGER
            else:
                raise Forbidden("Only the lease manager may complete a lease")

            today = today or date.today()
            if lease.status == LeaseStatus.ACTIVE.value and today < lease.end_date:
                raise Conflict(
                    f"Lease {lease_id} runs until {lease.end_date.isoformat()}; "
                    f"terminate it to end early"
                )
            await self._advance(
                db,
                lease,
                LeaseStatus.ACTIVE,
                LeaseStatus.COMPLETED,
                actor_id=caller.user_id,
                actor=actor,
                values={"completed_at": datetime.now(timezone.utc)},
            )
        return await self._snapshot(db, lease_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_lease_state(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        lease_id: str,
    ) -> LeaseResponse:
        lease = await self._get_lease(db, lease_id)
        self._authorize_view(lease, caller)
        return await self._snapshot(db, lease_id)

    async def list_leases(self, db: AsyncSession, caller: CallerIdentity) -> list[LeaseResponse]:
        query = select(Lease).order_by(Lease.created_at.desc())
        if not caller.is_system:
            query = query.where(
                or_(Lease.manager_id == caller.user_id, Lease.tenant_id == caller.user_id)
            )
        result = await db.execute(query)
        leases = result.scalars().all()
        return [
            serialize_lease(lease, await self.payments.list_for_lease(db, lease.id))
            for lease in leases
        ]

    async def list_events(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        lease_id: str,
    ) -> list[LeaseEvent]:
        lease = await self._get_lease(db, lease_id)
        self._authorize_view(lease, caller)
        return await lease_events.list_events(db, lease_id)

    async def list_obligations(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        lease_id: str,
    ) -> list[ObligationResponse]:
        lease = await self._get_lease(db, lease_id)
        self._authorize_view(lease, caller)
        obligations = await self.payments.list_for_lease(db, lease_id)
        return [ObligationResponse.model_validate(o) for o in obligations]

    async def get_obligation(
        self,
        db: AsyncSession,
        caller: CallerIdentity,
        obligation_id: str,
    ) -> ObligationResponse:
        obligation = await self.payments.get_obligation(db, obligation_id)
        lease = await self._get_lease(db, obligation.lease_id)
        self._authorize_view(lease, caller)
        return ObligationResponse.model_validate(obligation)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _lease_transaction(self, db: AsyncSession, lease_id: str):
        """Hold the lease lock and row lock for one transaction; commit on success, roll back on error."""
        async with self.locks.lock_for(lease_id):
            try:
                await db.execute(lease_row_lock(lease_id))
                yield
                await db.commit()
            except Exception:
                await db.rollback()
                raise

    async def _advance(
        self,
        db: AsyncSession,
        lease: Lease,
        from_status: LeaseStatus,
        to_status: LeaseStatus,
        actor_id: Optional[str],
        actor: LeaseActor = LeaseActor.SYSTEM,
        values: Optional[dict] = None,
        data: Optional[dict] = None,
    ) -> None:
        """Move *lease* from *from_status* to *to_status* with a conditional UPDATE."""
        validate_transition(LeaseStatus(lease.status), to_status, actor)
        result = await db.execute(
            update(Lease)
            .where(Lease.id == lease.id, Lease.status == from_status.value)
            .values(status=to_status.value, version=Lease.version + 1, **(values or {}))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise Conflict(f"Lease {lease.id} is no longer {from_status.value}")
        lease_events.record_event(
            db,
            lease.id,
            self._event_for(to_status),
            actor_id=actor_id,
            from_status=from_status,
            to_status=to_status,
            data=data,
        )
        logger.info("Lease %s: %s -> %s", lease.id, from_status.value, to_status.value)

    @staticmethod
    def _event_for(status: LeaseStatus) -> LeaseEventType:
        return {
            LeaseStatus.AWAITING_PAYMENT: LeaseEventType.OBLIGATIONS_CREATED,
            LeaseStatus.TERMINATED: LeaseEventType.TERMINATED,
            LeaseStatus.COMPLETED: LeaseEventType.COMPLETED,
        }[status]

    async def _get_lease(self, db: AsyncSession, lease_id: str) -> Lease:
        result = await db.execute(
            select(Lease)
            .where(Lease.id == lease_id)
            .execution_options(populate_existing=True)
        )
        lease = result.scalar_one_or_none()
        if lease is None:
            raise NotFound(f"Lease {lease_id} not found")
        return lease

    async def _get_property(
        self,
        db: AsyncSession,
        property_id: str,
        as_validation: bool = False,
    ) -> Property:
        result = await db.execute(select(Property).where(Property.id == property_id))
        prop = result.scalar_one_or_none()
        if prop is None:
            if as_validation:
                raise ValidationError(f"Property {property_id} not found")
            raise NotFound(f"Property {property_id} not found")
        return prop

    async def _snapshot(self, db: AsyncSession, lease_id: str) -> LeaseResponse:
        lease = await self._get_lease(db, lease_id)
        obligations = await self.payments.list_for_lease(db, lease_id)
        return serialize_lease(lease, obligations)

    async def _emails(self, db: AsyncSession, *user_ids: str) -> list[Optional[str]]:
        result = await db.execute(select(User.id, User.email).where(User.id.in_(user_ids)))
        by_id = {row.id: row.email for row in result}
        return [by_id.get(user_id) for user_id in user_ids]

    # Notifications run after the commit; a failure here is logged and never
    # reaches the caller.

    async def _notify_fully_signed(
        self, db: AsyncSession, lease: Lease, created: list[PaymentObligation]
    ) -> None:
        try:
            manager_email, tenant_email = await self._emails(db, lease.manager_id, lease.tenant_id)
            self.notifier.lease_fully_signed([manager_email, tenant_email], lease.id)
            self.notifier.payment_required(
                tenant_email,
                lease.id,
                [
                    {
                        "obligation_type": o.obligation_type,
                        "amount": o.amount,
                        "due_date": o.due_date.isoformat(),
                    }
                    for o in created
                ],
            )
        except Exception:
            logger.warning("Fully-signed notifications for lease %s failed", lease.id, exc_info=True)

    async def _notify_activated(self, db: AsyncSession, lease_id: str) -> None:
        try:
            lease = await self._get_lease(db, lease_id)
            manager_email, tenant_email = await self._emails(db, lease.manager_id, lease.tenant_id)
            self.notifier.lease_activated([manager_email, tenant_email], lease_id)
        except Exception:
            logger.warning("Activation notification for lease %s failed", lease_id, exc_info=True)

    async def _notify_terminated(self, db: AsyncSession, lease: Lease, reason: str) -> None:
        try:
            manager_email, tenant_email = await self._emails(db, lease.manager_id, lease.tenant_id)
            self.notifier.lease_terminated([manager_email, tenant_email], lease.id, reason)
        except Exception:
            logger.warning("Termination notification for lease %s failed", lease.id, exc_info=True)

    @staticmethod
    def _authorize_view(lease: Lease, caller: CallerIdentity) -> None:
        if caller.is_system or caller.user_id in (lease.manager_id, lease.tenant_id):
            return
        raise Forbidden("Only the lease parties may view this lease")

    @staticmethod
    def _authorize_payment(lease: Lease, caller: CallerIdentity) -> None:
        if caller.is_system or caller.user_id in (lease.manager_id, lease.tenant_id):
            return
        raise Forbidden("Only the lease parties or the payment service may report payments")
