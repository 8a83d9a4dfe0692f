"""Payment Requirement Tracker - the two mandatory payments gating activation.

Every fully signed lease owes a security deposit and its first month's rent.
Obligations are created once per lease (backed by the unique
``(lease_id, obligation_type)`` constraint), never deleted, and settled through
conditional UPDATEs. Settlement state is always re-read from the database;
nothing here trusts in-memory copies. The caller commits.
"""

import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rentflow.domain.enums import (
    MANDATORY_OBLIGATION_TYPES,
    LeaseStatus,
    ObligationStatus,
    ObligationType,
)
from rentflow.domain.errors import Conflict, NotFound
from rentflow.domain.models import Lease, PaymentObligation

logger = logging.getLogger(__name__)

# States a settlement or failure report may still move out of
_OPEN_STATUSES = [ObligationStatus.PENDING.value, ObligationStatus.FAILED.value]


class PaymentRequirementTracker:
    """Creates, settles and inspects mandatory payment obligations."""

    def __init__(self, payment_due_days: int = 7):
        self.payment_due_days = payment_due_days

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_mandatory_obligations(
        self,
        db: AsyncSession,
        lease: Lease,
        today: Optional[date] = None,
    ) -> list[PaymentObligation]:
        """Create the security deposit and first month rent obligations.

        Only valid while the lease is ``fully_signed``. If the obligations
        already exist they are returned unchanged.

        Args:
            db: Active async SQLAlchemy session.
            lease: Lease that just became fully signed.
            today: Reference date for the deposit due date (defaults to today).

        Returns:
            The two obligations, deposit first.

        Raises:
            Conflict: Lease is not in ``fully_signed``.
        """
        if lease.status != LeaseStatus.FULLY_SIGNED.value:
            raise Conflict(
                f"Obligations are created on the fully_signed transition; "
                f"lease {lease.id} is {lease.status}"
            )

        existing = await self.list_for_lease(db, lease.id)
        if existing:
            logger.info("Lease %s already has %d obligations", lease.id, len(existing))
            return existing

        today = today or date.today()
        deposit_due = today + timedelta(days=self.payment_due_days)
        terms = {
            ObligationType.SECURITY_DEPOSIT: (lease.security_deposit, deposit_due),
            ObligationType.FIRST_MONTH_RENT: (lease.monthly_rent, max(lease.start_date, deposit_due)),
        }

        obligations = []
        for obligation_type in MANDATORY_OBLIGATION_TYPES:
            amount, due_date = terms[obligation_type]
            obligation = PaymentObligation(
                id=str(uuid.uuid4()),
                lease_id=lease.id,
                tenant_id=lease.tenant_id,
                obligation_type=obligation_type.value,
                amount=amount,
                due_date=due_date,
                status=ObligationStatus.PENDING.value,
            )
            db.add(obligation)
            obligations.append(obligation)

        await db.flush()
        logger.info(
            "Lease %s: created obligations %s",
            lease.id,
            ", ".join(o.obligation_type for o in obligations),
        )
        return obligations

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_obligation(self, db: AsyncSession, obligation_id: str) -> PaymentObligation:
        result = await db.execute(
            select(PaymentObligation)
            .where(PaymentObligation.id == obligation_id)
            .execution_options(populate_existing=True)
        )
        obligation = result.scalar_one_or_none()
        if obligation is None:
            raise NotFound(f"Payment obligation {obligation_id} not found")
        return obligation

    async def list_for_lease(self, db: AsyncSession, lease_id: str) -> list[PaymentObligation]:
        result = await db.execute(
            select(PaymentObligation)
            .where(PaymentObligation.lease_id == lease_id)
            .execution_options(populate_existing=True)
        )
        order = {t.value: i for i, t in enumerate(MANDATORY_OBLIGATION_TYPES)}
        return sorted(result.scalars().all(), key=lambda o: order.get(o.obligation_type, 99))

    async def is_fully_settled(self, db: AsyncSession, lease_id: str) -> bool:
        """True iff every mandatory obligation of the lease is completed."""
        result = await db.execute(
            select(func.count(PaymentObligation.id)).where(
                PaymentObligation.lease_id == lease_id,
                PaymentObligation.obligation_type.in_([t.value for t in MANDATORY_OBLIGATION_TYPES]),
                PaymentObligation.status == ObligationStatus.COMPLETED.value,
            )
        )
        return result.scalar_one() == len(MANDATORY_OBLIGATION_TYPES)

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    async def mark_settled(
        self,
        db: AsyncSession,
        obligation_id: str,
        settlement_reference: str,
    ) -> tuple[PaymentObligation, bool]:
        """Mark an obligation completed with its settlement reference.

        A pending or failed obligation can be settled. Re-reporting the same
        reference for a completed obligation is a no-op.

        Returns:
            ``(obligation, newly_settled)``.

        Raises:
            NotFound: Unknown obligation.
            Conflict: Obligation already settled under a different reference.
        """
        result = await db.execute(
            update(PaymentObligation)
            .where(
                PaymentObligation.id == obligation_id,
                PaymentObligation.status.in_(_OPEN_STATUSES),
            )
            .values(
                status=ObligationStatus.COMPLETED.value,
                settlement_reference=settlement_reference,
                failure_reason=None,
                settled_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        obligation = await self.get_obligation(db, obligation_id)
        if result.rowcount == 1:
            logger.info(
                "Obligation %s (%s) settled for lease %s",
                obligation.id,
                obligation.obligation_type,
                obligation.lease_id,
            )
            return obligation, True

        if obligation.settlement_reference != settlement_reference:
            raise Conflict(
                f"Obligation {obligation_id} was already settled under another reference"
            )
        logger.info("Duplicate settlement for obligation %s ignored", obligation_id)
        return obligation, False

    async def mark_failed(
        self,
        db: AsyncSession,
        obligation_id: str,
        reason: str,
    ) -> PaymentObligation:
        """Record a failed payment attempt. Completed obligations cannot fail."""
        result = await db.execute(
            update(PaymentObligation)
            .where(
                PaymentObligation.id == obligation_id,
                PaymentObligation.status.in_(_OPEN_STATUSES),
            )
            .values(status=ObligationStatus.FAILED.value, failure_reason=reason)
            .execution_options(synchronize_session=False)
        )
        obligation = await self.get_obligation(db, obligation_id)
        if result.rowcount != 1:
            raise Conflict(f"Obligation {obligation_id} is already settled")
        logger.warning(
            "Obligation %s (%s) failed for lease %s: %s",
            obligation.id,
            obligation.obligation_type,
            obligation.lease_id,
            reason,
        )
        return obligation


def outstanding_payments(obligations: list[PaymentObligation]) -> list[str]:
    by_type = {o.obligation_type: o for o in obligations}
    missing = []
    for obligation_type in MANDATORY_OBLIGATION_TYPES:
        obligation = by_type.get(obligation_type.value)
        if obligation is None or obligation.status != ObligationStatus.COMPLETED.value:
            missing.append(obligation_type.value)
    return missing
