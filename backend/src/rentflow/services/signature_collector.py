"""Signature Collector - records manager and tenant signatures on a lease.

Signatures are opaque values reported by the signing collaborator; they are
stored verbatim and never verified here. Each party's slot is written once,
through a conditional UPDATE that only matches while the slot is still empty,
so two racing writers cannot both succeed. The caller commits.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rentflow.domain.enums import LeaseEventType, LeaseStatus, SignerParty
from rentflow.domain.errors import Conflict, Forbidden
from rentflow.domain.identity import CallerIdentity
from rentflow.domain.models import Lease
from rentflow.services.lease_events import record_event
from rentflow.services.lease_state_machine import SIGNABLE_STATES

logger = logging.getLogger(__name__)


def _signature_columns(party: SignerParty) -> tuple[str, str, str, str]:
    prefix = party.value
    return (
        f"{prefix}_signature",
        f"{prefix}_signer_address",
        f"{prefix}_signed_at",
        f"{prefix}_wallet",
    )


def is_fully_signed(lease: Lease) -> bool:
    return bool(lease.manager_signature) and bool(lease.tenant_signature)


class SignatureCollector:
    """Authorizes and records lease signatures."""

    def authorize(self, lease: Lease, party: SignerParty, caller: CallerIdentity) -> None:
        """Raise Forbidden unless *caller* is the user behind *party* on this lease."""
        expected = lease.manager_id if party == SignerParty.MANAGER else lease.tenant_id
        if caller.user_id != expected:
            raise Forbidden(
                f"Only the lease {party.value} may sign as {party.value}"
            )

    async def submit_signature(
        self,
        db: AsyncSession,
        lease: Lease,
        party: SignerParty,
        signature: str,
        signer_address: str,
        caller: CallerIdentity,
        wallet: Optional[dict] = None,
    ) -> dict:
        """Record *party*'s signature on *lease*.

        An identical resubmission is a no-op; a different value for an
        already-signed party is a Conflict.

        Returns:
            Dict with ``fully_signed`` (both signatures now present),
            ``recorded`` (this call wrote the signature) and ``transitioned``
            (this call moved the lease to ``fully_signed``).

        Raises:
            Forbidden: Caller is not the user behind *party*.
            Conflict: Slot already holds a different signature, or the lease
                no longer accepts signatures.
        """
        self.authorize(lease, party, caller)

        sig_col, address_col, signed_at_col, wallet_col = _signature_columns(party)
        signature_attr = getattr(Lease, sig_col)
        now = datetime.now(timezone.utc)

        # 1. Write the slot only if it is still empty
        result = await db.execute(
            update(Lease)
            .where(
                Lease.id == lease.id,
                Lease.status.in_([s.value for s in SIGNABLE_STATES]),
                signature_attr.is_(None),
            )
            .values(
                {
                    sig_col: signature,
                    address_col: signer_address,
                    signed_at_col: now,
                    wallet_col: wallet,
                    "version": Lease.version + 1,
                }
            )
            .execution_options(synchronize_session=False)
        )
        recorded = result.rowcount == 1

        lease = await self._reload(db, lease.id)

        if not recorded:
            existing = getattr(lease, sig_col)
            if existing is None:
                raise Conflict(
                    f"Lease {lease.id} is {lease.status} and no longer accepts signatures"
                )
            if existing != signature or getattr(lease, address_col) != signer_address:
                raise Conflict(
                    f"Lease {lease.id} already carries a different {party.value} signature"
                )
            logger.info(
                "Duplicate %s signature on lease %s ignored", party.value, lease.id
            )
            return {
                "fully_signed": is_fully_signed(lease),
                "recorded": False,
                "transitioned": False,
            }

        record_event(
            db,
            lease.id,
            LeaseEventType.SIGNATURE_RECORDED,
            actor_id=caller.user_id,
            data={
                "party": party.value,
                "signer_address": signer_address,
                "wallet_type": (wallet or {}).get("type"),
            },
        )
        logger.info("Lease %s: %s signature recorded", lease.id, party.value)

        # 2. Both present: exactly one writer wins the fully_signed transition
        transitioned = False
        if is_fully_signed(lease):
            result = await db.execute(
                update(Lease)
                .where(
                    Lease.id == lease.id,
                    Lease.status == LeaseStatus.AWAITING_SIGNATURES.value,
                    Lease.manager_signature.is_not(None),
                    Lease.tenant_signature.is_not(None),
                )
                .values(status=LeaseStatus.FULLY_SIGNED.value, version=Lease.version + 1)
                .execution_options(synchronize_session=False)
            )
            transitioned = result.rowcount == 1
            if transitioned:
                lease = await self._reload(db, lease.id)
                record_event(
                    db,
                    lease.id,
                    LeaseEventType.FULLY_SIGNED,
                    actor_id=caller.user_id,
                    from_status=LeaseStatus.AWAITING_SIGNATURES,
                    to_status=LeaseStatus.FULLY_SIGNED,
                )
                logger.info(
                    "Lease %s: %s -> %s",
                    lease.id,
                    LeaseStatus.AWAITING_SIGNATURES.value,
                    LeaseStatus.FULLY_SIGNED.value,
                )

        return {
            "fully_signed": is_fully_signed(lease),
            "recorded": True,
            "transitioned": transitioned,
        }

    async def _reload(self, db: AsyncSession, lease_id: str) -> Lease:
        result = await db.execute(
            select(Lease)
            .where(Lease.id == lease_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()
