"""Lease audit log helpers."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rentflow.domain.enums import LeaseEventType, LeaseStatus
from rentflow.domain.models import LeaseEvent


def record_event(
    db: AsyncSession,
    lease_id: str,
    event_type: LeaseEventType,
    actor_id: Optional[str] = None,
    from_status: Optional[LeaseStatus] = None,
    to_status: Optional[LeaseStatus] = None,
    data: Optional[dict] = None,
) -> LeaseEvent:
    """Stage an immutable event row in the current transaction."""
    event = LeaseEvent(
        id=str(uuid.uuid4()),
        lease_id=lease_id,
        event_type=event_type.value,
        actor_id=actor_id,
        from_status=from_status.value if from_status else None,
        to_status=to_status.value if to_status else None,
        data=data or {},
        created_at=datetime.now(timezone.utc),
    )
    db.add(event)
    return event


async def list_events(db: AsyncSession, lease_id: str) -> list[LeaseEvent]:
    result = await db.execute(
        select(LeaseEvent)
        .where(LeaseEvent.lease_id == lease_id)
        .order_by(LeaseEvent.created_at, LeaseEvent.id)
    )
    return list(result.scalars().all())
