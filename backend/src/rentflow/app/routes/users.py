"""User directory routes."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from rentflow.app.routes.auth import get_caller
from rentflow.domain.enums import UserRole
from rentflow.domain.identity import CallerIdentity
from rentflow.domain.schemas import UserResponse
from rentflow.infra.database import get_db
from rentflow.services.auth_service import get_user

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/{user_id}", response_model=UserResponse)
async def get_user_profile(
    user_id: str,
    caller: CallerIdentity = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    """Users can read themselves; managers and the system can read anyone."""
    if caller.user_id != user_id and caller.role not in (UserRole.MANAGER, UserRole.AI_AGENT):
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    user = await get_user(db, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return UserResponse.model_validate(user)
