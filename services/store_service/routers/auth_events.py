"""Auth-provider session events."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.store_service.schemas import AuthEventRequest, ProfileResponse
from services.store_service.services.profiles import AuthEvent, on_auth_event
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["auth"])


@router.post("/events", response_model=Optional[ProfileResponse])
async def auth_event(
    request: AuthEventRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """Forward a SignedIn/SignedOut event; SignedIn returns the profile."""
    try:
        event = AuthEvent(request.event)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown auth event {request.event!r}",
        )
    try:
        identity_id = uuid.UUID(current_user.user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token subject is not an identity id",
        )
    return await on_auth_event(db, event, identity_id)
