"""Shared router dependencies: resolve the request's caller."""

from typing import Optional

from fastapi import Depends
from libs.auth.dependencies import get_current_user, get_optional_user
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.store_service.errors import NotFound
from services.store_service.roles import ANONYMOUS, Caller, resolve_caller
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def get_caller(
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
) -> Caller:
    """Authenticated caller with the role read from their profile."""
    return await resolve_caller(db, current_user)


async def get_optional_caller(
    current_user: Optional[AuthUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_async_db),
) -> Caller:
    """Caller for public routes.

    Anonymous when no token is sent, or when the token's subject has no
    usable profile; public reads never fail on caller resolution.
    """
    try:
        return await resolve_caller(db, current_user)
    except NotFound:
        logger.warning(
            "No profile for token subject %s; serving public route anonymously",
            current_user.user_id if current_user else None,
        )
        return ANONYMOUS
