"""Profile router: the caller's own profile and profile lookups."""

import uuid

from fastapi import APIRouter, Depends
from libs.db.session import get_async_db
from services.store_service.roles import Caller
from services.store_service.routers._helpers import get_caller
from services.store_service.schemas import ProfileResponse, ProfileUpdate
from services.store_service.services import profiles
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["profiles"])


@router.get("/me", response_model=ProfileResponse)
async def get_my_profile(
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
):
    return await profiles.get_profile(db, caller, caller.identity_id)


@router.patch("/me", response_model=ProfileResponse)
async def update_my_profile(
    data: ProfileUpdate,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
):
    """Update the caller's profile. Role changes are admin-only."""
    return await profiles.update_profile(db, caller, caller.identity_id, data)


@router.get("/{identity_id}", response_model=ProfileResponse)
async def get_profile(
    identity_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
):
    return await profiles.get_profile(db, caller, identity_id)
