"""Store reviews router: members write, edit and remove their reviews."""

import uuid

from fastapi import APIRouter, Depends, status
from libs.db.session import get_async_db
from services.store_service.roles import Caller
from services.store_service.routers._helpers import get_caller
from services.store_service.schemas import ReviewCreate, ReviewResponse, ReviewUpdate
from services.store_service.services import reviews
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["store"])


@router.post(
    "/reviews", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED
)
async def create_review(
    data: ReviewCreate,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
):
    return await reviews.create_review(db, caller, data)


@router.patch("/reviews/{review_id}", response_model=ReviewResponse)
async def update_review(
    review_id: uuid.UUID,
    data: ReviewUpdate,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
):
    """Authors (and admins) can edit a review."""
    return await reviews.update_review(db, caller, review_id, data)


@router.delete("/reviews/{review_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_review(
    review_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
):
    await reviews.delete_review(db, caller, review_id)
