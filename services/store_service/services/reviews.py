"""Product review operations."""

import uuid

from libs.common.logging import get_logger
from services.store_service.errors import Forbidden
from services.store_service.models import Product, Review
from services.store_service.policies import Operation, evaluator
from services.store_service.roles import ANONYMOUS, Caller
from services.store_service.schemas import ReviewCreate, ReviewUpdate
from services.store_service.services._helpers import commit_or_conflict, get_or_404
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def list_reviews(
    db: AsyncSession, product_id: uuid.UUID, caller: Caller = ANONYMOUS
) -> list[Review]:
    await get_or_404(db, Product, product_id)
    result = await db.execute(
        select(Review)
        .where(Review.product_id == product_id)
        .order_by(Review.created_at.desc())
    )
    return await evaluator.filter_readable(db, caller, result.scalars().all())


async def create_review(db: AsyncSession, caller: Caller, data: ReviewCreate) -> Review:
    if not caller.is_authenticated:
        raise Forbidden("reviews", Operation.CREATE.value)
    await get_or_404(db, Product, data.product_id)
    review = Review(
        user_id=caller.identity_id,
        product_id=data.product_id,
        rating=data.rating,
        comment=data.comment,
    )
    await evaluator.authorize(db, caller, Operation.CREATE, review)
    db.add(review)
    await commit_or_conflict(db, "Review could not be saved")
    logger.info("Review %s on product %s by %s", review.id, data.product_id, caller.identity_id)
    return review


async def update_review(
    db: AsyncSession, caller: Caller, review_id: uuid.UUID, data: ReviewUpdate
) -> Review:
    review = await get_or_404(db, Review, review_id)
    await evaluator.authorize(db, caller, Operation.UPDATE, review)
    for field, value in data.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(review, field, value)
    await commit_or_conflict(db, "Review update violates a constraint")
    return review


async def delete_review(db: AsyncSession, caller: Caller, review_id: uuid.UUID) -> None:
    review = await get_or_404(db, Review, review_id)
    await evaluator.authorize(db, caller, Operation.DELETE, review)
    await db.delete(review)
    await commit_or_conflict(db, "Review could not be deleted")
    logger.info("Review %s deleted by %s", review_id, caller.identity_id)
