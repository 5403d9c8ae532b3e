"""Catalog operations: categories and products."""

import uuid
from typing import Optional

from libs.common.logging import get_logger
from services.store_service.models import Category, Product
from services.store_service.policies import Operation, evaluator
from services.store_service.roles import ANONYMOUS, Caller
from services.store_service.schemas import (
    CategoryCreate,
    CategoryUpdate,
    ProductCreate,
    ProductUpdate,
)
from services.store_service.services._helpers import (
    apply_changes,
    commit_or_conflict,
    get_or_404,
)
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


# ============================================================================
# CATEGORIES
# ============================================================================


async def list_categories(db: AsyncSession, caller: Caller = ANONYMOUS) -> list[Category]:
    result = await db.execute(select(Category).order_by(Category.name))
    return await evaluator.filter_readable(db, caller, result.scalars().all())


async def create_category(
    db: AsyncSession, caller: Caller, data: CategoryCreate
) -> Category:
    category = Category(**data.model_dump())
    await evaluator.authorize(db, caller, Operation.CREATE, category)
    db.add(category)
    await commit_or_conflict(db, f"Category '{data.slug}' already exists")
    logger.info("Category %s created by %s", category.slug, caller.identity_id)
    return category


async def update_category(
    db: AsyncSession, caller: Caller, category_id: uuid.UUID, data: CategoryUpdate
) -> Category:
    category = await get_or_404(db, Category, category_id)
    await evaluator.authorize(db, caller, Operation.UPDATE, category)
    apply_changes(category, data.model_dump(exclude_unset=True))
    await commit_or_conflict(db, "Category name and slug must be unique")
    return category


async def delete_category(db: AsyncSession, caller: Caller, category_id: uuid.UUID) -> None:
    """Delete a category; its products become uncategorised."""
    category = await get_or_404(db, Category, category_id)
    await evaluator.authorize(db, caller, Operation.DELETE, category)
    await db.delete(category)
    await commit_or_conflict(db, "Category could not be deleted")
    logger.info("Category %s deleted by %s", category_id, caller.identity_id)


# ============================================================================
# PRODUCTS
# ============================================================================


async def list_products(
    db: AsyncSession,
    category_slug: Optional[str] = None,
    caller: Caller = ANONYMOUS,
) -> list[Product]:
    """List products, optionally narrowed to one category.

    An unknown category slug yields an empty list rather than an error.
    """
    query = select(Product).order_by(Product.name)
    if category_slug is not None:
        result = await db.execute(select(Category.id).where(Category.slug == category_slug))
        category_id = result.scalar_one_or_none()
        if category_id is None:
            return []
        query = query.where(Product.category_id == category_id)
    result = await db.execute(query)
    return await evaluator.filter_readable(db, caller, result.scalars().all())


async def get_product(
    db: AsyncSession, product_id: uuid.UUID, caller: Caller = ANONYMOUS
) -> Product:
    product = await get_or_404(db, Product, product_id)
    await evaluator.authorize(db, caller, Operation.READ, product)
    return product


async def create_product(db: AsyncSession, caller: Caller, data: ProductCreate) -> Product:
    product = Product(**data.model_dump())
    await evaluator.authorize(db, caller, Operation.CREATE, product)
    db.add(product)
    await commit_or_conflict(db, f"Product '{data.name}' already exists")
    logger.info("Product %r created by %s", product.name, caller.identity_id)
    return product


async def update_product(
    db: AsyncSession, caller: Caller, product_id: uuid.UUID, data: ProductUpdate
) -> Product:
    product = await get_or_404(db, Product, product_id)
    await evaluator.authorize(db, caller, Operation.UPDATE, product)
    apply_changes(product, data.model_dump(exclude_unset=True))
    await commit_or_conflict(db, "Product update violates a constraint")
    return product


async def delete_product(db: AsyncSession, caller: Caller, product_id: uuid.UUID) -> None:
    """Delete a product. Products referenced by order items cannot be deleted."""
    product = await get_or_404(db, Product, product_id)
    await evaluator.authorize(db, caller, Operation.DELETE, product)
    await db.delete(product)
    await commit_or_conflict(db, "Product is referenced by existing orders")
    logger.info("Product %s deleted by %s", product_id, caller.identity_id)
