"""Store catalog router: categories, products and product reviews."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.db.session import get_async_db
from services.store_service.roles import Caller
from services.store_service.routers._helpers import get_optional_caller
from services.store_service.schemas import (
    CategoryResponse,
    ProductResponse,
    ReviewResponse,
)
from services.store_service.services import catalog, reviews
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["store"])


# ============================================================================
# CATALOG - CATEGORIES
# ============================================================================


@router.get("/categories", response_model=list[CategoryResponse])
async def list_categories(
    caller: Caller = Depends(get_optional_caller),
    db: AsyncSession = Depends(get_async_db),
):
    """List all categories."""
    return await catalog.list_categories(db, caller)


# ============================================================================
# CATALOG - PRODUCTS
# ============================================================================


@router.get("/products", response_model=list[ProductResponse])
async def list_products(
    category: Optional[str] = Query(None, description="Category slug"),
    caller: Caller = Depends(get_optional_caller),
    db: AsyncSession = Depends(get_async_db),
):
    """List products, optionally filtered by category slug."""
    return await catalog.list_products(db, category_slug=category, caller=caller)


@router.get("/products/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: uuid.UUID,
    caller: Caller = Depends(get_optional_caller),
    db: AsyncSession = Depends(get_async_db),
):
    return await catalog.get_product(db, product_id, caller)


@router.get("/products/{product_id}/reviews", response_model=list[ReviewResponse])
async def list_product_reviews(
    product_id: uuid.UUID,
    caller: Caller = Depends(get_optional_caller),
    db: AsyncSession = Depends(get_async_db),
):
    """Reviews are public."""
    return await reviews.list_reviews(db, product_id, caller)
