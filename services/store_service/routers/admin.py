"""Admin router: catalog management, order management and profile removal.

Every route goes through the same policy evaluator as member routes; a
non-admin caller gets 403 from the policy, not from a separate guard.
"""

import uuid

from fastapi import APIRouter, Depends, status
from libs.db.session import get_async_db
from services.store_service.roles import Caller
from services.store_service.routers._helpers import get_caller
from services.store_service.schemas import (
    CategoryCreate,
    CategoryResponse,
    CategoryUpdate,
    OrderItemResponse,
    OrderItemUpdate,
    OrderResponse,
    OrderStatusUpdate,
    ProductCreate,
    ProductResponse,
    ProductUpdate,
)
from services.store_service.services import catalog, orders, profiles
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["admin"])


# ============================================================================
# CATEGORIES
# ============================================================================


@router.post(
    "/store/categories",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_category(
    data: CategoryCreate,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
):
    return await catalog.create_category(db, caller, data)


@router.patch("/store/categories/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: uuid.UUID,
    data: CategoryUpdate,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
):
    return await catalog.update_category(db, caller, category_id, data)


@router.delete(
    "/store/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT
)
async def delete_category(
    category_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
):
    await catalog.delete_category(db, caller, category_id)


# ============================================================================
# PRODUCTS
# ============================================================================


@router.post(
    "/store/products",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_product(
    data: ProductCreate,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
):
    return await catalog.create_product(db, caller, data)


@router.patch("/store/products/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: uuid.UUID,
    data: ProductUpdate,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
):
    return await catalog.update_product(db, caller, product_id, data)


@router.delete("/store/products/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
):
    """Products that appear in any order cannot be deleted (409)."""
    await catalog.delete_product(db, caller, product_id)


# ============================================================================
# ORDERS
# ============================================================================


@router.patch("/store/orders/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: uuid.UUID,
    data: OrderStatusUpdate,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
):
    return await orders.update_order_status(db, caller, order_id, data.status)


@router.delete("/store/orders/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_order(
    order_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
):
    await orders.delete_order(db, caller, order_id)


@router.patch("/store/order-items/{item_id}", response_model=OrderItemResponse)
async def update_order_item(
    item_id: uuid.UUID,
    data: OrderItemUpdate,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
):
    """Correct a line quantity; the order total is recomputed."""
    return await orders.update_order_item_quantity(db, caller, item_id, data.quantity)


@router.delete("/store/order-items/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_order_item(
    item_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
):
    await orders.delete_order_item(db, caller, item_id)


# ============================================================================
# PROFILES
# ============================================================================


@router.delete("/profiles/{identity_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_profile(
    identity_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
):
    await profiles.delete_profile(db, caller, identity_id)
