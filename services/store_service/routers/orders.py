"""Store orders router: checkout and order history."""

import uuid

from fastapi import APIRouter, Depends, status
from libs.db.session import get_async_db
from services.store_service.roles import Caller
from services.store_service.routers._helpers import get_caller
from services.store_service.schemas import OrderCreate, OrderResponse
from services.store_service.services import orders
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["store"])


@router.post("/orders", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    request: OrderCreate,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
):
    """Place an order. Prices and the total are computed server-side."""
    return await orders.create_order(
        db, caller, request.items, shipping_address=request.shipping_address
    )


@router.get("/orders", response_model=list[OrderResponse])
async def list_my_orders(
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
):
    """List the caller's orders (admins see every order)."""
    return await orders.list_orders(db, caller)


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: uuid.UUID,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_async_db),
):
    return await orders.get_order(db, caller, order_id)
