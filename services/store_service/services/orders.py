"""Order operations.

Order totals are derived, never accepted from the client: ``total_amount``
always equals the sum of ``quantity * price`` over the order's items, and
each item's ``price`` is the product price when the order was placed.
"""

import uuid
from decimal import Decimal
from typing import Optional, Sequence

from libs.common.logging import get_logger
from services.store_service.errors import Forbidden, NotFound, ValidationFailure
from services.store_service.models import (
    ORDER_STATUS_TRANSITIONS,
    Order,
    OrderItem,
    OrderStatus,
    Product,
)
from services.store_service.policies import Operation, evaluator
from services.store_service.roles import Caller
from services.store_service.schemas import OrderItemCreate
from services.store_service.services._helpers import commit_or_conflict, get_or_404
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

logger = get_logger(__name__)


async def _load_order(db: AsyncSession, order_id: uuid.UUID) -> Order:
    result = await db.execute(
        select(Order)
        .options(selectinload(Order.items))
        .where(Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    order = result.scalar_one_or_none()
    if order is None:
        raise NotFound("orders", order_id)
    return order


async def _recompute_total(db: AsyncSession, order_id: uuid.UUID) -> Decimal:
    order = await get_or_404(db, Order, order_id)
    result = await db.execute(select(OrderItem).where(OrderItem.order_id == order_id))
    total = sum((item.line_total for item in result.scalars().all()), Decimal("0"))
    order.total_amount = total
    return total


async def create_order(
    db: AsyncSession,
    caller: Caller,
    items: Sequence[OrderItemCreate],
    shipping_address: Optional[str] = None,
) -> Order:
    """Place an order for the caller with price snapshots of each product."""
    if not caller.is_authenticated:
        raise Forbidden("orders", Operation.CREATE.value)
    if not items:
        raise ValidationFailure("An order needs at least one item")

    order = Order(
        user_id=caller.identity_id,
        total_amount=Decimal("0"),
        status=OrderStatus.PENDING,
        shipping_address=shipping_address,
    )
    await evaluator.authorize(db, caller, Operation.CREATE, order)
    db.add(order)
    # Items are authorized through their parent order, which must be visible
    await db.flush()

    total = Decimal("0")
    for requested in items:
        if requested.quantity <= 0:
            raise ValidationFailure("Item quantity must be positive")
        product = await get_or_404(db, Product, requested.product_id)
        item = OrderItem(
            order_id=order.id,
            product_id=product.id,
            quantity=requested.quantity,
            price=product.price,
        )
        await evaluator.authorize(db, caller, Operation.CREATE, item)
        db.add(item)
        total += item.line_total

    order.total_amount = total
    await commit_or_conflict(db, "Order could not be placed")
    logger.info(
        "Order %s placed by %s: %d items, total %s",
        order.id,
        caller.identity_id,
        len(items),
        total,
    )
    return await _load_order(db, order.id)


async def list_orders(db: AsyncSession, caller: Caller) -> list[Order]:
    """Orders the caller may read: their own, or all of them for admins."""
    query = (
        select(Order)
        .options(selectinload(Order.items))
        .order_by(Order.created_at.desc())
    )
    if not caller.is_admin:
        if not caller.is_authenticated:
            return []
        query = query.where(Order.user_id == caller.identity_id)
    result = await db.execute(query)
    return await evaluator.filter_readable(db, caller, result.scalars().all())


async def get_order(db: AsyncSession, caller: Caller, order_id: uuid.UUID) -> Order:
    order = await _load_order(db, order_id)
    await evaluator.authorize(db, caller, Operation.READ, order)
    return order


async def update_order_status(
    db: AsyncSession, caller: Caller, order_id: uuid.UUID, status: OrderStatus
) -> Order:
    """Move an order along its lifecycle."""
    order = await get_or_404(db, Order, order_id)
    await evaluator.authorize(db, caller, Operation.UPDATE, order)
    if status not in ORDER_STATUS_TRANSITIONS[order.status]:
        raise ValidationFailure(
            f"Cannot move order from {order.status.value} to {status.value}"
        )
    previous = order.status
    order.status = status
    await commit_or_conflict(db, "Order update violates a constraint")
    logger.info(
        "Order %s status %s -> %s by %s",
        order_id,
        previous.value,
        status.value,
        caller.identity_id,
    )
    return await _load_order(db, order_id)


async def delete_order(db: AsyncSession, caller: Caller, order_id: uuid.UUID) -> None:
    """Delete an order together with its items."""
    order = await get_or_404(db, Order, order_id)
    await evaluator.authorize(db, caller, Operation.DELETE, order)
    await db.delete(order)
    await commit_or_conflict(db, "Order could not be deleted")
    logger.info("Order %s deleted by %s", order_id, caller.identity_id)


# ============================================================================
# ORDER ITEMS
# ============================================================================


async def get_order_item(db: AsyncSession, caller: Caller, item_id: uuid.UUID) -> OrderItem:
    item = await get_or_404(db, OrderItem, item_id)
    await evaluator.authorize(db, caller, Operation.READ, item)
    return item


async def update_order_item_quantity(
    db: AsyncSession, caller: Caller, item_id: uuid.UUID, quantity: int
) -> OrderItem:
    """Correct an item's quantity. The price snapshot is never changed."""
    item = await get_or_404(db, OrderItem, item_id)
    await evaluator.authorize(db, caller, Operation.UPDATE, item)
    if quantity <= 0:
        raise ValidationFailure("Item quantity must be positive")
    item.quantity = quantity
    await db.flush()
    total = await _recompute_total(db, item.order_id)
    await commit_or_conflict(db, "Order item update violates a constraint")
    logger.info(
        "Order item %s quantity set to %d by %s (order total %s)",
        item_id,
        quantity,
        caller.identity_id,
        total,
    )
    return item


async def delete_order_item(db: AsyncSession, caller: Caller, item_id: uuid.UUID) -> None:
    item = await get_or_404(db, OrderItem, item_id)
    await evaluator.authorize(db, caller, Operation.DELETE, item)
    order_id = item.order_id
    await db.delete(item)
    await db.flush()
    total = await _recompute_total(db, order_id)
    await commit_or_conflict(db, "Order item could not be deleted")
    logger.info(
        "Order item %s deleted by %s (order total %s)",
        item_id,
        caller.identity_id,
        total,
    )
