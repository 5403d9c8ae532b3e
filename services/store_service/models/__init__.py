"""Store Service models package."""

from services.store_service.models.catalog import Category, Product
from services.store_service.models.commerce import Order, OrderItem, Review
from services.store_service.models.enums import (
    ORDER_STATUS_TRANSITIONS,
    AppRole,
    OrderStatus,
)
from services.store_service.models.identity import IdentityRef
from services.store_service.models.ledger import SchemaLedgerEntry
from services.store_service.models.profile import Profile

__all__ = [
    "AppRole",
    "Category",
    "IdentityRef",
    "ORDER_STATUS_TRANSITIONS",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Product",
    "Profile",
    "Review",
    "SchemaLedgerEntry",
]
