"""Store service routers package."""

from services.store_service.routers.admin import router as admin_router
from services.store_service.routers.auth_events import router as auth_events_router
from services.store_service.routers.catalog import router as catalog_router
from services.store_service.routers.orders import router as orders_router
from services.store_service.routers.profiles import router as profiles_router
from services.store_service.routers.reviews import router as reviews_router

__all__ = [
    "admin_router",
    "auth_events_router",
    "catalog_router",
    "orders_router",
    "profiles_router",
    "reviews_router",
]
