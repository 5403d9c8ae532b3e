"""FastAPI application for the Store Service."""

from fastapi import FastAPI
from libs.common.error_handler import add_exception_handlers
from libs.common.middleware import add_observability_middleware
from services.store_service.errors import StoreError
from services.store_service.routers import (
    admin_router,
    auth_events_router,
    catalog_router,
    orders_router,
    profiles_router,
    reviews_router,
)


def create_app() -> FastAPI:
    """Create and configure the Store Service FastAPI app."""
    app = FastAPI(
        title="Storefront Store Service",
        version="0.1.0",
        description="Catalog, orders and reviews behind row-level access policies.",
    )

    add_observability_middleware(app)

    # Domain errors (403/404/409/422/500) render as {"detail", "error"}
    add_exception_handlers(app, StoreError)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "store"}

    # Public store routes (catalog, reviews, orders)
    app.include_router(catalog_router, prefix="/store")
    app.include_router(reviews_router, prefix="/store")
    app.include_router(orders_router, prefix="/store")

    app.include_router(profiles_router, prefix="/profiles")
    app.include_router(auth_events_router, prefix="/auth")

    # Admin routes (catalog, order and profile management)
    app.include_router(admin_router, prefix="/admin")

    return app


app = create_app()
