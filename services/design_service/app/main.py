"""FastAPI application for the Design Service."""

from fastapi import FastAPI
from libs.common.error_handler import add_exception_handlers
from libs.common.middleware import add_observability_middleware
from services.design_service.routers import (
    admin_router,
    cart_router,
    designs_router,
    orders_router,
)


def create_app() -> FastAPI:
    """Create and configure the Design Service FastAPI app."""
    app = FastAPI(
        title="Design Service",
        version="0.1.0",
        description="Customer design lifecycle - editor links, design storage, cart binding and post-purchase locking.",
    )

    add_observability_middleware(app)
    add_exception_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "design"}

    # Visitor routes (designs, editor round trip, cart, orders)
    app.include_router(designs_router)
    app.include_router(cart_router)
    app.include_router(orders_router)

    # Admin routes (product settings, diagnostics, renders, maintenance)
    app.include_router(admin_router, prefix="/admin")

    return app


app = create_app()
