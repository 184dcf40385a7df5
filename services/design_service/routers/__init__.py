"""Design service routers package."""

from services.design_service.routers.admin import router as admin_router
from services.design_service.routers.cart import router as cart_router
from services.design_service.routers.designs import router as designs_router
from services.design_service.routers.orders import router as orders_router

__all__ = [
    "admin_router",
    "cart_router",
    "designs_router",
    "orders_router",
]
