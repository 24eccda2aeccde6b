"""
API routers package.
"""
from storefront.routers.admin import router as admin_router
from storefront.routers.health import router as health_router
from storefront.routers.orders import router as orders_router
from storefront.routers.payments import router as payments_router

__all__ = [
    "health_router",
    "payments_router",
    "orders_router",
    "admin_router",
]
