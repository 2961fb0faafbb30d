"""Marketplace API package."""

from marketplace.api.errors import register_error_handlers
from marketplace.api.routes import (
    cart_router,
    maintenance_router,
    order_router,
    payment_router,
    subscription_router,
)

ROUTERS = [cart_router, order_router, payment_router, subscription_router, maintenance_router]

__all__ = [
    "ROUTERS",
    "cart_router",
    "order_router",
    "payment_router",
    "subscription_router",
    "maintenance_router",
    "register_error_handlers",
]
