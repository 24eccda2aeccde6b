"""
SQLAlchemy models package.
All models are imported here for easy access and Alembic discovery.
"""
from storefront.models.counter import OrderCounter
from storefront.models.order import (
    FulfillmentStatus,
    LoginMethod,
    Order,
    OrderEventType,
    OrderStatus,
    PaymentStatus,
)
from storefront.models.reservation import OrderNumberReservation, ReservationStatus

__all__ = [
    "Order",
    "OrderCounter",
    "OrderNumberReservation",
    "PaymentStatus",
    "FulfillmentStatus",
    "OrderStatus",
    "OrderEventType",
    "LoginMethod",
    "ReservationStatus",
]
