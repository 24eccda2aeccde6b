"""
Services package for business logic layer.
"""
from storefront.services.notifications import NotificationService
from storefront.services.order_numbers import OrderNumberGenerator, normalize_product_name
from storefront.services.order_store import OrderStore
from storefront.services.payment_handler import (
    ConfirmationResult,
    ConfirmationStatus,
    PaymentConfirmationHandler,
)
from storefront.services.payment_security import PaymentSecurityValidator
from storefront.services.storage import InMemoryStorage, SqlStorage, Storage

__all__ = [
    "OrderNumberGenerator",
    "normalize_product_name",
    "PaymentSecurityValidator",
    "OrderStore",
    "PaymentConfirmationHandler",
    "ConfirmationResult",
    "ConfirmationStatus",
    "NotificationService",
    "Storage",
    "SqlStorage",
    "InMemoryStorage",
]
