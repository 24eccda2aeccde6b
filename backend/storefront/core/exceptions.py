"""
Domain exceptions.

Raised by the service layer when a business rule is violated. The API layer
translates them into HTTP responses (see storefront.middleware.error_handler).
"""
from typing import Optional


class StorefrontError(Exception):
    """Base class for all domain errors."""

    status_code: int = 400
    code: str = "STOREFRONT_ERROR"
    retryable: bool = False

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class PaymentSecurityError(StorefrontError):
    """A payment failed validation before any mutation took place."""

    code = "PAYMENT_REJECTED"


class OrderNotFoundError(StorefrontError):
    """The requested order does not exist."""

    status_code = 404
    code = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order not found: {order_id}")
        self.order_id = order_id


class DuplicateOrderError(StorefrontError):
    """An order with the same id or order number already exists."""

    status_code = 409
    code = "DUPLICATE_ORDER"


class InvalidTransitionError(StorefrontError):
    """A status axis was asked to move somewhere its transition table forbids."""

    status_code = 409
    code = "INVALID_TRANSITION"

    def __init__(self, axis: str, current: str, target: str) -> None:
        super().__init__(f"Cannot move {axis} from {current} to {target}")
        self.axis = axis
        self.current = current
        self.target = target


class RefundError(StorefrontError):
    """Refund amount is not positive or exceeds what is left to refund."""

    code = "INVALID_REFUND"


class ReservationNotFoundError(StorefrontError):
    """No reservation is recorded for the given order number."""

    status_code = 404
    code = "RESERVATION_NOT_FOUND"


class CounterStoreError(StorefrontError):
    """The order counter could not be read or written."""

    status_code = 503
    code = "COUNTER_UNAVAILABLE"
    retryable = True


class OrderPersistenceError(StorefrontError):
    """An order could not be persisted after its number was minted."""

    status_code = 503
    code = "ORDER_PERSISTENCE_FAILED"
    retryable = True

    def __init__(self, message: str, order_numbers: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.order_numbers = order_numbers or []
