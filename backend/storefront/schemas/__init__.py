"""
Pydantic schemas package.
"""
from storefront.schemas.order import (
    AddressSchema,
    CounterSnapshotResponse,
    CustomerOrderResponse,
    FulfillmentAction,
    NoteAction,
    OrderAction,
    OrderListResponse,
    OrderResponse,
    OrderStatsResponse,
    OrderSummary,
    OrderUpdate,
    PaginationSchema,
    RefundAction,
    ReservationResponse,
    ResolveReservationRequest,
    ShipmentSchema,
)
from storefront.schemas.payment import (
    LineItem,
    PaymentConfirmationResponse,
    PaymentConfirmedEvent,
    PaymentMethodDetails,
    ProductGroup,
)

__all__ = [
    # Order
    "AddressSchema",
    "ShipmentSchema",
    "OrderSummary",
    "CustomerOrderResponse",
    "OrderResponse",
    "OrderListResponse",
    "PaginationSchema",
    "OrderUpdate",
    "OrderStatsResponse",
    # Admin actions
    "OrderAction",
    "RefundAction",
    "FulfillmentAction",
    "NoteAction",
    # Reconciliation
    "CounterSnapshotResponse",
    "ReservationResponse",
    "ResolveReservationRequest",
    # Payment
    "LineItem",
    "ProductGroup",
    "PaymentMethodDetails",
    "PaymentConfirmedEvent",
    "PaymentConfirmationResponse",
]
