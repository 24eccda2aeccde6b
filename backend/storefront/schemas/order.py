"""
Order Pydantic schemas for request/response validation.

Wire names are camelCase; the JSON sub-entities stored on an order
(items, timelines, refunds, notes, shipments) already use those keys.
"""
from datetime import datetime
from typing import Any, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from storefront.models.order import FulfillmentStatus, OrderStatus, PaymentStatus


class AddressSchema(BaseModel):
    """Postal address."""

    first_name: str = Field("", alias="firstName")
    last_name: str = Field("", alias="lastName")
    street: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = Field("", alias="postalCode")
    country: str = "US"
    phone: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class OrderItemSchema(BaseModel):
    id: str
    sku: str
    name: str
    unit_price: float = Field(alias="unitPrice")
    quantity: int
    line_total: float = Field(alias="lineTotal")

    model_config = ConfigDict(populate_by_name=True)


class TimelineEventSchema(BaseModel):
    id: str
    type: str
    description: str
    timestamp: datetime
    metadata: Optional[dict[str, Any]] = None


class PaymentEventSchema(BaseModel):
    id: str
    type: str
    amount: float
    currency: str
    status: str
    created_at: datetime = Field(alias="createdAt")
    transaction_id: Optional[str] = Field(None, alias="transactionId")

    model_config = ConfigDict(populate_by_name=True)


class RefundSchema(BaseModel):
    id: str
    amount: float
    reason: str
    status: str
    created_at: datetime = Field(alias="createdAt")
    processed_by: Optional[str] = Field(None, alias="processedBy")

    model_config = ConfigDict(populate_by_name=True)


class OwnerNoteSchema(BaseModel):
    id: str
    content: str
    author: str
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)


class ShipmentSchema(BaseModel):
    """A shipment as sent by the dashboard; ``id`` selects one to update."""

    id: Optional[str] = None
    status: Optional[str] = None
    carrier: Optional[str] = None
    tracking_number: Optional[str] = Field(None, alias="trackingNumber")
    tracking_url: Optional[str] = Field(None, alias="trackingUrl")
    items: Optional[list[str]] = None
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)


class OrderSummary(BaseModel):
    """Order fields shown in confirmations and lists."""

    id: str
    order_number: str = Field(alias="orderNumber")
    product_name: str = Field(alias="productName")
    transaction_id: str = Field(alias="transactionId")
    order_total: float = Field(alias="orderTotal")
    currency: str
    payment_status: PaymentStatus = Field(alias="paymentStatus")
    fulfillment_status: FulfillmentStatus = Field(alias="fulfillmentStatus")
    order_status: OrderStatus = Field(alias="orderStatus")
    order_date: datetime = Field(alias="orderDate")

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class CustomerOrderResponse(OrderSummary):
    """What a customer may see of their own order."""

    items: list[OrderItemSchema] = Field(default_factory=list)
    shipping_cost: float = Field(0, alias="shippingCost")
    tax_total: float = Field(0, alias="taxTotal")
    discount_total: float = Field(0, alias="discountTotal")
    shipping_method: str = Field(alias="shippingMethod")
    carrier: Optional[str] = None
    shipping_address: Optional[AddressSchema] = Field(None, alias="shippingAddress")
    tracking_numbers: list[str] = Field(default_factory=list, alias="trackingNumbers")
    shipments: list[ShipmentSchema] = Field(default_factory=list)
    event_timeline: list[TimelineEventSchema] = Field(default_factory=list, alias="eventTimeline")


class OrderResponse(CustomerOrderResponse):
    """Full order aggregate for the owner dashboard."""

    product_key: str = Field(alias="productKey")
    customer_id: Optional[str] = Field(None, alias="customerId")
    customer_email: str = Field(alias="customerEmail")
    customer_name: str = Field(alias="customerName")
    login_method: str = Field(alias="loginMethod")
    payment_provider: Optional[str] = Field(None, alias="paymentProvider")
    payment_method: Optional[dict[str, Any]] = Field(None, alias="paymentMethod")
    billing_address: Optional[AddressSchema] = Field(None, alias="billingAddress")
    payment_timeline: list[PaymentEventSchema] = Field(default_factory=list, alias="paymentTimeline")
    refunds: list[RefundSchema] = Field(default_factory=list)
    owner_notes: list[OwnerNoteSchema] = Field(default_factory=list, alias="ownerNotes")
    refunded_total: float = Field(0, alias="refundedTotal")
    # DeclarativeBase already owns a ``metadata`` attribute, so read the mapped name
    order_metadata: dict[str, str] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("order_metadata", "metadata"),
        serialization_alias="metadata",
    )
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")


class PaginationSchema(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int = Field(alias="totalPages")

    model_config = ConfigDict(populate_by_name=True)


class OrderListResponse(BaseModel):
    """One page of orders."""

    orders: list[OrderResponse]
    pagination: PaginationSchema


class RefundAction(BaseModel):
    type: Literal["refund"]
    order_id: str = Field(..., alias="orderId")
    amount: float
    reason: str = Field(..., min_length=1, max_length=500)

    model_config = ConfigDict(populate_by_name=True)


class FulfillmentAction(BaseModel):
    type: Literal["update_fulfillment"]
    order_id: str = Field(..., alias="orderId")
    status: FulfillmentStatus
    tracking_numbers: list[str] = Field(default_factory=list, alias="trackingNumbers")
    carrier: Optional[str] = None
    shipments: list[ShipmentSchema] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class NoteAction(BaseModel):
    type: Literal["add_note"]
    order_id: str = Field(..., alias="orderId")
    content: str = Field(..., min_length=1, max_length=5000)

    model_config = ConfigDict(populate_by_name=True)


# Discriminated on ``type`` where it is used as a request body
OrderAction = Union[RefundAction, FulfillmentAction, NoteAction]


class OrderUpdate(BaseModel):
    """Generic owner update. Only the fields sent are changed."""

    customer_name: Optional[str] = Field(None, alias="customerName")
    customer_email: Optional[str] = Field(None, alias="customerEmail")
    shipping_address: Optional[AddressSchema] = Field(None, alias="shippingAddress")
    billing_address: Optional[AddressSchema] = Field(None, alias="billingAddress")
    shipping_method: Optional[str] = Field(None, alias="shippingMethod")
    carrier: Optional[str] = None
    metadata: Optional[dict[str, str]] = None
    payment_status: Optional[PaymentStatus] = Field(None, alias="paymentStatus")
    fulfillment_status: Optional[FulfillmentStatus] = Field(None, alias="fulfillmentStatus")
    order_status: Optional[OrderStatus] = Field(None, alias="orderStatus")

    model_config = ConfigDict(populate_by_name=True)

    def to_changes(self) -> dict[str, Any]:
        """Sent fields in storage form (camelCase documents, plain status strings)."""
        changes: dict[str, Any] = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if isinstance(value, AddressSchema):
                value = value.model_dump(by_alias=True)
            elif hasattr(value, "value"):
                value = value.value
            changes[name] = value
        return changes


class OrderStatsResponse(BaseModel):
    total_orders: int = Field(alias="totalOrders")
    orders_by_product: dict[str, int] = Field(alias="ordersByProduct")
    total_revenue: float = Field(alias="totalRevenue")
    total_refunded: float = Field(alias="totalRefunded")

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class CounterSnapshotResponse(BaseModel):
    counters: dict[str, int]


class ReservationResponse(BaseModel):
    """A minted order number and what became of it."""

    order_number: str = Field(alias="orderNumber")
    product_key: str = Field(alias="productKey")
    sequence: int
    transaction_id: str = Field(alias="transactionId")
    status: str
    order_id: Optional[str] = Field(None, alias="orderId")
    reason: Optional[str] = None
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class ResolveReservationRequest(BaseModel):
    note: Optional[str] = Field(None, max_length=1000)
