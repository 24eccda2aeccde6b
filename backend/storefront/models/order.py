"""
Order model - the aggregate root created after a confirmed payment.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from sqlalchemy import DateTime, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from storefront.core.database import Base
from storefront.models.types import JSONDocument


class PaymentStatus(str, Enum):
    """Payment axis of an order."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class FulfillmentStatus(str, Enum):
    """Shipping/delivery axis of an order."""

    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderStatus(str, Enum):
    """Overall lifecycle of an order."""

    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class OrderEventType(str, Enum):
    """Entry types of the event timeline."""

    CREATED = "created"
    PAID = "paid"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    NOTE_ADDED = "note_added"
    UPDATED = "updated"


class LoginMethod(str, Enum):
    """How the customer signed in when paying."""

    EMAIL = "email"
    GOOGLE = "google"
    APPLE = "apple"
    GITHUB = "github"
    GUEST = "guest"


class Order(Base):
    """One product group of a confirmed payment, with its full history."""

    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("transaction_id", "product_key", name="uq_orders_transaction_product"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    order_number: Mapped[str] = mapped_column(String(160), unique=True, index=True)
    product_key: Mapped[str] = mapped_column(String(128), index=True)
    product_name: Mapped[str] = mapped_column(String(255))

    # Payment reference shared by every order minted from the same payment
    transaction_id: Mapped[str] = mapped_column(String(255), index=True)
    payment_provider: Mapped[Optional[str]] = mapped_column(String(50))
    payment_method: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONDocument)

    # Customer
    customer_id: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    customer_email: Mapped[str] = mapped_column(String(255), index=True)
    customer_name: Mapped[str] = mapped_column(String(255))
    login_method: Mapped[str] = mapped_column(String(20), default=LoginMethod.GUEST.value)

    # Financial - fixed at creation, refunds are recorded separately
    order_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    shipping_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    tax_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    discount_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), default="USD")

    # Status axes
    payment_status: Mapped[str] = mapped_column(String(20), index=True)
    fulfillment_status: Mapped[str] = mapped_column(String(20), index=True)
    order_status: Mapped[str] = mapped_column(String(20), index=True)

    # Shipping
    shipping_method: Mapped[str] = mapped_column(String(50), default="Standard")
    carrier: Mapped[Optional[str]] = mapped_column(String(100))
    shipping_address: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONDocument)
    billing_address: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONDocument)
    tracking_numbers: Mapped[list[str]] = mapped_column(JSONDocument, default=list)
    shipments: Mapped[list[dict[str, Any]]] = mapped_column(JSONDocument, default=list)

    # Contents and history (stored as JSON)
    items: Mapped[list[dict[str, Any]]] = mapped_column(JSONDocument, default=list)
    payment_timeline: Mapped[list[dict[str, Any]]] = mapped_column(JSONDocument, default=list)
    event_timeline: Mapped[list[dict[str, Any]]] = mapped_column(JSONDocument, default=list)
    refunds: Mapped[list[dict[str, Any]]] = mapped_column(JSONDocument, default=list)
    owner_notes: Mapped[list[dict[str, Any]]] = mapped_column(JSONDocument, default=list)

    # "metadata" is reserved on declarative classes
    order_metadata: Mapped[dict[str, str]] = mapped_column("metadata", JSONDocument, default=dict)

    # Timestamps
    order_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    @property
    def refunded_total(self) -> Decimal:
        """Sum of all recorded refunds."""
        return sum(
            (Decimal(str(refund["amount"])) for refund in self.refunds or []),
            Decimal("0"),
        )

    @property
    def refundable_amount(self) -> Decimal:
        """What is left to refund before hitting the order total."""
        return Decimal(self.order_total) - self.refunded_total

    def __repr__(self) -> str:
        return f"<Order {self.order_number}>"
