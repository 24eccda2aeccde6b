"""
Order lifecycle rules.

Holds the transition tables for the three status axes and the helpers that
append to the event and payment timelines. Every status change in the
service layer goes through ``transition``; nothing else assigns the status
columns directly.
"""
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from storefront.core.exceptions import InvalidTransitionError
from storefront.models.order import (
    FulfillmentStatus,
    Order,
    OrderEventType,
    OrderStatus,
    PaymentStatus,
)

PAYMENT_TRANSITIONS: dict[str, set[str]] = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),
    PaymentStatus.REFUNDED: set(),
}

FULFILLMENT_TRANSITIONS: dict[str, set[str]] = {
    FulfillmentStatus.PENDING: {
        FulfillmentStatus.PROCESSING,
        FulfillmentStatus.SHIPPED,
        FulfillmentStatus.DELIVERED,
        FulfillmentStatus.CANCELLED,
    },
    FulfillmentStatus.PROCESSING: {
        FulfillmentStatus.SHIPPED,
        FulfillmentStatus.DELIVERED,
        FulfillmentStatus.CANCELLED,
    },
    FulfillmentStatus.SHIPPED: {FulfillmentStatus.DELIVERED},
    FulfillmentStatus.DELIVERED: set(),
    FulfillmentStatus.CANCELLED: set(),
}

ORDER_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.CONFIRMED: {
        OrderStatus.PROCESSING,
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
        OrderStatus.REFUNDED,
    },
    OrderStatus.PROCESSING: {
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
        OrderStatus.REFUNDED,
    },
    OrderStatus.COMPLETED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: {OrderStatus.REFUNDED},
    OrderStatus.REFUNDED: set(),
}

# axis name -> (order attribute, transition table)
AXES: dict[str, tuple[str, dict[str, set[str]]]] = {
    "payment_status": ("payment_status", PAYMENT_TRANSITIONS),
    "fulfillment_status": ("fulfillment_status", FULFILLMENT_TRANSITIONS),
    "order_status": ("order_status", ORDER_TRANSITIONS),
}

# Order status implied by a fulfillment status
FULFILLMENT_TO_ORDER_STATUS: dict[str, OrderStatus] = {
    FulfillmentStatus.PROCESSING: OrderStatus.PROCESSING,
    FulfillmentStatus.SHIPPED: OrderStatus.PROCESSING,
    FulfillmentStatus.DELIVERED: OrderStatus.COMPLETED,
    FulfillmentStatus.CANCELLED: OrderStatus.CANCELLED,
}

FULFILLMENT_EVENT_TYPES: dict[str, OrderEventType] = {
    FulfillmentStatus.PENDING: OrderEventType.PROCESSING,
    FulfillmentStatus.PROCESSING: OrderEventType.PROCESSING,
    FulfillmentStatus.SHIPPED: OrderEventType.SHIPPED,
    FulfillmentStatus.DELIVERED: OrderEventType.DELIVERED,
    FulfillmentStatus.CANCELLED: OrderEventType.CANCELLED,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex}"


def _value(status: Any) -> str:
    return status.value if hasattr(status, "value") else str(status)


def can_transition(axis: str, current: str, target: str) -> bool:
    """Same-state moves are always allowed and change nothing."""
    _, table = AXES[axis]
    current, target = _value(current), _value(target)
    if current == target:
        return True
    return target in table.get(current, set())


def check_transition(axis: str, current: str, target: str) -> None:
    """Raise InvalidTransitionError unless ``current`` may move to ``target``."""
    _, table = AXES[axis]
    if _value(target) not in table:
        raise InvalidTransitionError(axis, _value(current), _value(target))
    if not can_transition(axis, current, target):
        raise InvalidTransitionError(axis, _value(current), _value(target))


def transition(order: Order, axis: str, target: str) -> bool:
    """Move one status axis of ``order``. Returns True if the value changed."""
    attribute, _ = AXES[axis]
    current = getattr(order, attribute)
    check_transition(axis, current, target)
    target = _value(target)
    if current == target:
        return False
    setattr(order, attribute, target)
    return True


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def next_event_time(order: Order) -> datetime:
    """Now, or the last timeline timestamp if the clock went backwards."""
    now = utcnow()
    if order.event_timeline:
        last = _parse_timestamp(order.event_timeline[-1]["timestamp"])
        if last > now:
            return last
    return now


def append_event(
    order: Order,
    event_type: OrderEventType,
    description: str,
    metadata: Optional[dict[str, Any]] = None,
    at: Optional[datetime] = None,
) -> dict[str, Any]:
    """Append one entry to the event timeline and bump ``updated_at``."""
    timestamp = at or next_event_time(order)
    event: dict[str, Any] = {
        "id": new_id("event"),
        "type": _value(event_type),
        "description": description,
        "timestamp": timestamp.isoformat(),
    }
    if metadata:
        event["metadata"] = metadata
    # Reassign so SQLAlchemy notices the JSON column changed
    order.event_timeline = [*(order.event_timeline or []), event]
    order.updated_at = timestamp
    return event


def append_payment_event(
    order: Order,
    event_type: str,
    amount: float,
    status: str = "succeeded",
    at: Optional[datetime] = None,
) -> dict[str, Any]:
    """Append one entry to the payment timeline."""
    entry = {
        "id": new_id("pay"),
        "type": event_type,
        "amount": amount,
        "currency": order.currency,
        "status": status,
        "createdAt": (at or utcnow()).isoformat(),
        "transactionId": order.transaction_id,
    }
    order.payment_timeline = [*(order.payment_timeline or []), entry]
    return entry
