"""
Order store - the aggregate-root layer of the pipeline.

Every operation loads the order, applies one domain change (status moves go
through storefront.services.lifecycle), and saves it back through the
storage tier's OrderRepository.
"""
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from storefront.core.exceptions import OrderNotFoundError, RefundError, StorefrontError
from storefront.core.logging import get_logger
from storefront.models.order import (
    FulfillmentStatus,
    Order,
    OrderEventType,
    OrderStatus,
    PaymentStatus,
)
from storefront.repositories.interfaces import OrderQuery, OrderStatistics
from storefront.services import lifecycle
from storefront.services.storage import Storage

logger = get_logger(__name__)

# Fields a generic update may touch, mapped to their attribute names
UPDATABLE_FIELDS: dict[str, str] = {
    "customer_name": "customer_name",
    "customer_email": "customer_email",
    "shipping_address": "shipping_address",
    "billing_address": "billing_address",
    "shipping_method": "shipping_method",
    "carrier": "carrier",
    "metadata": "order_metadata",
    "payment_status": "payment_status",
    "fulfillment_status": "fulfillment_status",
    "order_status": "order_status",
}

_EVENT_TYPE_VALUES = {event_type.value for event_type in OrderEventType}


def _to_decimal(amount: Any) -> Decimal:
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError) as e:
        raise RefundError(f"Invalid refund amount: {amount!r}") from e
    if not value.is_finite():
        raise RefundError(f"Invalid refund amount: {amount!r}")
    return value


def _status_event_type(target: str) -> OrderEventType:
    if target in _EVENT_TYPE_VALUES:
        return OrderEventType(target)
    return OrderEventType.UPDATED


def _apply_changes(order: Order, changes: dict[str, Any]) -> None:
    """Validate ``changes`` and merge them into ``order`` without saving."""
    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        raise StorefrontError(
            f"Fields cannot be updated: {', '.join(sorted(unknown))}",
            "FIELD_NOT_UPDATABLE",
        )

    # Validate every status move before touching anything
    for axis in lifecycle.AXES:
        if axis in changes and changes[axis] is not None:
            lifecycle.check_transition(axis, getattr(order, axis), changes[axis])

    for field_name, value in changes.items():
        if value is None:
            continue
        if field_name in lifecycle.AXES:
            lifecycle.transition(order, field_name, value)
        elif field_name == "metadata":
            order.order_metadata = {**(order.order_metadata or {}), **value}
        else:
            setattr(order, UPDATABLE_FIELDS[field_name], value)

    order.updated_at = lifecycle.next_event_time(order)


class OrderStore:
    """CRUD and domain operations on Order aggregates."""

    def __init__(self, storage: Storage) -> None:
        self.storage = storage
        self.orders = storage.orders

    # ------------------------------------------------------------------ reads

    async def get_order(self, order_id: str) -> Optional[Order]:
        return await self.orders.get(order_id)

    async def get_by_number(self, order_number: str) -> Optional[Order]:
        return await self.orders.get_by_number(order_number)

    async def require_order(self, order_id: str) -> Order:
        """Get an order or raise OrderNotFoundError."""
        order = await self.orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def find_by_transaction(self, transaction_id: str) -> list[Order]:
        return await self.orders.list_by_transaction(transaction_id)

    async def list_customer_orders(self, customer_id: str) -> list[Order]:
        return await self.orders.list_by_customer(customer_id)

    async def lookup_for_customer(self, order_number: str, email: str) -> Order:
        """
        Order by number for a customer who knows the email it was placed with.

        A wrong email is indistinguishable from an unknown order number.
        """
        order = await self.orders.get_by_number(order_number)
        if order is None or (order.customer_email or "").lower() != (email or "").strip().lower():
            raise OrderNotFoundError(order_number)
        return order

    async def search_orders(self, text: str, limit: int = 20) -> list[Order]:
        """Case-insensitive substring match on order number, customer name and email."""
        orders, _ = await self.orders.query(OrderQuery(search=text, limit=limit))
        return orders

    async def filter_orders(self, query: OrderQuery) -> tuple[list[Order], int]:
        """One page of orders matching every filter in ``query``, and the total."""
        return await self.orders.query(query)

    async def statistics(self) -> OrderStatistics:
        return await self.orders.statistics()

    # ----------------------------------------------------------------- writes

    async def add_order(self, order: Order) -> Order:
        """Insert a new order. Existing ids and order numbers are rejected."""
        order = await self.orders.add(order)
        logger.info("Order stored", order_id=order.id, order_number=order.order_number)
        return order

    async def update_order(self, order_id: str, changes: dict[str, Any]) -> Order:
        """
        Merge ``changes`` into the order and bump ``updated_at``.

        Status fields are checked against the transition table. No timeline
        entry is written here; see ``apply_owner_update``.
        """
        order = await self.require_order(order_id)
        _apply_changes(order, changes)
        return await self.orders.save(order)

    async def apply_owner_update(self, order_id: str, changes: dict[str, Any]) -> Order:
        """Generic update plus one timeline entry per changed status axis, saved once."""
        order = await self.require_order(order_id)
        before = {axis: getattr(order, axis) for axis in lifecycle.AXES}

        _apply_changes(order, changes)

        status_changed = False
        for axis, previous in before.items():
            current = getattr(order, axis)
            if current != previous:
                status_changed = True
                lifecycle.append_event(
                    order,
                    _status_event_type(current),
                    f"{axis.replace('_', ' ').capitalize()} changed from {previous} to {current}",
                    metadata={"field": axis, "from": previous, "to": current},
                )

        other_fields = sorted(
            name for name, value in changes.items()
            if value is not None and name not in lifecycle.AXES
        )
        if other_fields and not status_changed:
            lifecycle.append_event(
                order,
                OrderEventType.UPDATED,
                "Order details updated",
                metadata={"fields": other_fields},
            )
        return await self.orders.save(order)

    async def append_event(
        self,
        order_id: str,
        event_type: OrderEventType,
        description: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Order:
        order = await self.require_order(order_id)
        lifecycle.append_event(order, event_type, description, metadata)
        return await self.orders.save(order)

    async def process_refund(
        self,
        order_id: str,
        amount: Any,
        reason: str,
        processed_by: Optional[str] = None,
    ) -> Order:
        """
        Record a refund of ``amount``.

        The cumulative refunded amount can never exceed the order total.
        Payment and order status both become ``refunded``, also for partial
        refunds, and further partial refunds stay possible up to the total.
        """
        order = await self.require_order(order_id)
        value = _to_decimal(amount)
        if value <= 0:
            raise RefundError("Refund amount must be positive")
        refundable = order.refundable_amount
        if value > refundable:
            raise RefundError(
                f"Refund of {value} exceeds refundable amount {refundable}"
            )

        lifecycle.check_transition("payment_status", order.payment_status, PaymentStatus.REFUNDED)
        lifecycle.check_transition("order_status", order.order_status, OrderStatus.REFUNDED)

        now = lifecycle.next_event_time(order)
        refund = {
            "id": lifecycle.new_id("refund"),
            "amount": float(value),
            "reason": reason,
            "status": "succeeded",
            "createdAt": now.isoformat(),
        }
        if processed_by:
            refund["processedBy"] = processed_by
        order.refunds = [*(order.refunds or []), refund]

        lifecycle.transition(order, "payment_status", PaymentStatus.REFUNDED)
        lifecycle.transition(order, "order_status", OrderStatus.REFUNDED)

        full = order.refundable_amount == 0
        lifecycle.append_payment_event(
            order,
            "refund" if full else "partial_refund",
            float(value),
            at=now,
        )
        lifecycle.append_event(
            order,
            OrderEventType.REFUNDED,
            f"{'Full' if full else 'Partial'} refund of {value:.2f} {order.currency}: {reason}",
            metadata={"refundId": refund["id"], "amount": float(value), "reason": reason},
            at=now,
        )
        order = await self.orders.save(order)
        logger.info(
            "Refund processed",
            order_id=order.id,
            amount=float(value),
            remaining=float(order.refundable_amount),
        )
        return order

    async def update_fulfillment(
        self,
        order_id: str,
        status: FulfillmentStatus | str,
        tracking_numbers: Optional[list[str]] = None,
        carrier: Optional[str] = None,
        shipments: Optional[list[dict[str, Any]]] = None,
    ) -> Order:
        """
        Move the fulfillment axis and record shipping details.

        Tracking numbers are appended without duplicates, shipments are
        merged by id, and exactly one timeline entry is written.
        """
        order = await self.require_order(order_id)
        target = FulfillmentStatus(status)
        lifecycle.check_transition("fulfillment_status", order.fulfillment_status, target)

        now = lifecycle.next_event_time(order)
        lifecycle.transition(order, "fulfillment_status", target)

        derived = lifecycle.FULFILLMENT_TO_ORDER_STATUS.get(target)
        if derived is not None and lifecycle.can_transition(
            "order_status", order.order_status, derived
        ):
            lifecycle.transition(order, "order_status", derived)

        if carrier:
            order.carrier = carrier

        merged_tracking = list(order.tracking_numbers or [])
        incoming = list(tracking_numbers or [])
        if shipments:
            order.shipments = self._merge_shipments(order, shipments, target, carrier, now)
            incoming.extend(s["trackingNumber"] for s in shipments if s.get("trackingNumber"))
        for number in incoming:
            if number and number not in merged_tracking:
                merged_tracking.append(number)
        order.tracking_numbers = merged_tracking

        description = f"Fulfillment status updated to {target.value}"
        if carrier:
            description += f" via {carrier}"
        if tracking_numbers:
            description += f" (tracking: {', '.join(tracking_numbers)})"
        metadata: dict[str, Any] = {"status": target.value}
        if tracking_numbers:
            metadata["trackingNumbers"] = list(tracking_numbers)
        if carrier:
            metadata["carrier"] = carrier

        lifecycle.append_event(
            order,
            lifecycle.FULFILLMENT_EVENT_TYPES[target],
            description,
            metadata=metadata,
            at=now,
        )
        return await self.orders.save(order)

    @staticmethod
    def _merge_shipments(
        order: Order,
        shipments: list[dict[str, Any]],
        status: FulfillmentStatus,
        carrier: Optional[str],
        now,
    ) -> list[dict[str, Any]]:
        merged = [dict(shipment) for shipment in order.shipments or []]
        by_id = {shipment["id"]: shipment for shipment in merged if "id" in shipment}
        for payload in shipments:
            existing = by_id.get(payload.get("id"))
            if existing is not None:
                existing.update(payload)
                existing["updatedAt"] = now.isoformat()
                continue
            shipment = {
                "id": payload.get("id") or lifecycle.new_id("ship"),
                "status": status.value,
                "carrier": carrier or order.carrier,
                "trackingNumber": None,
                "items": [],
                "createdAt": now.isoformat(),
                "updatedAt": now.isoformat(),
            }
            shipment.update({k: v for k, v in payload.items() if v is not None})
            merged.append(shipment)
            by_id[shipment["id"]] = shipment
        return merged

    async def add_owner_note(
        self,
        order_id: str,
        content: str,
        author: str = "owner",
    ) -> Order:
        content = (content or "").strip()
        if not content:
            raise StorefrontError("Note content must not be empty", "EMPTY_NOTE")
        order = await self.require_order(order_id)
        now = lifecycle.next_event_time(order)
        note = {
            "id": lifecycle.new_id("note"),
            "content": content,
            "author": author,
            "createdAt": now.isoformat(),
            "updatedAt": now.isoformat(),
        }
        order.owner_notes = [*(order.owner_notes or []), note]
        lifecycle.append_event(
            order,
            OrderEventType.NOTE_ADDED,
            "Owner note added",
            metadata={"noteId": note["id"]},
            at=now,
        )
        return await self.orders.save(order)

    async def cancel_order(self, order_id: str, reason: Optional[str] = None) -> Order:
        """Soft delete: cancel fulfillment and the order, keep the record."""
        order = await self.require_order(order_id)
        lifecycle.check_transition(
            "fulfillment_status", order.fulfillment_status, FulfillmentStatus.CANCELLED
        )
        lifecycle.check_transition("order_status", order.order_status, OrderStatus.CANCELLED)

        changed = lifecycle.transition(order, "fulfillment_status", FulfillmentStatus.CANCELLED)
        changed = lifecycle.transition(order, "order_status", OrderStatus.CANCELLED) or changed
        if not changed:
            return order
        lifecycle.append_event(
            order,
            OrderEventType.CANCELLED,
            f"Order cancelled{': ' + reason if reason else ''}",
            metadata={"reason": reason} if reason else None,
        )
        return await self.orders.save(order)

    async def delete_order(self, order_id: str) -> None:
        """Remove an order permanently. Its order number is not reissued."""
        order = await self.require_order(order_id)
        await self.orders.delete(order)
        logger.warning("Order deleted", order_id=order_id, order_number=order.order_number)
