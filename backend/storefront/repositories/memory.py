"""
In-memory repositories.

Dict-backed implementations of the storage contracts, used when no database
is reachable and in tests. Nothing here survives a restart.
"""
from collections import Counter
from decimal import Decimal
from typing import Optional

from storefront.core.concurrency import KeyedLock
from storefront.core.exceptions import DuplicateOrderError
from storefront.models.order import Order
from storefront.models.reservation import OrderNumberReservation
from storefront.repositories.interfaces import (
    CounterStore,
    OrderQuery,
    OrderRepository,
    OrderStatistics,
    ReservationRepository,
)


class InMemoryCounterStore(CounterStore):
    """Counters in a dict, each key guarded by its own lock."""

    def __init__(self, locks: Optional[KeyedLock] = None) -> None:
        self._values: dict[str, int] = {}
        self.locks = locks if locks is not None else KeyedLock()

    async def increment(self, key: str) -> int:
        async with self.locks.hold(key):
            value = self._values.get(key, 0) + 1
            self._values[key] = value
            return value

    async def get(self, key: str) -> int:
        return self._values.get(key, 0)

    async def reset(self, key: str) -> None:
        async with self.locks.hold(key):
            self._values[key] = 0

    async def snapshot(self) -> dict[str, int]:
        return dict(sorted(self._values.items()))


def _matches(order: Order, query: OrderQuery) -> bool:
    if query.search:
        needle = query.search.lower()
        haystacks = (order.order_number, order.customer_name, order.customer_email)
        if not any(needle in (value or "").lower() for value in haystacks):
            return False
    if query.date_from is not None and order.order_date < query.date_from:
        return False
    if query.date_to is not None and order.order_date > query.date_to:
        return False
    if query.payment_statuses and order.payment_status not in query.payment_statuses:
        return False
    if query.fulfillment_statuses and order.fulfillment_status not in query.fulfillment_statuses:
        return False
    if query.total_min is not None and order.order_total < query.total_min:
        return False
    if query.total_max is not None and order.order_total > query.total_max:
        return False
    return True


def _sort_key(sort_by: str):
    if sort_by == "orderTotal":
        return lambda order: (order.order_total, order.id)
    if sort_by == "customerName":
        return lambda order: ((order.customer_name or "").lower(), order.id)
    return lambda order: (order.order_date, order.id)


class InMemoryOrderRepository(OrderRepository):
    """Orders kept in insertion order, keyed by id."""

    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}

    async def add(self, order: Order) -> Order:
        if order.id in self._orders:
            raise DuplicateOrderError(f"Order id already exists: {order.id}")
        if await self.get_by_number(order.order_number):
            raise DuplicateOrderError(f"Order number already exists: {order.order_number}")
        key = (order.transaction_id, order.product_key)
        for stored in self._orders.values():
            if (stored.transaction_id, stored.product_key) == key:
                raise DuplicateOrderError(
                    f"Transaction {order.transaction_id} already has a {order.product_key} order"
                )
        self._orders[order.id] = order
        return order

    async def get(self, order_id: str) -> Optional[Order]:
        return self._orders.get(order_id)

    async def get_by_number(self, order_number: str) -> Optional[Order]:
        for order in self._orders.values():
            if order.order_number == order_number:
                return order
        return None

    async def list_by_transaction(self, transaction_id: str) -> list[Order]:
        return [o for o in self._orders.values() if o.transaction_id == transaction_id]

    async def list_by_customer(self, customer_id: str) -> list[Order]:
        orders = [o for o in self._orders.values() if o.customer_id == customer_id]
        return sorted(orders, key=lambda order: order.order_date)

    async def save(self, order: Order) -> Order:
        self._orders[order.id] = order
        return order

    async def delete(self, order: Order) -> None:
        self._orders.pop(order.id, None)

    async def query(self, query: OrderQuery) -> tuple[list[Order], int]:
        matched = [order for order in self._orders.values() if _matches(order, query)]
        matched.sort(key=_sort_key(query.sort_by), reverse=query.sort_order != "asc")
        page = matched[query.offset:query.offset + query.limit]
        return page, len(matched)

    async def statistics(self) -> OrderStatistics:
        orders = list(self._orders.values())
        by_product = Counter(order.product_key for order in orders)
        revenue = sum((Decimal(order.order_total) for order in orders), Decimal("0"))
        refunded = sum((order.refunded_total for order in orders), Decimal("0"))
        return OrderStatistics(
            total_orders=len(orders),
            orders_by_product=dict(by_product),
            total_revenue=revenue.quantize(Decimal("0.01")),
            total_refunded=refunded.quantize(Decimal("0.01")),
        )

    def __len__(self) -> int:
        return len(self._orders)


class InMemoryReservationRepository(ReservationRepository):
    """Reservations keyed by order number."""

    def __init__(self) -> None:
        self._reservations: dict[str, OrderNumberReservation] = {}

    async def reserve(self, reservation: OrderNumberReservation) -> OrderNumberReservation:
        if reservation.order_number in self._reservations:
            raise DuplicateOrderError(
                f"Order number already reserved: {reservation.order_number}"
            )
        self._reservations[reservation.order_number] = reservation
        return reservation

    async def get(self, order_number: str) -> Optional[OrderNumberReservation]:
        return self._reservations.get(order_number)

    async def save(self, reservation: OrderNumberReservation) -> OrderNumberReservation:
        self._reservations[reservation.order_number] = reservation
        return reservation

    async def find(self, status: Optional[str] = None) -> list[OrderNumberReservation]:
        return [
            reservation
            for reservation in self._reservations.values()
            if status is None or reservation.status == status
        ]
