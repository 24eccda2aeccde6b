"""
Storage contracts for the order pipeline.

The service layer depends only on these abstractions. Two tiers implement
them: SQLAlchemy repositories (storefront.repositories.order and friends)
and dict-backed repositories (storefront.repositories.memory).
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from storefront.models.order import Order
from storefront.models.reservation import OrderNumberReservation

SORT_FIELDS = ("orderDate", "orderTotal", "customerName")


@dataclass
class OrderQuery:
    """Search, filters, sorting and pagination for order listings.

    All filters are AND-combined; empty status lists mean "any".
    """

    search: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    payment_statuses: list[str] = field(default_factory=list)
    fulfillment_statuses: list[str] = field(default_factory=list)
    total_min: Optional[Decimal] = None
    total_max: Optional[Decimal] = None
    sort_by: str = "orderDate"
    sort_order: str = "desc"
    page: int = 1
    limit: int = 20

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class OrderStatistics:
    """Aggregate figures over all orders."""

    total_orders: int
    orders_by_product: dict[str, int]
    total_revenue: Decimal
    total_refunded: Decimal


class CounterStore(ABC):
    """Per-key integer counters with an atomic increment."""

    @abstractmethod
    async def increment(self, key: str) -> int:
        """Atomically add one to ``key`` (starting from 0) and return the new value."""

    @abstractmethod
    async def get(self, key: str) -> int:
        """Current value of ``key``, 0 if it was never incremented."""

    @abstractmethod
    async def reset(self, key: str) -> None:
        """Set ``key`` back to 0. Administrative escape hatch only."""

    @abstractmethod
    async def snapshot(self) -> dict[str, int]:
        """All counters."""


class OrderRepository(ABC):
    """Persistence of Order aggregates."""

    @abstractmethod
    async def add(self, order: Order) -> Order:
        """Insert a new order."""

    @abstractmethod
    async def get(self, order_id: str) -> Optional[Order]:
        """Get an order by id."""

    @abstractmethod
    async def get_by_number(self, order_number: str) -> Optional[Order]:
        """Get an order by its order number."""

    @abstractmethod
    async def list_by_transaction(self, transaction_id: str) -> list[Order]:
        """All orders minted from one payment."""

    @abstractmethod
    async def list_by_customer(self, customer_id: str) -> list[Order]:
        """All orders of one customer, oldest first."""

    @abstractmethod
    async def save(self, order: Order) -> Order:
        """Persist changes made to a loaded order."""

    @abstractmethod
    async def delete(self, order: Order) -> None:
        """Remove an order permanently."""

    @abstractmethod
    async def query(self, query: OrderQuery) -> tuple[list[Order], int]:
        """Return one page of matching orders and the total match count."""

    @abstractmethod
    async def statistics(self) -> OrderStatistics:
        """Totals over every stored order."""


class ReservationRepository(ABC):
    """Durable record of minted order numbers."""

    @abstractmethod
    async def reserve(self, reservation: OrderNumberReservation) -> OrderNumberReservation:
        """Record a freshly minted number."""

    @abstractmethod
    async def get(self, order_number: str) -> Optional[OrderNumberReservation]:
        """Get the reservation for a number."""

    @abstractmethod
    async def save(self, reservation: OrderNumberReservation) -> OrderNumberReservation:
        """Persist a status change."""

    @abstractmethod
    async def find(self, status: Optional[str] = None) -> list[OrderNumberReservation]:
        """Reservations, optionally restricted to one status, oldest first."""
