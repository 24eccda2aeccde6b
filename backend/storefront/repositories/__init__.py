"""
Repository package for data access layer.
"""
from storefront.repositories.base import BaseRepository
from storefront.repositories.counter import SqlCounterStore
from storefront.repositories.interfaces import (
    CounterStore,
    OrderQuery,
    OrderRepository,
    OrderStatistics,
    ReservationRepository,
)
from storefront.repositories.memory import (
    InMemoryCounterStore,
    InMemoryOrderRepository,
    InMemoryReservationRepository,
)
from storefront.repositories.order import SqlOrderRepository
from storefront.repositories.reservation import SqlReservationRepository

__all__ = [
    "BaseRepository",
    "CounterStore",
    "OrderRepository",
    "ReservationRepository",
    "OrderQuery",
    "OrderStatistics",
    "SqlCounterStore",
    "SqlOrderRepository",
    "SqlReservationRepository",
    "InMemoryCounterStore",
    "InMemoryOrderRepository",
    "InMemoryReservationRepository",
]
