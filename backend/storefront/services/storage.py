"""
Storage tiers for the order pipeline.

``Storage`` bundles the three repositories the pipeline needs behind one
object. ``SqlStorage`` runs on a request-scoped SQLAlchemy session;
``InMemoryStorage`` keeps everything in process memory and is what the app
falls back to when no database is reachable at startup.
"""
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.concurrency import KeyedLock
from storefront.core.exceptions import OrderPersistenceError
from storefront.repositories.counter import SqlCounterStore
from storefront.repositories.interfaces import (
    CounterStore,
    OrderRepository,
    ReservationRepository,
)
from storefront.repositories.memory import (
    InMemoryCounterStore,
    InMemoryOrderRepository,
    InMemoryReservationRepository,
)
from storefront.repositories.order import SqlOrderRepository
from storefront.repositories.reservation import SqlReservationRepository


class Storage:
    """Counters, orders and reservations sharing one unit of work."""

    #: Whether ``transaction()`` rolls back everything written inside it
    transactional: bool = False

    def __init__(
        self,
        counters: CounterStore,
        orders: OrderRepository,
        reservations: ReservationRepository,
    ) -> None:
        self.counters = counters
        self.orders = orders
        self.reservations = reservations

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        yield

    async def commit(self) -> None:
        """Make everything written so far visible to other sessions."""


class SqlStorage(Storage):
    """Database-backed storage; ``transaction()`` is a SAVEPOINT."""

    transactional = True

    def __init__(self, session: AsyncSession, counter_locks: KeyedLock) -> None:
        super().__init__(
            counters=SqlCounterStore(session, counter_locks),
            orders=SqlOrderRepository(session),
            reservations=SqlReservationRepository(session),
        )
        self.session = session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        async with self.session.begin_nested():
            yield

    async def commit(self) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            raise OrderPersistenceError(
                f"Failed to commit orders: {e.__class__.__name__}"
            ) from e


class InMemoryStorage(Storage):
    """Process-local storage without rollback."""

    def __init__(self, counter_locks: Optional[KeyedLock] = None) -> None:
        super().__init__(
            counters=InMemoryCounterStore(counter_locks),
            orders=InMemoryOrderRepository(),
            reservations=InMemoryReservationRepository(),
        )
