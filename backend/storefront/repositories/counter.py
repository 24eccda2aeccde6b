"""
Counter repository - atomic per-key increments in the database.
"""
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.concurrency import KeyedLock
from storefront.core.exceptions import CounterStoreError
from storefront.core.logging import get_logger
from storefront.models.counter import OrderCounter
from storefront.repositories.interfaces import CounterStore

logger = get_logger(__name__)

_UPSERT_DIALECTS: dict[str, Any] = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class SqlCounterStore(CounterStore):
    """
    Counters stored one row per key.

    The increment is a single ``INSERT ... ON CONFLICT DO UPDATE`` so the
    row lock taken by the database serializes concurrent writers until the
    surrounding transaction ends. The in-process keyed lock keeps callers of
    the same worker from queueing on the database.
    """

    def __init__(self, session: AsyncSession, locks: KeyedLock) -> None:
        self.session = session
        self.locks = locks

    def _upsert(self, key: str) -> Any:
        dialect = self.session.bind.dialect.name
        insert = _UPSERT_DIALECTS.get(dialect)
        if insert is None:
            return None
        stmt = insert(OrderCounter).values(key=key, value=1)
        return stmt.on_conflict_do_update(
            index_elements=[OrderCounter.key],
            set_={"value": OrderCounter.value + 1, "updated_at": func.now()},
        )

    async def _increment_portable(self, key: str) -> None:
        stmt = select(OrderCounter).where(OrderCounter.key == key).with_for_update()
        counter = (await self.session.execute(stmt)).scalar_one_or_none()
        if counter is None:
            self.session.add(OrderCounter(key=key, value=1))
        else:
            counter.value += 1
        await self.session.flush()

    async def increment(self, key: str) -> int:
        async with self.locks.hold(key):
            try:
                stmt = self._upsert(key)
                if stmt is None:
                    await self._increment_portable(key)
                else:
                    await self.session.execute(stmt)
                result = await self.session.execute(
                    select(OrderCounter.value)
                    .where(OrderCounter.key == key)
                )
                return result.scalar_one()
            except SQLAlchemyError as e:
                logger.error("Counter increment failed", key=key, error=str(e))
                raise CounterStoreError(f"Could not increment counter {key}") from e

    async def get(self, key: str) -> int:
        try:
            result = await self.session.execute(
                select(OrderCounter.value).where(OrderCounter.key == key)
            )
        except SQLAlchemyError as e:
            raise CounterStoreError(f"Could not read counter {key}") from e
        return result.scalar_one_or_none() or 0

    async def reset(self, key: str) -> None:
        async with self.locks.hold(key):
            try:
                await self.session.execute(
                    update(OrderCounter)
                    .where(OrderCounter.key == key)
                    .values(value=0, updated_at=func.now())
                )
            except SQLAlchemyError as e:
                raise CounterStoreError(f"Could not reset counter {key}") from e

    async def snapshot(self) -> dict[str, int]:
        try:
            result = await self.session.execute(
                select(OrderCounter.key, OrderCounter.value).order_by(OrderCounter.key)
            )
        except SQLAlchemyError as e:
            raise CounterStoreError("Could not read counters") from e
        return {key: value for key, value in result.all()}
