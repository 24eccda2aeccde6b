"""
Reservation repository for minted order numbers.
"""
from typing import Optional

from sqlalchemy import select

from storefront.models.reservation import OrderNumberReservation
from storefront.repositories.base import BaseRepository
from storefront.repositories.interfaces import ReservationRepository


class SqlReservationRepository(BaseRepository[OrderNumberReservation], ReservationRepository):
    """Repository for OrderNumberReservation model operations."""

    model = OrderNumberReservation

    async def reserve(self, reservation: OrderNumberReservation) -> OrderNumberReservation:
        return await self.insert(reservation)

    async def get(self, order_number: str) -> Optional[OrderNumberReservation]:
        return await self.get_by_id(order_number)

    async def find(self, status: Optional[str] = None) -> list[OrderNumberReservation]:
        stmt = select(OrderNumberReservation)
        if status:
            stmt = stmt.where(OrderNumberReservation.status == status)
        stmt = stmt.order_by(
            OrderNumberReservation.created_at,
            OrderNumberReservation.order_number,
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
