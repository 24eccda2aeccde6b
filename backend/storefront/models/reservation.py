"""
Order number reservation model.

Every minted order number is recorded here together with the payment it was
minted for, so that a number whose order never got persisted can be found
and reconciled by an administrator.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from storefront.core.database import Base


class ReservationStatus(str, Enum):
    """Lifecycle of a minted order number."""

    RESERVED = "reserved"
    FULFILLED = "fulfilled"
    ORPHANED = "orphaned"
    RECONCILED = "reconciled"


class OrderNumberReservation(Base):
    """A minted order number and the order (if any) that carries it."""

    __tablename__ = "order_number_reservations"

    order_number: Mapped[str] = mapped_column(String(160), primary_key=True)
    product_key: Mapped[str] = mapped_column(String(128), index=True)
    sequence: Mapped[int] = mapped_column(Integer)
    transaction_id: Mapped[str] = mapped_column(String(255), index=True)
    status: Mapped[str] = mapped_column(
        String(20),
        default=ReservationStatus.RESERVED.value,
        index=True,
    )
    order_id: Mapped[Optional[str]] = mapped_column(String(64))
    reason: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<OrderNumberReservation {self.order_number} {self.status}>"
