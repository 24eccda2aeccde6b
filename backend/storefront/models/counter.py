"""
Order counter model - one strictly increasing sequence per product key.
"""
from datetime import datetime

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from storefront.core.database import Base


class OrderCounter(Base):
    """Last sequence issued for a normalized product name."""

    __tablename__ = "order_counters"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<OrderCounter {self.key}={self.value}>"
