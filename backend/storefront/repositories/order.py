"""
Order repository for data access operations.
"""
from decimal import Decimal
from typing import Optional

from sqlalchemy import ColumnElement, func, or_, select

from storefront.core.exceptions import DuplicateOrderError
from storefront.models.order import Order
from storefront.repositories.base import BaseRepository
from storefront.repositories.interfaces import OrderQuery, OrderRepository, OrderStatistics

_SORT_COLUMNS = {
    "orderDate": Order.order_date,
    "orderTotal": Order.order_total,
    "customerName": func.lower(Order.customer_name),
}


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlOrderRepository(BaseRepository[Order], OrderRepository):
    """Repository for Order model operations."""

    model = Order

    async def add(self, order: Order) -> Order:
        # Checked up front: an identity clash would fail the whole session on flush
        if await self.get_by_id(order.id) is not None:
            raise DuplicateOrderError(f"Order id already exists: {order.id}")
        if await self.get_by_number(order.order_number) is not None:
            raise DuplicateOrderError(f"Order number already exists: {order.order_number}")
        return await self.insert(order)

    async def get(self, order_id: str) -> Optional[Order]:
        return await self.get_by_id(order_id)

    async def get_by_number(self, order_number: str) -> Optional[Order]:
        stmt = select(Order).where(Order.order_number == order_number)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_transaction(self, transaction_id: str) -> list[Order]:
        stmt = (
            select(Order)
            .where(Order.transaction_id == transaction_id)
            .order_by(Order.created_at, Order.order_number)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_by_customer(self, customer_id: str) -> list[Order]:
        stmt = (
            select(Order)
            .where(Order.customer_id == customer_id)
            .order_by(Order.order_date)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def delete(self, order: Order) -> None:
        await self.remove(order)

    def _conditions(self, query: OrderQuery) -> list[ColumnElement[bool]]:
        conditions: list[ColumnElement[bool]] = []
        if query.search:
            pattern = f"%{_escape_like(query.search.lower())}%"
            conditions.append(
                or_(
                    func.lower(Order.order_number).like(pattern, escape="\\"),
                    func.lower(Order.customer_name).like(pattern, escape="\\"),
                    func.lower(Order.customer_email).like(pattern, escape="\\"),
                )
            )
        if query.date_from is not None:
            conditions.append(Order.order_date >= query.date_from)
        if query.date_to is not None:
            conditions.append(Order.order_date <= query.date_to)
        if query.payment_statuses:
            conditions.append(Order.payment_status.in_(query.payment_statuses))
        if query.fulfillment_statuses:
            conditions.append(Order.fulfillment_status.in_(query.fulfillment_statuses))
        if query.total_min is not None:
            conditions.append(Order.order_total >= query.total_min)
        if query.total_max is not None:
            conditions.append(Order.order_total <= query.total_max)
        return conditions

    async def query(self, query: OrderQuery) -> tuple[list[Order], int]:
        base_query = select(Order).where(*self._conditions(query))

        count_stmt = select(func.count()).select_from(base_query.subquery())
        count_result = await self.session.execute(count_stmt)
        total = count_result.scalar() or 0

        sort_column = _SORT_COLUMNS.get(query.sort_by, Order.order_date)
        if query.sort_order == "asc":
            ordering = (sort_column.asc(), Order.id.asc())
        else:
            ordering = (sort_column.desc(), Order.id.desc())

        stmt = (
            base_query
            .order_by(*ordering)
            .offset(query.offset)
            .limit(query.limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total

    async def statistics(self) -> OrderStatistics:
        product_stmt = (
            select(Order.product_key, func.count())
            .group_by(Order.product_key)
        )
        product_result = await self.session.execute(product_stmt)
        orders_by_product = {key: count for key, count in product_result.all()}

        revenue_stmt = select(func.coalesce(func.sum(Order.order_total), 0))
        revenue = (await self.session.execute(revenue_stmt)).scalar() or 0

        # Refunds live in a JSON column; sum them on the Python side
        refunds_stmt = select(Order.refunds)
        refunded = Decimal("0")
        for refunds in (await self.session.execute(refunds_stmt)).scalars():
            for refund in refunds or []:
                refunded += Decimal(str(refund["amount"]))

        return OrderStatistics(
            total_orders=sum(orders_by_product.values()),
            orders_by_product=orders_by_product,
            total_revenue=Decimal(str(revenue)).quantize(Decimal("0.01")),
            total_refunded=refunded.quantize(Decimal("0.01")),
        )
