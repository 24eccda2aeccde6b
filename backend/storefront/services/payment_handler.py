"""
Payment confirmation handler.

Turns one payment-confirmed event into orders:

    received -> rejected                      (status is not "success")
    received -> validating -> duplicate       (transaction already has orders)
    received -> validating -> minting/persisting -> confirmed

One order is created per product group. Minting and persisting happen per
group inside ``storage.transaction()``; on the SQL tier that is a SAVEPOINT,
so a failed insert also rolls back the counter increment. On the in-memory
tier the minted number is marked orphaned in the reservation log.

Confirmations of one transaction run under a per-process lock and commit
before releasing it. Across processes the unique (transaction, product)
constraint decides: the losing insert is answered as a duplicate.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from storefront.core.concurrency import KeyedLock
from storefront.core.exceptions import (
    CounterStoreError,
    DuplicateOrderError,
    OrderPersistenceError,
    PaymentSecurityError,
)
from storefront.core.logging import get_logger
from storefront.models.order import (
    FulfillmentStatus,
    Order,
    OrderEventType,
    OrderStatus,
    PaymentStatus,
)
from storefront.models.reservation import OrderNumberReservation
from storefront.schemas.payment import PaymentConfirmedEvent, ProductGroup
from storefront.services import lifecycle
from storefront.services.order_numbers import OrderNumberGenerator, normalize_product_name
from storefront.services.payment_security import PaymentSecurityValidator
from storefront.services.storage import Storage

logger = get_logger(__name__)

CENT = Decimal("0.01")


class ConfirmationStatus(str, Enum):
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    DUPLICATE = "duplicate"


@dataclass
class ConfirmationResult:
    """Outcome of one payment confirmation."""

    status: ConfirmationStatus
    message: str
    orders: list[Order] = field(default_factory=list)
    flagged: bool = False

    @property
    def order_numbers(self) -> list[str]:
        return [order.order_number for order in self.orders]


@dataclass
class _Group:
    key: str
    name: str
    items: list[dict[str, Any]]
    subtotal: Decimal


def _money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENT)


def group_products(products: list[ProductGroup]) -> list[_Group]:
    """
    Collapse product groups by counter key, keeping first-seen order.

    ``"T-Shirt"`` and ``"t shirt"`` in one payment become one order.
    """
    groups: dict[str, _Group] = {}
    for product in products:
        key = normalize_product_name(product.name)
        group = groups.get(key)
        if group is None:
            group = groups[key] = _Group(key=key, name=product.name, items=[], subtotal=Decimal("0"))
        for item in product.items:
            unit_price = _money(item.price)
            line_total = (unit_price * item.quantity).quantize(CENT)
            group.items.append(
                {
                    "id": item.id,
                    "sku": item.sku or item.id,
                    "name": item.name,
                    "unitPrice": float(unit_price),
                    "quantity": item.quantity,
                    "lineTotal": float(line_total),
                }
            )
            group.subtotal += line_total
    return list(groups.values())


def _payment_history(orders: list[Order]) -> list[dict[str, Any]]:
    """One history entry per earlier payment of a customer."""
    by_transaction: dict[str, dict[str, Any]] = defaultdict(dict)
    for order in orders:
        entry = by_transaction[order.transaction_id]
        entry["userId"] = order.customer_id
        entry["amount"] = entry.get("amount", 0.0) + float(order.order_total)
        created = entry.get("createdAt")
        if created is None or order.created_at < created:
            entry["createdAt"] = order.created_at
    return list(by_transaction.values())


def confirmation_message(orders: list[Order]) -> str:
    if len(orders) == 1:
        return f"Thank you for your order! Your order number is: {orders[0].order_number}"
    numbers = ", ".join(order.order_number for order in orders)
    return f"Thank you for your orders! You have {len(orders)} orders: {numbers}"


class PaymentConfirmationHandler:
    """Creates orders for confirmed payments, at most once per transaction."""

    def __init__(
        self,
        storage: Storage,
        validator: Optional[PaymentSecurityValidator] = None,
        generator: Optional[OrderNumberGenerator] = None,
        transaction_locks: Optional[KeyedLock] = None,
    ) -> None:
        self.storage = storage
        self.validator = validator or PaymentSecurityValidator()
        self.generator = generator or OrderNumberGenerator(storage.counters, storage.reservations)
        self.transaction_locks = (
            transaction_locks if transaction_locks is not None else KeyedLock()
        )

    async def handle_payment_confirmation(
        self,
        event: PaymentConfirmedEvent,
        idempotency_key: Optional[str] = None,
    ) -> ConfirmationResult:
        logger.info(
            "Payment confirmation received",
            transaction_id=event.transaction_id,
            status=event.status,
            amount=event.amount,
            currency=event.currency,
            products=[product.name for product in event.products],
        )

        if event.status != "success":
            logger.info(
                "Payment not successful, no orders created",
                transaction_id=event.transaction_id,
                status=event.status,
            )
            return ConfirmationResult(
                status=ConfirmationStatus.REJECTED,
                message="Payment was not successful. No order has been created.",
            )

        currency, groups, charges = self._validate(event)
        if idempotency_key is not None:
            idempotency_key = self.validator.validate_idempotency_key(idempotency_key)

        async with self.transaction_locks.hold(event.transaction_id):
            existing = await self.storage.orders.list_by_transaction(event.transaction_id)
            if self.validator.check_duplicate_payment(event.transaction_id, existing):
                done = {order.product_key for order in existing}
                missing = [group for group in groups if group.key not in done]
                if not missing:
                    logger.info(
                        "Duplicate payment confirmation, returning existing orders",
                        transaction_id=event.transaction_id,
                        order_numbers=[order.order_number for order in existing],
                    )
                    return ConfirmationResult(
                        status=ConfirmationStatus.DUPLICATE,
                        message="This payment has already been processed.",
                        orders=existing,
                    )
                logger.warning(
                    "Resuming partially processed payment",
                    transaction_id=event.transaction_id,
                    missing=[group.key for group in missing],
                )
            else:
                missing = groups

            history = await self.storage.orders.list_by_customer(event.user_id)
            flagged = self.validator.check_suspicious_activity(
                event.user_id, event.amount, _payment_history(history)
            )
            if flagged:
                logger.warning(
                    "Suspicious payment activity",
                    transaction_id=event.transaction_id,
                    user_id=event.user_id,
                    amount=event.amount,
                )

            # Basket-level charges ride on the first product group's order
            charge_key = groups[0].key
            created: list[Order] = []
            raced = False
            for group in missing:
                order_charges = charges if group.key == charge_key else None
                order = await self._create_order(
                    event, group, currency, order_charges, flagged, idempotency_key
                )
                if order is None:
                    raced = True
                else:
                    created.append(order)
            # Committed before the lock is released so the next replay sees these orders
            await self.storage.commit()

            if raced:
                existing = await self.storage.orders.list_by_transaction(event.transaction_id)
                if not created:
                    logger.info(
                        "Orders already created by a concurrent confirmation",
                        transaction_id=event.transaction_id,
                        order_numbers=[order.order_number for order in existing],
                    )
                    return ConfirmationResult(
                        status=ConfirmationStatus.DUPLICATE,
                        message="This payment has already been processed.",
                        orders=existing,
                    )
                orders = existing
            else:
                orders = [*existing, *created]

        logger.info(
            "Payment confirmed, orders created",
            transaction_id=event.transaction_id,
            order_numbers=[order.order_number for order in created],
        )
        return ConfirmationResult(
            status=ConfirmationStatus.CONFIRMED,
            message=confirmation_message(orders),
            orders=orders,
            flagged=flagged,
        )

    def _validate(self, event: PaymentConfirmedEvent) -> tuple[str, list[_Group], dict[str, Decimal]]:
        """Every check that can reject the payment, run before anything is minted."""
        self.validator.validate_amount(event.amount)
        currency = self.validator.validate_currency(event.currency)
        if event.payment_method is not None:
            self.validator.validate_payment_method(event.payment_method.type)
        if not event.products:
            raise PaymentSecurityError("Payment contains no products", "EMPTY_BASKET")

        groups = group_products(event.products)
        charges = {
            "shipping": _money(event.shipping_cost),
            "tax": _money(event.tax_total),
            "discount": _money(event.discount_total),
        }
        subtotal = sum((group.subtotal for group in groups), Decimal("0"))
        basket_total = subtotal + charges["shipping"] + charges["tax"] - charges["discount"]
        if groups[0].subtotal + charges["shipping"] + charges["tax"] - charges["discount"] < 0:
            raise PaymentSecurityError("Discount exceeds the order value", "INVALID_AMOUNT")
        if basket_total != _money(event.amount):
            logger.warning(
                "Payment amount does not match basket total",
                transaction_id=event.transaction_id,
                amount=event.amount,
                basket_total=float(basket_total),
            )
        return currency, groups, charges

    async def _create_order(
        self,
        event: PaymentConfirmedEvent,
        group: _Group,
        currency: str,
        charges: Optional[dict[str, Decimal]],
        flagged: bool,
        idempotency_key: Optional[str],
    ) -> Optional[Order]:
        """Mint one number and persist its order as one unit of work.

        Returns ``None`` when a concurrent confirmation of the same
        transaction already stored this product group's order.
        """
        reservation: Optional[OrderNumberReservation] = None
        try:
            async with self.storage.transaction():
                reservation = await self.generator.reserve(group.name, event.transaction_id)
                order = self._build_order(
                    event, group, currency, charges, reservation.order_number, flagged, idempotency_key
                )
                await self.storage.orders.add(order)
                await self.generator.fulfill(reservation, order.id)
        except CounterStoreError:
            raise
        except Exception as e:
            if reservation is None:
                raise
            if isinstance(e, DuplicateOrderError) and await self._stored_elsewhere(event, group):
                await self._release(reservation, event, "order created by a concurrent confirmation")
                logger.warning(
                    "Concurrent confirmation already created this order",
                    order_number=reservation.order_number,
                    transaction_id=event.transaction_id,
                    product_key=group.key,
                )
                return None
            await self._release(reservation, event, str(e))
            raise OrderPersistenceError(
                f"Could not persist order {reservation.order_number}",
                order_numbers=[reservation.order_number],
            ) from e
        return order

    async def _stored_elsewhere(self, event: PaymentConfirmedEvent, group: _Group) -> bool:
        stored = await self.storage.orders.list_by_transaction(event.transaction_id)
        return any(order.product_key == group.key for order in stored)

    async def _release(
        self,
        reservation: OrderNumberReservation,
        event: PaymentConfirmedEvent,
        reason: str,
    ) -> None:
        """Account for a minted number whose order was not stored."""
        if self.storage.transactional:
            logger.error(
                "Order not stored, order number rolled back",
                order_number=reservation.order_number,
                transaction_id=event.transaction_id,
                error=reason,
            )
            return
        await self.generator.mark_orphaned(reservation.order_number, reason=reason)
        logger.error(
            "Orphaned order number, manual reconciliation required",
            order_number=reservation.order_number,
            transaction_id=event.transaction_id,
            error=reason,
        )

    def _build_order(
        self,
        event: PaymentConfirmedEvent,
        group: _Group,
        currency: str,
        charges: Optional[dict[str, Decimal]],
        order_number: str,
        flagged: bool,
        idempotency_key: Optional[str],
    ) -> Order:
        zero = Decimal("0.00")
        shipping = charges["shipping"] if charges else zero
        tax = charges["tax"] if charges else zero
        discount = charges["discount"] if charges else zero
        total = (group.subtotal + shipping + tax - discount).quantize(CENT)

        shipping_address = (
            event.shipping_address.model_dump(by_alias=True) if event.shipping_address else None
        )
        billing_address = (
            event.billing_address.model_dump(by_alias=True)
            if event.billing_address
            else shipping_address
        )
        metadata = {**event.metadata, "transactionId": event.transaction_id}
        if idempotency_key:
            metadata["idempotencyKey"] = idempotency_key
        if flagged:
            metadata["riskFlag"] = "suspicious_activity"

        now = lifecycle.utcnow()
        order = Order(
            id=lifecycle.new_id("order"),
            order_number=order_number,
            product_key=group.key,
            product_name=group.name,
            transaction_id=event.transaction_id,
            payment_provider=event.payment_provider,
            payment_method=event.payment_method.model_dump() if event.payment_method else None,
            customer_id=event.user_id,
            customer_email=event.user_email,
            customer_name=event.user_name,
            login_method=event.login_method.value,
            order_total=total,
            shipping_cost=shipping,
            tax_total=tax,
            discount_total=discount,
            currency=currency,
            payment_status=PaymentStatus.PAID.value,
            fulfillment_status=FulfillmentStatus.PENDING.value,
            order_status=OrderStatus.CONFIRMED.value,
            shipping_method=event.shipping_method,
            carrier=None,
            shipping_address=shipping_address,
            billing_address=billing_address,
            tracking_numbers=[],
            shipments=[],
            items=group.items,
            payment_timeline=[],
            event_timeline=[],
            refunds=[],
            owner_notes=[],
            order_metadata=metadata,
            order_date=now,
            created_at=now,
            updated_at=now,
        )
        lifecycle.append_payment_event(order, "capture", float(total), at=now)
        lifecycle.append_event(
            order,
            OrderEventType.CREATED,
            "Order created after successful payment verification",
            at=now,
        )
        lifecycle.append_event(
            order,
            OrderEventType.PAID,
            f"Payment successfully verified via {event.payment_provider}",
            metadata={"transactionId": event.transaction_id, "amount": float(total)},
            at=now,
        )
        return order
