"""
Order number generation.

Order numbers look like ``TSHIRT-0001``: the product name reduced to
uppercase letters and digits, a hyphen, and a per-product sequence. The
sequence comes from an injected CounterStore whose increment is atomic per
key, so two payments for the same product never get the same number.

Minting is only ever done for a payment that has already been confirmed.
There is no way to give a number back.
"""
import re
from typing import Optional

from storefront.core.config import settings
from storefront.core.exceptions import (
    CounterStoreError,
    InvalidTransitionError,
    PaymentSecurityError,
    ReservationNotFoundError,
    StorefrontError,
)
from storefront.core.logging import get_logger
from storefront.models.reservation import OrderNumberReservation, ReservationStatus
from storefront.repositories.interfaces import CounterStore, ReservationRepository
from storefront.services.lifecycle import utcnow

logger = get_logger(__name__)

_NON_ALPHANUMERIC = re.compile(r"[^A-Z0-9]")
MAX_KEY_LENGTH = 128


def normalize_product_name(product_name: str) -> str:
    """
    Reduce a product name to its counter key.

    ``"T-Shirt"``, ``"T SHIRT"`` and ``"t_shirt"`` all become ``"TSHIRT"``.
    """
    key = _NON_ALPHANUMERIC.sub("", (product_name or "").upper())
    if not key:
        raise PaymentSecurityError(
            f"Product name has no letters or digits: {product_name!r}",
            "INVALID_PRODUCT_NAME",
        )
    if len(key) > MAX_KEY_LENGTH:
        raise PaymentSecurityError(
            f"Product name is too long for an order number: {product_name[:40]!r}",
            "INVALID_PRODUCT_NAME",
        )
    return key


class OrderNumberGenerator:
    """Mints order numbers and keeps the reservation log for them."""

    def __init__(
        self,
        counters: CounterStore,
        reservations: Optional[ReservationRepository] = None,
        padding: Optional[int] = None,
    ) -> None:
        self.counters = counters
        self.reservations = reservations
        self.padding = padding or settings.order_number_padding

    def format_order_number(self, key: str, sequence: int) -> str:
        return f"{key}-{sequence:0{self.padding}d}"

    async def _next_sequence(self, key: str) -> int:
        try:
            sequence = await self.counters.increment(key)
        except CounterStoreError:
            raise
        except Exception as e:
            logger.error("Counter store failed", key=key, error=str(e))
            raise CounterStoreError(f"Could not increment counter {key}") from e
        if not isinstance(sequence, int) or sequence < 1:
            raise CounterStoreError(f"Counter {key} returned an invalid sequence: {sequence!r}")
        return sequence

    async def mint_order_number(self, product_name: str) -> str:
        """Take the next sequence for ``product_name`` and format it."""
        key = normalize_product_name(product_name)
        sequence = await self._next_sequence(key)
        order_number = self.format_order_number(key, sequence)
        logger.info(
            "Order number minted",
            order_number=order_number,
            product_key=key,
            sequence=sequence,
        )
        return order_number

    async def reserve(self, product_name: str, transaction_id: str) -> OrderNumberReservation:
        """Mint a number and record which payment it was minted for."""
        if self.reservations is None:
            raise StorefrontError("No reservation log configured")

        key = normalize_product_name(product_name)
        sequence = await self._next_sequence(key)
        order_number = self.format_order_number(key, sequence)
        now = utcnow()
        reservation = OrderNumberReservation(
            order_number=order_number,
            product_key=key,
            sequence=sequence,
            transaction_id=transaction_id,
            status=ReservationStatus.RESERVED.value,
            order_id=None,
            reason=None,
            created_at=now,
            updated_at=now,
        )
        await self.reservations.reserve(reservation)
        logger.info(
            "Order number reserved",
            order_number=order_number,
            transaction_id=transaction_id,
        )
        return reservation

    async def fulfill(self, reservation: OrderNumberReservation, order_id: str) -> None:
        """The order carrying this number has been persisted."""
        reservation.status = ReservationStatus.FULFILLED.value
        reservation.order_id = order_id
        reservation.updated_at = utcnow()
        await self.reservations.save(reservation)

    async def mark_orphaned(self, order_number: str, reason: str) -> Optional[OrderNumberReservation]:
        """Flag a minted number whose order could not be persisted."""
        reservation = await self.reservations.get(order_number)
        if reservation is None:
            return None
        reservation.status = ReservationStatus.ORPHANED.value
        reservation.reason = reason
        reservation.updated_at = utcnow()
        await self.reservations.save(reservation)
        return reservation

    async def resolve(self, order_number: str, note: Optional[str] = None) -> OrderNumberReservation:
        """Mark an orphaned number as handled. The counter is left alone."""
        reservation = await self.reservations.get(order_number)
        if reservation is None:
            raise ReservationNotFoundError(f"No reservation for {order_number}")
        if reservation.status != ReservationStatus.ORPHANED.value:
            raise InvalidTransitionError(
                "reservation", reservation.status, ReservationStatus.RECONCILED.value
            )
        reservation.status = ReservationStatus.RECONCILED.value
        if note:
            reservation.reason = f"{reservation.reason or ''}\nresolved: {note}".strip()
        reservation.updated_at = utcnow()
        await self.reservations.save(reservation)
        return reservation

    async def list_reservations(self, status: Optional[str] = None) -> list[OrderNumberReservation]:
        return await self.reservations.find(status)

    async def get_order_counters(self) -> dict[str, int]:
        return await self.counters.snapshot()

    async def reset_counter(self, product_name: str) -> None:
        """
        Set a product's counter back to zero.

        Numbers issued after a reset collide with numbers already on orders,
        so this is for wiping test data, never part of the order flow.
        """
        key = normalize_product_name(product_name)
        await self.counters.reset(key)
        logger.warning("Order counter reset", product_key=key)
