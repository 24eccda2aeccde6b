"""
Tests for PaymentConfirmationHandler on both storage tiers.
"""
import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from storefront.core.concurrency import KeyedLock
from storefront.core.exceptions import (
    DuplicateOrderError,
    OrderPersistenceError,
    PaymentSecurityError,
)
from storefront.models.reservation import ReservationStatus
from storefront.services.payment_handler import (
    ConfirmationStatus,
    PaymentConfirmationHandler,
    group_products,
)
from storefront.services.payment_security import PaymentSecurityValidator
from storefront.services.storage import InMemoryStorage

CAP = {"name": "Cap", "items": [{"id": "cap-red", "name": "Red Cap", "price": 20.0, "quantity": 1}]}
TEE = {"name": "T-Shirt", "items": [{"id": "tee-m", "name": "Tee M", "price": 35.0, "quantity": 2}]}


@pytest.fixture
def handler(storage) -> PaymentConfirmationHandler:
    return PaymentConfirmationHandler(storage)


class TestConfirmation:
    async def test_sequential_payments_get_contiguous_numbers(self, handler, make_event):
        numbers = []
        for _ in range(3):
            result = await handler.handle_payment_confirmation(make_event())
            assert result.status == ConfirmationStatus.CONFIRMED
            numbers.extend(result.order_numbers)

        assert numbers == ["TSHIRT-0001", "TSHIRT-0002", "TSHIRT-0003"]

    async def test_failed_payment_creates_nothing(self, handler, storage, make_event):
        result = await handler.handle_payment_confirmation(make_event(status="failed"))

        assert result.status == ConfirmationStatus.REJECTED
        assert result.orders == []
        assert await storage.counters.get("TSHIRT") == 0
        assert await storage.reservations.find() == []

    async def test_pending_payment_is_rejected(self, handler, make_event):
        result = await handler.handle_payment_confirmation(make_event(status="pending"))

        assert result.status == ConfirmationStatus.REJECTED

    async def test_one_order_per_product(self, handler, storage, make_event):
        result = await handler.handle_payment_confirmation(
            make_event(transaction_id="pi_multi", products=[TEE, CAP])
        )

        assert result.order_numbers == ["TSHIRT-0001", "CAP-0001"]
        assert {order.transaction_id for order in result.orders} == {"pi_multi"}
        assert len(await storage.orders.list_by_transaction("pi_multi")) == 2
        assert result.message == (
            "Thank you for your orders! You have 2 orders: TSHIRT-0001, CAP-0001"
        )

    async def test_single_order_message(self, handler, make_event):
        result = await handler.handle_payment_confirmation(make_event())

        assert result.message == "Thank you for your order! Your order number is: TSHIRT-0001"

    async def test_order_contents(self, handler, make_event):
        result = await handler.handle_payment_confirmation(
            make_event(products=[TEE], shippingCost=5.0, taxTotal=2.5)
        )
        [order] = result.orders

        assert order.product_key == "TSHIRT"
        assert order.payment_status == "paid"
        assert order.fulfillment_status == "pending"
        assert order.order_status == "confirmed"
        assert str(order.order_total) == "77.50"
        assert order.items[0]["lineTotal"] == 70.0
        assert order.billing_address == order.shipping_address
        assert order.order_metadata["transactionId"] == order.transaction_id
        assert order.payment_timeline[0]["type"] == "capture"

    async def test_created_and_paid_share_a_timestamp(self, handler, make_event):
        result = await handler.handle_payment_confirmation(make_event())
        created, paid = result.orders[0].event_timeline

        assert created["type"] == "created"
        assert paid["type"] == "paid"
        assert created["timestamp"] == paid["timestamp"]
        assert paid["description"] == "Payment successfully verified via stripe"

    async def test_similar_names_share_one_order(self, handler, make_event):
        products = [
            TEE,
            {"name": "t shirt", "items": [{"id": "tee-l", "name": "Tee L", "price": 30.0, "quantity": 1}]},
        ]

        result = await handler.handle_payment_confirmation(make_event(products=products))

        [order] = result.orders
        assert order.order_number == "TSHIRT-0001"
        assert order.product_name == "T-Shirt"
        assert len(order.items) == 2

    async def test_charges_go_to_first_order(self, handler, make_event):
        result = await handler.handle_payment_confirmation(
            make_event(products=[TEE, CAP], shippingCost=10.0, discountTotal=5.0)
        )
        tee, cap = result.orders

        assert str(tee.order_total) == "75.00"
        assert str(cap.order_total) == "20.00"
        assert str(cap.shipping_cost) in ("0", "0.00")

    async def test_idempotency_key_is_stored(self, handler, make_event):
        key = PaymentSecurityValidator.generate_idempotency_key("pi_1", "user_1")

        result = await handler.handle_payment_confirmation(make_event(), idempotency_key=key)

        assert result.orders[0].order_metadata["idempotencyKey"] == key

    async def test_large_first_payment_is_flagged(self, handler, make_event):
        products = [{"name": "Watch", "items": [{"id": "w1", "name": "Watch", "price": 1500.0, "quantity": 1}]}]

        result = await handler.handle_payment_confirmation(make_event(products=products))

        assert result.status == ConfirmationStatus.CONFIRMED
        assert result.flagged is True
        assert result.orders[0].order_metadata["riskFlag"] == "suspicious_activity"


class TestDuplicates:
    async def test_replay_returns_existing_orders(self, handler, storage, make_event):
        event = make_event(transaction_id="pi_dup", products=[TEE, CAP])
        first = await handler.handle_payment_confirmation(event)

        second = await handler.handle_payment_confirmation(event)

        assert second.status == ConfirmationStatus.DUPLICATE
        assert second.order_numbers == first.order_numbers
        assert await storage.counters.get("TSHIRT") == 1
        assert await storage.counters.get("CAP") == 1

    async def test_partial_payment_is_resumed(self, handler, storage, make_event):
        await handler.handle_payment_confirmation(
            make_event(transaction_id="pi_part", products=[TEE])
        )

        result = await handler.handle_payment_confirmation(
            make_event(transaction_id="pi_part", products=[TEE, CAP])
        )

        assert result.status == ConfirmationStatus.CONFIRMED
        assert result.order_numbers == ["TSHIRT-0001", "CAP-0001"]
        assert await storage.counters.get("TSHIRT") == 1

    async def test_replay_losing_the_insert_race_is_a_duplicate(self, handler, storage, make_event):
        event = make_event(transaction_id="pi_late")
        first = await handler.handle_payment_confirmation(event)
        list_by_transaction = storage.orders.list_by_transaction
        calls = []

        # The replay's duplicate check runs before the first order became visible
        async def not_yet_visible(transaction_id):
            calls.append(transaction_id)
            if len(calls) == 1:
                return []
            return await list_by_transaction(transaction_id)

        with patch.object(
            storage.orders, "list_by_transaction", new_callable=AsyncMock, side_effect=not_yet_visible
        ):
            second = await handler.handle_payment_confirmation(event)

        assert second.status == ConfirmationStatus.DUPLICATE
        assert second.order_numbers == first.order_numbers
        assert len(await storage.orders.list_by_transaction("pi_late")) == 1
        reservations = await storage.reservations.find()
        if storage.transactional:
            assert await storage.counters.get("TSHIRT") == 1
            assert [r.order_number for r in reservations] == ["TSHIRT-0001"]
        else:
            orphaned = [r for r in reservations if r.status == ReservationStatus.ORPHANED.value]
            assert [r.order_number for r in orphaned] == ["TSHIRT-0002"]

    async def test_clash_without_a_stored_order_is_an_error(self, memory_storage, make_event):
        handler = PaymentConfirmationHandler(memory_storage)

        with patch.object(
            memory_storage.orders,
            "add",
            new_callable=AsyncMock,
            side_effect=DuplicateOrderError("Order number already exists: TSHIRT-0001"),
        ):
            with pytest.raises(OrderPersistenceError) as exc_info:
                await handler.handle_payment_confirmation(make_event())

        assert exc_info.value.order_numbers == ["TSHIRT-0001"]


class TestLocks:
    async def test_transaction_locks_are_released(self, storage, make_event):
        locks = KeyedLock()
        handler = PaymentConfirmationHandler(storage, transaction_locks=locks)

        for _ in range(10):
            await handler.handle_payment_confirmation(make_event())

        assert locks.active_keys == 0

    async def test_counter_locks_are_released(self, make_event):
        counter_locks = KeyedLock()
        storage = InMemoryStorage(counter_locks)
        handler = PaymentConfirmationHandler(storage)

        await handler.handle_payment_confirmation(make_event(products=[TEE, CAP]))

        assert counter_locks.active_keys == 0
        assert storage.counters.locks is counter_locks

    def test_empty_lock_set_is_kept(self, memory_storage):
        locks = KeyedLock()

        handler = PaymentConfirmationHandler(memory_storage, transaction_locks=locks)

        assert handler.transaction_locks is locks


class TestValidation:
    @pytest.mark.parametrize(
        "overrides,code",
        [
            ({"currency": "XYZ"}, "UNSUPPORTED_CURRENCY"),
            ({"amount": 0}, "INVALID_AMOUNT"),
            ({"amount": 5_000_000}, "AMOUNT_TOO_HIGH"),
            ({"paymentMethod": {"type": "cheque"}}, "UNSUPPORTED_METHOD"),
            ({"products": []}, "EMPTY_BASKET"),
            ({"discountTotal": 500.0}, "INVALID_AMOUNT"),
        ],
    )
    async def test_rejected_before_minting(self, handler, storage, make_event, overrides, code):
        with pytest.raises(PaymentSecurityError) as exc_info:
            await handler.handle_payment_confirmation(make_event(**overrides))

        assert exc_info.value.code == code
        assert await storage.counters.snapshot() == {}
        assert await storage.reservations.find() == []

    async def test_bad_idempotency_key(self, handler, storage, make_event):
        with pytest.raises(PaymentSecurityError):
            await handler.handle_payment_confirmation(make_event(), idempotency_key="nope")

        assert await storage.counters.snapshot() == {}

    async def test_amount_mismatch_is_only_logged(self, handler, make_event):
        result = await handler.handle_payment_confirmation(make_event(amount=36.0))

        assert result.status == ConfirmationStatus.CONFIRMED


class TestPersistenceFailure:
    async def test_memory_tier_marks_number_orphaned(self, memory_storage, make_event):
        handler = PaymentConfirmationHandler(memory_storage)

        with patch.object(
            memory_storage.orders, "add", new_callable=AsyncMock, side_effect=RuntimeError("disk full")
        ):
            with pytest.raises(OrderPersistenceError) as exc_info:
                await handler.handle_payment_confirmation(make_event())

        assert exc_info.value.order_numbers == ["TSHIRT-0001"]
        [reservation] = await memory_storage.reservations.find()
        assert reservation.status == ReservationStatus.ORPHANED.value
        assert "disk full" in reservation.reason
        assert await memory_storage.counters.get("TSHIRT") == 1

        # The next payment never reuses the orphaned number
        result = await handler.handle_payment_confirmation(make_event())
        assert result.order_numbers == ["TSHIRT-0002"]

    async def test_sql_tier_rolls_back_counter(self, sql_storage, make_event):
        handler = PaymentConfirmationHandler(sql_storage)

        with patch.object(
            sql_storage.orders, "add", new_callable=AsyncMock, side_effect=RuntimeError("boom")
        ):
            with pytest.raises(OrderPersistenceError) as exc_info:
                await handler.handle_payment_confirmation(make_event())

        assert exc_info.value.order_numbers == ["TSHIRT-0001"]
        assert await sql_storage.counters.get("TSHIRT") == 0
        assert await sql_storage.reservations.find() == []

        result = await handler.handle_payment_confirmation(make_event())
        assert result.order_numbers == ["TSHIRT-0001"]

    async def test_reservation_fulfilled_on_success(self, handler, storage, make_event):
        result = await handler.handle_payment_confirmation(make_event())

        [reservation] = await storage.reservations.find()
        assert reservation.status == ReservationStatus.FULFILLED.value
        assert reservation.order_id == result.orders[0].id


async def test_concurrent_payments_never_share_a_number(make_event):
    storage = InMemoryStorage()
    handler = PaymentConfirmationHandler(storage, transaction_locks=KeyedLock())

    results = await asyncio.gather(
        *(handler.handle_payment_confirmation(make_event()) for _ in range(25))
    )

    numbers = [number for result in results for number in result.order_numbers]
    assert len(set(numbers)) == 25
    assert sorted(numbers) == [f"TSHIRT-{n:04d}" for n in range(1, 26)]


async def test_concurrent_replays_create_one_order(make_event):
    storage = InMemoryStorage()
    handler = PaymentConfirmationHandler(storage)
    event = make_event(transaction_id="pi_race")

    results = await asyncio.gather(
        *(handler.handle_payment_confirmation(event) for _ in range(5))
    )

    statuses = sorted(result.status.value for result in results)
    assert statuses == ["confirmed"] + ["duplicate"] * 4
    assert len(await storage.orders.list_by_transaction("pi_race")) == 1


def test_group_products_keeps_first_name(make_event):
    event = make_event(products=[CAP, TEE, {**CAP, "name": "CAP"}])

    groups = group_products(event.products)

    assert [group.key for group in groups] == ["CAP", "TSHIRT"]
    assert groups[0].name == "Cap"
    assert str(groups[0].subtotal) == "40.00"
