"""
Shared fixtures.

Environment is set before anything from storefront is imported, since
settings are read at import time.
"""
import os

os.environ["ENVIRONMENT"] = "test"
os.environ["SECRET_KEY"] = "test-secret-key-with-at-least-32-characters"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["OWNER_ID"] = "owner-123"
os.environ["OWNER_TOKEN"] = "owner-static-token"
os.environ["WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["RESEND_API_KEY"] = ""

import json
from collections.abc import AsyncIterator, Callable
from decimal import Decimal
from typing import Any, Optional

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.core.concurrency import KeyedLock
from storefront.core.config import settings
from storefront.core.database import Base, create_engine
from storefront.main import create_app
from storefront.models.order import Order
from storefront.routers.dependencies import get_storage
from storefront.schemas.payment import PaymentConfirmedEvent
from storefront.services import lifecycle
from storefront.services.payment_security import sign_payload
from storefront.services.storage import InMemoryStorage, SqlStorage, Storage


@pytest.fixture
async def db_engine() -> AsyncIterator[AsyncEngine]:
    """Fresh in-memory SQLite database per test."""
    engine = create_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def memory_storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def sql_storage(db_session: AsyncSession) -> SqlStorage:
    return SqlStorage(db_session, KeyedLock())


@pytest.fixture(params=["memory", "sql"])
async def storage(request, session_factory) -> AsyncIterator[Storage]:
    """Runs the test once per storage tier."""
    if request.param == "memory":
        yield InMemoryStorage()
        return
    async with session_factory() as session:
        yield SqlStorage(session, KeyedLock())
        await session.rollback()


@pytest.fixture
def make_payment_event() -> Callable[..., dict[str, Any]]:
    """Build a payment-confirmed payload (camelCase, as sent on the wire)."""
    counter = {"n": 0}

    def _make(
        transaction_id: Optional[str] = None,
        status: str = "success",
        products: Optional[list[dict[str, Any]]] = None,
        amount: Optional[float] = None,
        **extra: Any,
    ) -> dict[str, Any]:
        counter["n"] += 1
        products = products if products is not None else [
            {
                "name": "T-Shirt",
                "items": [
                    {"id": "tee-black-m", "name": "Black Tee M", "price": 35.0, "quantity": 1},
                ],
            }
        ]
        if amount is None:
            amount = sum(
                item["price"] * item["quantity"]
                for product in products
                for item in product["items"]
            )
        payload = {
            "transactionId": transaction_id or f"pi_test_{counter['n']}",
            "status": status,
            "amount": amount,
            "currency": "USD",
            "userId": "user_1",
            "userEmail": "ada@example.com",
            "userName": "Ada Lovelace",
            "products": products,
            "paymentProvider": "stripe",
            "shippingAddress": {
                "firstName": "Ada",
                "lastName": "Lovelace",
                "street": "12 St James's Square",
                "city": "London",
                "postalCode": "SW1Y 4JH",
                "country": "GB",
            },
        }
        payload.update(extra)
        return payload

    return _make


@pytest.fixture
def make_event(make_payment_event) -> Callable[..., PaymentConfirmedEvent]:
    def _make(**kwargs: Any) -> PaymentConfirmedEvent:
        return PaymentConfirmedEvent.model_validate(make_payment_event(**kwargs))

    return _make


@pytest.fixture
def order_factory() -> Callable[..., Order]:
    """Build a paid, unfulfilled order without going through the handler."""
    counter = {"n": 0}

    def _make(**overrides: Any) -> Order:
        counter["n"] += 1
        n = counter["n"]
        now = lifecycle.utcnow()
        values: dict[str, Any] = {
            "id": f"order_{n}",
            "order_number": f"TSHIRT-{n:04d}",
            "product_key": "TSHIRT",
            "product_name": "T-Shirt",
            "transaction_id": f"pi_{n}",
            "payment_provider": "stripe",
            "payment_method": None,
            "customer_id": "user_1",
            "customer_email": "ada@example.com",
            "customer_name": "Ada Lovelace",
            "login_method": "guest",
            "order_total": Decimal("100.00"),
            "shipping_cost": Decimal("0"),
            "tax_total": Decimal("0"),
            "discount_total": Decimal("0"),
            "currency": "USD",
            "payment_status": "paid",
            "fulfillment_status": "pending",
            "order_status": "confirmed",
            "shipping_method": "Standard",
            "carrier": None,
            "shipping_address": None,
            "billing_address": None,
            "tracking_numbers": [],
            "shipments": [],
            "items": [],
            "payment_timeline": [],
            "event_timeline": [],
            "refunds": [],
            "owner_notes": [],
            "order_metadata": {},
            "order_date": now,
            "created_at": now,
            "updated_at": now,
        }
        values.update(overrides)
        return Order(**values)

    return _make


@pytest.fixture
def webhook_headers() -> Callable[[bytes], dict[str, str]]:
    def _headers(body: bytes) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-Webhook-Signature": sign_payload(body, settings.webhook_secret),
        }

    return _headers


@pytest.fixture
def post_webhook(webhook_headers):
    """Sign and post a payment event with a sync TestClient."""

    def _post(client: TestClient, payload: dict[str, Any], **headers: str):
        body = json.dumps(payload).encode()
        return client.post(
            "/api/payments/webhook",
            content=body,
            headers={**webhook_headers(body), **headers},
        )

    return _post


@pytest.fixture
def app(memory_storage: InMemoryStorage) -> FastAPI:
    """App whose requests all run on one fresh in-memory storage."""
    application = create_app()
    application.dependency_overrides[get_storage] = lambda: memory_storage
    return application


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
async def async_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def sql_async_client(session_factory) -> AsyncIterator[AsyncClient]:
    """App whose requests run on the SQL tier, one committed session per request."""
    application = create_app()
    locks = KeyedLock()

    async def sql_storage_override() -> AsyncIterator[Storage]:
        async with session_factory() as session:
            try:
                yield SqlStorage(session, locks)
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_storage] = sql_storage_override
    async with AsyncClient(
        transport=ASGITransport(app=application),
        base_url="http://test",
    ) as ac:
        yield ac
