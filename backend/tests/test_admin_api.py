"""
Tests for the owner-only admin API and the customer order lookup.
"""
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from storefront.core.security import create_owner_token
from storefront.services import lifecycle

OWNER_HEADERS = {"X-User-ID": "owner-123"}


@pytest.fixture
async def seeded(memory_storage, order_factory):
    now = lifecycle.utcnow()
    orders = [
        order_factory(
            id="o1",
            order_number="TSHIRT-0001",
            order_total=Decimal("35.00"),
            order_date=now - timedelta(days=3),
        ),
        order_factory(
            id="o2",
            order_number="CAP-0001",
            product_key="CAP",
            product_name="Cap",
            customer_name="Grace Hopper",
            customer_email="grace@navy.mil",
            order_total=Decimal("20.00"),
            order_date=now - timedelta(days=2),
        ),
        order_factory(
            id="o3",
            order_number="TSHIRT-0002",
            order_total=Decimal("70.00"),
            fulfillment_status="shipped",
            order_status="processing",
            order_date=now - timedelta(days=1),
        ),
    ]
    for order in orders:
        await memory_storage.orders.add(order)
    return orders


class TestOwnerAccess:
    @pytest.mark.parametrize(
        "headers",
        [
            {},
            {"X-User-ID": "someone-else"},
            {"Authorization": "Bearer wrong-token"},
            {"Authorization": "owner-static-token"},
        ],
    )
    def test_non_owner_sees_not_found(self, client: TestClient, headers):
        response = client.get("/api/admin/orders", headers=headers)

        assert response.status_code == 404
        assert response.json() == {"detail": "Not Found"}

    def test_owner_user_id(self, client: TestClient):
        assert client.get("/api/admin/orders", headers=OWNER_HEADERS).status_code == 200

    def test_static_bearer_token(self, client: TestClient):
        response = client.get(
            "/api/admin/orders",
            headers={"Authorization": "Bearer owner-static-token"},
        )

        assert response.status_code == 200

    def test_jwt_bearer_token(self, client: TestClient):
        token = create_owner_token("owner-123")

        response = client.get("/api/admin/orders", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200

    def test_jwt_for_other_subject(self, client: TestClient):
        token = create_owner_token("customer-9")

        response = client.get("/api/admin/orders", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 404


class TestListOrders:
    async def test_list_all(self, async_client, seeded):
        response = await async_client.get("/api/admin/orders", headers=OWNER_HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert [o["id"] for o in data["orders"]] == ["o3", "o2", "o1"]
        assert data["pagination"] == {"page": 1, "limit": 20, "total": 3, "totalPages": 1}

    async def test_filters_and_sort(self, async_client, seeded):
        response = await async_client.get(
            "/api/admin/orders",
            params={
                "fulfillmentStatus": "pending",
                "totalMin": "30",
                "sortBy": "orderTotal",
                "sortOrder": "asc",
            },
            headers=OWNER_HEADERS,
        )

        assert [o["id"] for o in response.json()["orders"]] == ["o1"]

    async def test_search(self, async_client, seeded):
        response = await async_client.get(
            "/api/admin/orders", params={"search": "HOPPER"}, headers=OWNER_HEADERS
        )

        assert [o["orderNumber"] for o in response.json()["orders"]] == ["CAP-0001"]

    async def test_pagination(self, async_client, seeded):
        response = await async_client.get(
            "/api/admin/orders", params={"page": 2, "limit": 2}, headers=OWNER_HEADERS
        )

        data = response.json()
        assert [o["id"] for o in data["orders"]] == ["o1"]
        assert data["pagination"]["totalPages"] == 2

    async def test_invalid_status_filter(self, async_client, seeded):
        response = await async_client.get(
            "/api/admin/orders", params={"paymentStatus": "paid,bogus"}, headers=OWNER_HEADERS
        )

        assert response.status_code == 422

    async def test_limit_is_capped(self, async_client, seeded):
        response = await async_client.get(
            "/api/admin/orders", params={"limit": 500}, headers=OWNER_HEADERS
        )

        assert response.status_code == 422

    async def test_stats(self, async_client, seeded):
        response = await async_client.get("/api/admin/orders/stats", headers=OWNER_HEADERS)

        assert response.json() == {
            "totalOrders": 3,
            "ordersByProduct": {"TSHIRT": 2, "CAP": 1},
            "totalRevenue": 125.0,
            "totalRefunded": 0.0,
        }


class TestActions:
    async def test_refund(self, async_client, seeded):
        response = await async_client.post(
            "/api/admin/orders",
            json={"type": "refund", "orderId": "o1", "amount": 10, "reason": "scratched"},
            headers=OWNER_HEADERS,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["paymentStatus"] == "refunded"
        assert data["refundedTotal"] == 10.0
        assert data["refunds"][0]["processedBy"] == "owner-123"

    async def test_over_refund(self, async_client, seeded):
        response = await async_client.post(
            "/api/admin/orders",
            json={"type": "refund", "orderId": "o1", "amount": 36, "reason": "too much"},
            headers=OWNER_HEADERS,
        )

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_REFUND"

    async def test_fulfillment(self, async_client, seeded):
        response = await async_client.post(
            "/api/admin/orders",
            json={
                "type": "update_fulfillment",
                "orderId": "o1",
                "status": "shipped",
                "trackingNumbers": ["1Z999"],
                "carrier": "UPS",
            },
            headers=OWNER_HEADERS,
        )

        data = response.json()
        assert data["fulfillmentStatus"] == "shipped"
        assert data["trackingNumbers"] == ["1Z999"]
        assert [e["type"] for e in data["eventTimeline"]] == ["shipped"]

    async def test_illegal_transition(self, async_client, seeded):
        response = await async_client.post(
            "/api/admin/orders",
            json={"type": "update_fulfillment", "orderId": "o3", "status": "pending"},
            headers=OWNER_HEADERS,
        )

        assert response.status_code == 409
        data = response.json()
        assert data["code"] == "INVALID_TRANSITION"
        assert data["current"] == "shipped"
        assert data["target"] == "pending"

    async def test_note(self, async_client, seeded):
        response = await async_client.post(
            "/api/admin/orders",
            json={"type": "add_note", "orderId": "o2", "content": "Call before delivery"},
            headers=OWNER_HEADERS,
        )

        assert response.json()["ownerNotes"][0]["content"] == "Call before delivery"

    async def test_unknown_action_type(self, async_client, seeded):
        response = await async_client.post(
            "/api/admin/orders",
            json={"type": "explode", "orderId": "o1"},
            headers=OWNER_HEADERS,
        )

        assert response.status_code == 422

    async def test_unknown_order(self, async_client, seeded):
        response = await async_client.post(
            "/api/admin/orders",
            json={"type": "add_note", "orderId": "nope", "content": "x"},
            headers=OWNER_HEADERS,
        )

        assert response.status_code == 404
        assert response.json()["code"] == "ORDER_NOT_FOUND"


class TestSingleOrder:
    async def test_get(self, async_client, seeded):
        response = await async_client.get("/api/admin/orders/o2", headers=OWNER_HEADERS)

        data = response.json()
        assert data["orderNumber"] == "CAP-0001"
        assert data["customerEmail"] == "grace@navy.mil"
        assert "metadata" in data

    async def test_update(self, async_client, seeded):
        response = await async_client.put(
            "/api/admin/orders/o1",
            json={"orderStatus": "processing", "carrier": "DHL"},
            headers=OWNER_HEADERS,
        )

        data = response.json()
        assert data["orderStatus"] == "processing"
        assert data["carrier"] == "DHL"
        assert data["eventTimeline"][-1]["type"] == "processing"

    async def test_update_without_fields(self, async_client, seeded):
        response = await async_client.put("/api/admin/orders/o1", json={}, headers=OWNER_HEADERS)

        assert response.status_code == 400

    async def test_cancel(self, async_client, seeded, memory_storage):
        response = await async_client.delete("/api/admin/orders/o1", headers=OWNER_HEADERS)

        data = response.json()
        assert data["deleted"] is False
        assert data["order"]["orderStatus"] == "cancelled"
        assert await memory_storage.orders.get("o1") is not None

    async def test_purge(self, async_client, seeded, memory_storage):
        response = await async_client.delete(
            "/api/admin/orders/o1", params={"purge": "true"}, headers=OWNER_HEADERS
        )

        assert response.json() == {"id": "o1", "deleted": True, "order": None}
        assert await memory_storage.orders.get("o1") is None


class TestCountersAndReservations:
    def test_counters_and_orphan_resolution(self, client, post_webhook, make_payment_event, memory_storage):
        with patch.object(
            memory_storage.orders, "add", new_callable=AsyncMock, side_effect=RuntimeError("down")
        ):
            post_webhook(client, make_payment_event())

        counters = client.get("/api/admin/counters", headers=OWNER_HEADERS).json()
        assert counters == {"counters": {"TSHIRT": 1}}

        orphaned = client.get(
            "/api/admin/reservations", params={"status": "orphaned"}, headers=OWNER_HEADERS
        ).json()
        assert [r["orderNumber"] for r in orphaned] == ["TSHIRT-0001"]

        response = client.post(
            "/api/admin/reservations/TSHIRT-0001/resolve",
            json={"note": "refunded manually"},
            headers=OWNER_HEADERS,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "reconciled"

        again = client.post("/api/admin/reservations/TSHIRT-0001/resolve", headers=OWNER_HEADERS)
        assert again.status_code == 409

    def test_unknown_reservation(self, client):
        response = client.post("/api/admin/reservations/NOPE-0001/resolve", headers=OWNER_HEADERS)

        assert response.status_code == 404


class TestCustomerLookup:
    async def test_lookup(self, async_client, seeded):
        response = await async_client.get(
            "/api/orders/TSHIRT-0001", params={"email": "ADA@example.com"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["orderNumber"] == "TSHIRT-0001"
        assert "ownerNotes" not in data
        assert "metadata" not in data

    async def test_wrong_email(self, async_client, seeded):
        response = await async_client.get(
            "/api/orders/TSHIRT-0001", params={"email": "eve@example.com"}
        )

        assert response.status_code == 404

    async def test_email_required(self, async_client, seeded):
        response = await async_client.get("/api/orders/TSHIRT-0001")

        assert response.status_code == 422
