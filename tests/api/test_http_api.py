"""
HTTP API tests (FastAPI TestClient over a real-commit database).

Covers:
- Health, item CRUD and threshold updates
- receive / consume / adjust / deduct request and response shapes
- Quantities serialized without storage scale
- Typed kernel errors mapped to status codes with {"code", "message", ...}
- Request-body validation errors in the same shape
- Correlation id propagation and 503 + Retry-After for storage failures
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from inventory_api import create_app
from inventory_api.dependencies import get_inventory_service
from inventory_config import DatabaseSettings, InventorySettings
from inventory_kernel.exceptions import StorageUnavailableError
from inventory_kernel.services.item_catalog import DEFAULT_CATEGORIES


@pytest.fixture
def settings():
    return InventorySettings(
        config_id="inventory-test",
        version=1,
        database=DatabaseSettings(url="sqlite://", create_schema=False),
        categories=DEFAULT_CATEGORIES,
    )


@pytest.fixture
def app(settings, session_factory, deterministic_clock):
    return create_app(
        settings=settings, session_factory=session_factory, clock=deterministic_clock
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def create_item(client):
    def _create(**overrides):
        payload = {
            "name": f"Item {uuid4().hex[:8]}",
            "category": "Nutrients",
            "unit_of_measure": "L",
            "tracking_mode": "batched",
        }
        payload.update(overrides)
        response = client.post("/items", json=payload)
        assert response.status_code == 201, response.text
        return response.json()

    return _create


@pytest.fixture
def receive(client):
    def _receive(item_id, lot_number, quantity, cost=1000, expires_on=None):
        payload = {
            "item_id": item_id,
            "quantity": str(quantity),
            "lot_number": lot_number,
            "cost_per_unit_minor": cost,
        }
        if expires_on is not None:
            payload["expires_on"] = expires_on.isoformat()
        response = client.post("/receive", json=payload)
        assert response.status_code == 200, response.text
        return response.json()

    return _receive


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "config_id": "inventory-test"}

    def test_correlation_id_echoed(self, client):
        response = client.get("/health", headers={"X-Correlation-ID": "abc-123"})

        assert response.headers["X-Correlation-ID"] == "abc-123"

    def test_correlation_id_generated(self, client):
        assert client.get("/health").headers["X-Correlation-ID"]


class TestItems:
    def test_create_and_get(self, client, create_item):
        item = create_item(min_stock="2.5", sku="NUT-1")

        response = client.get(f"/items/{item['id']}")

        assert response.status_code == 200
        body = response.json()
        assert body["sku"] == "NUT-1"
        assert body["tracking_mode"] == "batched"
        assert Decimal(body["min_stock"]) == Decimal("2.5")

    def test_unknown_category(self, client):
        response = client.post(
            "/items",
            json={"name": "X", "category": "Snacks", "unit_of_measure": "g"},
        )

        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"
        assert response.json()["field"] == "category"

    def test_unknown_field_rejected(self, client):
        response = client.post(
            "/items",
            json={"name": "X", "category": "Seeds", "unit_of_measure": "g", "colour": "red"},
        )

        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["errors"]

    def test_list_filters(self, client, create_item):
        seeds = create_item(category="Seeds", tracking_mode="simple")
        create_item(category="Tools")

        response = client.get("/items", params={"category": "Seeds"})

        assert [i["id"] for i in response.json()] == [seeds["id"]]

    def test_thresholds_and_delete(self, client, create_item):
        item = create_item()

        patched = client.patch(
            f"/items/{item['id']}/thresholds", json={"min_stock": "4"}
        )
        deleted = client.delete(f"/items/{item['id']}")
        missing = client.get(f"/items/{item['id']}")

        assert Decimal(patched.json()["min_stock"]) == Decimal("4")
        assert deleted.status_code == 204
        assert missing.status_code == 404
        assert missing.json()["code"] == "ITEM_NOT_FOUND"


class TestStockFlow:
    def test_receive_consume_and_stock(self, client, create_item, receive, today):
        item = create_item()
        a = receive(item["id"], "A", 5, expires_on=today + timedelta(days=5))
        receive(item["id"], "B", 10, cost=1500, expires_on=today + timedelta(days=50))

        response = client.post(
            "/consume",
            json={"item_id": item["id"], "quantity": "12", "reason": "feed"},
        )

        assert response.status_code == 200
        body = response.json()
        assert [(line["lot_number"], Decimal(line["quantity"])) for line in body["lines"]] == [
            ("A", Decimal("5")),
            ("B", Decimal("7")),
        ]
        assert body["lines"][0]["batch_id"] == a["batch"]["id"]
        assert body["total_cost_minor"] == 5 * 1000 + 7 * 1500
        assert body["is_replay"] is False

        stock = client.get(f"/stock/{item['id']}").json()
        assert Decimal(stock["on_hand"]) == Decimal("3")
        assert stock["valuation_minor"] == 3 * 1500
        assert [b["lot_number"] for b in stock["batches"]] == ["B"]

    def test_insufficient_stock(self, client, create_item, receive):
        item = create_item()
        receive(item["id"], "A", 5)
        receive(item["id"], "B", 5)

        response = client.post(
            "/consume",
            json={"item_id": item["id"], "quantity": "12", "reason": "feed"},
        )

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "INSUFFICIENT_STOCK"
        assert Decimal(str(body["shortfall"])) == Decimal("2")
        assert len(client.get(f"/items/{item['id']}/movements").json()) == 2

    def test_expired_blocked_then_overridden(self, client, create_item, receive, today):
        item = create_item()
        receive(item["id"], "OLD", 3, expires_on=today - timedelta(days=1))
        request = {"item_id": item["id"], "quantity": "1", "reason": "feed"}

        blocked = client.post("/consume", json=request)
        allowed = client.post(
            "/consume",
            json={**request, "allow_expired": True, "override_reason": "still sealed"},
        )

        assert blocked.status_code == 409
        assert blocked.json()["code"] == "EXPIRED_BATCH_BLOCKED"
        assert allowed.status_code == 200
        [movement] = client.get(
            f"/items/{item['id']}/movements", params={"movement_type": "consumption"}
        ).json()
        assert movement["override_reason"] == "still sealed"

    def test_idempotent_consume(self, client, create_item, receive):
        item = create_item()
        receive(item["id"], "A", 5, cost=1099)
        request = {
            "item_id": item["id"],
            "quantity": "5",
            "reason": "feed",
            "idempotency_key": "ui-click-1",
        }

        first = client.post("/consume", json=request).json()
        second = client.post("/consume", json=request).json()

        assert first["total_cost_minor"] == 5495
        assert second["is_replay"] is True
        assert second["operation_id"] == first["operation_id"]
        assert Decimal(client.get(f"/stock/{item['id']}").json()["on_hand"]) == 0

    def test_idempotency_conflict(self, client, create_item, receive):
        item = create_item()
        receive(item["id"], "A", 5)
        request = {"item_id": item["id"], "reason": "feed", "idempotency_key": "k"}

        client.post("/consume", json={**request, "quantity": "1"})
        response = client.post("/consume", json={**request, "quantity": "2"})

        assert response.status_code == 409
        assert response.json()["code"] == "IDEMPOTENCY_CONFLICT"

    def test_adjust(self, client, create_item, receive):
        item = create_item()
        received = receive(item["id"], "A", 5)

        response = client.post(
            "/adjust",
            json={
                "item_id": item["id"],
                "quantity_delta": "-2",
                "reason": "spill",
                "batch_id": received["batch"]["id"],
            },
        )

        assert response.status_code == 200
        assert response.json()["movement"]["movement_type"] == "adjustment"
        assert Decimal(client.get(f"/stock/{item['id']}").json()["on_hand"]) == 3

    def test_invalid_quantity(self, client, create_item):
        item = create_item()

        response = client.post(
            "/consume",
            json={"item_id": item["id"], "quantity": "0", "reason": "feed"},
        )

        assert response.status_code == 422
        assert response.json()["code"] == "INVALID_QUANTITY"

    def test_stock_of_unknown_item(self, client):
        response = client.get(f"/stock/{uuid4()}")

        assert response.status_code == 404
        assert response.json()["code"] == "ITEM_NOT_FOUND"


class TestDecimalSerialization:
    def test_stock_quantities_are_plain(self, client, create_item, receive):
        item = create_item()
        receive(item["id"], "A", "10")

        stock = client.get(f"/stock/{item['id']}").json()

        assert stock["on_hand"] == "10"
        assert stock["batches"][0]["remaining"] == "10"

    def test_empty_stock_is_zero(self, client, create_item, receive):
        item = create_item()
        receive(item["id"], "A", "2.5")
        client.post(
            "/consume", json={"item_id": item["id"], "quantity": "2.5", "reason": "feed"}
        )

        stock = client.get(f"/stock/{item['id']}").json()

        assert stock["on_hand"] == "0"
        assert stock["batches"] == []

    def test_movement_quantities_are_plain(self, client, create_item, receive):
        item = create_item()
        receive(item["id"], "A", "10")
        client.post(
            "/consume", json={"item_id": item["id"], "quantity": "0.25", "reason": "feed"}
        )

        movements = client.get(f"/items/{item['id']}/movements").json()

        assert sorted(m["quantity_delta"] for m in movements) == ["-0.25", "10"]

    def test_item_thresholds_are_plain(self, client, create_item):
        item = create_item(min_stock="2.50")

        assert item["min_stock"] == "2.5"
        assert item["reorder_multiple"] == "1"


class TestDeduct:
    def test_deducts_every_item(self, client, create_item, receive):
        first, second = create_item(), create_item()
        receive(first["id"], "A", 10, cost=100)
        receive(second["id"], "B", 10, cost=300)
        request = {
            "entries": [
                {"item_id": first["id"], "per_task_quantity": "2"},
                {
                    "item_id": second["id"],
                    "per_plant_quantity": "0.5",
                    "scaling_mode": "per_plant",
                },
            ],
            "plant_count": 4,
            "task_id": "feed-12",
        }

        response = client.post("/deduct", json=request)
        retried = client.post("/deduct", json=request)

        assert response.status_code == 200, response.text
        body = response.json()
        assert body["total_cost_minor"] == 2 * 100 + 2 * 300
        assert body["is_replay"] is False
        assert {i["item_id"]: i["total_quantity"] for i in body["items"]} == {
            first["id"]: "2",
            second["id"]: "2",
        }
        assert retried.json()["is_replay"] is True
        assert retried.json()["operation_id"] == body["operation_id"]
        assert client.get(f"/stock/{first['id']}").json()["on_hand"] == "8"

    def test_shortfall_maps_to_409(self, client, create_item, receive):
        plenty, scarce = create_item(), create_item()
        receive(plenty["id"], "A", 10)
        receive(scarce["id"], "B", 1)

        response = client.post(
            "/deduct",
            json={
                "entries": [
                    {"item_id": plenty["id"], "per_task_quantity": "1"},
                    {"item_id": scarce["id"], "per_task_quantity": "3"},
                ],
            },
        )

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "DEDUCTION_SHORTFALL"
        [shortage] = body["shortages"]
        assert shortage["item_id"] == scarce["id"]
        assert Decimal(str(shortage["required"])) == Decimal("3")
        assert [o["action"] for o in shortage["recovery_options"]] == [
            "partial",
            "skip",
            "adjust",
        ]
        assert client.get(f"/stock/{plenty['id']}").json()["on_hand"] == "10"

    def test_empty_entries_rejected(self, client):
        response = client.post("/deduct", json={"entries": []})

        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"


class TestReorderCandidates:
    def test_candidates(self, client, create_item):
        low = create_item(tracking_mode="simple", min_stock="10", reorder_multiple="6")
        client.post("/receive", json={"item_id": low["id"], "quantity": "1"})

        response = client.get("/reorder-candidates")

        assert response.status_code == 200
        [candidate] = response.json()
        assert candidate["item_id"] == low["id"]
        assert Decimal(candidate["suggested_quantity"]) == Decimal("12")


class TestStorageFailures:
    def test_retryable_error_maps_to_503(self, app, client):
        class Unavailable:
            def stock(self, item_id):
                raise StorageUnavailableError("stock", "connection refused")

        app.dependency_overrides[get_inventory_service] = lambda: Unavailable()
        try:
            response = client.get(f"/stock/{uuid4()}")
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "1"
        assert response.json()["code"] == "STORAGE_UNAVAILABLE"
