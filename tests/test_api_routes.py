import pytest
from datetime import datetime
from fastapi.testclient import TestClient
from unittest.mock import patch, AsyncMock, MagicMock
from uuid import uuid4

from stockledger.core.exceptions import (
    ConcurrencyConflict,
    InsufficientStock,
    InvalidRelease,
    InventoryNotFound,
    ProductNotFound,
)
from stockledger.main import app
from stockledger.services.inventory_ledger import InventoryView, StockSummary


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def mock_ledger():
    with patch('stockledger.api.v1.inventory.ledger') as ledger:
        yield ledger


def make_record(product_id=None, quantity=100, reserved=0, **extra):
    record = MagicMock()
    record.product_id = product_id or uuid4()
    record.quantity = quantity
    record.reserved = reserved
    record.available = quantity - reserved
    record.reorder_level = extra.get("reorder_level", 10)
    record.reorder_quantity = extra.get("reorder_quantity", 50)
    record.last_sold_at = None
    record.last_restock_date = None
    record.updated_at = datetime(2026, 10, 1, 8, 30)
    return record


class RecordingTransaction:
    """Mocks 'async with in_transaction():' and remembers how the block ended."""
    def __init__(self):
        self.exc_type = None
        self.exited = False
    async def __aenter__(self):
        return object()
    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.exited = True
        self.exc_type = exc_type
        return False


def make_entry(entry_id, entry_type, change, reason):
    entry = MagicMock()
    entry.id = entry_id
    entry.type = entry_type
    entry.quantity_change = change
    entry.reason = reason
    entry.created_at = datetime(2026, 10, 1, 9, entry_id)
    return entry


class TestStockRoutes:

    def test_reserve_success(self, client, mock_ledger):
        product_id = uuid4()
        mock_ledger.reserve = AsyncMock(return_value=make_record(product_id, 100, 30))

        response = client.post(f"/api/v1/inventory/{product_id}/reserve", json={"quantity": 30})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["reserved"] == 30
        assert body["data"]["available"] == 70
        mock_ledger.reserve.assert_awaited_once_with(product_id, 30)

    def test_reserve_passes_reason(self, client, mock_ledger):
        product_id = uuid4()
        mock_ledger.reserve = AsyncMock(return_value=make_record(product_id, 10, 2))

        client.post(f"/api/v1/inventory/{product_id}/reserve", json={"quantity": 2, "reason": "CART_HOLD"})

        mock_ledger.reserve.assert_awaited_once_with(product_id, 2, reason="CART_HOLD")

    def test_reserve_sold_out_is_conflict(self, client, mock_ledger):
        mock_ledger.reserve = AsyncMock(side_effect=InsufficientStock("Insufficient stock"))

        response = client.post(f"/api/v1/inventory/{uuid4()}/reserve", json={"quantity": 150})

        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "insufficient_stock"
        assert error["message"] == "Insufficient stock"
        assert error["retryable"] is False

    def test_reserve_rejects_non_positive_quantity(self, client, mock_ledger):
        response = client.post(f"/api/v1/inventory/{uuid4()}/reserve", json={"quantity": 0})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "validation_error"

    def test_release_over_reserved(self, client, mock_ledger):
        mock_ledger.release = AsyncMock(side_effect=InvalidRelease("Cannot release more than reserved"))

        response = client.post(f"/api/v1/inventory/{uuid4()}/release", json={"quantity": 50})

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "invalid_release"

    def test_sell_forwards_policy_override(self, client, mock_ledger):
        product_id = uuid4()
        mock_ledger.sell = AsyncMock(return_value=make_record(product_id, 75))

        response = client.post(
            f"/api/v1/inventory/{product_id}/sell",
            json={"quantity": 25, "allow_unreserved": False},
        )

        assert response.status_code == 200
        assert response.json()["data"]["quantity"] == 75
        mock_ledger.sell.assert_awaited_once_with(product_id, 25, allow_unreserved=False)

    def test_concurrency_conflict_is_retryable(self, client, mock_ledger):
        product_id = uuid4()
        mock_ledger.restock = AsyncMock(side_effect=ConcurrencyConflict(product_id))

        response = client.post(f"/api/v1/inventory/{product_id}/restock", json={"quantity": 5})

        assert response.status_code == 409
        assert response.json()["error"]["retryable"] is True

    def test_missing_inventory_is_404(self, client, mock_ledger):
        product_id = uuid4()
        mock_ledger.restock = AsyncMock(side_effect=InventoryNotFound(product_id))

        response = client.post(f"/api/v1/inventory/{product_id}/restock", json={"quantity": 5})

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "not_found"


class TestQueryRoutes:

    def test_get_inventory_with_recent_entries(self, client, mock_ledger):
        product_id = uuid4()
        record = make_record(product_id, 100, 20)
        entries = [
            make_entry(2, "RESERVATION", -20, "ORDER_RESERVATION"),
            make_entry(1, "RESTOCK", 50, "MANUAL_RESTOCK"),
        ]
        mock_ledger.get = AsyncMock(return_value=InventoryView(record=record, entries=entries))

        response = client.get(f"/api/v1/inventory/{product_id}")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["product_id"] == str(product_id)
        assert [e["id"] for e in data["recent_entries"]] == [2, 1]
        assert data["recent_entries"][0]["type"] == "RESERVATION"

    def test_get_inventory_not_found(self, client, mock_ledger):
        mock_ledger.get = AsyncMock(return_value=None)

        response = client.get(f"/api/v1/inventory/{uuid4()}")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "not_found"

    def test_low_stock_listing(self, client, mock_ledger):
        record = make_record(quantity=3)
        record.product.name_en = "Plastic Chair"
        record.product.price_cents = 180000
        mock_ledger.list_low_stock = AsyncMock(return_value=[record])

        response = client.get("/api/v1/inventory/low-stock")

        assert response.status_code == 200
        item = response.json()["data"][0]
        assert item["name_en"] == "Plastic Chair"
        assert item["quantity"] == 3

    def test_summary(self, client, mock_ledger):
        mock_ledger.summarize = AsyncMock(return_value=StockSummary(
            total_products=2, total_quantity=40, total_available=36, total_reserved=4,
            avg_quantity=20.0, min_quantity=10, max_quantity=30,
        ))

        response = client.get("/api/v1/inventory/summary")

        assert response.status_code == 200
        assert response.json()["data"]["total_reserved"] == 4


class TestProductRoutes:

    def test_add_product_initializes_inventory(self, client, mock_ledger):
        product = MagicMock()
        product.id = uuid4()
        product.name_en = "Chapati"
        mock_ledger.initialize = AsyncMock(return_value=make_record(product.id, 120))

        with patch('stockledger.api.v1.inventory.in_transaction', return_value=RecordingTransaction()), \
                patch('stockledger.api.v1.inventory.Product.create', new_callable=AsyncMock) as mock_create:
            mock_create.return_value = product
            response = client.post("/api/v1/inventory/products", json={
                "slug": "chapati",
                "name_en": "Chapati",
                "price_cents": 5000,
                "initial_qty": 120,
            })

        assert response.status_code == 201
        assert response.json()["data"]["product_id"] == str(product.id)
        mock_ledger.initialize.assert_awaited_once_with(
            product.id, quantity=120, reorder_level=10, reorder_quantity=50,
        )

    def test_add_product_rolls_back_when_initialize_fails(self, client, mock_ledger):
        product = MagicMock()
        product.id = uuid4()
        mock_ledger.initialize = AsyncMock(side_effect=ProductNotFound(product.id))
        transaction = RecordingTransaction()

        with patch('stockledger.api.v1.inventory.in_transaction', return_value=transaction), \
                patch('stockledger.api.v1.inventory.Product.create', new_callable=AsyncMock) as mock_create:
            mock_create.return_value = product
            response = client.post("/api/v1/inventory/products", json={
                "slug": "pilau",
                "name_en": "Pilau",
                "price_cents": 40000,
            })

        assert response.status_code == 404
        # Product.create and initialize ran inside the same transaction, which saw the failure
        mock_create.assert_awaited_once()
        assert transaction.exited is True
        assert transaction.exc_type is ProductNotFound
