"""Integration tests for the Marketplace API endpoints via TestClient."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from protean.exceptions import ExpectedVersionError
from protean.utils.globals import current_domain

from marketplace.api import cart_router, inventory_router, order_router, register_marketplace_exception_handlers
from marketplace.order.order import Order
from marketplace.order.status import OrderStatusMachine

ADDRESS = {"street": "12 Nile St", "city": "Cairo"}


@pytest.fixture()
def client(catalog, sellers, stock):
    app = FastAPI()
    app.include_router(cart_router)
    app.include_router(order_router)
    app.include_router(inventory_router)
    register_marketplace_exception_handlers(app)
    return TestClient(app)


def _add(client, product_id, quantity=1, customer_id="cust-1", **extra):
    response = client.post(f"/carts/{customer_id}/items", json={"product_id": product_id, "quantity": quantity, **extra})
    assert response.status_code == 200, response.text
    return response.json()


def _create_order(client, customer_id="cust-1", seller_id="seller-1", **overrides):
    body = {
        "customer_id": customer_id,
        "seller_id": seller_id,
        "payment_method": "cash",
        "delivery_address": ADDRESS,
    }
    body.update(overrides)
    return client.post("/orders", json=body)


class TestCartEndpoints:
    def test_empty_cart(self, client):
        response = client.get("/carts/cust-9")
        assert response.status_code == 200
        assert response.json()["items"] == []

    def test_add_items(self, client):
        _add(client, "prod-p", 2)
        data = _add(client, "prod-shirt", 1, variant_id="var-red-m", selected_options={"gift_wrap": True})

        assert data["subtotal"] == 2000 + 1700
        shirt = next(i for i in data["items"] if i["product_id"] == "prod-shirt")
        assert shirt["selected_options"] == {"gift_wrap": True}
        assert shirt["line_total"] == 1700

    def test_update_and_remove(self, client):
        _add(client, "prod-p", 1)
        _add(client, "prod-q", 1)

        response = client.put("/carts/cust-1/items/prod-p", json={"quantity": 3})
        assert response.json()["subtotal"] == 3000 + 250

        response = client.delete("/carts/cust-1/items/prod-q")
        assert [i["product_id"] for i in response.json()["items"]] == ["prod-p"]

    def test_clear(self, client):
        _add(client, "prod-p", 1)
        response = client.delete("/carts/cust-1")
        assert response.json()["items"] == []

    def test_unknown_product_is_404(self, client):
        response = client.post("/carts/cust-1/items", json={"product_id": "prod-missing", "quantity": 1})
        assert response.status_code == 404

    def test_inactive_product_is_409(self, client):
        response = client.post("/carts/cust-1/items", json={"product_id": "prod-draft", "quantity": 1})
        assert response.status_code == 409

    def test_insufficient_stock_is_422(self, client):
        response = client.post("/carts/cust-1/items", json={"product_id": "prod-p", "quantity": 11})
        assert response.status_code == 422
        assert response.json()["available"] == 10


class TestOrderEndpoints:
    def test_create_order(self, client):
        _add(client, "prod-p", 2)
        response = _create_order(client)

        assert response.status_code == 201, response.text
        data = response.json()
        assert data["status"] == "pending"
        assert data["payment_status"] == "pending"
        assert data["pricing"]["total"] == 2500
        assert data["order_number"].startswith("ORD-")
        assert data["status_history"][0]["notes"] == "Order created"

    def test_empty_cart_is_409(self, client):
        response = _create_order(client)
        assert response.status_code == 409
        assert response.json()["error"] == "Cart is empty"

    def test_unknown_payment_method_is_400(self, client):
        _add(client, "prod-p", 1)
        response = _create_order(client, payment_method="barter")
        assert response.status_code == 400

    def test_insufficient_wallet_is_422(self, client):
        _add(client, "prod-p", 1)
        response = _create_order(client, payment_method="wallet")
        assert response.status_code == 422
        assert response.json()["resource"] == "wallet balance"

    def test_full_lifecycle(self, client):
        _add(client, "prod-p", 2)
        order_id = _create_order(client).json()["order_id"]

        for status in ("confirmed", "preparing", "ready", "picked_up", "delivering", "delivered"):
            response = client.put(f"/orders/{order_id}/status", json={"status": status, "actor": "seller-1"})
            assert response.status_code == 200, response.text

        data = client.get(f"/orders/{order_id}").json()
        assert data["status"] == "delivered"
        assert data["payment_status"] == "paid"
        assert data["revision"] == 6

        stock = client.get("/inventory/prod-p").json()
        assert stock["quantity"] == 8
        assert stock["reserved_quantity"] == 0

    def test_invalid_transition_is_409(self, client):
        _add(client, "prod-p", 1)
        order_id = _create_order(client).json()["order_id"]
        response = client.put(f"/orders/{order_id}/status", json={"status": "delivered"})
        assert response.status_code == 409
        assert response.json()["current_state"] == "pending"

    def test_stale_revision_is_409(self, client):
        _add(client, "prod-p", 1)
        order_id = _create_order(client).json()["order_id"]
        client.put(f"/orders/{order_id}/status", json={"status": "confirmed", "expected_revision": 0})
        response = client.put(f"/orders/{order_id}/status", json={"status": "preparing", "expected_revision": 0})
        assert response.status_code == 409
        assert response.json()["actual_revision"] == 1

    def test_write_lost_to_another_writer_is_409(self, client, monkeypatch):
        _add(client, "prod-p", 1)
        order_id = _create_order(client).json()["order_id"]
        load = OrderStatusMachine._load_for_write

        def load_then_rival_save(machine, order_id, expected_revision):
            loaded = load(machine, order_id, expected_revision)
            repo = current_domain.repository_for(Order)
            rival = repo.get(order_id)
            rival.assign_courier("courier-9")
            repo.add(rival)
            return loaded

        monkeypatch.setattr(OrderStatusMachine, "_load_for_write", load_then_rival_save)
        response = client.put(f"/orders/{order_id}/status", json={"status": "confirmed"})

        assert response.status_code == 409
        assert (response.json()["expected_revision"], response.json()["actual_revision"]) == (0, 1)

    def test_stale_save_rejected_by_protean_is_409(self):
        app = FastAPI()
        register_marketplace_exception_handlers(app)

        @app.post("/stale")
        async def stale():
            raise ExpectedVersionError("Wrong expected version: 0 (Aggregate: Order(ord-1), Version: 1)")

        response = TestClient(app).post("/stale")
        assert response.status_code == 409
        assert "Wrong expected version" in response.json()["error"]

    def test_cancel(self, client):
        _add(client, "prod-p", 3)
        order_id = _create_order(client).json()["order_id"]

        response = client.post(f"/orders/{order_id}/cancel", json={"reason": "Changed my mind", "actor": "cust-1"})
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert client.get("/inventory/prod-p").json()["available_quantity"] == 10

    def test_assign_courier(self, client):
        _add(client, "prod-p", 1)
        order_id = _create_order(client).json()["order_id"]
        response = client.put(f"/orders/{order_id}/courier", json={"courier_id": "courier-7"})
        assert response.json()["courier_id"] == "courier-7"

    def test_unknown_order_is_404(self, client):
        assert client.get("/orders/ord-missing").status_code == 404

    def test_list_orders(self, client):
        _add(client, "prod-p", 1)
        _create_order(client)
        _add(client, "prod-r", 1)
        _create_order(client, seller_id="seller-2")

        assert client.get("/orders", params={"customer_id": "cust-1"}).json()["count"] == 2
        assert client.get("/orders", params={"seller_id": "seller-2"}).json()["count"] == 1
        assert client.get("/orders", params={"customer_id": "cust-1", "status": "confirmed"}).json()["count"] == 0

    def test_list_needs_exactly_one_owner(self, client):
        assert client.get("/orders").status_code == 400


class TestInventoryEndpoints:
    def test_initialize_stock(self, client):
        response = client.post("/inventory", json={"product_id": "prod-new", "seller_id": "seller-1", "quantity": 12})
        assert response.status_code == 201
        assert response.json()["available_quantity"] == 12

    def test_initialize_twice_is_409(self, client):
        response = client.post("/inventory", json={"product_id": "prod-p", "seller_id": "seller-1", "quantity": 1})
        assert response.status_code == 409

    def test_availability(self, client):
        assert client.get("/inventory/prod-r/availability", params={"quantity": 5}).json()["available"] is True
        assert client.get("/inventory/prod-r/availability", params={"quantity": 6}).json()["available"] is False

    def test_reserve_and_release(self, client):
        response = client.post("/inventory/prod-p/reserve", json={"quantity": 4, "order_id": "ord-x"})
        assert response.json()["reserved_quantity"] == 4

        response = client.post("/inventory/prod-p/release", json={"quantity": 6, "order_id": "ord-x"})
        assert response.json()["released"] == 4
        assert response.json()["stock"]["reserved_quantity"] == 0

    def test_over_reserve_is_422(self, client):
        response = client.post("/inventory/prod-r/reserve", json={"quantity": 6})
        assert response.status_code == 422

    def test_add_and_remove_stock(self, client):
        client.post("/inventory/prod-p/add", json={"quantity": 5, "reason": "Restock"})
        response = client.post("/inventory/prod-p/remove", json={"quantity": 3, "reason": "Damaged", "movement_type": "adjustment"})
        assert response.json()["quantity"] == 12

        movements = client.get("/inventory/prod-p/movements").json()
        assert [m["movement_type"] for m in movements] == ["in", "in", "adjustment"]
        assert movements[-1]["on_hand_after"] == 12

    def test_bad_movement_type_is_400(self, client):
        response = client.post("/inventory/prod-p/add", json={"quantity": 1, "reason": "x", "movement_type": "teleport"})
        assert response.status_code == 400

    def test_unknown_record_is_404(self, client):
        assert client.get("/inventory/prod-none").status_code == 404
