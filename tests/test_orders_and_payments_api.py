import re

from fastapi import FastAPI
from fastapi.testclient import TestClient

from kitchen_pos.core.database import get_db
from kitchen_pos.core.errors import install_error_handlers
from kitchen_pos.deps import get_caller
from kitchen_pos.routers.customers import router as customers_router
from kitchen_pos.routers.orders import router as orders_router
from kitchen_pos.routers.payments import router as payments_router
from tests.fixtures_data import build_session_factory, owner_caller, seed_restaurant, staff_caller


def _build_client(caller_for=owner_caller):
    db = build_session_factory()()
    seed = seed_restaurant(db)
    other = seed_restaurant(db, "beta")

    app = FastAPI()
    install_error_handlers(app)
    app.include_router(orders_router)
    app.include_router(payments_router)
    app.include_router(customers_router)
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_caller] = lambda: caller_for(seed)
    return TestClient(app), seed, other


def _burger_line(seed, quantity=2):
    return {"revenue_center_id": seed.dining_id, "menu_item_id": seed.menu_item_id, "quantity": quantity}


def test_create_order_returns_numbered_priced_order():
    client, seed, _ = _build_client()

    response = client.post(
        f"/api/restaurants/{seed.restaurant_id}/orders",
        json={"type": "takeaway", "items": [_burger_line(seed)], "total_amount": "25.50"},
    )

    assert response.status_code == 201
    body = response.json()
    assert re.fullmatch(r"\d{8}-0001", body["order_number"])
    assert body["subtotal"] == "25.50"
    assert body["total_amount"] == "25.50"
    assert body["payment_status"] == "pending"
    assert body["items"][0]["item_name"] == "Burger"
    assert body["items"][0]["unit_price"] == "12.75"


def test_item_rules_map_to_http_statuses():
    client, seed, other = _build_client()
    url = f"/api/restaurants/{seed.restaurant_id}/orders"

    both = client.post(url, json={"items": [{**_burger_line(seed), "combo_meal_id": seed.combo_id}]})
    neither = client.post(url, json={"items": [{"revenue_center_id": seed.dining_id, "quantity": 1}]})
    foreign = client.post(url, json={"items": [{**_burger_line(seed), "menu_item_id": other.menu_item_id}]})

    assert both.status_code == 400
    assert neither.status_code == 400
    assert foreign.status_code == 422
    assert "different restaurant" in foreign.json()["detail"]
    assert client.get(url).json() == []


def test_cross_tenant_order_access_is_forbidden():
    client, _, other = _build_client()

    response = client.get(f"/api/restaurants/{other.restaurant_id}/orders")

    assert response.status_code == 403
    assert response.json() == {"detail": "Restaurant not authorized"}


def test_served_order_rolls_up_into_customer_stats():
    client, seed, _ = _build_client()
    created = client.post(
        f"/api/restaurants/{seed.restaurant_id}/orders",
        json={"customer_id": seed.customer_id, "items": [_burger_line(seed)]},
    ).json()

    served = client.patch(f"/api/orders/{created['id']}/status", json={"status": "served"})
    customer = client.get(f"/api/customers/{seed.customer_id}").json()

    assert served.status_code == 200
    assert served.json()["status"] == "served"
    assert customer["total_orders"] == 1
    assert customer["total_spent"] == "25.50"

    client.patch(f"/api/orders/{created['id']}/status", json={"status": "cancelled"})
    customer = client.get(f"/api/customers/{seed.customer_id}").json()
    assert customer["total_orders"] == 0
    assert customer["total_spent"] == "0.00"


def test_invalid_status_is_rejected():
    client, seed, _ = _build_client()
    created = client.post(f"/api/restaurants/{seed.restaurant_id}/orders", json={"items": []}).json()

    response = client.patch(f"/api/orders/{created['id']}/status", json={"status": "teleported"})

    assert response.status_code == 400


def test_customer_profile_cannot_write_aggregates():
    client, seed, _ = _build_client()

    response = client.post(
        f"/api/restaurants/{seed.restaurant_id}/customers/find-or-create",
        json={"email": "CARLA@alpha.example.com", "phone": "555-0100"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == seed.customer_id
    assert body["phone"] == "555-0100"
    assert body["total_orders"] == 0


def test_payments_drive_derived_order_status():
    client, seed, _ = _build_client()
    order = client.post(
        f"/api/restaurants/{seed.restaurant_id}/orders",
        json={"items": [_burger_line(seed, quantity=1)], "tax_amount": "87.25"},
    ).json()
    assert order["total_amount"] == "100.00"

    client.post(f"/api/orders/{order['id']}/payments", json={"amount": "40", "method": "cash", "status": "completed"})
    second = client.post(f"/api/orders/{order['id']}/payments", json={"amount": "60", "method": "card"}).json()

    partial = client.get(f"/api/orders/{order['id']}").json()
    assert partial["payment_status"] == "partial"
    assert partial["amount_paid"] == "40.00"
    assert partial["balance_due"] == "60.00"

    client.patch(f"/api/payments/{second['id']}/status", json={"status": "completed"})
    completed = client.get(f"/api/orders/{order['id']}").json()
    assert completed["payment_status"] == "completed"
    assert completed["balance_due"] == "0.00"

    stats = client.get(f"/api/restaurants/{seed.restaurant_id}/payments/stats").json()
    assert stats["completed_amount"] == "100.00"


def test_staff_only_see_orders_touching_their_revenue_centers():
    db = build_session_factory()()
    seed = seed_restaurant(db)

    app = FastAPI()
    install_error_handlers(app)
    app.include_router(orders_router)
    app.dependency_overrides[get_db] = lambda: db
    current = {"caller": owner_caller(seed)}
    app.dependency_overrides[get_caller] = lambda: current["caller"]
    client = TestClient(app)

    url = f"/api/restaurants/{seed.restaurant_id}/orders"
    dining = client.post(url, json={"items": [_burger_line(seed)]}).json()
    bar = client.post(
        url, json={"items": [{"revenue_center_id": seed.bar_id, "combo_meal_id": seed.combo_id, "quantity": 1}]}
    ).json()

    current["caller"] = staff_caller(seed, seed.bar_id)
    visible = [order["id"] for order in client.get(url).json()]

    assert visible == [bar["id"]]
    assert client.get(f"/api/orders/{dining['id']}").status_code == 403
