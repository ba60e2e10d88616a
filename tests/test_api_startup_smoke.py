from fastapi.testclient import TestClient


REQUIRED_ROUTES = {
    "/api/kitchen-owners/provision",
    "/api/auth/login",
    "/api/restaurants/{restaurant_id}/orders",
    "/api/orders/{order_id}/status",
    "/api/orders/{order_id}/items",
    "/api/orders/{order_id}/payments",
    "/api/restaurants/{restaurant_id}/customers",
    "/api/revenue-centers/{revenue_center_id}/business-hours",
    "/api/revenue-centers/{revenue_center_id}/open",
    "/api/restaurants/{restaurant_id}/menu/items",
    "/api/users/{user_id}/revenue-centers",
    "/api/internal/metrics",
}


def test_api_startup_and_router_registration(monkeypatch):
    from kitchen_pos import main

    monkeypatch.setattr(main, "_startup_tasks", lambda: None)

    with TestClient(main.app) as client:
        response = client.get("/")
        health = client.get("/health")
        docs_response = client.get("/docs")
        openapi_response = client.get("/openapi.json")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert health.json() == {"status": "ok"}
    assert response.headers["X-Request-ID"]
    assert docs_response.status_code == 200
    assert openapi_response.status_code == 200

    paths = {route.path for route in main.app.routes}
    assert REQUIRED_ROUTES.issubset(paths)


def test_protected_routes_require_bearer_token(monkeypatch):
    from kitchen_pos import main

    monkeypatch.setattr(main, "_startup_tasks", lambda: None)

    with TestClient(main.app) as client:
        response = client.get("/api/restaurants/1/orders")

    assert response.status_code == 401
