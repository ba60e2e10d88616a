import json
import logging

from fastapi import FastAPI
from fastapi.testclient import TestClient

from kitchen_pos.core.logging_setup import JsonFormatter
from kitchen_pos.core.metrics import InMemoryRequestMetrics, request_metrics
from kitchen_pos.core.request_context import clear_request_context, set_request_context
from kitchen_pos.middleware.observability import ObservabilityMiddleware


def _record(message, **extra):
    record = logging.LogRecord("kitchen_pos.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_masks_secrets_and_carries_context():
    set_request_context(request_id="req-1", tenant_id=7, user_id=3)
    try:
        line = JsonFormatter().format(_record("login password=hunter2 token=abc", order_id=11))
    finally:
        clear_request_context()

    payload = json.loads(line)
    assert payload["request_id"] == "req-1"
    assert payload["tenant_id"] == "7"
    assert payload["user_id"] == "3"
    assert payload["order_id"] == 11
    assert "hunter2" not in payload["message"]
    assert "abc" not in payload["message"]


def test_metrics_snapshot_per_route_and_tenant():
    metrics = InMemoryRequestMetrics()
    metrics.observe("/api/orders", "GET", 200, 10.0, tenant_id="1")
    metrics.observe("/api/orders", "GET", 500, 30.0, tenant_id="1")

    route = metrics.snapshot()["GET /api/orders"]
    assert route["total_requests"] == 2
    assert route["error_count"] == 1
    assert route["avg_duration_ms"] == 20.0
    assert metrics.snapshot_per_tenant()["1"]["total_requests"] == 2


def test_middleware_echoes_request_id_and_records_metrics():
    request_metrics.reset()
    app = FastAPI()
    app.add_middleware(ObservabilityMiddleware)

    @app.get("/ping")
    def ping():
        return {"ok": True}

    client = TestClient(app)
    response = client.get("/ping", headers={"X-Request-ID": "abc-123"})

    assert response.headers["X-Request-ID"] == "abc-123"
    assert request_metrics.snapshot()["GET /ping"]["total_requests"] == 1


def test_middleware_keys_metrics_by_route_template_and_restaurant(caplog):
    request_metrics.reset()
    app = FastAPI()
    app.add_middleware(ObservabilityMiddleware)

    @app.get("/api/restaurants/{restaurant_id}/orders/{order_id}")
    def read_order(restaurant_id: int, order_id: int):
        return {"restaurant_id": restaurant_id, "order_id": order_id}

    client = TestClient(app)
    with caplog.at_level(logging.INFO, logger="kitchen_pos.middleware.observability"):
        client.get("/api/restaurants/4/orders/11")
        client.get("/api/restaurants/4/orders/12")

    routes = request_metrics.snapshot()
    assert routes["GET /api/restaurants/{restaurant_id}/orders/{order_id}"]["total_requests"] == 2
    assert "GET /api/restaurants/4/orders/11" not in routes
    assert request_metrics.snapshot_per_tenant()["4"]["total_requests"] == 2

    completed = [record for record in caplog.records if record.getMessage() == "request completed"]
    assert [record.order_id for record in completed] == ["11", "12"]
    assert completed[0].endpoint == "/api/restaurants/{restaurant_id}/orders/{order_id}"
    request_metrics.reset()
