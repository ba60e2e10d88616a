from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from kitchen_pos.core.metrics import request_metrics
from kitchen_pos.core.request_context import clear_request_context, set_request_context

logger = logging.getLogger(__name__)

# Path parameters worth copying into the "request completed" line.
_LOGGED_PATH_PARAMS = ("order_id", "revenue_center_id", "customer_id")


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Request id, timing, per-route and per-restaurant metrics, one log line per request.

    Metrics are keyed by the matched route template (``/api/orders/{order_id}``)
    rather than the raw path so order ids do not fan out into separate series.
    """

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        set_request_context(request_id=request_id)

        status_code = 500
        method = request.method
        response = None

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            endpoint = _route_template(request)
            tenant_id = _extract_tenant_id(request)
            user_id = _extract_user_id(request)
            duration_ms = round((time.perf_counter() - start) * 1000, 2)

            set_request_context(tenant_id=tenant_id, user_id=user_id)
            request_metrics.observe(
                endpoint=endpoint,
                method=method,
                status_code=status_code,
                duration_ms=duration_ms,
                tenant_id=tenant_id,
            )

            extra = {
                "endpoint": endpoint,
                "method": method,
                "status_code": status_code,
                "duration_ms": duration_ms,
                "role": _extract_role(request),
            }
            for name in _LOGGED_PATH_PARAMS:
                value = request.path_params.get(name)
                if value is not None:
                    extra[name] = value
            logger.info("request completed", extra=extra)

            if response is not None:
                response.headers["X-Request-ID"] = request_id

            clear_request_context()


def _route_template(request: Request) -> str:
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path or request.url.path


def _extract_tenant_id(request: Request) -> str | None:
    # A super admin has no restaurant of their own; fall back to the one in the URL.
    user = getattr(request.state, "user", None)
    restaurant_id = getattr(user, "restaurant_id", None) if user is not None else None
    if restaurant_id is not None:
        return str(restaurant_id)
    path_tenant = request.path_params.get("restaurant_id")
    if path_tenant:
        return str(path_tenant)
    return None


def _extract_user_id(request: Request) -> str | None:
    user = getattr(request.state, "user", None)
    if user is None:
        return None
    user_id = getattr(user, "id", None)
    return str(user_id) if user_id is not None else None


def _extract_role(request: Request) -> str | None:
    user = getattr(request.state, "user", None)
    return getattr(user, "role", None) if user is not None else None
