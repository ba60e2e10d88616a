from __future__ import annotations

from dataclasses import dataclass
from threading import Lock


@dataclass
class RequestStats:
    total_requests: int = 0
    total_duration_ms: float = 0.0
    error_count: int = 0

    def record(self, status_code: int, duration_ms: float) -> None:
        self.total_requests += 1
        self.total_duration_ms += duration_ms
        if status_code >= 400:
            self.error_count += 1

    def as_dict(self) -> dict[str, float | int]:
        avg = self.total_duration_ms / self.total_requests if self.total_requests else 0.0
        return {
            "total_requests": self.total_requests,
            "total_duration_ms": round(self.total_duration_ms, 2),
            "avg_duration_ms": round(avg, 2),
            "error_count": self.error_count,
        }


class InMemoryRequestMetrics:
    """Process-local request counters, keyed by route and by restaurant."""

    def __init__(self) -> None:
        self._by_route: dict[tuple[str, str], RequestStats] = {}
        self._by_tenant: dict[str, RequestStats] = {}
        self._lock = Lock()

    def observe(
        self,
        endpoint: str,
        method: str,
        status_code: int,
        duration_ms: float,
        tenant_id: str | None = None,
    ) -> None:
        with self._lock:
            self._by_route.setdefault((endpoint, method), RequestStats()).record(status_code, duration_ms)
            if tenant_id:
                self._by_tenant.setdefault(tenant_id, RequestStats()).record(status_code, duration_ms)

    def snapshot(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            return {f"{method} {endpoint}": stats.as_dict() for (endpoint, method), stats in self._by_route.items()}

    def snapshot_per_tenant(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            return {tenant_id: stats.as_dict() for tenant_id, stats in self._by_tenant.items()}

    def reset(self) -> None:
        with self._lock:
            self._by_route.clear()
            self._by_tenant.clear()


request_metrics = InMemoryRequestMetrics()
