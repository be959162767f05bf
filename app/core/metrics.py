from __future__ import annotations

from dataclasses import dataclass
from threading import Lock

MAX_TRACKED_MERCHANTS = 500
OTHER_MERCHANTS_KEY = "other"


@dataclass
class EndpointMetric:
    total_requests: int = 0
    total_duration_ms: float = 0.0
    max_duration_ms: float = 0.0
    error_count: int = 0

    def add(self, status_code: int, duration_ms: float) -> None:
        self.total_requests += 1
        self.total_duration_ms += duration_ms
        self.max_duration_ms = max(self.max_duration_ms, duration_ms)
        if status_code >= 400:
            self.error_count += 1

    @property
    def avg_duration_ms(self) -> float:
        if not self.total_requests:
            return 0.0
        return self.total_duration_ms / self.total_requests


class InMemoryRequestMetrics:
    """Contadores por rota e por merchant, vivos só enquanto o processo vive."""

    def __init__(self, max_merchants: int = MAX_TRACKED_MERCHANTS) -> None:
        self._max_merchants = max_merchants
        self._by_route: dict[str, EndpointMetric] = {}
        self._by_merchant: dict[str, EndpointMetric] = {}
        self._lock = Lock()

    def observe(
        self,
        endpoint: str,
        method: str,
        status_code: int,
        duration_ms: float,
        merchant_id: str | None = None,
    ) -> None:
        with self._lock:
            self._by_route.setdefault(f"{method} {endpoint}", EndpointMetric()).add(status_code, duration_ms)
            merchant_key = self._merchant_key(merchant_id)
            if merchant_key:
                self._by_merchant.setdefault(merchant_key, EndpointMetric()).add(status_code, duration_ms)

    def _merchant_key(self, merchant_id: str | None) -> str | None:
        # header vem do cliente: só ids numéricos, acima do limite tudo cai em "other"
        if not merchant_id or not merchant_id.isdigit():
            return None
        if merchant_id in self._by_merchant or len(self._by_merchant) < self._max_merchants:
            return merchant_id
        return OTHER_MERCHANTS_KEY

    def snapshot(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            return {
                key: {
                    "total_requests": metric.total_requests,
                    "total_duration_ms": round(metric.total_duration_ms, 2),
                    "avg_duration_ms": round(metric.avg_duration_ms, 2),
                    "max_duration_ms": round(metric.max_duration_ms, 2),
                    "error_count": metric.error_count,
                }
                for key, metric in self._by_route.items()
            }

    def snapshot_per_merchant(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            return {
                merchant_id: {
                    "total_requests": metric.total_requests,
                    "error_count": metric.error_count,
                    "avg_duration_ms": round(metric.avg_duration_ms, 2),
                }
                for merchant_id, metric in self._by_merchant.items()
            }

    def reset(self) -> None:
        with self._lock:
            self._by_route.clear()
            self._by_merchant.clear()


request_metrics = InMemoryRequestMetrics()
