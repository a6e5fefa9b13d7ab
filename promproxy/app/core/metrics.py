from typing import Dict
from collections import defaultdict


class Metrics:
    """In-process counters for the proxy and its upstream queries."""

    def __init__(self) -> None:
        self._request_count: Dict[str, int] = defaultdict(int)
        self._error_count: Dict[str, int] = defaultdict(int)
        self._latency_sum: Dict[str, float] = defaultdict(float)
        self._latency_count: Dict[str, int] = defaultdict(int)
        self._auth_failures: Dict[str, int] = defaultdict(int)
        self._upstream_queries: int = 0
        self._upstream_failures: Dict[str, int] = defaultdict(int)
        self._upstream_latency_sum: float = 0.0

    def record_request(self, endpoint: str, status_code: int, latency_sec: float) -> None:
        """Record a request with status and latency."""
        self._request_count[f"{endpoint}_{status_code}"] += 1
        self._latency_sum[endpoint] += latency_sec
        self._latency_count[endpoint] += 1

        if status_code >= 400:
            self._error_count[f"{endpoint}_{status_code}"] += 1

    def record_auth_failure(self, reason: str) -> None:
        """Record a rejected Authorization header."""
        self._auth_failures[reason] += 1

    def record_upstream_query(self, latency_sec: float, error: str = "") -> None:
        """Record one Prometheus query; error is the failure class name, if any."""
        self._upstream_queries += 1
        self._upstream_latency_sum += latency_sec
        if error:
            self._upstream_failures[error] += 1

    def get_metrics(self) -> Dict:
        metrics: Dict = {
            "requests_total": dict(self._request_count),
            "errors_total": dict(self._error_count),
            "auth_failures_total": dict(self._auth_failures),
            "upstream_queries_total": self._upstream_queries,
            "upstream_failures_total": dict(self._upstream_failures),
        }

        avg_latencies: Dict[str, float] = {}
        for endpoint, total in self._latency_sum.items():
            count = self._latency_count.get(endpoint, 1)
            avg_latencies[f"{endpoint}_avg_seconds"] = total / count if count > 0 else 0.0

        metrics["latency_avg_seconds"] = avg_latencies
        metrics["upstream_latency_avg_seconds"] = (
            self._upstream_latency_sum / self._upstream_queries
            if self._upstream_queries > 0
            else 0.0
        )
        return metrics

    def reset(self) -> None:
        """Reset all metrics (for testing)."""
        self._request_count.clear()
        self._error_count.clear()
        self._latency_sum.clear()
        self._latency_count.clear()
        self._auth_failures.clear()
        self._upstream_queries = 0
        self._upstream_failures.clear()
        self._upstream_latency_sum = 0.0


metrics = Metrics()
