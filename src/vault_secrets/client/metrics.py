"""Running request, cache and authentication metrics.

Each collector keeps running averages for quick inspection through
``snapshot()`` and mirrors them into a private Prometheus registry so that
several independently configured clients can be scraped side by side.
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

from .models import Metrics


def _running_average(current: float, count: int, value: float) -> float:
    return (current * count + value) / (count + 1)


class MetricsCollector:
    """Metrics owned by a single client instance."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        self._metrics = Metrics()
        self._cache_lookups = 0
        self._init_prometheus_metrics()

    def _init_prometheus_metrics(self) -> None:
        self.requests_total = Counter(
            "vault_requests_total",
            "Total number of Vault requests",
            ["method", "outcome"],
            registry=self.registry,
        )
        self.request_duration = Histogram(
            "vault_request_duration_seconds",
            "Vault request duration including retries",
            ["method"],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=self.registry,
        )
        self.cache_lookups_total = Counter(
            "vault_cache_lookups_total",
            "Secret cache lookups",
            ["result"],
            registry=self.registry,
        )
        self.auth_renewals_total = Counter(
            "vault_auth_renewals_total",
            "Successful authentications and token renewals",
            registry=self.registry,
        )
        self.token_expires_at = Gauge(
            "vault_token_expires_at_seconds",
            "Session token expiry as a Unix timestamp, 0 if non-expiring",
            registry=self.registry,
        )

    def record_request(self, duration_ms: float, success: bool, method: str = "GET") -> None:
        """Record one completed ``execute()`` call."""
        n = self._metrics.total_requests
        self._metrics.avg_response_time_ms = _running_average(
            self._metrics.avg_response_time_ms, n, duration_ms
        )
        self._metrics.error_rate = _running_average(
            self._metrics.error_rate, n, 0.0 if success else 1.0
        )
        self._metrics.total_requests = n + 1

        self.requests_total.labels(
            method=method, outcome="success" if success else "error"
        ).inc()
        self.request_duration.labels(method=method).observe(duration_ms / 1000)

    def record_cache_lookup(self, hit: bool) -> None:
        """Record a cache lookup; misses pull the hit rate down."""
        self._metrics.cache_hit_rate = _running_average(
            self._metrics.cache_hit_rate, self._cache_lookups, 1.0 if hit else 0.0
        )
        self._cache_lookups += 1
        self.cache_lookups_total.labels(result="hit" if hit else "miss").inc()

    def record_authentication(self, timestamp: float, expires_at: float | None) -> None:
        """Record a successful authentication or renewal."""
        self._metrics.auth_renewals += 1
        self._metrics.last_auth_time = timestamp
        self.auth_renewals_total.inc()
        self.set_token_expiry(expires_at)

    def set_token_expiry(self, expires_at: float | None) -> None:
        self._metrics.token_expires_at = expires_at
        self.token_expires_at.set(expires_at or 0)

    def snapshot(self) -> Metrics:
        """Return a copy of the current aggregates."""
        return self._metrics.model_copy()
