from __future__ import annotations

from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram


class LogMetrics:
    """Prometheus metrics for emitted records, error reports and access logs.

    Note: by default metrics land in prometheus_client's global registry, so build
    one LogMetrics per process (tests pass their own CollectorRegistry).
    """

    def __init__(self, service: str, registry: Optional[CollectorRegistry] = None):
        self.service = service
        registry = registry if registry is not None else REGISTRY

        # Records
        self.log_records_total = Counter(
            "log_records_total",
            "Log records written (by level)",
            ("service", "level"),
            registry=registry,
        )

        # Error tracking
        self.error_reports_total = Counter(
            "error_reports_total",
            "Errors handed to error tracking (exception / message style)",
            ("service", "mode"),
            registry=registry,
        )

        # HTTP access log
        self.http_requests_total = Counter(
            "http_requests_total",
            "HTTP requests seen by the access log (by status tier)",
            ("service", "method", "tier"),
            registry=registry,
        )
        self.http_request_latency_seconds = Histogram(
            "http_request_latency_seconds",
            "HTTP handler latency (seconds)",
            ("service", "method"),
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30),
            registry=registry,
        )

    def observe_record(self, level: str) -> None:
        self.log_records_total.labels(self.service, level).inc()

    def observe_report(self, mode: str) -> None:
        self.error_reports_total.labels(self.service, mode).inc()

    def observe_request(self, method: str, tier: str, latency_seconds: float) -> None:
        self.http_requests_total.labels(self.service, method, tier).inc()
        self.http_request_latency_seconds.labels(self.service, method).observe(latency_seconds)
