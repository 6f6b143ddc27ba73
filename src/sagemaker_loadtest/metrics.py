"""
Prometheus metrics for the load generator.

Exposed on a separate port when METRICS_PORT is set, so a running test can be
scraped and graphed alongside the endpoint's own CloudWatch metrics.
"""

from typing import Optional

import structlog
from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, start_http_server

logger = structlog.get_logger()

# Invocation buckets (seconds): audio inference, 100ms - 3min
REQUEST_DURATION_BUCKETS = (0.1, 0.25, 0.5, 0.75, 1.0, 1.5, 2.0, 3.0, 5.0, 10.0, 30.0, 60.0, 180.0)


class LoadTestMetrics:
    """Container for all load generator metrics."""

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        self.request_duration = Histogram(
            "sagemaker_loadtest_request_duration_seconds",
            "Endpoint invocation round-trip time",
            ["endpoint"],
            buckets=REQUEST_DURATION_BUCKETS,
            registry=registry,
        )

        self.requests_total = Counter(
            "sagemaker_loadtest_requests_total",
            "Endpoint invocations by HTTP status (0 = no response)",
            ["endpoint", "status"],
            registry=registry,
        )

        self.dropped_iterations = Counter(
            "sagemaker_loadtest_dropped_iterations_total",
            "Iterations not started because every VU was busy",
            ["endpoint"],
            registry=registry,
        )

        self.active_vus = Gauge(
            "sagemaker_loadtest_active_vus",
            "Virtual users currently running an iteration",
            ["endpoint"],
            registry=registry,
        )

        self.allocated_vus = Gauge(
            "sagemaker_loadtest_allocated_vus",
            "Virtual users allocated in the pool",
            ["endpoint"],
            registry=registry,
        )


class MetricsServer:
    """Manages the Prometheus metrics HTTP server."""

    def __init__(self, port: Optional[int] = None):
        self.port = port
        self._started = False

    def start(self):
        """Start the metrics HTTP server in a background thread, if a port is configured."""
        if self.port is None:
            return
        if self._started:
            logger.warning("Metrics server already started")
            return

        start_http_server(self.port)
        self._started = True
        logger.info("Metrics server started", port=self.port)


# Single instance on the default registry - import this in other modules
METRICS = LoadTestMetrics()
