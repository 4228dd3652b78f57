"""
Prometheus metrics for the request layer and the exchange-rate cache.

Counters are registered once at import time in the default registry.
Long-running consumers (or the CLI with ``--metrics-port``) can expose them
through :func:`start_metrics_server`.
"""

from __future__ import annotations

import logging

from prometheus_client import Counter, start_http_server

logger = logging.getLogger(__name__)


REFRESH_ATTEMPTS = Counter(
    "subdux_client_refresh_attempts_total",
    "Credential refresh operations started, by outcome",
    labelnames=["outcome"],
)
GATEWAY_RESPONSES = Counter(
    "subdux_client_responses_total",
    "HTTP responses received by the request gateway, by status class",
    labelnames=["status_class"],
)
RATE_CACHE_LOOKUPS = Counter(
    "subdux_client_rate_cache_lookups_total",
    "Exchange-rate cache lookups, by result (hit, miss, expired)",
    labelnames=["result"],
)
RATE_FETCHES = Counter(
    "subdux_client_rate_fetches_total",
    "Network fetches issued by the rate resolver",
    labelnames=["kind"],
)


def status_class(status: int) -> str:
    return f"{status // 100}xx"


def start_metrics_server(port: int) -> None:
    """Expose the default registry over HTTP on ``port``."""
    try:
        start_http_server(port)
    except OSError as exc:
        logger.warning("Failed to start Prometheus server on port %d: %s", port, exc)
        return
    logger.info("Metrics server listening on port %d", port)
