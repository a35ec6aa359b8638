"""Prometheus metrics for the recommendation strategies.

Every strategy reports how many books it produced, how long it took and
whether it failed; the aggregator additionally counts every time it had to
answer with the Top-Rated fallback.
"""
from __future__ import annotations

from prometheus_client import Counter, Histogram

from common.structured_logging import SERVICE_NAME

# ---------------------------------------------------------------------------
# Metric definitions (add new ones here)
# ---------------------------------------------------------------------------

STRATEGY_RESULTS = Histogram(
    "recommendation_strategy_results",
    "Number of books returned by a recommendation strategy",
    ["service", "strategy"],
    buckets=(0, 1, 2, 5, 10, 20, 50),
)

STRATEGY_LATENCY = Histogram(
    "recommendation_strategy_duration_seconds",
    "Latency of a recommendation strategy in seconds",
    ["service", "strategy"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10, 30),
)

STRATEGY_FAILURES = Counter(
    "recommendation_strategy_failures_total",
    "Strategy invocations that raised and were answered with an empty list",
    ["service", "strategy"],
)

FALLBACKS_TOTAL = Counter(
    "recommendation_fallbacks_total",
    "Blended requests answered with the top-rated fallback",
    ["service", "reason"],
)

__all__ = [
    "SERVICE_NAME",
    "STRATEGY_RESULTS",
    "STRATEGY_LATENCY",
    "STRATEGY_FAILURES",
    "FALLBACKS_TOTAL",
]
