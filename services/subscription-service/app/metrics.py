"""Prometheus collectors for the subscription lifecycle."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

LIFECYCLE_TRANSITIONS = Counter(
    "subscription_lifecycle_transitions_total",
    "Lifecycle transitions fired by the daily check.",
    ["action"],
)
LIFECYCLE_FAILURES = Counter(
    "subscription_lifecycle_failures_total",
    "Per-account side effects that failed during the daily check.",
    ["stage"],
)
LIFECYCLE_LAST_CHECKED = Gauge(
    "subscription_lifecycle_last_checked_accounts",
    "Accounts scanned by the most recent daily check.",
)
