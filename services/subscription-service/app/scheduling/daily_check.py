"""Glue between a scheduler tick and the lifecycle runner."""

from __future__ import annotations

import logging
from datetime import date
from typing import Protocol

from ..config import Settings
from ..domain.runner import LifecycleReport, SubscriptionLifecycleRunner
from .run_guard import InMemoryRunGuard
from .redis_run_guard import RedisRunGuard

logger = logging.getLogger(__name__)


class RunGuard(Protocol):
    def acquire(self, key: str) -> bool: ...

    def release(self, key: str) -> None: ...


class RunAlreadyRecorded(Exception):
    """The check for this date is running or has already completed."""


def build_run_guard(settings: Settings) -> RunGuard:
    """Instantiate the configured guard backend, preferring Redis when available."""
    if settings.run_guard_backend == "redis" and settings.redis_url:
        try:
            import redis

            client = redis.from_url(settings.redis_url)
            client.ping()
            logger.info("run guard configured for redis backend at %s", settings.redis_url)
            return RedisRunGuard(client, ttl_seconds=settings.run_guard_ttl_seconds)
        except Exception as exc:  # pragma: no cover - depends on a live redis
            logger.warning("redis run guard unavailable, falling back to in-memory: %s", exc)

    logger.info("run guard using in-memory backend")
    return InMemoryRunGuard(ttl_seconds=settings.run_guard_ttl_seconds)


def guard_key(run_date: date) -> str:
    return f"subscription-check:{run_date.isoformat()}"


def execute_daily_check(
    runner: SubscriptionLifecycleRunner,
    guard: RunGuard,
    run_date: date,
    *,
    force: bool = False,
) -> LifecycleReport:
    """Run the check for ``run_date`` at most once unless ``force`` is set.

    The lease is kept after a successful run and dropped after a failed one so
    the scheduler's retry can go through.
    """
    key = guard_key(run_date)
    if not guard.acquire(key):
        if not force:
            raise RunAlreadyRecorded(f"subscription check for {run_date.isoformat()} already recorded")
        logger.warning("forcing subscription check for %s past the run guard", run_date.isoformat())
    try:
        return runner.run(run_date)
    except Exception:
        guard.release(key)
        raise
