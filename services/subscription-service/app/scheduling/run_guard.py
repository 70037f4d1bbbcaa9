"""In-memory guard preventing overlapping or repeated daily checks."""

from __future__ import annotations

import time
from threading import Lock


class InMemoryRunGuard:
    """Thread-safe single-process lease keyed by run name."""

    def __init__(self, ttl_seconds: int) -> None:
        """Initialise the lease TTL and per-key expiry storage."""
        self._ttl = ttl_seconds
        self._leases: dict[str, float] = {}
        self._lock = Lock()

    def acquire(self, key: str) -> bool:
        """Return ``True`` when no live lease exists for ``key`` and take one."""
        now = time.monotonic()
        with self._lock:
            expires_at = self._leases.get(key)
            if expires_at is not None and expires_at > now:
                return False
            self._leases[key] = now + self._ttl
            return True

    def release(self, key: str) -> None:
        with self._lock:
            self._leases.pop(key, None)
