"""Redis-backed run guard shared by every replica of the service."""

from __future__ import annotations

from redis import Redis


class RedisRunGuard:
    """Distributed lease implemented with ``SET NX EX``."""

    def __init__(self, client: Redis, *, ttl_seconds: int, key_prefix: str = "run-guard") -> None:
        """Store the Redis client, lease TTL and key namespace."""
        self._client = client
        self._ttl = ttl_seconds
        self._key_prefix = key_prefix

    def acquire(self, key: str) -> bool:
        """Return ``True`` when this caller now owns the lease for ``key``."""
        return bool(self._client.set(self._redis_key(key), "1", nx=True, ex=self._ttl))

    def release(self, key: str) -> None:
        self._client.delete(self._redis_key(key))

    def _redis_key(self, key: str) -> str:
        return f"{self._key_prefix}:{key}"
