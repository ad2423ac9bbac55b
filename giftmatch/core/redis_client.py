"""Key-value storage for conversational context, backed by Redis."""

import json
import threading
import time
from typing import Any, Callable, Optional, Protocol

import redis

from giftmatch.config import get_settings

settings = get_settings()

# Create Redis client (connects lazily on first command)
redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=True,  # Automatically decode bytes to strings
)


class KeyValueStore(Protocol):
    """Minimal JSON key-value contract used by the context store."""

    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None: ...

    def delete(self, *keys: str) -> None: ...

    def keys(self, prefix: str) -> list[str]: ...


class RedisKeyValueStore:
    """JSON values in Redis with optional per-key TTL."""

    def __init__(self, client: redis.Redis):
        self.client = client

    def get(self, key: str) -> Optional[Any]:
        """Retrieve a stored value.

        Raises:
            json.JSONDecodeError: If the stored payload is not valid JSON
        """
        data = self.client.get(key)
        return json.loads(data) if data else None

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Store a value, expiring after ``ttl`` seconds when ttl is positive."""
        payload = json.dumps(value)
        if ttl:
            self.client.setex(key, ttl, payload)
        else:
            self.client.set(key, payload)

    def delete(self, *keys: str) -> None:
        if keys:
            self.client.delete(*keys)

    def keys(self, prefix: str) -> list[str]:
        return sorted(self.client.scan_iter(match=f"{prefix}*"))


class InMemoryKeyValueStore:
    """Process-local store with explicit TTL eviction.

    Expiry is driven by the injected clock, so tests can advance time without
    sleeping. Expired keys are dropped on read and by ``evict_expired()``.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: dict[str, tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()

    def _expired(self, expires_at: Optional[float]) -> bool:
        return expires_at is not None and self._clock() >= expires_at

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            payload, expires_at = entry
            if self._expired(expires_at):
                del self._data[key]
                return None
        return json.loads(payload)

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl if ttl else None
        with self._lock:
            self._data[key] = (json.dumps(value), expires_at)

    def set_raw(self, key: str, payload: str) -> None:
        """Store an undecoded payload (used to simulate corrupt records)."""
        with self._lock:
            self._data[key] = (payload, None)

    def delete(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._data.pop(key, None)

    def keys(self, prefix: str) -> list[str]:
        self.evict_expired()
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))

    def evict_expired(self) -> int:
        """Drop every expired key. Returns the number evicted."""
        with self._lock:
            expired = [k for k, (_, exp) in self._data.items() if self._expired(exp)]
            for key in expired:
                del self._data[key]
        return len(expired)


# Global store instance
kv_store = RedisKeyValueStore(redis_client)


def get_kv_store() -> KeyValueStore:
    """Dependency for getting the context key-value store."""
    return kv_store
