"""
Cache client factory for recordmap.

The cache façade talks to any client exposing ``get``, ``set(key, value, ex=)``
and ``delete``; by default that is a Redis client built from ``CACHE_URL``.
"""

from __future__ import annotations

import threading
from typing import Any, Optional, Protocol, runtime_checkable

from redis import Redis

from recordmap.config import get_settings
from recordmap.utils.logging import get_logger

log = get_logger(__name__)


@runtime_checkable
class CacheClient(Protocol):
    def get(self, key: str) -> Optional[bytes]:
        ...

    def set(self, key: str, value: Any, ex: Optional[int] = None) -> Optional[bool]:
        ...

    def delete(self, *keys: str) -> int:
        ...


_client: Optional[Redis] = None
_client_lock = threading.Lock()


def get_cache_client() -> Redis:
    """
    Return the shared Redis client, creating it on first use.

    The client keeps raw bytes (``decode_responses=False``) since cached
    payloads may be compressed.
    """
    global _client
    with _client_lock:
        if _client is None:
            settings = get_settings()
            _client = Redis.from_url(
                settings.cache_url,
                decode_responses=False,
                socket_timeout=5.0,
                socket_connect_timeout=5.0,
                retry_on_timeout=True,
            )
            log.info("Created cache client")
        return _client


def reset_cache_client() -> None:
    """Drop the shared client; the next call to get_cache_client reconnects."""
    global _client
    with _client_lock:
        if _client is not None:
            _client.close()
        _client = None


__all__ = ["CacheClient", "get_cache_client", "reset_cache_client"]
