"""
Infrastructure package for recordmap.

Centralizes database and cache connectivity (pooling, dedicated connections,
cache clients). Keep this layer focused on I/O and resource management,
decoupled from mapping logic.
"""

from recordmap.infrastructure.cache_factory import CacheClient, get_cache_client
from recordmap.infrastructure.db_factory import (
    ConnectionProvider,
    PoolManager,
    default_connection,
    get_sync_connection,
)

__all__ = [
    "CacheClient",
    "ConnectionProvider",
    "PoolManager",
    "default_connection",
    "get_cache_client",
    "get_sync_connection",
]
