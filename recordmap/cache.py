"""
Cache façade for mapped records.

A thin shim over a key-value client. Values are serialized as JSON and, when
compression is enabled, zlib-compressed before they reach the client. There is
no invalidation policy: callers decide when to read, write and delete entries
around their CRUD calls.
"""

from __future__ import annotations

import json
import zlib
from typing import Any, Optional

from recordmap.config import get_settings
from recordmap.domain.models import Mapping, Record
from recordmap.infrastructure.cache_factory import CacheClient, get_cache_client
from recordmap.utils.logging import get_logger

log = get_logger(__name__)

# First byte of every stored payload: tells get() how to decode it.
_PLAIN = b"j"
_COMPRESSED = b"z"


def _encode_default(value: Any) -> Any:
    if isinstance(value, Record):
        return value.to_json_hash()
    raise TypeError(f"Object of type {type(value).__name__} cannot be cached")


def encode_value(value: Any, compress: bool) -> bytes:
    """
    Serialize ``value`` for the cache.

    Records are stored as their ``to_json_hash`` projection; any other value
    JSON cannot represent raises ``TypeError``.
    """
    payload = json.dumps(value, separators=(",", ":"), default=_encode_default).encode("utf-8")
    if compress:
        return _COMPRESSED + zlib.compress(payload)
    return _PLAIN + payload


def decode_value(raw: bytes) -> Any:
    marker, body = raw[:1], raw[1:]
    if marker == _COMPRESSED:
        body = zlib.decompress(body)
    elif marker != _PLAIN:
        raise ValueError(f"Unrecognized cache payload marker {marker!r}")
    return json.loads(body.decode("utf-8"))


class RecordCache:
    """
    Key-value access scoped to one mapping.

    Parameters
    ----------
    mapping : Mapping
        Supplies the expiry (``cache_expire_seconds``) and the name used by
        ``all_key``.
    client : CacheClient, optional
        Defaults to the shared Redis client.
    prefix : str, optional
        Key prefix for ``all_key``; defaults to ``CACHE_PREFIX``.
    compress : bool, optional
        Compress payloads; defaults to ``CACHE_COMPRESS``.
    """

    def __init__(
        self,
        mapping: Mapping,
        client: Optional[CacheClient] = None,
        prefix: Optional[str] = None,
        compress: Optional[bool] = None,
    ) -> None:
        settings = get_settings()
        self.mapping = mapping
        self._client = client
        self.prefix = settings.cache_prefix if prefix is None else prefix
        self.compress = settings.cache_compress if compress is None else compress
        if mapping.cache_expire_seconds is None:
            self.expire_seconds = settings.cache_default_expire
        else:
            self.expire_seconds = mapping.cache_expire_seconds

    @property
    def client(self) -> CacheClient:
        if self._client is None:
            self._client = get_cache_client()
        return self._client

    def get(self, key: str) -> Any:
        """The cached value, or None on a miss."""
        raw = self.client.get(key)
        if raw is None:
            log.debug("Cache miss", extra={"cache_key": key})
            return None
        return decode_value(raw)

    def set(self, key: str, value: Any) -> bool:
        """Store ``value`` with the mapping's expiry (0 keeps it until evicted)."""
        result = self.client.set(
            key,
            encode_value(value, self.compress),
            ex=self.expire_seconds or None,
        )
        return bool(result)

    def delete(self, key: str) -> None:
        self.client.delete(key)

    def all_key(self) -> str:
        """Key under which a snapshot of the whole table is cached."""
        return f"{self.prefix}{self.mapping.name}_all"


__all__ = ["RecordCache", "encode_value", "decode_value"]
