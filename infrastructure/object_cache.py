# ============================================================================
# OBJECT CACHE INFRASTRUCTURE
# ============================================================================
# STATUS: Infrastructure - Redis-backed object cache
# PURPOSE: Grouped key/value cache with hit/miss accounting
# ============================================================================
"""
Object Cache Infrastructure

Redis-backed object cache used by the application and inspected by the
health probes. Keys are namespaced by group (`<group>:<key>`) and values
are stored JSON-encoded, so integers written by the application come back
as integers while rows read from the datastore are always strings.

One RedisObjectCache is built per evaluation around the process-wide
redis client, so the hit/miss counters describe the current request only.

Capabilities (see health.diagnostics):
- diagnostics(): rich server/client details
- redis_status(): plain connected / not connected
"""

import json
import logging
from typing import Any, Dict, Optional

import redis

from health.core import CacheStatus, STATUS_UNKNOWN

logger = logging.getLogger(__name__)

DEFAULT_GROUP = "default"


class RedisObjectCache:
    """Grouped JSON cache over a redis-py client."""

    def __init__(self, client: redis.Redis, key_prefix: str = ""):
        self._client = client
        self._key_prefix = key_prefix
        self.cache_hits = 0
        self.cache_misses = 0

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisObjectCache":
        return cls(redis.Redis.from_url(url, socket_timeout=2.0, socket_connect_timeout=2.0), **kwargs)

    @property
    def client(self) -> redis.Redis:
        return self._client

    @property
    def redis_client(self) -> str:
        """Identifier of the backing client library and class."""
        client_cls = type(self._client)
        return f"{client_cls.__module__}.{client_cls.__name__}"

    def _key(self, key: str, group: str) -> str:
        return f"{self._key_prefix}{group or DEFAULT_GROUP}:{key}"

    def set(self, key: str, value: Any, group: str = DEFAULT_GROUP, expire: int = 0) -> bool:
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.warning(f"Refusing to cache unserializable value for {key}: {e}")
            return False

        try:
            return bool(self._client.set(self._key(key, group), payload, ex=expire or None))
        except redis.RedisError as e:
            logger.warning(f"Object cache set failed for {key}: {e}")
            return False

    def get(self, key: str, group: str = DEFAULT_GROUP) -> Any:
        """Cached value, or None on a miss or error."""
        try:
            raw = self._client.get(self._key(key, group))
        except redis.RedisError as e:
            logger.warning(f"Object cache get failed for {key}: {e}")
            self.cache_misses += 1
            return None

        if raw is None:
            self.cache_misses += 1
            return None

        self.cache_hits += 1
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            return raw.decode() if isinstance(raw, bytes) else raw

    def flush(self) -> bool:
        """Drop every key in the current redis database."""
        return bool(self._client.flushdb())

    def redis_status(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False

    def diagnostics(self) -> Dict[str, Optional[str]]:
        """Server and client details for the health report."""
        connected = self.redis_status()
        server_version = STATUS_UNKNOWN
        if connected:
            try:
                server_version = self._client.info("server").get("redis_version", STATUS_UNKNOWN)
            except redis.RedisError as e:
                logger.debug(f"Unable to read redis server info: {e}")

        return {
            "cache": type(self).__name__,
            "connector": type(self._client.connection_pool).__name__,
            "redis_py": redis.__version__,
            "server_version": server_version,
            "status": (CacheStatus.CONNECTED if connected else CacheStatus.NOT_CONNECTED).value,
        }


__all__ = ["RedisObjectCache", "DEFAULT_GROUP"]
