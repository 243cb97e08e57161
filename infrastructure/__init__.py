# ============================================================================
# INFRASTRUCTURE MODULE
# ============================================================================
# STATUS: Infrastructure - Datastore and cache handles
# PURPOSE: Concrete backends inspected by the health probes
# ============================================================================
"""
Infrastructure module for the health service.

Provides:
- PostgresDatastore / PostgresSession: pooled PostgreSQL handle
- RedisObjectCache: grouped JSON object cache on redis

Usage:
    from infrastructure import PostgresDatastore, RedisObjectCache

    datastore = PostgresDatastore(conninfo)
    datastore.open()
    session = datastore.session()

    cache = RedisObjectCache.from_url("redis://localhost:6379/0")
"""

from infrastructure.datastore import PostgresDatastore, PostgresSession
from infrastructure.object_cache import RedisObjectCache

__all__ = [
    "PostgresDatastore",
    "PostgresSession",
    "RedisObjectCache",
]
