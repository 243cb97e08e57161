# ============================================================================
# POSTGRESQL DATASTORE INFRASTRUCTURE
# ============================================================================
# STATUS: Infrastructure - Primary datastore handle
# PURPOSE: Pooled PostgreSQL access with error capture for health probes
# ============================================================================
"""
PostgreSQL Datastore Infrastructure

Two layers:
- PostgresDatastore: owns a psycopg_pool.ConnectionPool for the lifetime
  of the process (opened by the app lifespan, shared across requests).
- PostgresSession: a per-evaluation handle checked out of the pool.
  Tracks its own query count and last error, so concurrent requests
  never see each other's numbers.

Sessions never let driver exceptions escape once suppress_errors() has
been called; failures are kept on `last_error` instead.

Usage:
    datastore = PostgresDatastore(conninfo)
    datastore.open()

    session = datastore.session()
    session.suppress_errors()
    if session.connect_check():
        rows = session.process_list()
    session.close()
"""

import logging
from typing import Any, Dict, List, Optional

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool, PoolTimeout

logger = logging.getLogger(__name__)

PROCESSLIST_QUERY = sql.SQL(
    "SELECT pid, usename, application_name, state FROM pg_stat_activity"
)


def mask_conninfo(conninfo: str) -> str:
    """Strip credentials from a connection string for logging."""
    if "@" in conninfo:
        return conninfo.split("@")[-1]
    if "password=" in conninfo:
        return conninfo.split("password=")[0] + "password=***"
    return conninfo


class PostgresDatastore:
    """
    Process-wide PostgreSQL pool.

    Usage:
        datastore = PostgresDatastore(conninfo, options_table="options")
        datastore.open()
        ...
        datastore.close()
    """

    def __init__(
        self,
        conninfo: str,
        options_table: str = "options",
        min_size: int = 1,
        max_size: int = 4,
        connect_timeout: float = 3.0,
        name: str = "primary",
    ):
        self.conninfo = conninfo
        self.options_table = options_table
        self.connect_timeout = connect_timeout
        self.name = name
        self._pool = ConnectionPool(
            conninfo=conninfo,
            min_size=min_size,
            max_size=max_size,
            kwargs={"autocommit": True, "row_factory": dict_row},
            open=False,
        )

    @property
    def pool(self) -> ConnectionPool:
        return self._pool

    def open(self) -> None:
        """Open the pool without waiting for connections."""
        logger.info(f"Opening {self.name} datastore pool: {mask_conninfo(self.conninfo)}")
        self._pool.open(wait=False)

    def close(self) -> None:
        self._pool.close()
        logger.info(f"{self.name} datastore pool closed")

    def session(self, is_fallback: bool = False) -> "PostgresSession":
        """Per-evaluation handle."""
        return PostgresSession(
            pool=self._pool,
            options_table=self.options_table,
            connect_timeout=self.connect_timeout,
            is_fallback=is_fallback,
        )


class PostgresSession:
    """
    Datastore handle for one evaluation.

    Holds at most one pooled connection between connect_check() and
    close().
    """

    def __init__(
        self,
        pool: ConnectionPool,
        options_table: str = "options",
        connect_timeout: float = 3.0,
        is_fallback: bool = False,
    ):
        self._pool = pool
        self._options_table = options_table
        self._connect_timeout = connect_timeout
        self._suppress = False
        self._conn: Optional[psycopg.Connection] = None
        self.is_fallback = is_fallback
        self.last_error: Optional[str] = None
        self.num_queries = 0

    @property
    def connection(self) -> Optional[psycopg.Connection]:
        return self._conn

    def suppress_errors(self, suppress: bool = True) -> bool:
        """Keep driver errors on `last_error` instead of raising."""
        previous = self._suppress
        self._suppress = suppress
        return previous

    def connect_check(self) -> bool:
        """Check out a connection and ping it."""
        if self._conn is not None:
            return True

        try:
            self._conn = self._pool.getconn(timeout=self._connect_timeout)
            self._conn.execute("SELECT 1")
            self.num_queries += 1
            return True
        except (PoolTimeout, psycopg.Error) as e:
            self._record_error(e)
            self._release()
            if not self._suppress:
                raise
            return False

    def process_list(self) -> List[Dict[str, Any]]:
        return self._fetch_all(PROCESSLIST_QUERY)

    def autoload_options(self) -> List[Dict[str, Any]]:
        """Configuration rows flagged for eager loading."""
        query = sql.SQL(
            "SELECT option_name, option_value FROM {} WHERE autoload = 'yes'"
        ).format(sql.Identifier(self._options_table))
        return self._fetch_all(query)

    def get_option(self, name: str) -> Optional[str]:
        query = sql.SQL(
            "SELECT option_value FROM {} WHERE option_name = %s LIMIT 1"
        ).format(sql.Identifier(self._options_table))
        rows = self._fetch_all(query, (name,))
        if not rows:
            return None
        return rows[0].get("option_value")

    def close(self) -> None:
        """Return the connection to the pool."""
        self._release()

    def _fetch_all(self, query, params: Optional[tuple] = None) -> List[Dict[str, Any]]:
        if self._conn is None:
            self.last_error = "No datastore connection available."
            return []

        try:
            with self._conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, params)
                self.num_queries += 1
                return list(cur.fetchall())
        except psycopg.Error as e:
            self.num_queries += 1
            self._record_error(e)
            if not self._suppress:
                raise
            return []

    def _record_error(self, error: Exception) -> None:
        self.last_error = str(error).strip() or type(error).__name__
        logger.debug(f"Datastore error captured: {self.last_error}")

    def _release(self) -> None:
        if self._conn is None:
            return
        try:
            self._pool.putconn(self._conn)
        except Exception as e:
            logger.warning(f"Failed to return datastore connection to pool: {e}")
        self._conn = None


__all__ = [
    "PostgresDatastore",
    "PostgresSession",
    "PROCESSLIST_QUERY",
    "mask_conninfo",
]
