# ============================================================================
# INFRASTRUCTURE ADAPTER TESTS
# ============================================================================
# STATUS: Tests - PostgreSQL and redis handles with mocked clients
# PURPOSE: Verify error capture, query accounting and cache encoding
# ============================================================================
"""
Infrastructure Adapter Tests

psycopg_pool and redis clients are replaced with MagicMock; nothing here
opens a socket.

Run with:
    pytest tests/test_infrastructure.py -v
"""

import psycopg
import pytest
import redis
from psycopg_pool import PoolTimeout
from unittest.mock import MagicMock, patch

from infrastructure.datastore import PostgresDatastore, PostgresSession, mask_conninfo
from infrastructure.object_cache import RedisObjectCache


# ============================================================================
# HELPERS
# ============================================================================

def _make_pool(rows=None, execute_error=None):
    """Pool whose connection yields `rows` from every cursor query."""
    cursor = MagicMock()
    cursor.fetchall.return_value = rows or []
    if execute_error is not None:
        cursor.execute.side_effect = execute_error

    conn = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor

    pool = MagicMock()
    pool.getconn.return_value = conn
    return pool, conn, cursor


def _make_session(pool, suppress=True):
    session = PostgresSession(pool, options_table="options", connect_timeout=1.0)
    session.suppress_errors(suppress)
    return session


# ============================================================================
# POSTGRES SESSION
# ============================================================================

class TestPostgresSession:

    def test_connect_check_pings(self):
        pool, conn, _ = _make_pool()
        session = _make_session(pool)

        assert session.connect_check() is True
        pool.getconn.assert_called_once_with(timeout=1.0)
        conn.execute.assert_called_once_with("SELECT 1")
        assert session.num_queries == 1
        assert session.connection is conn

    def test_connect_timeout_captured(self):
        pool = MagicMock()
        pool.getconn.side_effect = PoolTimeout("couldn't get a connection after 1.00 sec")
        session = _make_session(pool)

        assert session.connect_check() is False
        assert "couldn't get a connection" in session.last_error
        assert session.connection is None
        pool.putconn.assert_not_called()

    def test_failed_ping_returns_connection(self):
        pool, conn, _ = _make_pool()
        conn.execute.side_effect = psycopg.OperationalError("server closed the connection")
        session = _make_session(pool)

        assert session.connect_check() is False
        assert session.last_error == "server closed the connection"
        pool.putconn.assert_called_once_with(conn)

    def test_errors_raise_without_suppression(self):
        pool = MagicMock()
        pool.getconn.side_effect = PoolTimeout("timeout")
        session = _make_session(pool, suppress=False)

        with pytest.raises(PoolTimeout):
            session.connect_check()

    def test_query_without_connection(self):
        session = _make_session(MagicMock())

        assert session.process_list() == []
        assert session.last_error == "No datastore connection available."
        assert session.num_queries == 0

    def test_process_list_rows(self):
        pool, _, cursor = _make_pool(rows=[{"pid": 42, "state": "active"}])
        session = _make_session(pool)
        session.connect_check()

        assert session.process_list() == [{"pid": 42, "state": "active"}]
        assert session.num_queries == 2
        cursor.execute.assert_called_once()

    def test_query_error_captured(self):
        pool, _, _ = _make_pool(execute_error=psycopg.ProgrammingError("relation does not exist"))
        session = _make_session(pool)
        session.connect_check()

        assert session.autoload_options() == []
        assert session.last_error == "relation does not exist"
        assert session.num_queries == 2

    def test_get_option(self):
        pool, _, cursor = _make_pool(rows=[{"option_value": "57155"}])
        session = _make_session(pool)
        session.connect_check()

        assert session.get_option("db_version") == "57155"
        assert cursor.execute.call_args.args[1] == ("db_version",)

    def test_get_option_missing(self):
        pool, _, _ = _make_pool(rows=[])
        session = _make_session(pool)
        session.connect_check()

        assert session.get_option("nope") is None

    def test_close_returns_connection(self):
        pool, conn, _ = _make_pool()
        session = _make_session(pool)
        session.connect_check()

        session.close()
        session.close()

        pool.putconn.assert_called_once_with(conn)
        assert session.connection is None


class TestPostgresDatastore:

    @patch("infrastructure.datastore.ConnectionPool")
    def test_pool_created_closed(self, mock_pool_cls):
        datastore = PostgresDatastore("postgresql://u:p@db:5432/app", max_size=2)

        kwargs = mock_pool_cls.call_args.kwargs
        assert kwargs["open"] is False
        assert kwargs["max_size"] == 2
        assert kwargs["kwargs"]["autocommit"] is True

        datastore.open()
        mock_pool_cls.return_value.open.assert_called_once_with(wait=False)

    @patch("infrastructure.datastore.ConnectionPool")
    def test_session_per_call(self, mock_pool_cls):
        datastore = PostgresDatastore("postgresql://db/app", options_table="wp_options")

        first = datastore.session()
        second = datastore.session(is_fallback=True)

        assert first is not second
        assert first.is_fallback is False
        assert second.is_fallback is True

    @pytest.mark.parametrize("conninfo,expected", [
        ("postgresql://user:secret@db:5432/app", "db:5432/app"),
        ("host=db password=secret", "host=db password=***"),
        ("host=db dbname=app", "host=db dbname=app"),
    ])
    def test_mask_conninfo(self, conninfo, expected):
        assert mask_conninfo(conninfo) == expected


# ============================================================================
# REDIS OBJECT CACHE
# ============================================================================

class TestRedisObjectCache:

    def test_set_encodes_json_under_group(self):
        client = MagicMock()
        client.set.return_value = True
        cache = RedisObjectCache(client)

        assert cache.set("alloptions", {"a": 1}, group="options") is True
        client.set.assert_called_once_with("options:alloptions", '{"a": 1}', ex=None)

    def test_key_prefix_and_expiry(self):
        client = MagicMock()
        cache = RedisObjectCache(client, key_prefix="site1:")

        cache.set("test", 1, expire=30)

        client.set.assert_called_once_with("site1:default:test", "1", ex=30)

    def test_set_error_is_false(self):
        client = MagicMock()
        client.set.side_effect = redis.ConnectionError("refused")

        assert RedisObjectCache(client).set("test", 1) is False

    def test_get_decodes_and_counts_hits(self):
        client = MagicMock()
        client.get.return_value = b"1"
        cache = RedisObjectCache(client)

        assert cache.get("test") == 1
        assert cache.cache_hits == 1
        assert cache.cache_misses == 0

    def test_get_miss(self):
        client = MagicMock()
        client.get.return_value = None
        cache = RedisObjectCache(client)

        assert cache.get("test") is None
        assert cache.cache_misses == 1

    def test_get_error_counts_miss(self):
        client = MagicMock()
        client.get.side_effect = redis.TimeoutError("timed out")
        cache = RedisObjectCache(client)

        assert cache.get("test") is None
        assert cache.cache_misses == 1

    def test_get_non_json_value(self):
        client = MagicMock()
        client.get.return_value = b"plain text"

        assert RedisObjectCache(client).get("legacy") == "plain text"

    def test_redis_status(self):
        client = MagicMock()
        client.ping.return_value = True
        assert RedisObjectCache(client).redis_status() is True

        client.ping.side_effect = redis.ConnectionError("down")
        assert RedisObjectCache(client).redis_status() is False

    def test_diagnostics_connected(self):
        client = MagicMock()
        client.ping.return_value = True
        client.info.return_value = {"redis_version": "7.2.4"}

        report = RedisObjectCache(client).diagnostics()

        assert report["cache"] == "RedisObjectCache"
        assert report["redis_py"] == redis.__version__
        assert report["server_version"] == "7.2.4"
        assert report["status"] == "CONNECTED"
        client.info.assert_called_once_with("server")

    def test_diagnostics_disconnected(self):
        client = MagicMock()
        client.ping.side_effect = redis.ConnectionError("down")

        report = RedisObjectCache(client).diagnostics()

        assert report["status"] == "NOT CONNECTED"
        assert report["server_version"] == "UNKNOWN"
        client.info.assert_not_called()

    def test_redis_client_identifier(self):
        client = MagicMock()
        expected = f"{type(client).__module__}.{type(client).__name__}"

        assert RedisObjectCache(client).redis_client == expected

    def test_flush(self):
        client = MagicMock()
        client.flushdb.return_value = True

        assert RedisObjectCache(client).flush() is True
        client.flushdb.assert_called_once_with()
