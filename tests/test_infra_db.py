"""Tests for database layer."""

import os
from unittest.mock import MagicMock, call, patch

import pytest


class TestGetConnPasswordFallback:
    """DB_PASSWORD injection in get_conn(), no real DB needed."""

    @pytest.mark.parametrize(
        "dsn",
        ["dbname=db user=u host=h port=5432", "postgres://u@h/db"],
    )
    def test_injected_when_dsn_has_no_password(self, dsn):
        from staydesk.infra.db import get_conn

        env = {"DATABASE_URL": dsn, "DB_PASSWORD": "from-env"}
        with patch.dict(os.environ, env, clear=True), \
             patch("staydesk.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
            mock_connect.assert_called_once_with(dsn, password="from-env")

    @pytest.mark.parametrize(
        "dsn",
        ["dbname=db user=u password=from-dsn host=h", "postgres://u:p@h/db"],
    )
    def test_dsn_password_wins(self, dsn):
        from staydesk.infra.db import get_conn

        env = {"DATABASE_URL": dsn, "DB_PASSWORD": "from-env"}
        with patch.dict(os.environ, env, clear=True), \
             patch("staydesk.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
            mock_connect.assert_called_once_with(dsn)

    def test_no_db_password_env(self):
        from staydesk.infra.db import get_conn

        env = {"DATABASE_URL": "dbname=db user=u host=h"}
        with patch.dict(os.environ, env, clear=True), \
             patch("staydesk.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
            mock_connect.assert_called_once_with("dbname=db user=u host=h")

    def test_raises_without_database_url(self):
        from staydesk.infra.db import get_conn

        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(RuntimeError, match="DATABASE_URL"):
                get_conn()


class TestTxnWithMockConnection:
    def test_commits_on_success(self):
        from staydesk.infra.db import txn

        conn = MagicMock()
        with txn(conn) as cur:
            cur.execute("SELECT 1")

        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()
        conn.close.assert_not_called()

    def test_rolls_back_and_reraises(self):
        from staydesk.infra.db import txn

        conn = MagicMock()
        with pytest.raises(ValueError):
            with txn(conn):
                raise ValueError("boom")

        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    def test_owned_connection_closed(self):
        from staydesk.infra.db import txn

        conn = MagicMock()
        with patch("staydesk.infra.db.get_conn", return_value=conn):
            with txn():
                pass
        conn.close.assert_called_once()


class TestSavepoint:
    def test_released_on_success(self):
        from staydesk.infra.db import savepoint

        cur = MagicMock()
        with savepoint(cur, "checkout_tasks"):
            cur.execute("INSERT 1")

        assert cur.execute.call_args_list == [
            call("SAVEPOINT checkout_tasks"),
            call("INSERT 1"),
            call("RELEASE SAVEPOINT checkout_tasks"),
        ]

    def test_rolled_back_then_reraised(self):
        from staydesk.infra.db import savepoint

        cur = MagicMock()
        with pytest.raises(RuntimeError, match="task insert failed"):
            with savepoint(cur, "checkout_tasks"):
                raise RuntimeError("task insert failed")

        assert cur.execute.call_args_list == [
            call("SAVEPOINT checkout_tasks"),
            call("ROLLBACK TO SAVEPOINT checkout_tasks"),
        ]

    @pytest.mark.parametrize("name", ["bad name", "x; DROP TABLE folios", "", "1abc"])
    def test_rejects_non_identifier(self, name):
        from staydesk.infra.db import savepoint

        cur = MagicMock()
        with pytest.raises(ValueError, match="Invalid savepoint name"):
            with savepoint(cur, name):
                pass
        cur.execute.assert_not_called()


class TestForUpdateClause:
    @pytest.mark.parametrize(
        "kwargs,suffix",
        [
            ({}, " FOR UPDATE"),
            ({"nowait": True}, " FOR UPDATE NOWAIT"),
            ({"skip_locked": True}, " FOR UPDATE SKIP LOCKED"),
        ],
    )
    def test_suffix(self, kwargs, suffix):
        from staydesk.infra.db import for_update

        cur = MagicMock()
        for_update(cur, "SELECT id FROM folios WHERE id = %s;", ("f1",), **kwargs)
        cur.execute.assert_called_once_with("SELECT id FROM folios WHERE id = %s" + suffix, ("f1",))

    def test_nowait_skip_locked_exclusive(self):
        from staydesk.infra.db import for_update

        with pytest.raises(ValueError, match="Cannot use both"):
            for_update(MagicMock(), "SELECT 1", nowait=True, skip_locked=True)


# Skip integration tests if DATABASE_URL is not set
_skip_no_db = pytest.mark.skipif(
    not os.environ.get("DATABASE_URL"),
    reason="DATABASE_URL not set - skipping DB integration tests",
)


@_skip_no_db
class TestTxn:
    """Tests for txn() against a real database."""

    def test_commits_on_success(self):
        from staydesk.infra.db import get_conn, txn

        conn = get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute("CREATE TEMP TABLE test_txn (id serial, val text)")
            conn.commit()

            with txn(conn) as cur:
                cur.execute("INSERT INTO test_txn (val) VALUES (%s)", ("test",))

            with conn.cursor() as cur:
                cur.execute("SELECT val FROM test_txn")
                assert cur.fetchone()[0] == "test"
        finally:
            conn.close()

    def test_rollback_on_exception(self):
        from staydesk.infra.db import get_conn, txn

        conn = get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute("CREATE TEMP TABLE test_rollback (id serial, val text)")
            conn.commit()

            with pytest.raises(ValueError):
                with txn(conn) as cur:
                    cur.execute("INSERT INTO test_rollback (val) VALUES (%s)", ("bad",))
                    raise ValueError("rollback test")

            with conn.cursor() as cur:
                cur.execute("SELECT count(*) FROM test_rollback")
                assert cur.fetchone()[0] == 0
        finally:
            conn.close()

    def test_savepoint_keeps_outer_txn_usable(self):
        import psycopg2

        from staydesk.infra.db import fetchall, get_conn, savepoint, txn

        conn = get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute("CREATE TEMP TABLE test_sp (id int PRIMARY KEY)")
            conn.commit()

            with txn(conn) as cur:
                cur.execute("INSERT INTO test_sp VALUES (1)")
                with pytest.raises(psycopg2.IntegrityError):
                    with savepoint(cur, "dup_insert"):
                        cur.execute("INSERT INTO test_sp VALUES (1)")
                cur.execute("INSERT INTO test_sp VALUES (2)")

            with txn(conn) as cur:
                rows = fetchall(cur, "SELECT id FROM test_sp ORDER BY id")
            assert [r[0] for r in rows] == [1, 2]
        finally:
            conn.close()
