"""Tests for migration database URL resolution."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from migrations.env_helpers import get_database_url, libpq_dsn_to_url, parse_libpq_dsn

ROOT = Path(__file__).resolve().parents[1]


class TestParseLibpqDsn:
    def test_plain_pairs(self):
        assert parse_libpq_dsn("dbname=db user=u host=h") == {
            "dbname": "db",
            "user": "u",
            "host": "h",
        }

    def test_quoted_value(self):
        assert parse_libpq_dsn("password='a b' user=u")["password"] == "a b"


class TestLibpqDsnToUrl:
    def test_cloudsql_socket(self):
        dsn = "dbname=staydesk user=staydesk-sa password=s3cret host=/cloudsql/proj:us-central1:inst"
        assert libpq_dsn_to_url(dsn) == (
            "postgresql+psycopg2://staydesk-sa:s3cret@/staydesk"
            "?host=%2Fcloudsql%2Fproj%3Aus-central1%3Ainst"
        )

    def test_tcp_host(self):
        dsn = "dbname=staydesk user=admin password=pw host=localhost port=5433"
        assert libpq_dsn_to_url(dsn) == "postgresql+psycopg2://admin:pw@localhost:5433/staydesk"

    def test_default_port(self):
        dsn = "dbname=db user=u password=p host=myhost"
        assert libpq_dsn_to_url(dsn) == "postgresql+psycopg2://u:p@myhost:5432/db"

    def test_special_chars_encoded(self):
        result = libpq_dsn_to_url("dbname=db user=u@domain password=p@ss=word host=h")
        assert "u%40domain" in result
        assert "p%40ss%3Dword" in result

    def test_quoted_password_with_spaces(self):
        result = libpq_dsn_to_url("dbname=db user=u password='p@ss w0rd' host=h")
        assert "p%40ss+w0rd" in result

    def test_quoted_password_with_escaped_quote(self):
        result = libpq_dsn_to_url(r"dbname=db user=u password='it\'s' host=h")
        assert "it%27s" in result

    def test_db_password_argument_fills_missing(self):
        result = libpq_dsn_to_url("dbname=db user=u host=h", db_password="from-env")
        assert result == "postgresql+psycopg2://u:from-env@h:5432/db"

    def test_dsn_password_wins_over_argument(self):
        result = libpq_dsn_to_url("dbname=db user=u password=from-dsn host=h", db_password="x")
        assert "from-dsn" in result
        assert ":x@" not in result

    def test_environment_not_read(self):
        with patch.dict(os.environ, {"DB_PASSWORD": "from-env"}):
            result = libpq_dsn_to_url("dbname=db user=u host=h")
        assert "from-env" not in result


class TestGetDatabaseUrl:
    def test_missing_raises(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(RuntimeError, match="DATABASE_URL is required"):
                get_database_url()

    def test_url_passthrough(self):
        with patch.dict(os.environ, {"DATABASE_URL": "postgresql+psycopg2://u:p@h/db"}, clear=True):
            assert get_database_url() == "postgresql+psycopg2://u:p@h/db"

    @pytest.mark.parametrize("scheme", ["postgres://", "postgresql://"])
    def test_scheme_normalized(self, scheme):
        with patch.dict(os.environ, {"DATABASE_URL": f"{scheme}u:p@h/db"}, clear=True):
            assert get_database_url() == "postgresql+psycopg2://u:p@h/db"

    def test_driver_not_doubled(self):
        with patch.dict(os.environ, {"DATABASE_URL": "postgresql+psycopg2://u:p@h/db"}, clear=True):
            assert get_database_url().count("+psycopg2") == 1

    def test_url_db_password_fallback(self):
        env = {"DATABASE_URL": "postgresql://u@h:5433/db", "DB_PASSWORD": "secret"}
        with patch.dict(os.environ, env, clear=True):
            assert get_database_url() == "postgresql+psycopg2://u:secret@h:5433/db"

    def test_dsn_converted_with_db_password(self):
        env = {"DATABASE_URL": "dbname=staydesk user=sa host=/cloudsql/p:r:i", "DB_PASSWORD": "pw"}
        with patch.dict(os.environ, env, clear=True):
            result = get_database_url()
        assert result.startswith("postgresql+psycopg2://sa:pw@/staydesk?host=")


class TestMigrationFiles:
    def test_initial_sql_present(self):
        sql = (ROOT / "migrations" / "sql" / "001_initial.sql").read_text(encoding="utf-8")
        for table in ("folios", "folio_items", "payments", "reservations", "night_audits"):
            assert f"CREATE TABLE {table}" in sql
