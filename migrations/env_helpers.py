"""Database URL resolution for Alembic.

Kept apart from env.py so it can be tested without alembic.context.
DATABASE_URL may be a URL (postgres://, postgresql://) or a libpq
key=value DSN; DB_PASSWORD fills in a missing password either way.
"""

from __future__ import annotations

import os
import shlex
from urllib.parse import quote_plus, urlparse, urlunparse

_DRIVER_PREFIX = "postgresql+psycopg2://"


def parse_libpq_dsn(dsn: str) -> dict[str, str]:
    """Parse a libpq key=value DSN. Single-quoted values may contain spaces."""
    lexer = shlex.shlex(dsn, posix=True)
    lexer.whitespace_split = True
    lexer.quotes = "'"
    lexer.escape = "\\"
    lexer.escapedquotes = "'"
    tokens: dict[str, str] = {}
    for part in lexer:
        key, sep, value = part.partition("=")
        if sep:
            tokens[key] = value
    return tokens


def libpq_dsn_to_url(dsn: str, db_password: str = "") -> str:
    """Convert a libpq DSN to a SQLAlchemy URL.

    A host starting with "/" is a unix socket directory and is passed as
    the ?host= query parameter.
    """
    tokens = parse_libpq_dsn(dsn)
    password = tokens.get("password") or db_password

    user = quote_plus(tokens.get("user", ""))
    dbname = quote_plus(tokens.get("dbname", ""))
    host = tokens.get("host", "localhost")
    port = tokens.get("port", "5432")
    credentials = f"{user}:{quote_plus(password)}"

    if host.startswith("/"):
        return f"{_DRIVER_PREFIX}{credentials}@/{dbname}?host={quote_plus(host)}"
    return f"{_DRIVER_PREFIX}{credentials}@{host}:{port}/{dbname}"


def _normalize_url(url: str, db_password: str) -> str:
    for scheme in ("postgres://", "postgresql://"):
        if url.startswith(scheme):
            url = _DRIVER_PREFIX + url[len(scheme):]
            break

    parsed = urlparse(url)
    if db_password and not parsed.password:
        netloc = f"{quote_plus(parsed.username or '')}:{quote_plus(db_password)}@{parsed.hostname}"
        if parsed.port:
            netloc += f":{parsed.port}"
        url = urlunparse(parsed._replace(netloc=netloc))
    return url


def get_database_url() -> str:
    """SQLAlchemy URL for migrations, from DATABASE_URL (+ DB_PASSWORD).

    Raises:
        RuntimeError: DATABASE_URL is not set.
    """
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is required to run migrations")

    db_password = os.environ.get("DB_PASSWORD", "")
    if "://" in url:
        return _normalize_url(url, db_password)
    return libpq_dsn_to_url(url, db_password)
