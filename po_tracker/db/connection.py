from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from ..models.config_models import DatabaseConfig
from .order_store import StoreError

"""PostgreSQL connection helpers.

Connection parameters are resolved in this order:
    1. DATABASE_URL / PGDSN (whole DSN)
    2. PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
    3. the ``database`` section of config/tracker.yml

load_env_file() is called first by the CLI so a local ``.env`` overrides
whatever was already in the process environment.
"""

try:  # pragma: no cover - import guard
    from dotenv import load_dotenv
except ImportError:  # pragma: no cover
    load_dotenv = None  # type: ignore[assignment]

__all__ = [
    "load_env_file",
    "resolve_dsn",
    "db_connection",
    "db_disabled",
]


def load_env_file(path: Path = Path(".env"), override: bool = True) -> bool:
    """Load ``path`` with python-dotenv. Returns True when a file was loaded."""
    if load_dotenv is None or not path.exists():
        return False
    return bool(load_dotenv(dotenv_path=path, override=override))


def db_disabled() -> bool:
    """DISABLE_DB_CONNECT=1 で store なし (mock mode) 実行"""
    return os.getenv("DISABLE_DB_CONNECT") == "1"


def resolve_dsn(db_cfg: DatabaseConfig) -> str:
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def db_connection(db_cfg: DatabaseConfig) -> Iterator[Any]:  # pragma: no cover (thin wrapper)
    """Yield a psycopg2 connection, closed on exit.

    Connect failures (driver missing, server unreachable, bad credentials)
    surface as StoreError.

    Commit/rollback is left to OrderStore, one transaction per operation.
    """
    try:
        import psycopg2

        conn = psycopg2.connect(resolve_dsn(db_cfg))
    except Exception as e:
        raise StoreError(f"database connection failed: {e}") from e
    try:
        yield conn
    finally:
        conn.close()
