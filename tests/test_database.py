"""Tests for engine configuration helpers."""
from sqlalchemy.pool import StaticPool
from genset_tracker.database import engine_options, normalize_url


def test_postgres_scheme_rewritten():
    assert normalize_url("postgres://u:p@host/db") == "postgresql://u:p@host/db"
    assert normalize_url("postgresql://u:p@host/db") == "postgresql://u:p@host/db"


def test_memory_sqlite_shares_one_connection():
    options = engine_options("sqlite://")

    assert options["poolclass"] is StaticPool
    assert options["connect_args"] == {"check_same_thread": False}


def test_file_sqlite_uses_default_pool():
    assert "poolclass" not in engine_options("sqlite:///./gensets.db")


def test_server_database_pools():
    options = engine_options("postgresql://u:p@host/db")

    assert options["pool_pre_ping"] is True
    assert "connect_args" not in options
