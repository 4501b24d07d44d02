"""
Pytest configuration and shared fixtures.
"""
import os
import sqlite3

import pytest

from dbadmin.config import load_settings
from dbadmin.database.models import ConnectionConfig


@pytest.fixture
def settings(tmp_path, monkeypatch):
    """Settings whose home and backup directories live under tmp_path."""
    monkeypatch.setenv("DBADMIN_HOME", str(tmp_path / "home"))
    monkeypatch.setenv("DBADMIN_BACKUPS_DIR", str(tmp_path / "backups"))
    monkeypatch.delenv("DBADMIN_VAULT_SECRET", raising=False)
    monkeypatch.delenv("GEMINI_API", raising=False)
    for name in ("NL_PRIMARY_MODEL", "NL_FALLBACK_MODEL", "OLLAMA_BASE_URL",
                 "NL_REQUEST_TIMEOUT", "NL_RESULT_LIMIT", "NL_SAMPLE_ROWS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DB_DEFAULT_PAGE_SIZE", "1000")
    return load_settings()


@pytest.fixture
def sqlite_path(tmp_path):
    """A SQLite file with customers (100 rows) and orders referencing them."""
    path = str(tmp_path / "shop.db")
    conn = sqlite3.connect(path)
    conn.executescript("""
        CREATE TABLE customers (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            email TEXT
        );
        CREATE TABLE orders (
            id INTEGER PRIMARY KEY,
            customer_id INTEGER NOT NULL REFERENCES customers(id),
            total REAL
        );
        CREATE INDEX idx_orders_customer ON orders(customer_id);
    """)
    conn.executemany(
        "INSERT INTO customers (id, name, email) VALUES (?, ?, ?)",
        [(i, f"customer {i}", None if i % 10 == 0 else f"c{i}@example.com") for i in range(1, 101)],
    )
    conn.executemany(
        "INSERT INTO orders (id, customer_id, total) VALUES (?, ?, ?)",
        [(i, (i % 100) + 1, i * 1.5) for i in range(1, 21)],
    )
    conn.commit()
    conn.close()
    return path


@pytest.fixture
def sqlite_config(sqlite_path):
    return ConnectionConfig(engine="sqlite", file_path=sqlite_path)


@pytest.fixture
def empty_sqlite_config(tmp_path):
    path = str(tmp_path / "target.db")
    conn = sqlite3.connect(path)
    conn.executescript("""
        CREATE TABLE customers (id INTEGER PRIMARY KEY, name TEXT NOT NULL, email TEXT);
        CREATE TABLE orders (id INTEGER PRIMARY KEY, customer_id INTEGER NOT NULL, total REAL);
    """)
    conn.commit()
    conn.close()
    return ConnectionConfig(engine="sqlite", file_path=path)


def pytest_configure(config):
    os.environ.setdefault("LOG_LEVEL", "WARNING")
