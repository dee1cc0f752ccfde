import os
import sqlite3
import tempfile

import pytest

from migration.collapse_legacy import migrate
from storefront.auth import hash_password, verify_password


def create_legacy_db(path: str):
    conn = sqlite3.connect(path)
    try:
        conn.execute("CREATE TABLE products (id INTEGER PRIMARY KEY, title TEXT NOT NULL, description TEXT, price NUMERIC NOT NULL)")
        conn.execute("CREATE TABLE electronics (id INTEGER PRIMARY KEY, title TEXT, description TEXT, price NUMERIC)")
        conn.execute("CREATE TABLE fashion (id INTEGER PRIMARY KEY, title TEXT, description TEXT, price NUMERIC)")
        conn.execute("CREATE TABLE signup (id INTEGER PRIMARY KEY, email TEXT, password TEXT, confirmPassword TEXT)")
        # Seed data: product 1 is mirrored, product 2 only exists in its category table
        conn.execute("INSERT INTO products (id, title, description, price) VALUES (1, 'Radio', 'AM/FM', 25.00)")
        conn.execute("INSERT INTO electronics VALUES (1, 'Radio (old copy)', 'AM/FM', 20.00)")
        conn.execute("INSERT INTO fashion VALUES (2, 'Scarf', 'Wool', 12.50)")
        conn.execute("INSERT INTO signup (email, password, confirmPassword) VALUES ('plain@example.com', 'hunter2', 'hunter2')")
        conn.execute(
            "INSERT INTO signup (email, password, confirmPassword) VALUES (?, ?, ?)",
            ("hashed@example.com", hash_password("already"), ""),
        )
        conn.commit()
    finally:
        conn.close()


def test_migration_collapses_category_tables_and_hashes_passwords():
    with tempfile.TemporaryDirectory() as tmp:
        db_path = os.path.join(tmp, "legacy.db")
        create_legacy_db(db_path)

        # Run migration
        summary = migrate(db_path)
        assert summary == {"products": 2, "users": 2}

        # Validate
        conn = sqlite3.connect(db_path)
        try:
            tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
            assert not {"electronics", "fashion", "signup"} & tables

            rows = conn.execute(
                "SELECT p.id, p.title, c.key FROM products p JOIN categories c ON c.id = p.category_id ORDER BY p.id"
            ).fetchall()
            # the generic row wins over the mirrored copy
            assert rows == [(1, "Radio", "electronics"), (2, "Scarf", "clothing")]

            users = dict(conn.execute("SELECT email, password_hash FROM users").fetchall())
            assert users["plain@example.com"] != "hunter2"
            assert verify_password("hunter2", users["plain@example.com"])
            assert verify_password("already", users["hashed@example.com"])
        finally:
            conn.close()


def test_migration_needs_products_table():
    with tempfile.TemporaryDirectory() as tmp:
        db_path = os.path.join(tmp, "empty.db")
        sqlite3.connect(db_path).close()
        with pytest.raises(RuntimeError):
            migrate(db_path)


def test_migration_rejects_memory_db():
    with pytest.raises(ValueError):
        migrate(":memory:")
