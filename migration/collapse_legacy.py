"""
Legacy schema -> single catalog table
- Merges rows from the old per-category tables into `products`, setting
  `category_id` instead of keeping a second copy of each product
- Moves accounts from the old `signup` table into `users`, hashing any
  password that was stored in plain text
- Drops the legacy tables once their rows are moved

Usage:
  python -m migration.collapse_legacy --db path/to/storefront.db
"""
import argparse
import os
import sqlite3
from contextlib import closing
from datetime import datetime, timezone

from storefront.auth import hash_password, pwd_context
from storefront.crud import CATEGORY_NAMES

# Old table name -> category key. Only these names are ever touched.
LEGACY_CATEGORY_TABLES = {
    "electronics": "electronics",
    "clothing": "clothing",
    "fashion": "clothing",
    "home": "home",
    "beauty": "beauty",
    "groceries": "groceries",
}


def table_names(conn: sqlite3.Connection) -> set:
    return {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}


def has_column(conn: sqlite3.Connection, table: str, column: str) -> bool:
    cur = conn.execute(f"PRAGMA table_info({table})")
    return any(row[1] == column for row in cur.fetchall())


def _ensure_categories(conn: sqlite3.Connection) -> dict:
    conn.execute(
        "CREATE TABLE IF NOT EXISTS categories ("
        "id INTEGER PRIMARY KEY, key VARCHAR(50) NOT NULL UNIQUE, name VARCHAR(100) NOT NULL)"
    )
    for key, name in CATEGORY_NAMES.items():
        conn.execute("INSERT OR IGNORE INTO categories (key, name) VALUES (?, ?)", (key.value, name))
    return {row["key"]: row["id"] for row in conn.execute("SELECT id, key FROM categories")}


def _collapse_category_tables(conn: sqlite3.Connection, category_ids: dict) -> int:
    if not has_column(conn, "products", "category_id"):
        conn.execute("ALTER TABLE products ADD COLUMN category_id INTEGER REFERENCES categories(id)")
    if not has_column(conn, "products", "is_new"):
        conn.execute("ALTER TABLE products ADD COLUMN is_new BOOLEAN NOT NULL DEFAULT 0")

    moved = 0
    present = table_names(conn)
    for table, key in LEGACY_CATEGORY_TABLES.items():
        if table not in present:
            continue
        category_id = category_ids[key]
        for row in conn.execute(f"SELECT id, title, description, price FROM {table}").fetchall():
            exists = conn.execute("SELECT 1 FROM products WHERE id = ?", (row["id"],)).fetchone()
            if exists:
                # the generic copy wins; only the category link is taken from the mirror
                conn.execute(
                    "UPDATE products SET category_id = ? WHERE id = ? AND category_id IS NULL",
                    (category_id, row["id"]),
                )
            else:
                conn.execute(
                    "INSERT INTO products (id, title, description, price, category_id) VALUES (?, ?, ?, ?, ?)",
                    (row["id"], row["title"], row["description"] or "", row["price"], category_id),
                )
            moved += 1
        conn.execute(f"DROP TABLE {table}")
    return moved


def _move_signups(conn: sqlite3.Connection) -> int:
    if "signup" not in table_names(conn):
        return 0
    conn.execute(
        "CREATE TABLE IF NOT EXISTS users ("
        "id INTEGER PRIMARY KEY, email VARCHAR(255) NOT NULL UNIQUE, password_hash VARCHAR(255) NOT NULL, "
        "external_subject VARCHAR(255) UNIQUE, created_at DATETIME NOT NULL)"
    )
    now = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%f")
    moved = 0
    for row in conn.execute("SELECT email, password FROM signup").fetchall():
        password = row["password"] or ""
        if not password or not row["email"]:
            continue
        # some revisions hashed, some did not
        digest = password if pwd_context.identify(password) else hash_password(password)
        cur = conn.execute(
            "INSERT OR IGNORE INTO users (email, password_hash, created_at) VALUES (?, ?, ?)",
            (row["email"].strip().lower(), digest, now),
        )
        moved += cur.rowcount
    conn.execute("DROP TABLE signup")
    return moved


def migrate(db_path: str) -> dict:
    if db_path == ":memory:":
        raise ValueError("Use a file-backed DB for migration script")

    if not os.path.exists(db_path):
        raise FileNotFoundError(db_path)

    with closing(sqlite3.connect(db_path)) as conn:
        conn.execute("PRAGMA foreign_keys=ON")
        conn.row_factory = sqlite3.Row

        if "products" not in table_names(conn):
            raise RuntimeError("products table missing; cannot migrate")

        category_ids = _ensure_categories(conn)
        products = _collapse_category_tables(conn, category_ids)
        users = _move_signups(conn)
        conn.commit()
    return {"products": products, "users": users}


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--db", required=True, help="Path to SQLite database file")
    args = parser.parse_args()
    summary = migrate(args.db)
    print(f"moved {summary['products']} product row(s) and {summary['users']} account(s)")

if __name__ == "__main__":
    main()
