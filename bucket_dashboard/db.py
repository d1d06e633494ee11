from __future__ import annotations

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from .config import DB_PATH, DB_TIMEOUT, ensure_data_directories

logger = logging.getLogger(__name__)

# Amount columns have TEXT affinity so the exact Decimal text is kept;
# models turn it back into Decimal.
sqlite3.register_adapter(Decimal, str)

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA synchronous=NORMAL;

CREATE TABLE IF NOT EXISTS budget_buckets (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    slug TEXT NOT NULL,
    percentage TEXT,
    target_amount TEXT,
    allocated_amount TEXT,
    description TEXT,
    color TEXT,
    icon TEXT,
    is_default INTEGER NOT NULL DEFAULT 0,
    is_system INTEGER NOT NULL DEFAULT 0,
    sort_order INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (user_id, slug)
);

CREATE INDEX IF NOT EXISTS ix_buckets_user_sort ON budget_buckets (user_id, sort_order);

CREATE TABLE IF NOT EXISTS expense_bucket_rules (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    bucket_id TEXT NOT NULL REFERENCES budget_buckets (id) ON DELETE CASCADE,
    match_type TEXT NOT NULL CHECK (match_type IN ('category', 'label', 'keyword')),
    match_value TEXT NOT NULL,
    priority INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    UNIQUE (user_id, match_type, match_value)
);

CREATE INDEX IF NOT EXISTS ix_rules_user_priority ON expense_bucket_rules (user_id, priority DESC);

CREATE TABLE IF NOT EXISTS incomes (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    label TEXT NOT NULL,
    amount TEXT NOT NULL,
    frequency TEXT NOT NULL DEFAULT 'monthly',
    day_of_month INTEGER,
    status TEXT NOT NULL DEFAULT 'expected' CHECK (status IN ('expected', 'received')),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS bills (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    label TEXT NOT NULL,
    kind TEXT NOT NULL DEFAULT 'bill' CHECK (kind IN ('bill', 'debt', 'subscription')),
    amount TEXT NOT NULL,
    frequency TEXT NOT NULL DEFAULT 'monthly',
    due_day INTEGER,
    status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'paid')),
    payment_mode TEXT NOT NULL DEFAULT 'manual' CHECK (payment_mode IN ('manual', 'auto_deduct')),
    payment_bucket_id TEXT REFERENCES budget_buckets (id) ON DELETE SET NULL,
    payment_type TEXT NOT NULL DEFAULT 'fixed' CHECK (payment_type IN ('fixed', 'variable')),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS bill_payments (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    bill_id TEXT NOT NULL REFERENCES bills (id) ON DELETE CASCADE,
    amount TEXT NOT NULL,
    source_bucket_id TEXT REFERENCES budget_buckets (id) ON DELETE SET NULL,
    paid_at TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS expenses (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    date TEXT NOT NULL,
    amount TEXT NOT NULL,
    label TEXT NOT NULL,
    category TEXT,
    bucket_id TEXT REFERENCES budget_buckets (id) ON DELETE SET NULL,
    deleted_at TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS ix_expenses_user_date ON expenses (user_id, date);
CREATE INDEX IF NOT EXISTS ix_expenses_bucket ON expenses (bucket_id);
"""

TABLES = frozenset({
    "budget_buckets",
    "expense_bucket_rules",
    "incomes",
    "bills",
    "bill_payments",
    "expenses",
})

Row = Dict[str, Any]


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return uuid.uuid4().hex


def open_connection(path: Optional[Union[str, Path]] = None) -> sqlite3.Connection:
    """Open a connection in autocommit mode; transactions are explicit."""
    if path is None:
        ensure_data_directories()
        path = DB_PATH
    conn = sqlite3.connect(str(path), timeout=DB_TIMEOUT, isolation_level=None, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def connect(path=None) -> Iterator[sqlite3.Connection]:
    conn = open_connection(path)
    try:
        yield conn
    finally:
        conn.close()


# Columns that databases created before bill payment types and expense
# soft delete are missing; init_db adds them in place.
_ADDED_COLUMNS = {
    "bills": [("payment_type", "TEXT NOT NULL DEFAULT 'fixed'")],
    "expenses": [("deleted_at", "TEXT")],
}


def _add_missing_columns(conn: sqlite3.Connection) -> None:
    for table, columns in _ADDED_COLUMNS.items():
        existing = {row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}
        for name, definition in columns:
            if name not in existing:
                conn.execute(f"ALTER TABLE {table} ADD COLUMN {name} {definition}")
                logger.info("Added column %s.%s", table, name)


def init_db(conn: sqlite3.Connection) -> None:
    conn.executescript(SCHEMA_SQL)
    _add_missing_columns(conn)
    logger.debug("Schema ready")


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a block atomically.

    The outermost block takes the write lock up front (``BEGIN IMMEDIATE``)
    so two writers never interleave; nested blocks become savepoints.
    """
    if conn.in_transaction:
        savepoint = f"sp_{new_id()}"
        conn.execute(f"SAVEPOINT {savepoint}")
        try:
            yield conn
        except BaseException:
            conn.execute(f"ROLLBACK TO {savepoint}")
            conn.execute(f"RELEASE {savepoint}")
            raise
        conn.execute(f"RELEASE {savepoint}")
        return

    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


def _table(name: str) -> str:
    if name not in TABLES:
        raise ValueError(f"Unknown table: {name}")
    return name


def _as_dict(row: Optional[sqlite3.Row]) -> Optional[Row]:
    return dict(row) if row is not None else None


def _where(owner_id: str, filters: Optional[Dict[str, Any]]) -> Tuple[str, List[Any]]:
    clauses = ["user_id = ?"]
    params: List[Any] = [owner_id]
    for column, value in (filters or {}).items():
        if value is None:
            clauses.append(f"{column} IS NULL")
        else:
            clauses.append(f"{column} = ?")
            params.append(value)
    return " AND ".join(clauses), params


def find_by_id(conn: sqlite3.Connection, table: str, row_id: str, owner_id: str) -> Optional[Row]:
    row = conn.execute(
        f"SELECT * FROM {_table(table)} WHERE id = ? AND user_id = ?",
        (row_id, owner_id),
    ).fetchone()
    return _as_dict(row)


def find_where(
    conn: sqlite3.Connection,
    table: str,
    owner_id: str,
    filters: Optional[Dict[str, Any]] = None,
    order_by: Optional[str] = None,
    ascending: bool = True,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> List[Row]:
    where, params = _where(owner_id, filters)
    sql = f"SELECT * FROM {_table(table)} WHERE {where}"
    if order_by:
        sql += f" ORDER BY {order_by} {'ASC' if ascending else 'DESC'}, rowid ASC"
    else:
        sql += " ORDER BY rowid ASC"
    if limit is not None:
        sql += " LIMIT ?"
        params.append(limit)
        if offset:
            sql += " OFFSET ?"
            params.append(offset)
    return [dict(r) for r in conn.execute(sql, params).fetchall()]


def find_all(
    conn: sqlite3.Connection,
    table: str,
    owner_id: str,
    order_by: Optional[str] = None,
    ascending: bool = True,
) -> List[Row]:
    return find_where(conn, table, owner_id, order_by=order_by, ascending=ascending)


def find_one(conn: sqlite3.Connection, table: str, owner_id: str, filters: Dict[str, Any]) -> Optional[Row]:
    rows = find_where(conn, table, owner_id, filters, limit=1)
    return rows[0] if rows else None


def insert_row(conn: sqlite3.Connection, table: str, values: Dict[str, Any]) -> Row:
    """Insert one row and return it as stored.

    ``id`` and ``created_at`` are filled in when missing.
    """
    record = dict(values)
    record.setdefault("id", new_id())
    record.setdefault("created_at", utc_now())
    columns = list(record)
    sql = "INSERT INTO {} ({}) VALUES ({})".format(
        _table(table), ", ".join(columns), ", ".join("?" for _ in columns)
    )
    conn.execute(sql, [record[c] for c in columns])
    return find_by_id(conn, table, record["id"], record["user_id"])


def insert_many(conn: sqlite3.Connection, table: str, rows: Sequence[Dict[str, Any]]) -> List[Row]:
    with transaction(conn):
        return [insert_row(conn, table, row) for row in rows]


def update_row(
    conn: sqlite3.Connection,
    table: str,
    row_id: str,
    owner_id: str,
    values: Dict[str, Any],
) -> Optional[Row]:
    """Update a row scoped to its owner.

    Returns the updated row, or None when nothing matched.
    """
    if not values:
        return find_by_id(conn, table, row_id, owner_id)
    assignments = ", ".join(f"{column} = ?" for column in values)
    params = list(values.values()) + [row_id, owner_id]
    cursor = conn.execute(
        f"UPDATE {_table(table)} SET {assignments} WHERE id = ? AND user_id = ?",
        params,
    )
    if cursor.rowcount == 0:
        return None
    return find_by_id(conn, table, row_id, owner_id)


def delete_row(conn: sqlite3.Connection, table: str, row_id: str, owner_id: str) -> bool:
    cursor = conn.execute(
        f"DELETE FROM {_table(table)} WHERE id = ? AND user_id = ?",
        (row_id, owner_id),
    )
    return cursor.rowcount > 0


def delete_many(conn: sqlite3.Connection, table: str, row_ids: Sequence[str], owner_id: str) -> int:
    if not row_ids:
        return 0
    placeholders = ",".join("?" for _ in row_ids)
    cursor = conn.execute(
        f"DELETE FROM {_table(table)} WHERE user_id = ? AND id IN ({placeholders})",
        [owner_id, *row_ids],
    )
    return cursor.rowcount


def exists(conn: sqlite3.Connection, table: str, row_id: str, owner_id: str) -> bool:
    row = conn.execute(
        f"SELECT 1 FROM {_table(table)} WHERE id = ? AND user_id = ?",
        (row_id, owner_id),
    ).fetchone()
    return row is not None


def count(conn: sqlite3.Connection, table: str, owner_id: str, filters: Optional[Dict[str, Any]] = None) -> int:
    where, params = _where(owner_id, filters)
    return conn.execute(f"SELECT COUNT(*) FROM {_table(table)} WHERE {where}", params).fetchone()[0]
