import os
import sqlite3
from contextlib import contextmanager
from typing import Iterable, List

import psycopg2
import psycopg2.extensions
import psycopg2.extras
from flask import current_app, g


DEFAULT_TENANT_ID = "tenant-demo"

# Errors raised by either driver; services wrap them as persistence failures.
DATABASE_ERRORS = (sqlite3.Error, psycopg2.Error)


class Database:
    def __init__(self, backend: str, connection):
        self.backend = backend
        self._conn = connection
        self._in_transaction = False

    def execute(self, sql: str, params: Iterable | None = None):
        if self.backend == "postgres":
            cursor = self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            if params:
                sql = _convert_qmark_to_pg(sql)
                cursor.execute(sql, list(params))
            else:
                cursor.execute(sql)
            return cursor
        return self._conn.execute(sql, params or ())

    def executescript(self, sql: str):
        if self.backend != "postgres":
            return self._conn.executescript(sql)
        for statement in _split_sql_statements(sql):
            if statement.strip():
                self.execute(statement)

    def commit(self):
        if self._in_transaction:
            return
        self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    @contextmanager
    def transaction(self):
        """Run the block as one unit: commit on success, roll back and re-raise on any error.

        Nested calls join the outer transaction. Plain ``commit()`` calls made by
        repositories inside the block are deferred to the outermost exit.

        On postgres the connection runs in autocommit between units, so the outermost
        ``transaction()`` must open the unit: psycopg2 refuses to switch autocommit
        while a transaction is already open.
        """
        if self._in_transaction:
            yield self
            return

        if self.backend == "postgres":
            if self._conn.status != psycopg2.extensions.STATUS_READY:
                raise RuntimeError("transaction() precisa abrir a unidade: ha uma transacao postgres em aberto.")
            self._conn.autocommit = False
        elif not self._conn.in_transaction:
            # Take the write lock up front so concurrent short_id allocation serializes.
            self._conn.execute("BEGIN IMMEDIATE")

        self._in_transaction = True
        try:
            yield self
        except BaseException:
            self._in_transaction = False
            self._conn.rollback()
            raise
        else:
            self._in_transaction = False
            self._conn.commit()
        finally:
            if self.backend == "postgres":
                self._conn.autocommit = True

    def close(self):
        self._conn.close()


def _split_sql_statements(sql: str) -> List[str]:
    statements = []
    current = []
    in_single = False
    in_dollar = False
    i = 0
    while i < len(sql):
        ch = sql[i]
        if not in_single and sql[i : i + 2] == "$$":
            in_dollar = not in_dollar
            current.append("$$")
            i += 2
            continue
        if not in_dollar:
            if ch == "'":
                in_single = not in_single
            elif ch == ";" and not in_single:
                statements.append("".join(current))
                current = []
                i += 1
                continue
        current.append(ch)
        i += 1
    if current:
        statements.append("".join(current))
    return statements


def _convert_qmark_to_pg(sql: str) -> str:
    return sql.replace("?", "%s")


def connect_database(db_path: str) -> Database:
    if db_path.lower().startswith("postgres"):
        conn = psycopg2.connect(db_path)
        conn.autocommit = True
        return Database("postgres", conn)

    directory = os.path.dirname(db_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return Database("sqlite", conn)


def get_db() -> Database:
    if "db" not in g:
        g.db = connect_database(current_app.config["DB_PATH"])
    return g.db


def close_db(_error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db():
    db = get_db()
    if db.backend == "postgres":
        _init_db_postgres(db)
        return

    _init_db_sqlite(db)


_SQLITE_SCHEMA = """
CREATE TABLE IF NOT EXISTS tenants (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS auth_users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT NOT NULL UNIQUE,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    display_name TEXT,
    tenant_id TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS workshop_settings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    tenant_id TEXT NOT NULL UNIQUE,
    workshop_name TEXT,
    workshop_address TEXT,
    workshop_whatsapp TEXT,
    city TEXT,
    logo_url TEXT,
    favorite_suppliers TEXT NOT NULL DEFAULT '[]',
    notify_on_response INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS suppliers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    whatsapp TEXT NOT NULL,
    tenant_id TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS budget_requests (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    short_id INTEGER NOT NULL UNIQUE,
    car_model TEXT NOT NULL,
    car_year TEXT NOT NULL,
    car_engine TEXT,
    parts TEXT NOT NULL DEFAULT '[]',
    notes TEXT,
    selected_shops_ids TEXT NOT NULL DEFAULT '[]',
    status TEXT NOT NULL DEFAULT 'pending' CHECK (
        status IN ('pending','answered','completed')
    ),
    tenant_id TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS budget_responses (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    budget_request_id INTEGER NOT NULL REFERENCES budget_requests(id) ON DELETE CASCADE,
    supplier_id INTEGER NOT NULL,
    shop_name TEXT NOT NULL,
    shop_whatsapp TEXT,
    parts_and_prices TEXT NOT NULL DEFAULT '[]',
    total_price REAL NOT NULL,
    notes TEXT,
    tenant_id TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS orders (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    budget_request_id INTEGER NOT NULL REFERENCES budget_requests(id) ON DELETE CASCADE,
    budget_response_id INTEGER,
    supplier_name TEXT NOT NULL,
    supplier_whatsapp TEXT,
    items TEXT NOT NULL DEFAULT '[]',
    total_amount REAL NOT NULL DEFAULT 0,
    notes TEXT,
    status TEXT NOT NULL DEFAULT 'placed' CHECK (status IN ('placed')),
    tenant_id TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS status_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    entity TEXT NOT NULL CHECK (entity IN ('budget_request')),
    entity_id INTEGER NOT NULL,
    from_status TEXT,
    to_status TEXT NOT NULL,
    reason TEXT,
    occurred_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    tenant_id TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_suppliers_tenant ON suppliers(tenant_id);
CREATE INDEX IF NOT EXISTS idx_budget_requests_tenant_status ON budget_requests(tenant_id, status);
CREATE INDEX IF NOT EXISTS idx_budget_responses_request ON budget_responses(budget_request_id);
CREATE INDEX IF NOT EXISTS idx_orders_request ON orders(budget_request_id);
CREATE INDEX IF NOT EXISTS idx_status_events_entity ON status_events(entity, entity_id);

CREATE TRIGGER IF NOT EXISTS trg_suppliers_updated_at
AFTER UPDATE ON suppliers
FOR EACH ROW
BEGIN
    UPDATE suppliers SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
END;

CREATE TRIGGER IF NOT EXISTS trg_auth_users_updated_at
AFTER UPDATE ON auth_users
FOR EACH ROW
BEGIN
    UPDATE auth_users SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
END;

CREATE TRIGGER IF NOT EXISTS trg_workshop_settings_updated_at
AFTER UPDATE ON workshop_settings
FOR EACH ROW
BEGIN
    UPDATE workshop_settings SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
END;
"""


def _init_db_sqlite(db: Database):
    db.executescript(_SQLITE_SCHEMA)
    # budget_requests.updated_at is written explicitly by the status update.
    _ensure_column(db, "auth_users", "username", "TEXT")
    _ensure_column(db, "workshop_settings", "notify_on_response", "INTEGER NOT NULL DEFAULT 1")
    _ensure_default_tenant(db)
    db.commit()


_POSTGRES_SCHEMA = """
CREATE TABLE IF NOT EXISTS tenants (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS auth_users (
    id SERIAL PRIMARY KEY,
    username TEXT NOT NULL UNIQUE,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    display_name TEXT,
    tenant_id TEXT NOT NULL,
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS workshop_settings (
    id SERIAL PRIMARY KEY,
    tenant_id TEXT NOT NULL UNIQUE,
    workshop_name TEXT,
    workshop_address TEXT,
    workshop_whatsapp TEXT,
    city TEXT,
    logo_url TEXT,
    favorite_suppliers TEXT NOT NULL DEFAULT '[]',
    notify_on_response INTEGER NOT NULL DEFAULT 1,
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS suppliers (
    id SERIAL PRIMARY KEY,
    name TEXT NOT NULL,
    whatsapp TEXT NOT NULL,
    tenant_id TEXT NOT NULL,
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS budget_requests (
    id SERIAL PRIMARY KEY,
    short_id INTEGER NOT NULL UNIQUE,
    car_model TEXT NOT NULL,
    car_year TEXT NOT NULL,
    car_engine TEXT,
    parts TEXT NOT NULL DEFAULT '[]',
    notes TEXT,
    selected_shops_ids TEXT NOT NULL DEFAULT '[]',
    status TEXT NOT NULL DEFAULT 'pending' CHECK (
        status IN ('pending','answered','completed')
    ),
    tenant_id TEXT NOT NULL,
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS budget_responses (
    id SERIAL PRIMARY KEY,
    budget_request_id INTEGER NOT NULL REFERENCES budget_requests(id) ON DELETE CASCADE,
    supplier_id INTEGER NOT NULL,
    shop_name TEXT NOT NULL,
    shop_whatsapp TEXT,
    parts_and_prices TEXT NOT NULL DEFAULT '[]',
    total_price DOUBLE PRECISION NOT NULL,
    notes TEXT,
    tenant_id TEXT NOT NULL,
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS orders (
    id SERIAL PRIMARY KEY,
    budget_request_id INTEGER NOT NULL REFERENCES budget_requests(id) ON DELETE CASCADE,
    budget_response_id INTEGER,
    supplier_name TEXT NOT NULL,
    supplier_whatsapp TEXT,
    items TEXT NOT NULL DEFAULT '[]',
    total_amount DOUBLE PRECISION NOT NULL DEFAULT 0,
    notes TEXT,
    status TEXT NOT NULL DEFAULT 'placed' CHECK (status IN ('placed')),
    tenant_id TEXT NOT NULL,
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS status_events (
    id SERIAL PRIMARY KEY,
    entity TEXT NOT NULL CHECK (entity IN ('budget_request')),
    entity_id INTEGER NOT NULL,
    from_status TEXT,
    to_status TEXT NOT NULL,
    reason TEXT,
    occurred_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    tenant_id TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_suppliers_tenant ON suppliers(tenant_id);
CREATE INDEX IF NOT EXISTS idx_budget_requests_tenant_status ON budget_requests(tenant_id, status);
CREATE INDEX IF NOT EXISTS idx_budget_responses_request ON budget_responses(budget_request_id);
CREATE INDEX IF NOT EXISTS idx_orders_request ON orders(budget_request_id);
CREATE INDEX IF NOT EXISTS idx_status_events_entity ON status_events(entity, entity_id);
"""


def _init_db_postgres(db: Database) -> None:
    db.executescript(_POSTGRES_SCHEMA)
    _ensure_column(db, "auth_users", "username", "TEXT")
    _ensure_column(db, "workshop_settings", "notify_on_response", "INTEGER NOT NULL DEFAULT 1")
    _ensure_default_tenant(db)
    _create_postgres_updated_at_triggers(db)
    db.commit()


def _create_postgres_updated_at_triggers(db: Database) -> None:
    db.execute(
        """
        CREATE OR REPLACE FUNCTION set_updated_at()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = CURRENT_TIMESTAMP;
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
        """
    )

    for table in ("suppliers", "auth_users", "workshop_settings"):
        db.execute(
            f"""
            DROP TRIGGER IF EXISTS trg_{table}_updated_at ON {table};
            CREATE TRIGGER trg_{table}_updated_at
            BEFORE UPDATE ON {table}
            FOR EACH ROW
            EXECUTE FUNCTION set_updated_at();
            """
        )


def _ensure_column(db: Database, table: str, column: str, definition: str) -> None:
    if _column_exists(db, table, column):
        return
    if db.backend == "postgres":
        db.execute(f"ALTER TABLE {table} ADD COLUMN IF NOT EXISTS {column} {definition}")
    else:
        db.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")


def _table_exists(db: Database, table: str) -> bool:
    if db.backend == "postgres":
        row = db.execute(
            """
            SELECT 1
            FROM information_schema.tables
            WHERE table_schema = 'public' AND table_name = ?
            """,
            (table,),
        ).fetchone()
        return row is not None

    row = db.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name = ?",
        (table,),
    ).fetchone()
    return row is not None


def _column_exists(db: Database, table: str, column: str) -> bool:
    if not _table_exists(db, table):
        return False
    if db.backend == "postgres":
        row = db.execute(
            """
            SELECT 1
            FROM information_schema.columns
            WHERE table_schema = 'public' AND table_name = ? AND column_name = ?
            """,
            (table, column),
        ).fetchone()
        return row is not None
    rows = db.execute(f"PRAGMA table_info({table})").fetchall()
    return any(row["name"] == column for row in rows)


def _ensure_default_tenant(db: Database) -> None:
    row = db.execute("SELECT id FROM tenants WHERE id = ?", (DEFAULT_TENANT_ID,)).fetchone()
    if row:
        return
    db.execute(
        "INSERT INTO tenants (id, name) VALUES (?, ?)",
        (DEFAULT_TENANT_ID, "Oficina Demo"),
    )
