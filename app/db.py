import contextlib
import sqlite3
from typing import Iterable, Iterator

try:
    import psycopg2
    import psycopg2.extras
except ImportError:  # pragma: no cover - optional dependency for postgres
    psycopg2 = None

from flask import current_app, g


class Database:
    def __init__(self, backend: str, connection):
        self.backend = backend
        self._conn = connection
        self._tx_depth = 0

    @property
    def lock_suffix(self) -> str:
        # Row locks only exist on postgres; sqlite serializes writers with BEGIN IMMEDIATE.
        return " FOR UPDATE" if self.backend == "postgres" else ""

    @property
    def in_transaction(self) -> bool:
        return self._tx_depth > 0

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

    @contextlib.contextmanager
    def transaction(self) -> Iterator["Database"]:
        """Run the block in one transaction; nested blocks join the outer one."""
        if self._tx_depth:
            self._tx_depth += 1
            try:
                yield self
            finally:
                self._tx_depth -= 1
            return

        self._begin()
        self._tx_depth = 1
        try:
            yield self
        except BaseException:
            self._tx_depth = 0
            self._rollback()
            raise
        self._tx_depth = 0
        self._commit()

    def _begin(self) -> None:
        if self.backend == "postgres":
            self.execute("BEGIN")
            return
        if self._conn.in_transaction:
            self._conn.commit()
        self._conn.execute("BEGIN IMMEDIATE")

    def _commit(self) -> None:
        if self.backend == "postgres":
            self.execute("COMMIT")
            return
        self._conn.commit()

    def _rollback(self) -> None:
        if self.backend == "postgres":
            self.execute("ROLLBACK")
            return
        self._conn.rollback()

    def commit(self):
        if self._tx_depth:
            return
        self._conn.commit()

    def close(self):
        self._conn.close()


def _convert_qmark_to_pg(sql: str) -> str:
    return sql.replace("?", "%s")


def connect_database(db_path: str) -> Database:
    if db_path.lower().startswith("postgres"):
        if psycopg2 is None:
            raise RuntimeError("psycopg2 is not installed.")
        conn = psycopg2.connect(db_path)
        conn.autocommit = True
        return Database("postgres", conn)

    conn = sqlite3.connect(db_path, timeout=30.0, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    return Database("sqlite", conn)


@contextlib.contextmanager
def transaction(db: Database) -> Iterator[Database]:
    with db.transaction() as tx:
        yield tx


def get_db():
    if "db" not in g:
        db_path = current_app.config["DB_PATH"]
        g.db = connect_database(db_path)
    return g.db


def close_db(_error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db(db: Database | None = None):
    db = db or get_db()
    for statement in SCHEMA_STATEMENTS:
        db.execute(statement)
    db.commit()


SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS procurement_requests (
        id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        code TEXT,
        title TEXT,
        description TEXT,
        requester_id TEXT,
        requester_email TEXT,
        status TEXT NOT NULL DEFAULT 'pending' CHECK (
            status IN ('draft','pending','in_progress','quoting','awarded','completed','rejected')
        ),
        due_date TEXT,
        quotation_started_at TEXT,
        winner_id TEXT,
        winner_quotation_id TEXT,
        winner_amount REAL,
        winner_delivery_days INTEGER,
        previous_winner_id TEXT,
        adjudicated_at TEXT,
        revoked_at TEXT,
        revocation_reason TEXT,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS quotation_invitations (
        id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        request_id TEXT NOT NULL REFERENCES procurement_requests (id),
        supplier_id TEXT NOT NULL,
        manager_id TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending' CHECK (
            status IN ('pending','viewed','quoted','declined')
        ),
        due_date TEXT,
        message TEXT,
        delivery_address TEXT,
        quotation_id TEXT,
        created_at TEXT NOT NULL,
        viewed_at TEXT,
        updated_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS quotations (
        id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        invitation_id TEXT NOT NULL REFERENCES quotation_invitations (id),
        request_id TEXT NOT NULL REFERENCES procurement_requests (id),
        supplier_id TEXT NOT NULL,
        supplier_name TEXT NOT NULL,
        total_amount REAL NOT NULL CHECK (total_amount > 0),
        currency TEXT NOT NULL CHECK (currency IN ('USD','EUR')),
        delivery_days INTEGER NOT NULL CHECK (delivery_days > 0),
        delivery_date TEXT,
        payment_terms TEXT NOT NULL,
        valid_until TEXT NOT NULL,
        notes TEXT NOT NULL DEFAULT '',
        attachments TEXT NOT NULL DEFAULT '[]',
        status TEXT NOT NULL DEFAULT 'submitted' CHECK (
            status IN ('submitted','selected','rejected','cancelled','revoked')
        ),
        is_winner BOOLEAN NOT NULL DEFAULT FALSE,
        is_reselection BOOLEAN NOT NULL DEFAULT FALSE,
        submitted_at TEXT NOT NULL,
        selected_at TEXT,
        updated_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS notifications (
        id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        type TEXT NOT NULL,
        title TEXT NOT NULL,
        message TEXT NOT NULL,
        related_id TEXT,
        related_type TEXT,
        read BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS quotation_comments (
        id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        request_id TEXT NOT NULL,
        supplier_id TEXT NOT NULL,
        author_id TEXT NOT NULL,
        author_role TEXT NOT NULL CHECK (author_role IN ('manager','supplier')),
        body TEXT NOT NULL,
        read BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS status_events (
        id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        entity TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        from_status TEXT,
        to_status TEXT,
        reason TEXT,
        actor_id TEXT,
        occurred_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_invitations_request ON quotation_invitations (tenant_id, request_id)",
    "CREATE INDEX IF NOT EXISTS idx_invitations_supplier ON quotation_invitations (tenant_id, supplier_id)",
    "CREATE INDEX IF NOT EXISTS idx_quotations_request ON quotations (tenant_id, request_id, submitted_at)",
    "CREATE INDEX IF NOT EXISTS idx_quotations_supplier ON quotations (tenant_id, supplier_id, submitted_at)",
    "CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications (tenant_id, user_id, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_comments_thread ON quotation_comments (tenant_id, request_id, supplier_id)",
    "CREATE INDEX IF NOT EXISTS idx_status_events_entity ON status_events (tenant_id, entity, entity_id)",
)
