"""
auth/schema.py -- SQLAlchemy Core schema and engine factory for the auth stores.

Persisted layout:
  users         -- account records, ordered by the autoincrement seq column
  sessions      -- HMAC digest of the session token -> session record
  client_state  -- client_id -> current_session_token for that client context

AccountStore, SessionStore and ClientStateStore share one Engine so session
validity checks can resolve the owning account in the same database.

Uniqueness of username and email is enforced by UNIQUE constraints on the
normalized (lower-cased) values the store writes, in addition to the store's
own check-then-insert critical section.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("id", String(32), nullable=False, unique=True),  # uuid4 hex, never reused
    Column("username", String(255), nullable=False, unique=True),  # lower-cased
    Column("email", String(320), nullable=False, unique=True),  # lower-cased
    Column("password_hash", Text, nullable=False),
    Column("full_name", String(255), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("last_login_at", String(32)),
    Column("profile", Text, nullable=False),  # JSON object
)

sessions = Table(
    "sessions",
    metadata,
    Column("token_hash", String(64), primary_key=True),  # HMAC-SHA256 hex of the raw token
    Column("account_id", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False),
    Index("ix_sessions_account_id", "account_id"),
)

client_state = Table(
    "client_state",
    metadata,
    Column("client_id", String(100), primary_key=True),
    Column("current_session_token", Text),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str) -> Engine:
    """Create an Engine for db_url and ensure the auth schema exists.

    Idempotent: create_all only creates missing tables, so this is safe to
    call on every startup against an existing database.
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Timestamp helpers (ISO 8601, always UTC-aware)
# ---------------------------------------------------------------------------


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    # Fixed microsecond precision keeps stored UTC strings lexicographically ordered.
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds") if value is not None else None


def from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
