"""
auth/store.py -- SQLAlchemy Core persistence for Account records (Credential Store).

Pattern: Repository + Data Mapper. AccountStore is the repository;
_row_to_account / _account_to_values are the mappers. The service never
touches SQL directly.

Contract:
  create(account)      -> Account, raises ConflictError on duplicate username/email
  find_by_email(email) -> Account | None   (case-insensitive)
  find_by_username(u)  -> Account | None   (case-insensitive)
  find_by_id(id)       -> Account | None
  update(account)      -> Account, full replace; raises NotFoundError / ConflictError

There is deliberately no delete and no partial-field update: callers read,
mutate a copy, and call update().

Concurrency: uniqueness is check-then-insert. The check and the write run
under a store lock, and the UNIQUE constraints in auth/schema.py catch any
writer outside this process (IntegrityError is mapped to ConflictError).

Security:
  All queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import json
import logging
import threading

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import ConflictError, NotFoundError
from auth.models import Account, Profile
from auth.schema import from_iso, to_iso, users

logger = logging.getLogger("authkeeper.auth.store")


def normalize_identity(value: str) -> str:
    """Usernames and emails compare case-insensitively and ignore surrounding whitespace."""
    return value.strip().lower()


class AccountStore:
    """Repository for Account entities.

    Usage:
        engine = make_engine("sqlite:///authkeeper.db")
        store = AccountStore(engine)
        store.create(account)
        account = store.find_by_email("Alice@Example.com")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, account: Account) -> Account:
        """Insert a new account and return it with normalized identity fields.

        Raises ConflictError("email") or ConflictError("username") when the
        normalized value is already present. Email is checked first.
        """
        account.username = normalize_identity(account.username)
        account.email = normalize_identity(account.email)
        with self._lock, self.engine.connect() as conn:
            self._check_unique(conn, account)
            try:
                conn.execute(users.insert().values(id=account.id, **_account_to_values(account)))
                conn.commit()
            except IntegrityError as exc:
                conn.rollback()
                raise ConflictError(_conflicting_field(exc)) from exc
        logger.info("Account created (id=%s)", account.id)
        return account

    def update(self, account: Account) -> Account:
        """Replace the stored record for account.id.

        created_at is immutable and is never written by update. Raises
        NotFoundError if the id was never created, ConflictError if the new
        username/email belongs to another account.
        """
        account.username = normalize_identity(account.username)
        account.email = normalize_identity(account.email)
        values = _account_to_values(account)
        values.pop("created_at")
        with self._lock, self.engine.connect() as conn:
            exists = conn.execute(select(users.c.seq).where(users.c.id == account.id)).first()
            if exists is None:
                raise NotFoundError(account.id)
            self._check_unique(conn, account, exclude_id=account.id)
            try:
                conn.execute(users.update().where(users.c.id == account.id).values(**values))
                conn.commit()
            except IntegrityError as exc:
                conn.rollback()
                raise ConflictError(_conflicting_field(exc)) from exc
        return account

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_email(self, email: str) -> Account | None:
        return self._find_one(users.c.email == normalize_identity(email))

    def find_by_username(self, username: str) -> Account | None:
        return self._find_one(users.c.username == normalize_identity(username))

    def find_by_id(self, account_id: str) -> Account | None:
        return self._find_one(users.c.id == account_id)

    def exists(self, account_id: str) -> bool:
        """Cheap existence check used by SessionStore.find_valid()."""
        with self.engine.connect() as conn:
            row = conn.execute(select(users.c.seq).where(users.c.id == account_id)).fetchone()
        return row is not None

    def count(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(users)).scalar()
        return result or 0

    def list_accounts(self) -> list[Account]:
        """Return all accounts in creation order."""
        with self.engine.connect() as conn:
            rows = conn.execute(users.select().order_by(users.c.seq)).fetchall()
        return [_row_to_account(r) for r in rows]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _find_one(self, condition) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(users.select().where(condition)).fetchone()
        return _row_to_account(row) if row is not None else None

    @staticmethod
    def _check_unique(conn, account: Account, exclude_id: str | None = None) -> None:
        for field_name, column, value in (
            ("email", users.c.email, account.email),
            ("username", users.c.username, account.username),
        ):
            query = select(users.c.id).where(column == value)
            if exclude_id is not None:
                query = query.where(users.c.id != exclude_id)
            if conn.execute(query).first() is not None:
                raise ConflictError(field_name)


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _account_to_values(account: Account) -> dict:
    return {
        "username": account.username,
        "email": account.email,
        "password_hash": account.password_hash,
        "full_name": account.full_name,
        "created_at": to_iso(account.created_at),
        "last_login_at": to_iso(account.last_login_at),
        "profile": json.dumps(account.profile.to_dict()),
    }


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        username=row.username,
        email=row.email,
        password_hash=row.password_hash,
        full_name=row.full_name,
        created_at=from_iso(row.created_at),
        last_login_at=from_iso(row.last_login_at),
        profile=Profile.from_dict(json.loads(row.profile) if row.profile else None),
    )


def _conflicting_field(exc: IntegrityError) -> str:
    # SQLite: "UNIQUE constraint failed: users.email"; PostgreSQL names the key.
    return "email" if "email" in str(exc.orig).lower() else "username"
