"""
auth/sessions.py -- Session Store and per-client token slot.

SessionStore contract:
  create(account_id) -> Session with a fresh unguessable token, expires_at = now + TTL
  find_valid(token)  -> Session | None; expired rows are deleted on read
  delete(token)      -> idempotent
  purge_expired()    -> bulk sweep, returns rows removed

Security design decisions:
  Tokens: secrets.token_urlsafe(32) gives 256 bits of entropy.

  Storage: only HMAC-SHA256(SECRET_KEY, token) is persisted. A copy of the
       database does not yield usable bearer tokens, and the digest is
       deterministic so lookup stays a primary-key hit.

  Expiry: enforced lazily. find_valid() garbage-collects an expired row the
       first time it is read, so a second lookup of the same token can never
       resurrect it. A row whose account no longer resolves is dropped the
       same way (the session goes, the account is never touched).

Concurrency: one lock serializes create/find_valid/delete/purge so expiry GC
cannot race a concurrent read of the same token. Events are published after
the lock is released; listeners may call back into the store.

ClientStateStore holds the current_session_token for each client context
(the CLI, a browser origin, a test). Absent token = Anonymous.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import threading
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.engine import Engine

from auth.events import EventHub
from auth.models import Session, SessionEvent
from auth.schema import client_state, from_iso, sessions, to_iso, utcnow
from auth.store import AccountStore
from core.config import get_settings

logger = logging.getLogger("authkeeper.auth.sessions")

TOKEN_BYTES = 32

Clock = Callable[[], datetime]


def generate_session_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


class SessionStore:
    """Repository for Session entities with lazy expiry.

    Usage:
        sessions = SessionStore(engine, accounts)
        session = sessions.create(account.id)
        sessions.find_valid(session.token)   # Session
        sessions.delete(session.token)
        sessions.find_valid(session.token)   # None
    """

    def __init__(
        self,
        engine: Engine,
        accounts: AccountStore,
        secret_key: str | None = None,
        ttl_seconds: int | None = None,
        clock: Clock = utcnow,
    ) -> None:
        settings = get_settings()
        self.engine = engine
        self.accounts = accounts
        self.ttl = timedelta(seconds=ttl_seconds if ttl_seconds is not None else settings.session_ttl_seconds)
        self.clock = clock
        self.events: EventHub[SessionEvent] = EventHub("session")
        self._secret = (secret_key or settings.secret_key).encode("utf-8")
        self._lock = threading.RLock()

    def hash_token(self, token: str) -> str:
        """Return HMAC-SHA256(SECRET_KEY, token) as a hex string."""
        return hmac.new(self._secret, token.encode("utf-8"), hashlib.sha256).hexdigest()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create(self, account_id: str) -> Session:
        """Persist a new session for account_id and return it with its raw token."""
        with self._lock, self.engine.connect() as conn:
            while True:
                token = generate_session_token()
                token_hash = self.hash_token(token)
                taken = conn.execute(
                    select(sessions.c.token_hash).where(sessions.c.token_hash == token_hash)
                ).first()
                if taken is None:
                    break
            now = self.clock()
            session = Session(token=token, account_id=account_id, created_at=now, expires_at=now + self.ttl)
            conn.execute(
                sessions.insert().values(
                    token_hash=token_hash,
                    account_id=account_id,
                    created_at=to_iso(session.created_at),
                    expires_at=to_iso(session.expires_at),
                )
            )
            conn.commit()
        logger.info("Session created (account=%s, expires=%s)", account_id, to_iso(session.expires_at))
        self.events.publish(SessionEvent("created", token_hash, account_id))
        return session

    def find_valid(self, token: str) -> Session | None:
        """Return the live session for token, or None.

        Side effect: an expired row, or a row whose account no longer exists,
        is deleted before None is returned.
        """
        if not token:
            return None
        token_hash = self.hash_token(token)
        event: SessionEvent | None = None
        result: Session | None = None
        with self._lock, self.engine.connect() as conn:
            row = conn.execute(sessions.select().where(sessions.c.token_hash == token_hash)).first()
            if row is None:
                return None
            session = Session(
                token=token,
                account_id=row.account_id,
                created_at=from_iso(row.created_at),
                expires_at=from_iso(row.expires_at),
            )
            if session.is_expired(self.clock()):
                kind = "expired"
            elif not self.accounts.exists(session.account_id):
                kind = "dropped"
            else:
                kind = None
                result = session
            if kind is not None:
                conn.execute(sessions.delete().where(sessions.c.token_hash == token_hash))
                conn.commit()
                event = SessionEvent(kind, token_hash, session.account_id)
        if event is not None:
            logger.info("Session %s on read (account=%s)", event.kind, event.account_id)
            self.events.publish(event)
        return result

    def delete(self, token: str) -> None:
        """Remove the session for token. No error if it is already gone."""
        if not token:
            return
        token_hash = self.hash_token(token)
        with self._lock, self.engine.connect() as conn:
            row = conn.execute(
                select(sessions.c.account_id).where(sessions.c.token_hash == token_hash)
            ).first()
            if row is None:
                return
            conn.execute(sessions.delete().where(sessions.c.token_hash == token_hash))
            conn.commit()
        self.events.publish(SessionEvent("deleted", token_hash, row.account_id))

    def purge_expired(self) -> int:
        """Delete every expired row. Returns the number of rows removed."""
        cutoff = to_iso(self.clock())
        with self._lock, self.engine.connect() as conn:
            expired = conn.execute(
                select(sessions.c.token_hash, sessions.c.account_id).where(sessions.c.expires_at <= cutoff)
            ).fetchall()
            if not expired:
                return 0
            conn.execute(sessions.delete().where(sessions.c.expires_at <= cutoff))
            conn.commit()
        for row in expired:
            self.events.publish(SessionEvent("expired", row.token_hash, row.account_id))
        logger.info("Purged %d expired session(s)", len(expired))
        return len(expired)

    def count_for_account(self, account_id: str) -> int:
        """Number of stored (not necessarily unexpired) sessions for an account."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(sessions.c.token_hash).where(sessions.c.account_id == account_id)
            ).fetchall()
        return len(rows)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: Callable[[SessionEvent], None]) -> Callable[[], None]:
        return self.events.subscribe(listener)

    def unsubscribe(self, listener: Callable[[SessionEvent], None]) -> None:
        self.events.unsubscribe(listener)


class ClientStateStore:
    """Durable current_session_token slot, one per client context."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._lock = threading.Lock()

    def get(self, client_id: str) -> str | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(client_state.c.current_session_token).where(client_state.c.client_id == client_id)
            ).first()
        return row.current_session_token if row is not None else None

    def set(self, client_id: str, token: str) -> None:
        with self._lock, self.engine.connect() as conn:
            existing = conn.execute(
                select(client_state.c.client_id).where(client_state.c.client_id == client_id)
            ).first()
            if existing is None:
                conn.execute(client_state.insert().values(client_id=client_id, current_session_token=token))
            else:
                conn.execute(
                    client_state.update()
                    .where(client_state.c.client_id == client_id)
                    .values(current_session_token=token)
                )
            conn.commit()

    def clear(self, client_id: str) -> None:
        with self._lock, self.engine.connect() as conn:
            conn.execute(client_state.delete().where(client_state.c.client_id == client_id))
            conn.commit()
