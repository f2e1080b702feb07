"""
tests/test_session_store.py -- Unit tests for SessionStore and ClientStateStore.

Covers:
  - create(): fresh unguessable tokens, expires_at = created_at + TTL
  - only the HMAC digest of a token reaches the database
  - find_valid(): lazy expiry (expired rows are deleted on read and stay gone)
  - find_valid(): a row whose account is missing is dropped
  - delete(): idempotent
  - purge_expired(): bulk sweep
  - events published for every mutation
  - ClientStateStore get/set/clear
"""

from __future__ import annotations

import uuid
from datetime import timedelta

from sqlalchemy import select

from auth.models import Account, SessionEvent
from auth.passwords import hash_password
from auth.schema import sessions as sessions_table
from auth.sessions import ClientStateStore, SessionStore
from auth.store import AccountStore


def make_account(accounts: AccountStore, clock, name: str = "alice") -> Account:
    return accounts.create(
        Account(
            id=uuid.uuid4().hex,
            username=name,
            email=f"{name}@example.com",
            password_hash=hash_password("Passw0rd"),
            full_name=name.title(),
            created_at=clock(),
        )
    )


class TestCreate:
    def test_session_has_ttl_expiry(self, accounts, sessions: SessionStore, clock) -> None:
        account = make_account(accounts, clock)
        session = sessions.create(account.id)
        assert session.account_id == account.id
        assert session.created_at == clock()
        assert session.expires_at == clock() + timedelta(hours=24)

    def test_tokens_are_unique_and_long(self, accounts, sessions: SessionStore, clock) -> None:
        account = make_account(accounts, clock)
        tokens = {sessions.create(account.id).token for _ in range(20)}
        assert len(tokens) == 20
        assert all(len(t) >= 43 for t in tokens)

    def test_raw_token_is_not_persisted(self, accounts, sessions: SessionStore, clock, engine) -> None:
        account = make_account(accounts, clock)
        session = sessions.create(account.id)
        with engine.connect() as conn:
            stored = conn.execute(select(sessions_table.c.token_hash)).scalars().all()
        assert stored == [sessions.hash_token(session.token)]
        assert session.token not in stored

    def test_custom_ttl(self, accounts, engine, clock) -> None:
        store = SessionStore(engine, accounts, ttl_seconds=60, clock=clock)
        account = make_account(accounts, clock)
        session = store.create(account.id)
        assert session.expires_at - session.created_at == timedelta(seconds=60)


class TestFindValid:
    def test_live_session_is_found(self, accounts, sessions: SessionStore, clock) -> None:
        account = make_account(accounts, clock)
        session = sessions.create(account.id)
        clock.advance(hours=23, minutes=59)
        found = sessions.find_valid(session.token)
        assert found is not None
        assert found.account_id == account.id
        assert found.expires_at == session.expires_at

    def test_unknown_and_empty_tokens(self, sessions: SessionStore) -> None:
        assert sessions.find_valid("no-such-token") is None
        assert sessions.find_valid("") is None

    def test_expired_session_is_absent_and_stays_absent(self, accounts, sessions: SessionStore, clock) -> None:
        account = make_account(accounts, clock)
        session = sessions.create(account.id)
        clock.advance(hours=24, seconds=1)
        assert sessions.find_valid(session.token) is None
        assert sessions.count_for_account(account.id) == 0
        # Turning the clock back cannot resurrect a collected row.
        clock.advance(hours=-1)
        assert sessions.find_valid(session.token) is None

    def test_session_expires_exactly_at_expires_at(self, accounts, sessions: SessionStore, clock) -> None:
        account = make_account(accounts, clock)
        session = sessions.create(account.id)
        clock.advance(hours=24)
        assert sessions.find_valid(session.token) is None

    def test_session_without_account_is_dropped(self, sessions: SessionStore) -> None:
        received: list[SessionEvent] = []
        sessions.subscribe(received.append)
        session = sessions.create(uuid.uuid4().hex)
        assert sessions.find_valid(session.token) is None
        assert sessions.count_for_account(session.account_id) == 0
        assert received[-1].kind == "dropped"


class TestDeleteAndPurge:
    def test_delete_is_idempotent(self, accounts, sessions: SessionStore, clock) -> None:
        account = make_account(accounts, clock)
        session = sessions.create(account.id)
        sessions.delete(session.token)
        sessions.delete(session.token)
        sessions.delete("")
        assert sessions.find_valid(session.token) is None

    def test_delete_only_removes_one_session(self, accounts, sessions: SessionStore, clock) -> None:
        account = make_account(accounts, clock)
        first = sessions.create(account.id)
        second = sessions.create(account.id)
        sessions.delete(first.token)
        assert sessions.find_valid(second.token) is not None

    def test_purge_expired(self, accounts, sessions: SessionStore, clock) -> None:
        account = make_account(accounts, clock)
        old = sessions.create(account.id)
        clock.advance(hours=12)
        fresh = sessions.create(account.id)
        clock.advance(hours=13)

        assert sessions.purge_expired() == 1
        assert sessions.purge_expired() == 0
        assert sessions.count_for_account(account.id) == 1
        assert sessions.find_valid(fresh.token) is not None
        assert sessions.find_valid(old.token) is None


class TestEvents:
    def test_mutations_publish_events(self, accounts, sessions: SessionStore, clock) -> None:
        account = make_account(accounts, clock)
        received: list[SessionEvent] = []
        sessions.subscribe(received.append)

        first = sessions.create(account.id)
        sessions.delete(first.token)
        sessions.delete(first.token)  # no row, no event
        second = sessions.create(account.id)
        clock.advance(days=2)
        sessions.find_valid(second.token)

        assert [e.kind for e in received] == ["created", "deleted", "created", "expired"]
        assert received[1].token_hash == sessions.hash_token(first.token)
        assert all(e.account_id == account.id for e in received)

    def test_unsubscribe_stops_delivery(self, accounts, sessions: SessionStore, clock) -> None:
        account = make_account(accounts, clock)
        received: list[SessionEvent] = []
        sessions.subscribe(received.append)
        sessions.unsubscribe(received.append)
        sessions.create(account.id)
        assert received == []

    def test_failing_listener_does_not_break_the_store(self, accounts, sessions: SessionStore, clock) -> None:
        account = make_account(accounts, clock)
        received: list[SessionEvent] = []

        def broken(event: SessionEvent) -> None:
            raise RuntimeError("listener bug")

        sessions.subscribe(broken)
        sessions.subscribe(received.append)
        session = sessions.create(account.id)
        assert sessions.find_valid(session.token) is not None
        assert len(received) == 1


class TestClientState:
    def test_set_get_clear(self, client_state: ClientStateStore) -> None:
        assert client_state.get("cli") is None
        client_state.set("cli", "token-1")
        client_state.set("cli", "token-2")
        client_state.set("browser", "token-3")
        assert client_state.get("cli") == "token-2"
        assert client_state.get("browser") == "token-3"
        client_state.clear("cli")
        client_state.clear("cli")
        assert client_state.get("cli") is None
        assert client_state.get("browser") == "token-3"
