"""
auth/service.py -- AuthService, the orchestration core.

One AuthService instance is one client context (a CLI profile, a browser
origin, an HTTP request). It owns that context's AuthContext and mutates it
strictly sequentially; the stores it is given are shared process-wide.

State machine:
    Anonymous --login ok--> Authenticated --logout | expiry seen--> Anonymous

Every public operation returns an AuthResult. Validation and credential
failures are values, never exceptions, and an early validation exit writes
nothing.

Security:
  Login always runs one bcrypt verification, against a dummy hash when the
  email is unknown, and both failure paths return the same INVALID_CREDENTIALS
  value -- callers cannot tell which check failed.

  Protected operations re-check the session in the store instead of trusting
  the cached context, so an expired or revoked token is noticed on first use.
"""

from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Callable

from auth.errors import INVALID_CREDENTIALS, AuthErrorCode, AuthResult, ConflictError, NotFoundError
from auth.events import EventHub
from auth.models import (
    PROFILE_FIELDS,
    Account,
    AccountStats,
    AccountView,
    Anonymous,
    Authenticated,
    AuthContext,
    LoginSuccess,
    Profile,
    RegistrationInput,
    SessionEvent,
)
from auth.passwords import hash_password, validate_strength, verify_password, verify_password_or_dummy
from auth.schema import utcnow
from auth.sessions import ClientStateStore, SessionStore
from auth.store import AccountStore

logger = logging.getLogger("authkeeper.auth.service")

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

AuthStateListener = Callable[[AuthContext], None]


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email.strip()))


class AuthService:
    """Registration, login, logout, session restore and protected mutations.

    Args:
        accounts:     Credential Store.
        sessions:     Session Store (shared by every context).
        client_state: Optional durable slot for this context's current token.
                      Without it the context lives only in memory, which is
                      what the per-request HTTP adapter wants.
        client_id:    Key for client_state.
    """

    def __init__(
        self,
        accounts: AccountStore,
        sessions: SessionStore,
        client_state: ClientStateStore | None = None,
        client_id: str = "default",
    ) -> None:
        self.accounts = accounts
        self.sessions = sessions
        self.client_state = client_state
        self.client_id = client_id
        self.context: AuthContext = Anonymous()
        self.state_changes: EventHub[AuthContext] = EventHub("auth_state")
        self._unsubscribe_sessions = sessions.subscribe(self._on_session_event)

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    @property
    def is_authenticated(self) -> bool:
        return isinstance(self.context, Authenticated)

    def current_account(self) -> AccountView | None:
        return self.context.account if isinstance(self.context, Authenticated) else None

    def subscribe(self, listener: AuthStateListener) -> Callable[[], None]:
        """Register an onAuthStateChanged listener (the Presentation Adapter)."""
        return self.state_changes.subscribe(listener)

    def unsubscribe(self, listener: AuthStateListener) -> None:
        self.state_changes.unsubscribe(listener)

    def close(self) -> None:
        """Detach from the shared session store. The context keeps its last state."""
        self._unsubscribe_sessions()

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    def register(self, data: RegistrationInput) -> AuthResult:
        """Create an account and log it in. Returns LoginSuccess on success."""
        fields = {
            "full_name": data.full_name,
            "email": data.email,
            "username": data.username,
            "password": data.password,
            "confirm_password": data.confirm_password,
        }
        missing = tuple(name for name, value in fields.items() if not value or not value.strip())
        if missing:
            return AuthResult.failure(AuthErrorCode.invalid_input, "All fields are required.", missing)

        if not is_valid_email(data.email):
            return AuthResult.failure(AuthErrorCode.invalid_input, "Please enter a valid email address.", ("email",))

        if self.accounts.find_by_email(data.email) is not None:
            return AuthResult.failure(AuthErrorCode.conflict, "Email already registered.", ("email",))
        if self.accounts.find_by_username(data.username) is not None:
            return AuthResult.failure(AuthErrorCode.conflict, "Username already taken.", ("username",))

        if data.password != data.confirm_password:
            return AuthResult.failure(AuthErrorCode.password_mismatch, "Passwords do not match.")

        problems = validate_strength(data.password)
        if problems:
            return AuthResult.failure(AuthErrorCode.weak_password, "Password is too weak.", tuple(problems))

        account = Account(
            id=uuid.uuid4().hex,
            username=data.username,
            email=data.email,
            password_hash=hash_password(data.password),
            full_name=data.full_name.strip(),
            created_at=self.sessions.clock(),
        )
        try:
            self.accounts.create(account)
        except ConflictError as exc:
            # Lost a race with another context between the checks above and the insert.
            message = "Email already registered." if exc.field == "email" else "Username already taken."
            return AuthResult.failure(AuthErrorCode.conflict, message, (exc.field,))

        return self.login(data.email, data.password)

    def login(self, email: str, password: str) -> AuthResult:
        """Authenticate by email and password. Returns LoginSuccess on success."""
        account = self.accounts.find_by_email(email) if email else None
        if not verify_password_or_dummy(password or "", account.password_hash if account else None):
            logger.info("Login failed")
            return AuthResult(error=INVALID_CREDENTIALS)

        self._drop_current_session()
        session = self.sessions.create(account.id)
        account.last_login_at = session.created_at
        try:
            self.accounts.update(account)
        except NotFoundError:
            self.sessions.delete(session.token)
            return AuthResult(error=INVALID_CREDENTIALS)

        view = AccountView.of(account)
        self._enter(Authenticated(account=view, token=session.token))
        logger.info("Login ok (account=%s)", account.id)
        return AuthResult.success(LoginSuccess(account=view, token=session.token))

    def logout(self) -> AuthResult:
        """End the current session. Always succeeds, even when already anonymous."""
        self._drop_current_session()
        self._enter(Anonymous())
        return AuthResult.success()

    # ------------------------------------------------------------------
    # Session restore
    # ------------------------------------------------------------------

    def restore_session(self, token: str | None = None) -> AuthResult:
        """Rebuild the context from the Session Store.

        token defaults to this context's persisted current_session_token.
        Returns the AccountView when a live session is found, None otherwise;
        "no active session" is a normal outcome, not an error.
        """
        if token is None and self.client_state is not None:
            token = self.client_state.get(self.client_id)

        # Switching tokens ends the session this context held.
        if isinstance(self.context, Authenticated) and token and token != self.context.token:
            self._drop_current_session()

        # Derived state is rebuilt from scratch; listeners hear only the outcome.
        self.context = Anonymous()
        account = None
        if token:
            session = self.sessions.find_valid(token)
            if session is not None:
                account = self.accounts.find_by_id(session.account_id)

        if account is None:
            self._enter(Anonymous())
            return AuthResult.success(None)

        view = AccountView.of(account)
        self._enter(Authenticated(account=view, token=token))
        return AuthResult.success(view)

    def resume(self) -> AuthResult:
        """Startup hook: restore from the persisted token, if any."""
        return self.restore_session()

    # ------------------------------------------------------------------
    # Protected operations
    # ------------------------------------------------------------------

    def update_profile(self, changes: dict) -> AuthResult:
        """Shallow-merge changes into the current account's profile. Returns the new Profile."""
        account = self._require_account()
        if account is None:
            return _unauthenticated()

        unknown = tuple(sorted(set(changes) - PROFILE_FIELDS))
        if unknown:
            return AuthResult.failure(AuthErrorCode.invalid_input, "Unknown profile field(s).", unknown)

        malformed = tuple(sorted(key for key, value in changes.items() if not _profile_value_ok(key, value)))
        if malformed:
            return AuthResult.failure(AuthErrorCode.invalid_input, "Invalid profile value(s).", malformed)

        merged = account.profile.to_dict()
        merged.update(changes)
        account.profile = Profile.from_dict(merged)
        try:
            self.accounts.update(account)
        except NotFoundError as exc:
            return AuthResult.failure(AuthErrorCode.not_found, str(exc))

        self._refresh_view(account)
        return AuthResult.success(account.profile)

    def change_password(self, current_password: str, new_password: str) -> AuthResult:
        """Replace the password after verifying the current one.

        Other live sessions of the account are left alone.
        """
        account = self._require_account()
        if account is None:
            return _unauthenticated()

        if not verify_password(current_password or "", account.password_hash):
            return AuthResult(error=INVALID_CREDENTIALS)

        problems = validate_strength(new_password or "")
        if problems:
            return AuthResult.failure(AuthErrorCode.weak_password, "Password is too weak.", tuple(problems))

        account.password_hash = hash_password(new_password)
        try:
            self.accounts.update(account)
        except NotFoundError as exc:
            return AuthResult.failure(AuthErrorCode.not_found, str(exc))
        logger.info("Password changed (account=%s)", account.id)
        return AuthResult.success()

    def account_stats(self) -> AuthResult:
        """Return AccountStats for the current account."""
        account = self._require_account()
        if account is None:
            return _unauthenticated()

        now = self.sessions.clock()
        last_login_days = None
        if account.last_login_at is not None:
            last_login_days = (now - account.last_login_at).days
        return AuthResult.success(
            AccountStats(
                total_accounts=self.accounts.count(),
                days_since_registration=(now - account.created_at).days,
                last_login_days=last_login_days,
            )
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_account(self) -> Account | None:
        """Return the current account if the context's session is still live.

        A dead session flips the context to Anonymous (and notifies) before
        returning None.
        """
        if not isinstance(self.context, Authenticated):
            return None
        session = self.sessions.find_valid(self.context.token)
        account = self.accounts.find_by_id(session.account_id) if session is not None else None
        if account is None:
            # An expired row may already have flipped us via _on_session_event.
            if isinstance(self.context, Authenticated):
                self._enter(Anonymous())
            return None
        return account

    def _refresh_view(self, account: Account) -> None:
        if isinstance(self.context, Authenticated):
            self.context = Authenticated(account=AccountView.of(account), token=self.context.token)

    def _drop_current_session(self) -> None:
        token = self.context.token if isinstance(self.context, Authenticated) else None
        if token is None and self.client_state is not None:
            token = self.client_state.get(self.client_id)
        # Leave Authenticated before deleting so our own session event is ignored.
        self.context = Anonymous()
        if token:
            self.sessions.delete(token)
        self._forget_token()

    def _forget_token(self) -> None:
        if self.client_state is not None:
            self.client_state.clear(self.client_id)

    def _enter(self, context: AuthContext) -> None:
        self.context = context
        if self.client_state is not None and isinstance(context, Authenticated):
            self.client_state.set(self.client_id, context.token)
        elif isinstance(context, Anonymous):
            self._forget_token()
        self.state_changes.publish(context)

    def _on_session_event(self, event: SessionEvent) -> None:
        """Another context removed our session: fall back to Anonymous."""
        if event.kind == "created" or not isinstance(self.context, Authenticated):
            return
        if self.sessions.hash_token(self.context.token) != event.token_hash:
            return
        logger.info("Session ended elsewhere (account=%s, reason=%s)", event.account_id, event.kind)
        self._enter(Anonymous())


def _unauthenticated() -> AuthResult:
    return AuthResult.failure(AuthErrorCode.unauthenticated, "Authentication required.")


def _profile_value_ok(key: str, value) -> bool:
    """avatar: str or None; bio, location: str; skills: list of str."""
    if key == "avatar":
        return value is None or isinstance(value, str)
    if key == "skills":
        return isinstance(value, list) and all(isinstance(skill, str) for skill in value)
    return isinstance(value, str)


# ---------------------------------------------------------------------------
# Demo data
# ---------------------------------------------------------------------------

DEMO_EMAIL = "demo@example.com"


def seed_demo_account(accounts: AccountStore, password: str, clock=None) -> Account | None:
    """Create the demo account if its email is free. Returns it, or None if it already exists.

    Raises ValueError if password does not satisfy the policy -- a seed the
    demo user could never log in with is a configuration bug.
    """
    if accounts.find_by_email(DEMO_EMAIL) is not None:
        return None
    problems = validate_strength(password)
    if problems:
        raise ValueError(f"DEMO_PASSWORD rejected by password policy: {'; '.join(problems)}")
    account = Account(
        id=uuid.uuid4().hex,
        username="demo",
        email=DEMO_EMAIL,
        password_hash=hash_password(password),
        full_name="Demo User",
        created_at=(clock or utcnow)(),
        profile=Profile(
            bio="This is a demo account for testing purposes.",
            skills=["JavaScript", "HTML", "CSS"],
            location="San Francisco, CA",
        ),
    )
    try:
        accounts.create(account)
    except ConflictError:
        return None
    logger.info("Demo account seeded (id=%s)", account.id)
    return account
