"""
auth/models.py -- Domain dataclasses for credential and session entities.

Pattern: Data class (pure data container, near-zero logic). Stores and the
service do the work; these classes own the domain shape.

Auth context is modelled as an explicit tagged variant (Anonymous |
Authenticated) so there is no state where a token exists without an account
or vice versa.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Union

# Profile keys a caller may change through update_profile().
PROFILE_FIELDS: frozenset[str] = frozenset({"avatar", "bio", "skills", "location"})


@dataclass
class Profile:
    """Mutable, non-credential account details shown by the presentation layer."""

    avatar: str | None = None  # URL or asset reference
    bio: str = ""
    skills: list[str] = field(default_factory=list)
    location: str = ""

    def to_dict(self) -> dict:
        return {
            "avatar": self.avatar,
            "bio": self.bio,
            "skills": list(self.skills),
            "location": self.location,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> Profile:
        data = data or {}
        return cls(
            avatar=data.get("avatar"),
            bio=data.get("bio") or "",
            skills=list(data.get("skills") or []),
            location=data.get("location") or "",
        )


@dataclass
class Account:
    """A registered identity.

    username and email are stored normalized (lower-cased); the store enforces
    uniqueness on those values. password_hash is a bcrypt string with its salt
    embedded. created_at never changes after insert.
    """

    id: str
    username: str
    email: str
    password_hash: str
    full_name: str
    created_at: datetime
    last_login_at: datetime | None = None
    profile: Profile = field(default_factory=Profile)


@dataclass(frozen=True)
class AccountView:
    """Public projection of an Account -- everything but the password hash."""

    id: str
    username: str
    email: str
    full_name: str
    created_at: datetime
    last_login_at: datetime | None
    profile: Profile

    @classmethod
    def of(cls, account: Account) -> AccountView:
        return cls(
            id=account.id,
            username=account.username,
            email=account.email,
            full_name=account.full_name,
            created_at=account.created_at,
            last_login_at=account.last_login_at,
            profile=Profile.from_dict(account.profile.to_dict()),
        )


@dataclass(frozen=True)
class Session:
    """A time-bounded proof of authentication bound to one account.

    token is the raw bearer value. The store only persists its HMAC digest, so
    token is populated on objects returned from create() and find_valid(token).
    """

    token: str
    account_id: str
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class SessionEvent:
    """Published by SessionStore on every session mutation."""

    kind: str  # "created" | "deleted" | "expired" | "dropped"
    token_hash: str
    account_id: str


@dataclass(frozen=True)
class RegistrationInput:
    full_name: str
    email: str
    username: str
    password: str
    confirm_password: str


@dataclass(frozen=True)
class LoginSuccess:
    account: AccountView
    token: str


@dataclass(frozen=True)
class AccountStats:
    total_accounts: int
    days_since_registration: int
    last_login_days: int | None


# ---------------------------------------------------------------------------
# Auth context (derived, never persisted)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Anonymous:
    """No live session in this context."""


@dataclass(frozen=True)
class Authenticated:
    account: AccountView
    token: str


AuthContext = Union[Anonymous, Authenticated]
