"""
auth/errors.py -- Error taxonomy and result type for the auth service.

Two layers:
  Store exceptions (ConflictError, NotFoundError) are raised inside the
  persistence layer, the same way the stores surface IntegrityError.

  AuthResult is what AuthService returns. Validation and credential failures
  never cross the service boundary as exceptions; the caller (HTTP route, CLI)
  inspects result.error.code and decides presentation.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class AuthErrorCode(str, Enum):
    conflict = "conflict"
    password_mismatch = "password_mismatch"
    weak_password = "weak_password"
    invalid_credentials = "invalid_credentials"
    unauthenticated = "unauthenticated"
    not_found = "not_found"
    invalid_input = "invalid_input"


@dataclass(frozen=True)
class AuthError:
    """Machine-readable failure. Equal errors compare equal, which callers rely
    on to show that unknown-email and wrong-password logins are indistinguishable."""

    code: AuthErrorCode
    message: str
    details: tuple[str, ...] = ()


@dataclass(frozen=True)
class AuthResult:
    value: Any = None
    error: AuthError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Any = None) -> AuthResult:
        return cls(value=value)

    @classmethod
    def failure(cls, code: AuthErrorCode, message: str, details: tuple[str, ...] = ()) -> AuthResult:
        return cls(error=AuthError(code=code, message=message, details=details))


# Shared instance so both login failure paths return the same value.
INVALID_CREDENTIALS = AuthError(
    code=AuthErrorCode.invalid_credentials,
    message="Invalid email or password.",
)


class StoreError(Exception):
    """Base class for persistence-layer failures."""


class ConflictError(StoreError):
    """A normalized username or email is already taken."""

    def __init__(self, field: str) -> None:
        super().__init__(f"{field} already registered")
        self.field = field


class NotFoundError(StoreError):
    """update() referenced an account id that does not exist."""

    def __init__(self, account_id: str) -> None:
        super().__init__(f"account {account_id!r} not found")
        self.account_id = account_id
