"""
auth/passwords.py -- Password policy and bcrypt hashing.

Security design decisions:
  Hashing: bcrypt directly (no passlib wrapper). Every hash gets a fresh
       random salt embedded in the hash string, and the cost factor
       (BCRYPT_ROUNDS) makes brute force expensive. The same password hashed
       twice gives two different strings; verification reads the salt back
       out of the stored hash.

  Verification: bcrypt.checkpw compares in constant time. A malformed stored
       hash verifies as False rather than raising.

  Timing equalization: _DUMMY_HASH lets the login path run a full bcrypt
       check even when no account matches the email, so response time does
       not reveal which emails are registered.

  Length: bcrypt only consumes the first 72 bytes of input (and bcrypt 5
       rejects longer input outright), so the policy caps passwords at 72
       UTF-8 bytes instead of letting a suffix be silently ignored.
"""

from __future__ import annotations

import logging
import re

import bcrypt

from core.config import get_settings

logger = logging.getLogger("authkeeper.auth.passwords")

MIN_LENGTH = 8
MAX_BYTES = 72

_RULES: tuple[tuple[re.Pattern, str], ...] = (
    (re.compile(r"[a-z]"), "Must contain at least one lowercase letter"),
    (re.compile(r"[A-Z]"), "Must contain at least one uppercase letter"),
    (re.compile(r"\d"), "Must contain at least one digit"),
)


def validate_strength(password: str) -> list[str]:
    """Return the list of policy violations. An empty list means the password is acceptable."""
    errors: list[str] = []
    if len(password) < MIN_LENGTH:
        errors.append(f"Must be at least {MIN_LENGTH} characters")
    if len(password.encode("utf-8")) > MAX_BYTES:
        errors.append(f"Must be at most {MAX_BYTES} bytes")
    for pattern, message in _RULES:
        if not pattern.search(password):
            errors.append(message)
    return errors


def is_strong(password: str) -> bool:
    return not validate_strength(password)


def hash_password(plain: str, rounds: int | None = None) -> str:
    """Return a salted bcrypt hash of plain.

    rounds defaults to Settings.bcrypt_rounds. Callers must run
    validate_strength() first; input longer than 72 bytes is rejected by the
    policy before it gets here.
    """
    cost = rounds if rounds is not None else get_settings().bcrypt_rounds
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=cost)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if plain matches the stored bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash, or input bcrypt refuses (e.g. over 72 bytes).
        return False


# Computed once at import so the first login is not measurably slower.
_DUMMY_HASH: str = hash_password("authkeeper_timing_dummy")


def verify_password_or_dummy(plain: str, hashed: str | None) -> bool:
    """Verify plain against hashed, or burn equivalent time when there is no hash.

    Always returns False when hashed is None. Never skip this call on the
    unknown-account path -- returning early re-opens account enumeration
    through response timing.
    """
    if hashed is None:
        verify_password(plain, _DUMMY_HASH)
        return False
    return verify_password(plain, hashed)
