"""
auth/dependencies.py -- FastAPI Depends() helpers that bind an AuthService to a request.

Every HTTP request is its own client context: get_auth_service() builds an
AuthService over the shared stores on app.state, restores it from the token
the request carries, and detaches it from the session store when the request
ends.

Token sources, checked in priority order:
  1. "session_token" cookie -- set by POST /auth/login and /auth/register.
  2. Authorization: Bearer <token> header -- API clients.

get_auth_service() is the soft variant (context may be Anonymous).
require_auth() wraps it and raises HTTP 401 if there is no live session.

Layer rule: no imports from api/. This module may import fastapi because it is
part of the dependency injection system.
"""

from __future__ import annotations

from collections.abc import Iterator

from fastapi import Depends, HTTPException, Request

from auth.service import AuthService
from core.config import get_settings

SESSION_COOKIE = "session_token"


def extract_token(request: Request) -> str | None:
    """Return the session token carried by the request, or None."""
    token: str | None = request.cookies.get(SESSION_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
    return token or None


def get_auth_service(request: Request) -> Iterator[AuthService]:
    """Yield an AuthService restored from the request's token.

    Use as a FastAPI dependency:
        @router.post("/auth/login")
        def route(service: AuthService = Depends(get_auth_service)): ...
    """
    service = AuthService(request.app.state.accounts, request.app.state.sessions)
    token = extract_token(request)
    if token:
        service.restore_session(token)
    try:
        yield service
    finally:
        service.close()


def require_auth(service: AuthService = Depends(get_auth_service)) -> AuthService:
    """Require a live session. Raises HTTP 401 otherwise."""
    if not service.is_authenticated:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthenticated", "message": "Authentication required."},
        )
    return service


def set_session_cookie(response, token: str) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation for most cases.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: matches the session TTL so cookie and session expire together.
    """
    settings = get_settings()
    response.set_cookie(
        SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=settings.session_ttl_seconds,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE)
