"""
api/routes/v1/auth.py -- Registration, login and session REST endpoints.

Routes:
  POST  /api/v1/auth/register   -- create account + auto-login; sets session cookie (201)
  POST  /api/v1/auth/login      -- password login; sets session cookie
  POST  /api/v1/auth/logout     -- ends the session the request carries; always 200
  GET   /api/v1/auth/session    -- restore: reports whether the token is still live
  GET   /api/v1/auth/me         -- current account (requires auth)
  PATCH /api/v1/auth/profile    -- shallow-merge profile fields (requires auth)
  POST  /api/v1/auth/password   -- change password (requires auth)
  GET   /api/v1/auth/stats      -- account statistics (requires auth)

Security:
  POST /login and /register are rate-limited per IP (LOGIN_RATE_LIMIT).
  Login failures always answer with the same body for unknown email and
  wrong password (AuthService returns one shared error value).
  Cache-Control: no-store on every response that carries a token.
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    AccountResponse,
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    ProfilePatch,
    ProfileResponse,
    RegisterRequest,
    SessionStateResponse,
    StatsResponse,
)
from auth.dependencies import (
    SESSION_COOKIE,
    clear_session_cookie,
    get_auth_service,
    require_auth,
    set_session_cookie,
)
from auth.errors import AuthError, AuthErrorCode, AuthResult
from auth.models import LoginSuccess, RegistrationInput
from auth.service import AuthService
from core.config import get_settings

_settings = get_settings()

# Auth policy:
# - POST  /auth/register, /auth/login:   public, rate-limited
# - POST  /auth/logout, GET /auth/session: public -- both are no-ops without a token
# - GET   /auth/me, /auth/stats:          requires auth (require_auth)
# - PATCH /auth/profile, POST /auth/password: requires auth (require_auth)
router = APIRouter()

_STATUS_BY_CODE: dict[AuthErrorCode, int] = {
    AuthErrorCode.conflict: 409,
    AuthErrorCode.password_mismatch: 400,
    AuthErrorCode.weak_password: 400,
    AuthErrorCode.invalid_input: 422,
    AuthErrorCode.invalid_credentials: 401,
    AuthErrorCode.unauthenticated: 401,
    AuthErrorCode.not_found: 404,
}


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=LoginResponse, status_code=201)
@limiter.limit(_settings.login_rate_limit)
def register(
    request: Request,
    body: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Create an account and log it in (auto-login), returning the session token."""
    result = service.register(
        RegistrationInput(
            full_name=body.full_name,
            email=body.email,
            username=body.username,
            password=body.password,
            confirm_password=body.confirm_password,
        )
    )
    return _login_response(_unwrap(result), status_code=201)


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(_settings.login_rate_limit)
def login(
    request: Request,
    body: LoginRequest,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Authenticate with email and password; set the session cookie."""
    result = service.login(body.email, body.password)
    if not result.ok:
        resp = _error_response(result.error)
        resp.headers["Cache-Control"] = "no-store"
        return resp
    return _login_response(result.value, status_code=200)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(service: AuthService = Depends(get_auth_service)) -> JSONResponse:
    """End the request's session, if any, and clear the cookie. Idempotent."""
    service.logout()
    resp = JSONResponse(content=MessageResponse(message="Logged out.").model_dump())
    clear_session_cookie(resp)
    return resp


@router.get("/auth/session", response_model=SessionStateResponse)
def session_state(request: Request, service: AuthService = Depends(get_auth_service)) -> JSONResponse:
    """Report the restored auth context. No session is a normal 200 answer."""
    account = service.current_account()
    body = SessionStateResponse(
        authenticated=account is not None,
        account=AccountResponse.from_view(account) if account is not None else None,
    )
    resp = JSONResponse(content=body.model_dump(mode="json"))
    if account is None and request.cookies.get(SESSION_COOKIE):
        clear_session_cookie(resp)
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=AccountResponse)
def me(service: AuthService = Depends(require_auth)) -> AccountResponse:
    """Return the account bound to the current session."""
    return AccountResponse.from_view(service.current_account())


@router.patch("/auth/profile", response_model=ProfileResponse)
def update_profile(body: ProfilePatch, service: AuthService = Depends(require_auth)) -> ProfileResponse:
    """Merge the supplied profile fields; fields not in the body are left unchanged."""
    profile = _unwrap(service.update_profile(body.model_dump(exclude_unset=True)))
    return ProfileResponse.from_profile(profile)


@router.post("/auth/password", response_model=MessageResponse)
def change_password(
    body: ChangePasswordRequest,
    service: AuthService = Depends(require_auth),
) -> MessageResponse:
    """Change the password. Other sessions of the account stay live."""
    _unwrap(service.change_password(body.current_password, body.new_password))
    return MessageResponse(message="Password changed.")


@router.get("/auth/stats", response_model=StatsResponse)
def stats(service: AuthService = Depends(require_auth)) -> StatsResponse:
    """Return account statistics for the current account."""
    return StatsResponse.from_stats(_unwrap(service.account_stats()))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _unwrap(result: AuthResult):
    """Return result.value, or raise the HTTPException matching result.error."""
    if result.ok:
        return result.value
    raise HTTPException(status_code=_STATUS_BY_CODE[result.error.code], detail=_error_body(result.error))


def _error_body(error: AuthError) -> dict:
    return {
        "code": error.code.value,
        "message": error.message,
        "detail": "; ".join(error.details) or None,
    }


def _error_response(error: AuthError) -> JSONResponse:
    return JSONResponse(status_code=_STATUS_BY_CODE[error.code], content={"error": _error_body(error)})


def _login_response(success: LoginSuccess, status_code: int) -> JSONResponse:
    body = LoginResponse(
        access_token=success.token,
        token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
        expires_in=_settings.session_ttl_seconds,
        account=AccountResponse.from_view(success.account),
    )
    resp = JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))
    set_session_cookie(resp, success.token)
    resp.headers["Cache-Control"] = "no-store"
    return resp
