"""
API request and response models for AuthKeeper REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request models only bound sizes; the auth rules themselves (email syntax,
password policy, confirmation match) belong to AuthService so every transport
gets identical behavior.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import AccountStats, AccountView, Profile

# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    full_name: str = Field(default="", max_length=255)
    email: str = Field(default="", max_length=320)
    username: str = Field(default="", max_length=255)
    password: str = Field(default="", max_length=255)
    confirm_password: str = Field(default="", max_length=255)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: str = Field(max_length=320)
    password: str = Field(max_length=255)


class ProfilePatch(BaseModel):
    """Request body for PATCH /api/v1/auth/profile.

    Only fields present in the body are merged; use model_dump(exclude_unset=True).
    Unknown fields are rejected with 422.
    """

    model_config = ConfigDict(extra="forbid")

    avatar: Optional[str] = Field(default=None, max_length=2048)
    bio: Optional[str] = Field(default=None, max_length=2000)
    skills: Optional[list[str]] = Field(default=None, max_length=50)
    location: Optional[str] = Field(default=None, max_length=255)


class ChangePasswordRequest(BaseModel):
    """Request body for POST /api/v1/auth/password."""

    current_password: str = Field(max_length=255)
    new_password: str = Field(max_length=255)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class ProfileResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    avatar: Optional[str]
    bio: str
    skills: list[str]
    location: str

    @classmethod
    def from_profile(cls, profile: Profile) -> "ProfileResponse":
        return cls(**profile.to_dict())


class AccountResponse(BaseModel):
    """Public account view. The password hash is never part of any response."""

    model_config = ConfigDict(frozen=True)

    id: str
    username: str
    email: str
    full_name: str
    created_at: datetime
    last_login_at: Optional[datetime]
    profile: ProfileResponse

    @classmethod
    def from_view(cls, view: AccountView) -> "AccountResponse":
        return cls(
            id=view.id,
            username=view.username,
            email=view.email,
            full_name=view.full_name,
            created_at=view.created_at,
            last_login_at=view.last_login_at,
            profile=ProfileResponse.from_profile(view.profile),
        )


class LoginResponse(BaseModel):
    """Response for POST /auth/login and /auth/register."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    account: AccountResponse


class SessionStateResponse(BaseModel):
    """Response for GET /auth/session -- the restored auth context."""

    model_config = ConfigDict(frozen=True)

    authenticated: bool
    account: Optional[AccountResponse] = None


class StatsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_accounts: int
    days_since_registration: int
    last_login_days: Optional[int]

    @classmethod
    def from_stats(cls, stats: AccountStats) -> "StatsResponse":
        return cls(
            total_accounts=stats.total_accounts,
            days_since_registration=stats.days_since_registration,
            last_login_days=stats.last_login_days,
        )


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
