"""
api/limiter.py -- Shared slowapi rate limiter for the credential endpoints.

Imported by api/main.py (mounted as app.state.limiter) and by
api/routes/v1/auth.py, where @limiter.limit(LOGIN_RATE_LIMIT) guards
POST /auth/login and /auth/register against password guessing.

Counters live in RATE_LIMIT_STORAGE_URI ("memory://" by default, which is
per-process; point it at redis:// when running several workers).
RATE_LIMIT_ENABLED=false turns every limit into a no-op.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

_settings = get_settings()

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=_settings.rate_limit_storage_uri,
    enabled=_settings.rate_limit_enabled,
)
