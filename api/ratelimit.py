from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from core.config import Settings, get_settings


def client_key(request: Request) -> str:
    # Behind the Streamlit/ingress proxy the first forwarded hop is the caller.
    forwarded = request.headers.get("X-Forwarded-For", "")
    first_hop = forwarded.split(",", 1)[0].strip()
    return first_hop or get_remote_address(request)


def build_limiter(settings: Settings) -> Limiter:
    enabled = settings.rate_limit_enabled and settings.app_env.lower() != "test"
    return Limiter(
        key_func=client_key,
        storage_uri=settings.rate_limit_storage_uri,
        enabled=enabled,
        headers_enabled=True,
    )


def login_limit() -> str:
    return get_settings().auth_token_rate_limit


def rate_limit_exceeded_handler(request: Request, exc: Exception) -> JSONResponse:
    limit = str(getattr(exc, "detail", "")) if isinstance(exc, RateLimitExceeded) else ""
    headers = {}
    retry_after = getattr(exc, "retry_after", None)
    if retry_after is not None:
        headers["Retry-After"] = str(retry_after)
    return JSONResponse(
        status_code=429,
        content={"detail": {"code": "RATE_LIMITED", "message": "Too many attempts, try again later", "limit": limit}},
        headers=headers,
    )


limiter = build_limiter(get_settings())
