"""Bearer-token auth for the practice plan API.

Tokens are compact HS256 JWTs signed with ``JWT_SECRET_KEY``. Only coaches
(and admins) may read or edit practice plans.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.config import get_settings

_HEADER = {"alg": "HS256", "typ": "JWT"}

bearer_scheme = HTTPBearer(auto_error=False)


class TokenError(ValueError):
    def __init__(self, code: str) -> None:
        super().__init__(code)
        self.code = code


@dataclass(frozen=True)
class AuthPrincipal:
    user_id: int
    username: str
    role: str
    exp: int

    @property
    def is_admin(self) -> bool:
        return self.role.lower() == "admin"


def _encode_segment(obj: dict[str, Any]) -> str:
    raw = json.dumps(obj, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _decode_segment(segment: str) -> dict[str, Any]:
    padded = segment + "=" * (-len(segment) % 4)
    try:
        data = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (ValueError, UnicodeError) as exc:
        raise TokenError("INVALID_TOKEN") from exc
    if not isinstance(data, dict):
        raise TokenError("INVALID_TOKEN")
    return data


def _signature(signing_input: str) -> str:
    key = get_settings().jwt_secret_key.encode("utf-8")
    digest = hmac.new(key, signing_input.encode("ascii"), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def issue_access_token(*, user_id: int, username: str, role: str, expires_in_seconds: Optional[int] = None) -> str:
    if expires_in_seconds is None:
        expires_in_seconds = get_settings().jwt_expire_minutes * 60
    claims = {
        "sub": int(user_id),
        "username": str(username),
        "role": str(role),
        "exp": int(time.time()) + int(expires_in_seconds),
    }
    signing_input = f"{_encode_segment(_HEADER)}.{_encode_segment(claims)}"
    return f"{signing_input}.{_signature(signing_input)}"


def decode_access_token(token: str) -> AuthPrincipal:
    """Verify ``token`` and return its principal; raises ``TokenError`` on any problem."""
    parts = token.split(".")
    if len(parts) != 3:
        raise TokenError("INVALID_TOKEN")
    header_b64, claims_b64, signature = parts
    if not hmac.compare_digest(signature, _signature(f"{header_b64}.{claims_b64}")):
        raise TokenError("INVALID_TOKEN")
    if _decode_segment(header_b64).get("alg") != _HEADER["alg"]:
        raise TokenError("INVALID_TOKEN")

    claims = _decode_segment(claims_b64)
    try:
        principal = AuthPrincipal(
            user_id=int(claims["sub"]),
            username=str(claims["username"]),
            role=str(claims["role"]),
            exp=int(claims["exp"]),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise TokenError("INVALID_TOKEN") from exc
    if principal.exp <= int(time.time()):
        raise TokenError("TOKEN_EXPIRED")
    return principal


def get_current_principal(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> AuthPrincipal:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail={"code": "AUTH_REQUIRED"})
    try:
        return decode_access_token(credentials.credentials)
    except TokenError as exc:
        raise HTTPException(status_code=401, detail={"code": exc.code}) from exc


def require_roles(*allowed_roles: str) -> Callable[[AuthPrincipal], AuthPrincipal]:
    allowed = frozenset(r.lower() for r in allowed_roles)

    def _dependency(principal: AuthPrincipal = Depends(get_current_principal)) -> AuthPrincipal:
        if not principal.is_admin and principal.role.lower() not in allowed:
            raise HTTPException(
                status_code=403,
                detail={"code": "FORBIDDEN_ROLE", "required_roles": sorted(allowed), "role": principal.role},
            )
        return principal

    return _dependency


require_coach = require_roles("coach")
