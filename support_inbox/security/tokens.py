"""Helpers for issuing and validating JWT access tokens."""

from __future__ import annotations

import dataclasses
import datetime as dt
import os
from functools import lru_cache
from typing import Any, TypedDict, cast

import jwt
from jwt import ExpiredSignatureError, InvalidTokenError

from ..models import User


class TokenConfigurationError(RuntimeError):
    """Raised when the token settings are incomplete."""


class TokenValidationError(ValueError):
    """Raised when a bearer token cannot be validated."""


class _RequiredClaims(TypedDict):
    user_id: str


class AccessTokenPayload(_RequiredClaims, total=False):
    """Decoded JWT payload of an access token."""

    aud: str | list[str]
    email: str
    exp: int
    iat: int
    iss: str
    name: str
    role: str
    type: str


@dataclasses.dataclass(frozen=True)
class JWTSettings:
    """Runtime configuration for issuing authentication tokens."""

    secret: str
    issuer: str
    audience: str
    algorithm: str = "HS256"
    access_token_ttl_seconds: int = 900  # 15 minutes


@lru_cache(maxsize=1)
def get_jwt_settings() -> JWTSettings:
    """Load settings from the environment."""

    secret = os.getenv("AUTH_TOKEN_SECRET")
    issuer = os.getenv("AUTH_TOKEN_ISSUER")
    audience = os.getenv("AUTH_TOKEN_AUDIENCE")
    algorithm = os.getenv("AUTH_TOKEN_ALGORITHM", "HS256")
    if not secret or not issuer or not audience:
        raise TokenConfigurationError(
            "AUTH_TOKEN_SECRET, AUTH_TOKEN_ISSUER and AUTH_TOKEN_AUDIENCE must be set.",
        )
    access_ttl = int(os.getenv("ACCESS_TOKEN_TTL_SECONDS", "900"))
    return JWTSettings(
        secret=secret,
        issuer=issuer,
        audience=audience,
        algorithm=algorithm,
        access_token_ttl_seconds=access_ttl,
    )


def reset_jwt_settings_cache() -> None:
    """Clear cached JWT settings; useful in tests when env vars change."""

    get_jwt_settings.cache_clear()


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def create_access_token(
    user: User, *, settings: JWTSettings | None = None
) -> tuple[str, dt.datetime]:
    """Issue a signed JWT access token for ``user``."""

    settings = settings or get_jwt_settings()
    now = _utcnow()
    expires_at = now + dt.timedelta(seconds=settings.access_token_ttl_seconds)
    payload: dict[str, Any] = {
        "user_id": str(user.id),
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "iss": settings.issuer,
        "aud": settings.audience,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
        "type": "access",
    }
    token = jwt.encode(payload, settings.secret, algorithm=settings.algorithm)
    return str(token), expires_at


def decode_access_token(
    token: str, *, settings: JWTSettings | None = None
) -> AccessTokenPayload:
    """Decode and validate an access token.

    Raises:
        TokenConfigurationError: If mandatory environment configuration is missing.
        TokenValidationError: If signature, claims, or expiry are invalid.
    """

    settings = settings or get_jwt_settings()
    try:
        payload = jwt.decode(
            token,
            settings.secret,
            algorithms=[settings.algorithm],
            audience=settings.audience,
            issuer=settings.issuer,
            options={"require": ["exp", "aud", "iss"]},
        )
    except ExpiredSignatureError as exc:
        raise TokenValidationError("Access token has expired.") from exc
    except InvalidTokenError as exc:
        raise TokenValidationError("Access token is invalid.") from exc

    if "user_id" not in payload:
        raise TokenValidationError("Access token payload must include 'user_id'.")
    type_claim = payload.get("type")
    if type_claim and type_claim != "access":
        raise TokenValidationError("Token must be an access token.")

    return cast(AccessTokenPayload, payload)


__all__ = [
    "AccessTokenPayload",
    "JWTSettings",
    "TokenConfigurationError",
    "TokenValidationError",
    "create_access_token",
    "decode_access_token",
    "get_jwt_settings",
    "reset_jwt_settings_cache",
]
