from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import jwt

from .config import Settings, get_settings
from .errors import AuthenticationError


class Role(str, Enum):
    ADVERTISER = "advertiser"
    VENUE = "venue"
    ADMIN = "admin"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller handed to the route handlers."""

    user_id: str
    role: Role


def mint_token(
    user_id: str,
    role: Role,
    *,
    ttl_seconds: int = 7 * 24 * 3600,
    settings: Optional[Settings] = None,
) -> str:
    settings = settings or get_settings()
    now = int(time.time())
    payload = {"sub": user_id, "role": role.value, "iat": now, "exp": now + ttl_seconds}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Optional[Settings] = None) -> Principal:
    settings = settings or get_settings()
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "sub"]},
        )
    except jwt.PyJWTError as exc:
        raise AuthenticationError(f"Invalid token: {exc}") from exc

    try:
        role = Role(claims.get("role"))
    except ValueError as exc:
        raise AuthenticationError("Token carries an unknown role") from exc
    return Principal(user_id=str(claims["sub"]), role=role)
