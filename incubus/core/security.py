from __future__ import annotations

from datetime import datetime, timedelta, timezone
from secrets import token_urlsafe
from typing import Any

import jwt
from pwdlib import PasswordHash
from pwdlib.hashers.argon2 import Argon2Hasher

from incubus.core.config import IncubusSettings
from incubus.core.errors import ApiException

password_hash = PasswordHash((Argon2Hasher(),))

# Verified against when the email is unknown.
DUMMY_PASSWORD_HASH = (
    "$argon2id$v=19$m=65536,t=3,p=4$MjQyZWE1MzBjYjJlZTI0Yw"
    "$YTU4NGM5ZTZmYjE2NzZlZjY0ZWY3ZGRkY2U2OWFjNjk"
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes (SQLite) as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def random_jti(length: int = 32) -> str:
    return token_urlsafe(length)


def hash_password(password: str) -> str:
    return password_hash.hash(password)


def verify_password(password: str, hashed: str | None) -> tuple[bool, str | None]:
    """Return (verified, rehashed) where rehashed is set when the hash needs upgrading."""
    if not hashed:
        password_hash.verify_and_update(password, DUMMY_PASSWORD_HASH)
        return False, None
    return password_hash.verify_and_update(password, hashed)


def create_signed_token(
    *,
    settings: IncubusSettings,
    token_type: str,
    claims: dict[str, Any],
    ttl_seconds: int,
) -> tuple[str, datetime]:
    issued_at = utc_now()
    expires_at = issued_at + timedelta(seconds=ttl_seconds)
    payload = {
        **claims,
        "type": token_type,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    token = jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return token, expires_at


def decode_signed_token(
    *,
    settings: IncubusSettings,
    token: str,
    expected_type: str,
) -> dict[str, Any]:
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            leeway=settings.JWT_LEEWAY_SECONDS,
        )
    except jwt.ExpiredSignatureError as exc:
        raise ApiException(
            status_code=401,
            error_code="TOKEN_EXPIRED",
            message="Authentication token expired",
        ) from exc
    except jwt.PyJWTError as exc:
        raise ApiException(
            status_code=401,
            error_code="TOKEN_INVALID",
            message="Authentication token invalid",
        ) from exc

    token_type = payload.get("type")
    if token_type != expected_type:
        raise ApiException(
            status_code=401,
            error_code="TOKEN_TYPE_INVALID",
            message="Token type is invalid",
        )
    return payload
