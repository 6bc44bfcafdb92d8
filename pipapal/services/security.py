"""Password hashing and API bearer tokens."""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from pipapal.config import settings

_SCRYPT_N = 2**14
_SCRYPT_R = 8
_SCRYPT_P = 1
_KEY_LEN = 64


def _scrypt(password: str, salt: str) -> bytes:
    return hashlib.scrypt(
        password.encode(), salt=salt.encode(), n=_SCRYPT_N, r=_SCRYPT_R, p=_SCRYPT_P, dklen=_KEY_LEN
    )


# PUBLIC_INTERFACE
def hash_password(password: str) -> str:
    """Return `<hex digest>.<salt>` for storage."""
    salt = secrets.token_hex(16)
    return f"{_scrypt(password, salt).hex()}.{salt}"


# PUBLIC_INTERFACE
def verify_password(supplied: str, stored: Optional[str]) -> bool:
    if not stored or "." not in stored:
        return False
    hashed, salt = stored.split(".", 1)
    try:
        expected = bytes.fromhex(hashed)
    except ValueError:
        return False
    return hmac.compare_digest(expected, _scrypt(supplied, salt))


class TokenError(Exception):
    """Raised for expired or malformed bearer tokens."""


# PUBLIC_INTERFACE
def create_token(user_id: int, role: str, expires_in: Optional[timedelta] = None) -> str:
    exp = datetime.now(timezone.utc) + (expires_in or timedelta(days=settings.jwt_expire_days))
    payload = {"sub": str(user_id), "role": role, "exp": exp}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


# PUBLIC_INTERFACE
def decode_token(token: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise TokenError("Token expired")
    except jwt.InvalidTokenError:
        raise TokenError("Invalid token")
    if not payload.get("sub"):
        raise TokenError("Invalid token payload")
    return payload


def token_user_id(token: str) -> int:
    payload = decode_token(token)
    try:
        return int(payload["sub"])
    except (TypeError, ValueError):
        raise TokenError("Invalid token payload")
