from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache
from typing import Any, Dict, Optional

import bcrypt
from jose import JWTError, jwt

from utils.errors import AuthError

logger = logging.getLogger(__name__)

JWT_SECRET = os.getenv("JWT_SECRET", "change_me")
JWT_ALG = os.getenv("JWT_ALG", "HS256")
USER_TOKEN_TTL_MIN = int(os.getenv("USER_TOKEN_TTL_MIN", "60"))
ADMIN_TOKEN_TTL_MIN = int(os.getenv("ADMIN_TOKEN_TTL_MIN", "480"))

ADMIN_ROLE = "admin"


def _pw_bytes(password: str) -> bytes:
    # Multi-byte safe password truncation for bcrypt (max 72 bytes)
    safe_password = (password or "").encode("utf-8")[:72].decode("utf-8", errors="ignore")
    return safe_password.encode("utf-8")


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_pw_bytes(password), bcrypt.gensalt()).decode("utf-8")


def check_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(_pw_bytes(password), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash.
        logger.warning("Unreadable password hash")
        return False


def _encode(claims: Dict[str, Any], lifetime: timedelta) -> str:
    now = int(time.time())
    payload = dict(claims)
    payload["iat"] = now
    payload["exp"] = now + int(lifetime.total_seconds())
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALG)


def create_user_token(*, user_id: str, email: str, lifetime: Optional[timedelta] = None) -> str:
    return _encode(
        {"sub": user_id, "email": email},
        lifetime if lifetime is not None else timedelta(minutes=USER_TOKEN_TTL_MIN),
    )


def create_admin_token(*, email: str, lifetime: Optional[timedelta] = None) -> str:
    return _encode(
        {"email": email, "role": ADMIN_ROLE},
        lifetime if lifetime is not None else timedelta(minutes=ADMIN_TOKEN_TTL_MIN),
    )


def decode_token(token: str) -> Dict[str, Any]:
    """Signature and expiry only; callers decide what the claims entitle."""
    if not token:
        raise AuthError("No token provided")
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
    except JWTError as e:
        raise AuthError("Invalid or expired token") from e


def is_admin(claims: Dict[str, Any]) -> bool:
    return claims.get("role") == ADMIN_ROLE


@dataclass(frozen=True)
class AdminPrincipal:
    email: str
    password_hash: str

    def matches(self, email: str, password: str) -> bool:
        # Always run the hash check so a wrong email costs the same as a wrong password.
        password_ok = check_password(password, self.password_hash)
        return password_ok and (email or "").strip().lower() == self.email


@lru_cache(maxsize=None)
def get_admin_principal() -> AdminPrincipal:
    email = os.getenv("ADMIN_EMAIL", "admin@example.com").strip().lower()
    password_hash = os.getenv("ADMIN_PASSWORD_HASH")
    if not password_hash:
        password_hash = hash_password(os.getenv("ADMIN_PASSWORD", "admin123"))
    return AdminPrincipal(email=email, password_hash=password_hash)
