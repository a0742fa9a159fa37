"""File Manager - Passwords and Session Tokens

PBKDF2-SHA256 password hashes stored as
'pbkdf2_sha256$<iterations>$<salt_b64>$<digest_b64>', and HS256 JWTs carrying
the user id ('sub'), username and role.
"""

import base64
import hashlib
import hmac
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from .config import Settings
from .logging_config import get_logger
from .models import ROLE_SYSTEM_ADMIN, User
from .repositories import UserRepository

logger = get_logger(__name__)

PASSWORD_ALGORITHM = "pbkdf2_sha256"
PASSWORD_ITERATIONS = 260_000
JWT_ALGORITHM = "HS256"
AUTH_COOKIE = "auth"


def _b64e(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64d(raw_b64: str) -> bytes:
    pad = "=" * (-len(raw_b64) % 4)
    return base64.urlsafe_b64decode(raw_b64 + pad)


def hash_password(password: str, iterations: int = PASSWORD_ITERATIONS) -> str:
    if not password:
        raise ValueError("Password must not be empty")
    salt = os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return f"{PASSWORD_ALGORITHM}${iterations}${_b64e(salt)}${_b64e(digest)}"


def verify_password(password: str, stored_hash: str) -> bool:
    try:
        algorithm, iterations_str, salt_b64, digest_b64 = stored_hash.split("$", 3)
        if algorithm != PASSWORD_ALGORITHM:
            return False
        iterations = int(iterations_str)
        salt = _b64d(salt_b64)
        expected = _b64d(digest_b64)
    except (ValueError, AttributeError):
        return False

    computed = hashlib.pbkdf2_hmac("sha256", (password or "").encode("utf-8"), salt, iterations)
    return hmac.compare_digest(computed, expected)


def create_token(user: User, settings: Settings) -> str:
    now = datetime.now(timezone.utc)
    return jwt.encode({
        "sub": user.id,
        "username": user.username,
        "role": user.role,
        "iat": now,
        "exp": now + timedelta(days=settings.jwt_expires_days),
    }, settings.jwt_secret, algorithm=JWT_ALGORITHM)


def decode_token(token: str, settings: Settings) -> Optional[dict]:
    """Claims of a valid token, or None if invalid/expired."""
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("Expired session token")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid session token: %s", e)
        return None


def authenticate(users: UserRepository, username: str, password: str) -> Optional[User]:
    user = users.find_by_username(username)
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


def ensure_default_admin(users: UserRepository, settings: Settings) -> Optional[User]:
    """Seed a systemAdmin account when the user store is empty."""
    if users.list():
        return None
    admin = users.add(User(
        id="",
        username=settings.default_admin_username,
        role=ROLE_SYSTEM_ADMIN,
        password_hash=hash_password(settings.default_admin_password),
    ))
    logger.warning("Seeded default systemAdmin account '%s' - change its password", admin.username)
    return admin
