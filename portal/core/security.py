"""
Security utilities for password hashing, JWT token management and credential derivation.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Any
from passlib.context import CryptContext
from jose import jwt, JWTError
import re
import secrets

from portal.core.config import settings


# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(
    subject: str,
    user_id: str,
    role: str,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a JWT access token.

    Args:
        subject: The subject of the token (the login email)
        user_id: The account identifier issued by the identity directory
        role: The user's role
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode = {
        "sub": subject,
        "user_id": user_id,
        "role": role,
        "exp": expire,
        "iat": datetime.now(timezone.utc),
    }

    encoded_jwt = jwt.encode(
        to_encode,
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM
    )
    return encoded_jwt


def decode_token(token: str) -> Optional[dict[str, Any]]:
    """
    Decode and validate a JWT token.

    Returns:
        Token payload if valid, None otherwise
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )
        return payload
    except JWTError:
        return None


def default_password(role: str, year: Optional[int] = None) -> str:
    """
    Deterministic default password for a role, e.g. ``TeacherDefault@2026``.

    Weak by construction: callers must hand it to the new user once and
    ask them to change it on first login.
    """
    year = year or datetime.now(timezone.utc).year
    return settings.DEFAULT_PASSWORD_TEMPLATE.format(role=role.capitalize(), year=year)


_HANDLE_UNSAFE = re.compile(r"[^a-z0-9]+")


def derive_login_email(role: str, business_key: str, domain: str) -> str:
    """
    Build a human-readable login email from a business key, e.g.
    ``student.sats001rv@ees-student.com``.

    Uniqueness is only as good as the business key.
    """
    key = _HANDLE_UNSAFE.sub("", business_key.lower())
    if not key:
        raise ValueError("business key has no usable characters")
    return f"{role.lower()}.{key}@{domain}"


def generate_login_handle(role: str, domain: str) -> str:
    """Generate an opaque, collision-free login email."""
    return f"{role.lower()}-{secrets.token_hex(6)}@{domain}"
