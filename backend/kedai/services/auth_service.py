# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

Every action must be attributable. Uses bcrypt for password hashing.
"""

import bcrypt

from ..extensions import db
from ..models import User
from ..models.auth import ROLES, ROLE_KASIR


MIN_PASSWORD_LENGTH = 6


class AuthError(Exception):
    """Raised for invalid credentials or account problems."""
    pass


class PasswordValidationError(Exception):
    """Raised when password doesn't meet requirements."""
    pass


def hash_password(password: str) -> str:
    """Hash password using bcrypt (cost factor 12)."""
    if len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    name: str,
    email: str,
    password: str,
    role: str = ROLE_KASIR,
    phone: str | None = None,
) -> User:
    if role not in ROLES:
        raise AuthError(f"role must be one of: {', '.join(ROLES)}")

    email = email.strip().lower()
    if db.session.query(User).filter_by(email=email).first():
        raise AuthError("Email already registered")

    user = User(
        name=name.strip(),
        email=email,
        phone=phone,
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User:
    """Return the active user for these credentials or raise AuthError."""
    user = db.session.query(User).filter_by(email=(email or "").strip().lower()).first()
    if not user or not verify_password(password or "", user.password_hash):
        raise AuthError("Invalid credentials")
    if not user.is_active:
        raise AuthError("Account is deactivated")
    return user
