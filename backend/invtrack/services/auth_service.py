# Overview: Password hashing, user creation and credential checks.

"""
Authentication Service

Every movement and activity entry is attributed to a user.
Passwords are hashed with bcrypt (cost factor 12); session tokens live in
session_service.py.

ROLES: power_user (default) and admin.
"""

import re

import bcrypt

from ..extensions import db
from ..models import User
from invtrack.time_utils import utcnow
from invtrack.validation import ConflictError, ValidationError


ROLE_POWER_USER = "power_user"
ROLE_ADMIN = "admin"
ROLES = (ROLE_POWER_USER, ROLE_ADMIN)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Minimum 8 characters with at least one letter and one digit.

    Raises PasswordValidationError if requirements not met.
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")
    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt check; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def create_user(email: str, password: str, *, name: str | None = None, role: str = ROLE_POWER_USER) -> User:
    """
    Create a user with a bcrypt password hash.

    Raises ValidationError for bad input, ConflictError for a taken email.
    """
    email = normalize_email(email)
    if not _EMAIL_RE.match(email):
        raise ValidationError("A valid email is required")
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")

    if db.session.query(User).filter_by(email=email).first():
        raise ConflictError("A user with this email already exists")

    user = User(
        email=email,
        name=(name or "").strip() or None,
        password_hash=hash_password(password),
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Returns the active user for valid credentials, None otherwise.

    Updates last_login_at on success.
    """
    user = db.session.query(User).filter(
        User.email == normalize_email(email),
        User.is_active.is_(True),
    ).first()

    if not user or not verify_password(password or "", user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
