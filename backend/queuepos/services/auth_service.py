# Overview: Password hashing and staff account management.

"""
Authentication Service

Every queue action is attributed to a staff user. Passwords are hashed
with bcrypt (cost factor 12) and must pass a basic strength check.
Users without a shop are superusers and may operate on any shop.
"""

import re

import bcrypt

from ..extensions import db
from ..models import Shop, User
from ..permissions import DEFAULT_ROLE_PERMISSIONS
from queuepos.time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Minimum 8 characters with at least one letter and one digit.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password or "") < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")

    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_user(
    username: str,
    password: str,
    *,
    shop_id: int | None = None,
    role: str = "cashier",
    is_superuser: bool = False,
) -> User:
    """
    Create a staff account.

    Raises:
        ValueError: unknown role, unknown shop, duplicate username, or a
            non-superuser without a shop
        PasswordValidationError: weak password
    """
    username = (username or "").strip()
    if not username:
        raise ValueError("Username is required")
    if role not in DEFAULT_ROLE_PERMISSIONS:
        raise ValueError(f"Unknown role: {role}")

    if shop_id is None and not is_superuser:
        raise ValueError("Only superusers may exist without a shop")
    if shop_id is not None:
        shop = db.session.get(Shop, shop_id)
        if not shop or not shop.is_active:
            raise ValueError("Shop not found")

    if db.session.query(User).filter_by(username=username).first():
        raise ValueError("Username already exists")

    user = User(
        username=username,
        password_hash=hash_password(password),
        shop_id=shop_id,
        role=role,
        is_superuser=is_superuser,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Returns the active user whose credentials match, else None.

    Users of a deactivated shop cannot log in.
    """
    user = db.session.query(User).filter(
        User.username == (username or "").strip(),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if user.shop_id is not None and (not user.shop or not user.shop.is_active):
        return None

    if verify_password(password or "", user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
