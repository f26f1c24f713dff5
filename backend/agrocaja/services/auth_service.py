# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every ledger row belongs to an owner account. Uses bcrypt for secure
password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Session tokens managed separately (see session_service.py)
- Username and email are globally unique
"""

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from ..time_utils import utcnow
from ..validation import normalize_farm


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is constant-time. A malformed stored hash counts as a
    mismatch.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    display_name: str | None = None,
    active_farm: str | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValueError: username or email already taken
        PasswordValidationError: password doesn't meet requirements
    """
    username = (username or "").strip()
    email = (email or "").strip().lower()
    if not username or not email:
        raise ValueError("username and email are required")

    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ValueError("Username or email already exists")

    user = User(
        username=username,
        email=email,
        display_name=(display_name or "").strip() or None,
        password_hash=hash_password(password),
        active_farm=normalize_farm(active_farm) if active_farm else None,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(identifier: str, password: str) -> User | None:
    """
    Authenticate by username or email.

    Returns the User on success, None for unknown identifier or wrong
    password. Inactive accounts are returned so the caller can answer 403.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == identifier, User.email == identifier.lower())
    ).first()

    if not user or not verify_password(password, user.password_hash):
        return None

    if user.is_active:
        user.last_login_at = utcnow()
        db.session.commit()
    return user


def set_active_farm(user: User, farm) -> User:
    """Select the farm that scopes the user's ledger. Raises ValidationError on a bad label."""
    user.active_farm = normalize_farm(farm)
    db.session.commit()
    return user


def list_farms(user_id: int) -> list[str]:
    """Farm labels that already hold books for this owner."""
    from ..models import CashMovement, Expense, IncomeEntry, InventoryItem, Settlement

    farms: set[str] = set()
    for model in (IncomeEntry, Expense, InventoryItem, CashMovement, Settlement):
        rows = db.session.query(model.farm).filter(model.owner_id == user_id).distinct().all()
        farms.update(row[0] for row in rows)
    return sorted(farms)
