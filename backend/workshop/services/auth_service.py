# Overview: Service-layer operations for auth; password hashing and user lookup.

"""
Authentication Service

Staff accounts only. Passwords are hashed with bcrypt; the cost factor
comes from BCRYPT_ROUNDS (12 unless configured lower for tests).
"""

from __future__ import annotations

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from ..models.auth import ROLE_CASHIER, VALID_ROLES
from workshop.errors import ValidationError
from workshop.time_utils import utcnow

MIN_PASSWORD_LENGTH = 8


def validate_password_strength(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if password.isdigit() or password.isalpha():
        raise ValidationError("Password must contain both letters and digits")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe comparison via bcrypt.checkpw."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed stored hash
        return False


def create_user(username: str, full_name: str, password: str, role: str = ROLE_CASHIER) -> User:
    role = (role or ROLE_CASHIER).upper()
    if role not in VALID_ROLES:
        raise ValidationError(f"Invalid role: {role}. Must be one of {VALID_ROLES}")

    existing = db.session.query(User).filter_by(username=username).first()
    if existing:
        raise ValidationError("Username already exists")

    user = User(
        username=username,
        full_name=full_name,
        password_hash=hash_password(password),
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    user = db.session.query(User).filter_by(username=username).first()
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
