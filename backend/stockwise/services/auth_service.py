# Overview: Service-layer operations for auth; password hashing, user creation and login.

"""
Authentication Service

Every ledger entry names its operator; operators are accounts created here.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, upper, lower, digit and special char required
- Session tokens managed separately (see session_service.py)
- Role hierarchy is strict: an actor only creates or edits users at a
  numerically greater role level (level 0 is the only exception for itself)
"""

import re

import bcrypt
from flask import current_app, has_app_context

from ..extensions import db
from ..models import Store, User
from ..errors import NotFound, PermissionDenied, ValidationError
from ..permissions import is_valid_role_level
from stockwise.time_utils import utcnow
from .concurrency import run_in_transaction
from .permission_service import can_manage_user


DEFAULT_BCRYPT_ROUNDS = 12


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""

    def __init__(self, reason: str):
        super().__init__(reason, field="password")


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def _bcrypt_rounds() -> int:
    if has_app_context():
        return int(current_app.config.get("BCRYPT_ROUNDS", DEFAULT_BCRYPT_ROUNDS))
    return DEFAULT_BCRYPT_ROUNDS


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt. Stored as a string."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=_bcrypt_rounds())
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() compares in constant time. A malformed stored hash counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def _load_stores(store_ids) -> list[Store]:
    ids = list(dict.fromkeys(store_ids or []))
    if not ids:
        return []
    stores = db.session.query(Store).filter(Store.id.in_(ids)).all()
    found = {s.id for s in stores}
    for store_id in ids:
        if store_id not in found:
            raise NotFound("store", store_id)
    return stores


def create_user(
    username: str,
    password: str,
    *,
    role_level: int = 9,
    allowed_store_ids=None,
    actor: User | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    actor=None is the bootstrap path (CLI / system init). With an actor, the
    new user's level must be numerically greater than the actor's.

    Raises:
        ValidationError: bad username, level or password
        PermissionDenied: actor may not manage the requested level
    """
    if not username or not str(username).strip():
        raise ValidationError("username is required", field="username")
    username = str(username).strip()
    if not is_valid_role_level(role_level):
        raise ValidationError("role_level must be an integer between 0 and 9", field="role_level")
    if actor is not None and not can_manage_user(actor, role_level):
        raise PermissionDenied(role_level=actor.role_level, target_level=role_level)

    password_hash = hash_password(password)

    def _op():
        existing = db.session.query(User).filter_by(username=username).first()
        if existing:
            raise ValidationError("username already exists", field="username")

        user = User(
            username=username,
            password_hash=password_hash,
            role_level=role_level,
        )
        user.allowed_stores = _load_stores(allowed_store_ids)
        db.session.add(user)
        db.session.flush()
        return user

    return run_in_transaction(_op)


def set_allowed_stores(user_id: int, store_ids, *, actor: User | None = None) -> User:
    def _op():
        user = db.session.query(User).filter_by(id=user_id).first()
        if not user:
            raise NotFound("user", user_id)
        if actor is not None and not can_manage_user(actor, user.role_level):
            raise PermissionDenied(role_level=actor.role_level, target_level=user.role_level)
        user.allowed_stores = _load_stores(store_ids)
        db.session.flush()
        return user

    return run_in_transaction(_op)


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate user with username and password.

    Returns User if credentials valid, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    user = db.session.query(User).filter(
        User.username == username,
        User.is_archived.is_(False),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
