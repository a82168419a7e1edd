"""
User service — registration, login, password change and role management.

Rules:
  - db.session.commit() happens only in service modules.
  - Self-registered accounts always start as ``reader``; only an admin
    (or the ``create-admin`` CLI command) can raise a role.
  - Plain-text passwords never appear in log output.
"""

from __future__ import annotations

import logging

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import select

from sitehub.core.exceptions import UnauthorizedError, ValidationError
from sitehub.models import db
from sitehub.models.auth import DEFAULT_ROLE, USER_ROLES, User
from sitehub.utils.crypto import MIN_PASSWORD_LENGTH, hash_password, verify_password
from sitehub.utils.helpers import clean_str, commit_or_rollback, get_or_raise, require_choice, require_fields

logger = logging.getLogger(__name__)


def _normalize_email(email: str | None) -> str:
    return clean_str(email, "email").lower()


def _validated_email(raw: str) -> str:
    try:
        valid = validate_email(_normalize_email(raw), check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", details={"email": raw})
    return valid.normalized.lower()


def _check_password_strength(password: str, field: str = "password") -> None:
    if password is not None and not isinstance(password, str):
        raise ValidationError("Password must be a string", details={field: "not_a_string"})
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            details={field: "too_short"},
        )


def find_by_email(email: str) -> User | None:
    return db.session.execute(
        select(User).where(User.email == _normalize_email(email))
    ).scalar_one_or_none()


def register_user(data: dict) -> User:
    """Create a ``reader`` account.

    Raises:
        ValidationError: missing fields, weak password, malformed or taken email.
    """
    require_fields(data, "email", "password")
    email = _validated_email(data["email"])
    _check_password_strength(data["password"])
    if find_by_email(email):
        raise ValidationError("User already exists", details={"email": email})

    user = User(
        email=email,
        name=clean_str(data.get("name"), "name"),
        password_hash=hash_password(data["password"]),
        role=DEFAULT_ROLE,
    )
    db.session.add(user)
    commit_or_rollback()
    logger.info("Registered user id=%s email=%s", user.id, user.email)
    return user


def authenticate(email: str, password: str) -> User:
    """Return the user for valid credentials, else raise UnauthorizedError."""
    user = find_by_email(email)
    if user is None or not verify_password(password or "", user.password_hash):
        logger.info("Failed login for email=%s", _normalize_email(email))
        raise UnauthorizedError("Invalid credentials")
    return user


def change_password(user: User, current_password: str, new_password: str) -> None:
    """Replace the password after re-verifying the current one."""
    if not verify_password(current_password or "", user.password_hash):
        raise ValidationError("Current password is incorrect", details={"currentPassword": "invalid"})
    _check_password_strength(new_password, field="newPassword")
    user.password_hash = hash_password(new_password)
    commit_or_rollback()
    logger.info("Password changed for user id=%s", user.id)


def list_users() -> list[User]:
    return db.session.execute(select(User).order_by(User.email)).scalars().all()


def set_role(user_id: int, role: str, actor_id: int) -> User:
    """Change a user's global role (admin only, checked by the caller)."""
    require_choice(role, USER_ROLES, "role")
    user = get_or_raise(User, user_id, "User")
    old = user.role
    user.role = role
    commit_or_rollback()
    logger.info("User id=%s role %s → %s by user id=%s", user.id, old, role, actor_id)
    return user


def create_or_promote_admin(email: str, password: str, name: str = "") -> tuple[User, bool]:
    """Ensure an admin account exists for ``email``.

    Returns (user, created). An existing account is promoted and its
    password reset.
    """
    _check_password_strength(password)
    user = find_by_email(email)
    created = user is None
    if created:
        user = User(email=_validated_email(email), name=name)
        db.session.add(user)
    elif name:
        user.name = name
    user.role = "admin"
    user.password_hash = hash_password(password)
    commit_or_rollback()
    return user, created
