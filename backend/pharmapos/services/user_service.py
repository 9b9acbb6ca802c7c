# Overview: Actor identity lookups used to snapshot who performed a stock movement,
# plus the small amount of user administration the API and CLI expose.

from __future__ import annotations

import logging

from ..errors import ActorNotFoundError, ConflictError, InvalidStateError, NotFoundError
from ..extensions import db
from ..models import User
from ..models.auth import ROLES, ROLE_CASHIER
from ..validation import ModelValidationPolicy, ValidationError, validate_payload

USER_UPDATE_POLICY = ModelValidationPolicy(writable_fields={"name", "role", "is_active"})

logger = logging.getLogger(__name__)


def resolve_actor(session, user_id: int | None) -> User:
    """Load the acting user; the display name is snapshotted by the caller."""
    user = session.get(User, user_id) if user_id is not None else None
    if user is None:
        raise ActorNotFoundError("Cashier not found", details={"user_id": user_id})
    return user


def create_user(*, name: str, email: str, role: str = ROLE_CASHIER) -> User:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("User name is required")
    if not isinstance(email, str) or not email.strip():
        raise ValidationError("User email is required")
    if not isinstance(role, str) or role not in ROLES:
        raise ValidationError(f"Invalid role. Must be one of: {', '.join(sorted(ROLES))}")

    email = email.strip().lower()
    if db.session.query(User).filter_by(email=email).first():
        raise ConflictError(f"User with email {email} already exists")

    user = User(name=name.strip(), email=email, role=role, is_active=True)
    db.session.add(user)
    db.session.commit()
    logger.info("Created %s user %s (%s)", role, user.id, email)
    return user


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found", details={"user_id": user_id})
    return user


def list_users(include_inactive: bool = True) -> list[User]:
    q = db.session.query(User)
    if not include_inactive:
        q = q.filter(User.is_active.is_(True))
    return q.order_by(User.created_at.desc(), User.id.desc()).all()


def update_user(user_id: int, payload: dict, *, acting_user_id: int | None = None) -> User:
    """
    Change a user's display name, role or active flag.

    Email is the account key and stays fixed. An admin cannot demote or
    deactivate themselves, so at least the acting admin keeps access.
    """
    user = get_user(user_id)
    patch = validate_payload(model=User, payload=payload, policy=USER_UPDATE_POLICY, partial=True)
    if "role" in patch and patch["role"] not in ROLES:
        raise ValidationError(f"Invalid role. Must be one of: {', '.join(sorted(ROLES))}")
    if user_id == acting_user_id and (patch.get("is_active") is False or patch.get("role", user.role) != user.role):
        raise InvalidStateError("You cannot demote or deactivate your own account", details={"user_id": user_id})

    for key, value in patch.items():
        setattr(user, key, value)
    db.session.commit()
    logger.info("Updated user %s: %s", user_id, ", ".join(sorted(patch)) or "no changes")
    return user


def deactivate_user(user_id: int, *, acting_user_id: int | None = None) -> User:
    """
    Users stay on file because ledger entries and transactions reference
    them; deactivation only stops them from acting.
    """
    if not get_user(user_id).is_active:
        raise ValidationError("User is already deactivated", details={"user_id": user_id})
    return update_user(user_id, {"is_active": False}, acting_user_id=acting_user_id)
