# Overview: Admin-side user management; every change is written to the activity log.

from __future__ import annotations

from ..extensions import db
from ..models import User
from invtrack.validation import ConflictError, ValidationError
from . import activity_service, session_service
from .auth_service import ROLES


class UserNotFoundError(ValidationError):
    pass


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.email).all()


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise UserNotFoundError("User not found")
    return user


def update_user(
    actor: User,
    user_id: int,
    *,
    role: str | None = None,
    is_active: bool | None = None,
    name: str | None = None,
    meta: dict | None = None,
) -> User:
    """
    Change a user's role, active flag or display name.

    Admins cannot demote or deactivate themselves. Deactivation revokes all
    of the user's sessions.
    """
    user = get_user(user_id)
    meta = meta or {}

    if role is not None and role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
    if user.id == actor.id and (role not in (None, user.role) or is_active is False):
        raise ConflictError("You cannot change your own role or deactivate yourself")

    if name is not None:
        user.name = name.strip() or None
        db.session.commit()

    if role is not None and role != user.role:
        old_role = user.role
        user.role = role
        db.session.commit()
        activity_service.log_activity(
            actor, activity_service.ACTIVITY_ROLE_CHANGED,
            resource_type="user", resource_id=user.id,
            details={"email": user.email, "from": old_role, "to": role},
            **meta,
        )

    if is_active is not None and is_active != user.is_active:
        user.is_active = is_active
        db.session.commit()
        if not is_active:
            session_service.revoke_all_user_sessions(user.id)
        activity_service.log_activity(
            actor, activity_service.ACTIVITY_STATUS_CHANGED,
            resource_type="user", resource_id=user.id,
            details={"email": user.email, "isActive": is_active},
            **meta,
        )

    return user
