"""
User directory - resolves the pickers who start, complete and pack sessions.

PIN login and session tokens live outside this service; callers hand over a
user id and get back the identity the picking flow records.
"""
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import Session

from pickops.db.base import utcnow
from pickops.exceptions import AuthenticationError, ValidationError
from pickops.logging_config import get_logger
from pickops.models.audit_log import AuditAction
from pickops.models.picking_user import PickingUser
from pickops.services.audit_service import record_audit

logger = get_logger(__name__)

USER_ROLES = ("picker", "supervisor", "admin")


@dataclass(frozen=True)
class UserIdentity:
    id: int
    name: str
    role: str


def _identity(user: PickingUser) -> UserIdentity:
    return UserIdentity(id=user.id, name=user.name, role=user.role)


def get_user(db: Session, user_id: int) -> UserIdentity:
    """Resolve a user regardless of active flag. Unknown ids are a validation error."""
    user = db.get(PickingUser, user_id)
    if user is None:
        raise ValidationError(f"Invalid user {user_id}", field="user_id", value=user_id)
    return _identity(user)


def find_active_user(db: Session, user_id: int) -> UserIdentity:
    """Resolve a user that may operate right now."""
    user = db.get(PickingUser, user_id)
    if user is None:
        raise ValidationError(f"Invalid user {user_id}", field="user_id", value=user_id)
    if not user.active:
        raise AuthenticationError(f"User {user.name} is inactive", details={"user_id": user_id})
    return _identity(user)


def _validate_role(role: str) -> str:
    if role not in USER_ROLES:
        raise ValidationError(
            f"Role must be one of: {', '.join(USER_ROLES)}", field="role", value=role
        )
    return role


def _validate_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Name is required", field="name")
    return name


def list_users(db: Session, include_inactive: bool = False) -> List[PickingUser]:
    query = db.query(PickingUser)
    if not include_inactive:
        query = query.filter(PickingUser.active.is_(True))
    return query.order_by(PickingUser.name).all()


def create_user(
    db: Session,
    name: str,
    role: str = "picker",
    actor_name: str = "admin",
) -> PickingUser:
    user = PickingUser(name=_validate_name(name), role=_validate_role(role), active=True)
    db.add(user)
    db.flush()

    record_audit(
        db,
        AuditAction.USER_CREATE,
        actor_name,
        user_id=user.id,
        details=f"User created: {user.name} ({user.role})",
        metadata={"name": user.name, "role": user.role},
    )
    logger.info("Picking user created", extra={"user_id": user.id, "role": user.role})
    return user


def update_user(
    db: Session,
    user_id: int,
    *,
    name: Optional[str] = None,
    role: Optional[str] = None,
    active: Optional[bool] = None,
    actor_name: str = "admin",
) -> PickingUser:
    user = db.get(PickingUser, user_id)
    if user is None:
        raise ValidationError(f"Invalid user {user_id}", field="user_id", value=user_id)

    changes = {}
    if name is not None and _validate_name(name) != user.name:
        changes["name"] = _validate_name(name)
    if role is not None and _validate_role(role) != user.role:
        changes["role"] = role
    if active is not None and active != user.active:
        changes["active"] = active

    if not changes:
        return user

    for field, value in changes.items():
        setattr(user, field, value)
    user.updated_at = utcnow()
    db.flush()

    record_audit(
        db,
        AuditAction.USER_UPDATE,
        actor_name,
        user_id=user.id,
        details=f"User updated: {user.name}",
        metadata=changes,
    )
    return user
