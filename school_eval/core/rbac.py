from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from school_eval.core.security import get_current_user
from school_eval.db.session import get_db
from school_eval.models.user import User
from school_eval.models.rbac import Role, UserRole


@dataclass(frozen=True)
class Actor:
    """The authenticated user plus the role names it holds."""

    user: User
    roles: frozenset[str]

    @property
    def id(self):
        return self.user.id


def get_user_role_names(db: Session, user: User) -> set[str]:
    rows = (
        db.query(Role.name)
        .join(UserRole, UserRole.role_id == Role.id)
        .filter(UserRole.user_id == user.id)
        .all()
    )
    return {r[0] for r in rows}


def get_users_with_roles(db: Session, role_names) -> list[User]:
    return (
        db.query(User)
        .join(UserRole, UserRole.user_id == User.id)
        .join(Role, Role.id == UserRole.role_id)
        .filter(Role.name.in_(sorted(role_names)), User.is_active.is_(True))
        .distinct()
        .all()
    )


def get_current_actor(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Actor:
    return Actor(user=user, roles=frozenset(get_user_role_names(db, user)))


def require_roles(*required: str):
    """
    Usage:
      Depends(require_roles("admin"))
      Depends(require_roles("admin", "teacher"))  # any-of
    """
    required_set = set(required)

    def _dep(actor: Actor = Depends(get_current_actor)) -> Actor:
        if not (actor.roles & required_set):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Forbidden. Requires one of: {sorted(required_set)}",
            )
        return actor

    return _dep
