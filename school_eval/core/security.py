from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from school_eval.db.session import get_db
from school_eval.models.user import User


def get_current_user(
    x_user_email: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    """
    DEV AUTH: the caller identifies itself with an X-User-Email header.
    Role resolution happens afterwards (see core.rbac.get_current_actor).
    """
    email = (x_user_email or "").strip().lower()
    if not email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Email header (dev auth)",
        )

    user = db.query(User).filter(User.email == email).one_or_none()
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or inactive user")
    return user
