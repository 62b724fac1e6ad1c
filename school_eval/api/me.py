from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from school_eval.core import role_gate
from school_eval.core.rbac import Actor, get_current_actor
from school_eval.db.base import utcnow
from school_eval.db.session import get_db
from school_eval.models.notification import Notification

router = APIRouter(prefix="/me", tags=["me"])


def notification_to_out(n: Notification) -> dict:
    return {
        "id": str(n.id),
        "kind": n.kind,
        "evaluation_id": str(n.evaluation_id) if n.evaluation_id else None,
        "message": n.message,
        "created_at": n.created_at,
        "read_at": n.read_at,
    }


@router.get("")
def me(actor: Actor = Depends(get_current_actor)):
    """Current user with its roles and the capabilities they grant"""
    return {
        "id": str(actor.user.id),
        "email": actor.user.email,
        "full_name": actor.user.full_name,
        "roles": sorted(actor.roles),
        "is_staff": role_gate.is_staff(actor.roles),
        "can_manage_evaluations": role_gate.can_manage(actor.roles),
        "can_review_evaluations": role_gate.is_reviewer(actor.roles),
    }


@router.get("/notifications")
def my_notifications(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    q = db.query(Notification).filter(Notification.recipient_user_id == actor.id)
    if unread_only:
        q = q.filter(Notification.read_at.is_(None))
    rows = q.order_by(Notification.created_at.desc()).limit(limit).all()
    return [notification_to_out(n) for n in rows]


@router.post("/notifications/{notification_id}/read")
def mark_notification_read(
    notification_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    n = db.get(Notification, notification_id)
    if not n or n.recipient_user_id != actor.id:
        raise HTTPException(status_code=404, detail="Notification not found")
    if n.read_at is None:
        n.read_at = utcnow()
        db.flush()
    return notification_to_out(n)
