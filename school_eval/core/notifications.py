import logging
from uuid import UUID

from sqlalchemy.orm import Session

from school_eval.core.rbac import get_users_with_roles
from school_eval.core.role_gate import REVIEW_ROLES
from school_eval.models.evaluation import Evaluation
from school_eval.models.notification import Notification

logger = logging.getLogger(__name__)


def notify(db: Session, *, recipient_id: UUID, kind: str, evaluation: Evaluation, message: str) -> Notification:
    n = Notification(
        recipient_user_id=recipient_id,
        kind=kind,
        evaluation_id=evaluation.id,
        message=message,
    )
    db.add(n)
    return n


def notify_reviewers(db: Session, evaluation: Evaluation, *, actor_id: UUID | None, resubmitted: bool) -> int:
    verb = "resubmitted" if resubmitted else "submitted"
    sent = 0
    for reviewer in get_users_with_roles(db, REVIEW_ROLES):
        if reviewer.id == actor_id:
            continue
        notify(
            db,
            recipient_id=reviewer.id,
            kind="EVALUATION_SUBMITTED",
            evaluation=evaluation,
            message=f"Evaluation '{evaluation.title}' was {verb} for review",
        )
        sent += 1
    logger.info("notified %d reviewer(s) about evaluation %s", sent, evaluation.id)
    return sent


def notify_owner(db: Session, evaluation: Evaluation) -> bool:
    if evaluation.created_by_user_id is None:
        return False
    if evaluation.status == "approved":
        kind, message = "EVALUATION_APPROVED", f"Evaluation '{evaluation.title}' was approved"
    else:
        kind = "EVALUATION_REJECTED"
        message = f"Evaluation '{evaluation.title}' was rejected: {evaluation.feedback}"
    notify(db, recipient_id=evaluation.created_by_user_id, kind=kind, evaluation=evaluation, message=message)
    return True
