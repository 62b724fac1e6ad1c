import logging
from typing import Any

from sqlalchemy.orm import Session

from school_eval.models.audit_event import AuditEvent
from school_eval.models.evaluation import Evaluation
from school_eval.models.user import User

logger = logging.getLogger(__name__)


def evaluation_snapshot(e: Evaluation, **extra: Any) -> dict[str, Any]:
    data = {
        "title": e.title,
        "course_id": str(e.course_id),
        "subject_id": str(e.subject_id),
        "category": e.category,
        "status": e.status,
        "question_count": len(e.question_links),
    }
    data.update(extra)
    return data


def log_event(
    *,
    db: Session,
    actor: User | None,
    action: str,
    entity_type: str,
    entity_id,
    metadata: dict[str, Any] | None = None,
):
    db.add(
        AuditEvent(
            actor_user_id=actor.id if actor else None,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            event_metadata=metadata,
        )
    )
    logger.info(
        "%s %s=%s by %s",
        action,
        entity_type,
        entity_id,
        actor.email if actor else "system",
    )
