"""
Evaluation status machine.

    draft ──submit──> submitted ──approve──> approved   (terminal)
      ^                   │
      │                 reject (feedback required)
      │                   v
      └──── edit ──── rejected ──submit──> submitted

Transitions mutate ``status``/``feedback`` and the timestamp columns of the
given evaluation and nothing else; notifications and audit rows are the
caller's job.
"""
from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from fastapi import HTTPException, status

from school_eval.db.base import utcnow

logger = logging.getLogger(__name__)

DRAFT = "draft"
SUBMITTED = "submitted"
APPROVED = "approved"
REJECTED = "rejected"

STATUSES = (DRAFT, SUBMITTED, APPROVED, REJECTED)

# (from_status, action) -> to_status
TRANSITIONS: dict[tuple[str, str], str] = {
    (DRAFT, "submit"): SUBMITTED,
    (REJECTED, "submit"): SUBMITTED,
    (SUBMITTED, "approve"): APPROVED,
    (SUBMITTED, "reject"): REJECTED,
    (DRAFT, "edit"): DRAFT,
    (REJECTED, "edit"): REJECTED,
}

REVIEW_DECISIONS = {"approved": "approve", "rejected": "reject"}


def next_status(current: str, action: str) -> str:
    try:
        return TRANSITIONS[(current, action)]
    except KeyError:
        if current == APPROVED:
            detail = f"Approved evaluations are immutable (cannot {action})"
        else:
            detail = f"Invalid transition: cannot {action} an evaluation in status '{current}'"
        logger.warning("refused %s from %s", action, current)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)


def assert_editable(evaluation) -> None:
    next_status(evaluation.status, "edit")


def submit(evaluation, *, now: datetime | None = None) -> bool:
    """Move a draft/rejected evaluation to submitted.

    Returns True when this was a resubmission after a rejection.
    """
    previous = evaluation.status
    evaluation.status = next_status(previous, "submit")
    evaluation.feedback = None
    evaluation.submitted_at = now or utcnow()
    evaluation.reviewed_at = None
    evaluation.reviewed_by_user_id = None
    logger.info("evaluation %s: %s -> %s", evaluation.id, previous, evaluation.status)
    return previous == REJECTED


def normalize_feedback(feedback: str | None) -> str | None:
    if feedback is None:
        return None
    feedback = feedback.strip()
    return feedback or None


def review(
    evaluation,
    decision: str,
    feedback: str | None = None,
    *,
    reviewer_id: UUID | None = None,
    now: datetime | None = None,
) -> str:
    """Apply a reviewer decision ("approved" | "rejected") to a submitted evaluation."""
    action = REVIEW_DECISIONS.get(decision)
    if action is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": "Review validation failed",
                "errors": [{"field": "status", "code": "choice", "message": "Must be 'approved' or 'rejected'"}],
            },
        )

    reason = normalize_feedback(feedback)
    if action == "reject" and reason is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": "Review validation failed",
                "errors": [{"field": "feedback", "code": "required", "message": "A rejection reason is required"}],
            },
        )

    target = next_status(evaluation.status, action)
    logger.info("evaluation %s: %s -> %s", evaluation.id, evaluation.status, target)

    evaluation.status = target
    evaluation.feedback = reason if target == REJECTED else None
    evaluation.reviewed_at = now or utcnow()
    evaluation.reviewed_by_user_id = reviewer_id
    return target
