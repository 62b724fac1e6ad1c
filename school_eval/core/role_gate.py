"""
Role predicates for evaluation actions.

Every predicate takes the caller's role-name set and is free of side
effects. The ``assert_*`` helpers raise 403 and are called by the API
before any state is touched.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, Protocol
from uuid import UUID

from fastapi import HTTPException, status

logger = logging.getLogger(__name__)

ADMIN = "admin"  # super-admin
SOSTENEDOR = "sostenedor"
DIRECTOR = "director"
UTP = "utp"  # academic coordinator
TEACHER = "teacher"
STUDENT = "student"
GUARDIAN = "apoderado"

STAFF_ROLES = frozenset(
    {
        ADMIN,
        SOSTENEDOR,
        DIRECTOR,
        UTP,
        TEACHER,
        "psicologo",
        "orientador",
        "asistente_aula",
        "secretario",
    }
)
READ_ONLY_ROLES = frozenset({STUDENT, GUARDIAN})
MANAGE_ROLES = frozenset({ADMIN, TEACHER})
REVIEW_ROLES = frozenset({ADMIN, DIRECTOR, UTP})

SUBMITTABLE_STATUSES = frozenset({"draft", "rejected"})
EDITABLE_STATUSES = frozenset({"draft", "rejected"})


class EvaluationLike(Protocol):
    status: str
    category: str
    date: date
    created_by_user_id: UUID | None


def is_staff(roles: Iterable[str]) -> bool:
    roles = set(roles)
    return bool(roles & STAFF_ROLES) and not (roles & READ_ONLY_ROLES)


def can_manage(roles: Iterable[str]) -> bool:
    roles = set(roles)
    return bool(roles & MANAGE_ROLES) and is_staff(roles)


def is_reviewer(roles: Iterable[str]) -> bool:
    return bool(set(roles) & REVIEW_ROLES)


def can_review(roles: Iterable[str], evaluation: EvaluationLike) -> bool:
    return is_reviewer(roles) and evaluation.status == "submitted"


def can_submit(roles: Iterable[str], evaluation: EvaluationLike) -> bool:
    return TEACHER in set(roles) and evaluation.status in SUBMITTABLE_STATUSES


def can_edit(roles: Iterable[str], evaluation: EvaluationLike, user_id: UUID | None) -> bool:
    roles = set(roles)
    if not can_manage(roles) or evaluation.status not in EDITABLE_STATUSES:
        return False
    if ADMIN in roles:
        return True
    return evaluation.created_by_user_id is not None and evaluation.created_by_user_id == user_id


def can_delete(roles: Iterable[str]) -> bool:
    return can_manage(roles)


def is_visible_to(
    roles: Iterable[str],
    evaluation: EvaluationLike,
    *,
    today: date,
    reveal_after_date: bool = False,
) -> bool:
    """Students and guardians never list surprise evaluations.

    With ``reveal_after_date`` a surprise evaluation shows up for them once
    its date has passed.
    """
    if is_staff(roles):
        return True
    if evaluation.category != "sorpresa":
        return True
    return reveal_after_date and evaluation.date < today


def filter_visible(
    roles: Iterable[str],
    evaluations: Iterable[EvaluationLike],
    *,
    today: date,
    reveal_after_date: bool = False,
) -> list:
    roles = set(roles)
    return [
        e for e in evaluations
        if is_visible_to(roles, e, today=today, reveal_after_date=reveal_after_date)
    ]


def allowed_actions(roles: Iterable[str], evaluation: EvaluationLike, user_id: UUID | None) -> list[str]:
    roles = set(roles)
    actions: list[str] = []
    if can_edit(roles, evaluation, user_id):
        actions.append("edit")
    if can_delete(roles):
        actions.append("delete")
    if can_submit(roles, evaluation):
        actions.append("submit")
    if can_review(roles, evaluation):
        actions.extend(["approve", "reject"])
    return actions


def _forbid(detail: str) -> HTTPException:
    logger.warning("forbidden: %s", detail)
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def assert_can_manage(roles: Iterable[str]) -> None:
    if not can_manage(roles):
        raise _forbid(f"Forbidden. Requires staff with one of: {sorted(MANAGE_ROLES)}")


def assert_is_reviewer(roles: Iterable[str]) -> None:
    if not is_reviewer(roles):
        raise _forbid(f"Forbidden. Requires one of: {sorted(REVIEW_ROLES)}")


def assert_can_submit_role(roles: Iterable[str]) -> None:
    # status is checked by the lifecycle, which answers 409 instead
    if TEACHER not in set(roles):
        raise _forbid("Only teachers can submit evaluations for review")


def assert_can_edit(roles: Iterable[str], evaluation: EvaluationLike, user_id: UUID | None) -> None:
    roles = set(roles)
    assert_can_manage(roles)
    if ADMIN not in roles and evaluation.created_by_user_id != user_id:
        raise _forbid("Only the owning teacher or an admin can edit this evaluation")
