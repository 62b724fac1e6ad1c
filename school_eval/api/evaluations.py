import logging
from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Header, Query, Response, status
from sqlalchemy import or_
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from school_eval.core import lifecycle, role_gate
from school_eval.core.audit import evaluation_snapshot, log_event
from school_eval.core.config import settings
from school_eval.core.difficulty import score_difficulties
from school_eval.core.idempotency import run_idempotent
from school_eval.core.notifications import notify_owner, notify_reviewers
from school_eval.core.optimistic_lock import assert_version_matches, parse_if_match, set_etag, stale_version
from school_eval.core.rbac import Actor, get_current_actor, get_user_role_names
from school_eval.core.references import get_course_or_404, resolve_subject
from school_eval.db.base import utcnow
from school_eval.db.session import get_db
from school_eval.models.directory import Subject
from school_eval.models.evaluation import Evaluation, EvaluationQuestion
from school_eval.models.grade import Grade
from school_eval.models.question import Question
from school_eval.models.user import User
from school_eval.schemas.composition import DifficultyOut
from school_eval.schemas.evaluation import (
    EvaluationCreate,
    EvaluationOut,
    EvaluationResultsOut,
    EvaluationUpdate,
    GradeOut,
    GradesPayload,
    ReviewPayload,
)
from school_eval.schemas.pagination import PaginatedResponse, PaginationMeta

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/evaluations", tags=["evaluations"])


def eval_to_out(e: Evaluation, actor: Actor | None = None) -> EvaluationOut:
    return EvaluationOut(
        id=str(e.id),
        title=e.title,
        date=e.date,
        course_id=str(e.course_id),
        subject_id=str(e.subject_id),
        max_score=e.max_score,
        category=e.category,
        type=e.type,
        status=e.status,
        feedback=e.feedback,
        objectives=list(e.objectives or []),
        questions=[str(qid) for qid in e.question_ids],
        created_by_user_id=str(e.created_by_user_id) if e.created_by_user_id else None,
        submitted_at=e.submitted_at,
        reviewed_at=e.reviewed_at,
        created_at=e.created_at,
        updated_at=e.updated_at,
        version=e.version,
        allowed_actions=role_gate.allowed_actions(actor.roles, e, actor.id) if actor else [],
    )


def _validation_failed(message: str, errors: list[dict]) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"message": message, "errors": errors},
    )


def _get_evaluation_or_404(db: Session, evaluation_id: UUID, actor: Actor) -> Evaluation:
    e = db.get(Evaluation, evaluation_id)
    # hidden surprise evaluations look exactly like missing ones
    if not e or not role_gate.is_visible_to(
        actor.roles, e, today=date.today(), reveal_after_date=settings.SURPRISE_VISIBLE_AFTER_DATE
    ):
        raise HTTPException(status_code=404, detail="Evaluation not found")
    return e


def check_title(title: str) -> str:
    title = (title or "").strip()
    if not title:
        raise _validation_failed("Evaluation validation failed",
                                 [{"field": "title", "code": "required", "message": "Required"}])
    if len(title) > settings.EVALUATION_TITLE_MAX_LENGTH:
        raise _validation_failed(
            "Evaluation validation failed",
            [{"field": "title", "code": "max_length",
              "message": f"Must be <= {settings.EVALUATION_TITLE_MAX_LENGTH} chars"}],
        )
    return title


def check_max_score(value: float | None) -> float:
    # closed scale: the policy value is the only accepted one
    if value is None:
        return settings.EVALUATION_MAX_SCORE
    if value != settings.EVALUATION_MAX_SCORE:
        raise _validation_failed(
            "Evaluation validation failed",
            [{"field": "max_score", "code": "policy",
              "message": f"Max score is fixed at {settings.EVALUATION_MAX_SCORE}"}],
        )
    return value


def resolve_questions(db: Session, question_ids, *, subject_id: UUID) -> list[UUID]:
    """Dedupe (first wins) and check every id is a bank question of the subject."""
    ordered: list[UUID] = []
    for qid in question_ids:
        qid = qid if isinstance(qid, UUID) else UUID(str(qid))
        if qid not in ordered:
            ordered.append(qid)
    if not ordered:
        return []

    found = {q.id: q for q in db.query(Question).filter(Question.id.in_(ordered)).all()}
    errors: list[dict] = []
    for qid in ordered:
        q = found.get(qid)
        if q is None:
            errors.append({"field": "questions", "code": "not_found", "message": f"Question {qid} not found"})
        elif q.subject_id != subject_id:
            errors.append({"field": "questions", "code": "subject_mismatch",
                           "message": f"Question {qid} belongs to another subject"})
    if errors:
        raise _validation_failed("Question selection validation failed", errors)
    return ordered


def set_questions(db: Session, e: Evaluation, question_ids: list[UUID]) -> None:
    if e.question_links:
        # old links go first, (evaluation, position) is unique
        e.question_links.clear()
        db.flush()
    for position, qid in enumerate(question_ids, start=1):
        e.question_links.append(EvaluationQuestion(question_id=qid, position=position))


def create_evaluation_record(
    db: Session,
    *,
    actor: Actor,
    title: str,
    date: date,
    course_id: UUID,
    subject_id: UUID | None = None,
    subject_name: str | None = None,
    max_score: float | None = None,
    category: str = "planificada",
    type: str = "sumativa",
    objectives: list[str] | None = None,
    questions=(),
    source: str = "manual",
) -> Evaluation:
    """Create an evaluation in draft; shared by the manual form and the wizard."""
    title = check_title(title)
    max_score = check_max_score(max_score)
    course = get_course_or_404(db, course_id)
    subject = resolve_subject(db, course_id=course.id, subject_id=subject_id, subject_name=subject_name)
    question_ids = resolve_questions(db, questions, subject_id=subject.id)

    e = Evaluation(
        title=title,
        date=date,
        course_id=course.id,
        subject_id=subject.id,
        max_score=max_score,
        category=category,
        type=type,
        status=lifecycle.DRAFT,
        objectives=list(objectives or []),
        created_by_user_id=actor.id,
    )
    set_questions(db, e, question_ids)
    db.add(e)
    db.flush()

    log_event(
        db=db,
        actor=actor.user,
        action="EVALUATION_CREATED",
        entity_type="evaluation",
        entity_id=e.id,
        metadata=evaluation_snapshot(e, source=source),
    )
    return e


@router.get("")
def list_evaluations(
    course_id: UUID | None = Query(default=None),
    subject_id: UUID | None = Query(default=None),
    status_filter: str | None = Query(default=None, alias="status", description="draft, submitted, approved or rejected"),
    category: str | None = Query(default=None, description="planificada or sorpresa"),
    search: str | None = Query(default=None, description="Search by title or subject name"),
    limit: int = Query(default=100, ge=1, le=500, description="Maximum number of results"),
    offset: int = Query(default=0, ge=0, description="Number of results to skip"),
    include_pagination: bool = Query(default=False, description="Include pagination metadata"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """
    List evaluations. Students and guardians never receive surprise
    evaluations (see role_gate.is_visible_to).

    Use ?include_pagination=true to get pagination metadata.
    """
    query = db.query(Evaluation)

    if course_id:
        query = query.filter(Evaluation.course_id == course_id)
    if subject_id:
        query = query.filter(Evaluation.subject_id == subject_id)
    if status_filter:
        query = query.filter(Evaluation.status == status_filter)
    if category:
        query = query.filter(Evaluation.category == category)
    if search:
        term = f"%{search.strip()}%"
        query = query.join(Subject, Subject.id == Evaluation.subject_id).filter(
            or_(Evaluation.title.ilike(term), Subject.name.ilike(term))
        )

    today = date.today()
    if not role_gate.is_staff(actor.roles):
        # same rule as is_visible_to, pushed down so pagination totals are right
        hidden = Evaluation.category == "sorpresa"
        if settings.SURPRISE_VISIBLE_AFTER_DATE:
            hidden = hidden & (Evaluation.date >= today)
        query = query.filter(~hidden)

    total = query.count()
    rows = query.order_by(Evaluation.date.desc(), Evaluation.created_at.desc()).offset(offset).limit(limit).all()
    rows = role_gate.filter_visible(
        actor.roles, rows, today=today, reveal_after_date=settings.SURPRISE_VISIBLE_AFTER_DATE
    )
    items = [eval_to_out(e, actor) for e in rows]

    if include_pagination:
        return PaginatedResponse(
            items=items,
            pagination=PaginationMeta.build(total=total, limit=limit, offset=offset, returned=len(items)),
        )
    return items


@router.get("/{evaluation_id}", response_model=EvaluationOut)
def get_evaluation(
    evaluation_id: UUID,
    response: Response,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    e = _get_evaluation_or_404(db, evaluation_id, actor)
    out = eval_to_out(e, actor)
    set_etag(response, out.version)
    return out


@router.post("", response_model=EvaluationOut, status_code=status.HTTP_201_CREATED)
def create_evaluation(
    payload: EvaluationCreate,
    response: Response,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    role_gate.assert_can_manage(actor.roles)

    def _run() -> EvaluationOut:
        e = create_evaluation_record(
            db,
            actor=actor,
            title=payload.title,
            date=payload.date,
            course_id=payload.course_id,
            subject_id=payload.subject_id,
            subject_name=payload.subject_name,
            max_score=payload.max_score,
            category=payload.category,
            type=payload.type,
            objectives=payload.objectives,
            questions=payload.questions,
        )
        return eval_to_out(e, actor)

    out = run_idempotent(
        db=db,
        user=actor.user,
        key=idempotency_key,
        method="POST",
        route="/evaluations",
        payload_for_hash=payload.model_dump(mode="json"),
        response_code=201,
        model=EvaluationOut,
        run=_run,
    )
    set_etag(response, out.version)
    return out


@router.put("/{evaluation_id}", response_model=EvaluationOut)
def update_evaluation(
    evaluation_id: UUID,
    payload: EvaluationUpdate,
    response: Response,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    if_match: str | None = Header(default=None, alias="If-Match"),
):
    expected_version = parse_if_match(if_match)

    e = _get_evaluation_or_404(db, evaluation_id, actor)
    role_gate.assert_can_edit(actor.roles, e, actor.id)
    lifecycle.assert_editable(e)
    assert_version_matches(e, expected_version)

    changes = payload.model_dump(exclude_unset=True)

    course_id = changes.get("course_id") or e.course_id
    if course_id != e.course_id:
        get_course_or_404(db, course_id)

    subject_changed = any(k in changes for k in ("course_id", "subject_id", "subject_name"))
    subject_id = e.subject_id
    if subject_changed:
        subject = resolve_subject(
            db,
            course_id=course_id,
            subject_id=changes.get("subject_id") or (None if changes.get("subject_name") else e.subject_id),
            subject_name=changes.get("subject_name"),
        )
        subject_id = subject.id

    if changes.get("questions") is not None:
        question_ids = resolve_questions(db, changes["questions"], subject_id=subject_id)
    elif subject_id != e.subject_id:
        # kept questions must still match the new subject
        question_ids = resolve_questions(db, e.question_ids, subject_id=subject_id)
    else:
        question_ids = None

    title = check_title(changes["title"]) if changes.get("title") is not None else e.title
    max_score = check_max_score(changes["max_score"]) if "max_score" in changes else e.max_score

    if question_ids is not None:
        set_questions(db, e, question_ids)

    e.title = title
    e.max_score = max_score
    for field in ("date", "category", "type"):
        if changes.get(field) is not None:
            setattr(e, field, changes[field])
    if changes.get("objectives") is not None:
        e.objectives = list(changes["objectives"])
    e.course_id = course_id
    e.subject_id = subject_id
    # always write the row so the version moves even for link-only edits
    e.updated_at = utcnow()

    try:
        db.flush()
    except StaleDataError:
        raise stale_version()

    log_event(
        db=db,
        actor=actor.user,
        action="EVALUATION_UPDATED",
        entity_type="evaluation",
        entity_id=e.id,
        metadata=evaluation_snapshot(e, fields=sorted(changes), version=e.version),
    )

    out = eval_to_out(e, actor)
    set_etag(response, out.version)
    return out


@router.delete("/{evaluation_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_evaluation(
    evaluation_id: UUID,
    confirm: bool = Query(default=False, description="Must be true: associated grades are deleted too"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    if not role_gate.can_delete(actor.roles):
        raise HTTPException(status_code=403, detail="Forbidden. Only admins and teachers can delete evaluations")

    e = _get_evaluation_or_404(db, evaluation_id, actor)

    if not confirm:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Deletion must be confirmed with confirm=true; associated grades will be deleted",
        )

    grade_count = db.query(Grade).filter(Grade.evaluation_id == e.id).count()
    snapshot = evaluation_snapshot(e, deleted_grades=grade_count)

    db.delete(e)
    db.flush()

    log_event(
        db=db,
        actor=actor.user,
        action="EVALUATION_DELETED",
        entity_type="evaluation",
        entity_id=evaluation_id,
        metadata=snapshot,
    )
    logger.info("evaluation %s deleted with %d grade(s)", evaluation_id, grade_count)


@router.post("/{evaluation_id}/submit", response_model=EvaluationOut)
def submit_evaluation(
    evaluation_id: UUID,
    response: Response,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    if_match: str | None = Header(default=None, alias="If-Match"),
):
    expected_version = parse_if_match(if_match)
    role_gate.assert_can_submit_role(actor.roles)

    def _run() -> EvaluationOut:
        e = _get_evaluation_or_404(db, evaluation_id, actor)
        assert_version_matches(e, expected_version)

        resubmitted = lifecycle.submit(e)
        try:
            db.flush()
        except StaleDataError:
            raise stale_version()

        notify_reviewers(db, e, actor_id=actor.id, resubmitted=resubmitted)
        log_event(
            db=db,
            actor=actor.user,
            action="EVALUATION_SUBMITTED",
            entity_type="evaluation",
            entity_id=e.id,
            metadata=evaluation_snapshot(e, resubmitted=resubmitted, version=e.version),
        )
        return eval_to_out(e, actor)

    out = run_idempotent(
        db=db,
        user=actor.user,
        key=idempotency_key,
        method="POST",
        route="/evaluations/{evaluation_id}/submit",
        payload_for_hash={"evaluation_id": str(evaluation_id), "if_match": expected_version},
        response_code=200,
        model=EvaluationOut,
        run=_run,
    )
    set_etag(response, out.version)
    return out


@router.post("/{evaluation_id}/review", response_model=EvaluationOut)
def review_evaluation(
    evaluation_id: UUID,
    payload: ReviewPayload,
    response: Response,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    if_match: str | None = Header(default=None, alias="If-Match"),
):
    expected_version = parse_if_match(if_match)
    role_gate.assert_is_reviewer(actor.roles)

    def _run() -> EvaluationOut:
        e = _get_evaluation_or_404(db, evaluation_id, actor)
        assert_version_matches(e, expected_version)

        target = lifecycle.review(e, payload.status, payload.feedback, reviewer_id=actor.id)
        try:
            db.flush()
        except StaleDataError:
            raise stale_version()

        notify_owner(db, e)
        log_event(
            db=db,
            actor=actor.user,
            action="EVALUATION_APPROVED" if target == lifecycle.APPROVED else "EVALUATION_REJECTED",
            entity_type="evaluation",
            entity_id=e.id,
            metadata=evaluation_snapshot(e, feedback=e.feedback, version=e.version),
        )
        return eval_to_out(e, actor)

    out = run_idempotent(
        db=db,
        user=actor.user,
        key=idempotency_key,
        method="POST",
        route="/evaluations/{evaluation_id}/review",
        payload_for_hash={"evaluation_id": str(evaluation_id), "if_match": expected_version,
                          **payload.model_dump(mode="json")},
        response_code=200,
        model=EvaluationOut,
        run=_run,
    )
    set_etag(response, out.version)
    return out


@router.get("/{evaluation_id}/difficulty", response_model=DifficultyOut)
def evaluation_difficulty(
    evaluation_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    if not role_gate.is_staff(actor.roles):
        raise HTTPException(status_code=403, detail="Forbidden. Staff only")
    e = _get_evaluation_or_404(db, evaluation_id, actor)

    ids = e.question_ids
    by_id = {q.id: q.difficulty for q in db.query(Question).filter(Question.id.in_(ids)).all()} if ids else {}
    return DifficultyOut(**score_difficulties(by_id[qid] for qid in ids if qid in by_id).as_dict())


@router.post("/{evaluation_id}/grades", response_model=EvaluationResultsOut)
def record_grades(
    evaluation_id: UUID,
    payload: GradesPayload,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    role_gate.assert_can_manage(actor.roles)
    e = _get_evaluation_or_404(db, evaluation_id, actor)

    if e.status != lifecycle.APPROVED:
        raise HTTPException(status_code=409, detail="Grades can only be recorded for approved evaluations")

    errors: list[dict] = []
    seen: set[UUID] = set()
    for g in payload.grades:
        if g.student_user_id in seen:
            errors.append({"field": "student_user_id", "code": "duplicate",
                           "message": f"Student {g.student_user_id} appears more than once"})
            continue
        seen.add(g.student_user_id)
        student = db.get(User, g.student_user_id)
        if not student or role_gate.STUDENT not in get_user_role_names(db, student):
            errors.append({"field": "student_user_id", "code": "not_found",
                           "message": f"Student {g.student_user_id} not found"})
        if not settings.EVALUATION_MIN_SCORE <= g.score <= e.max_score:
            errors.append({"field": "score", "code": "range",
                           "message": f"Must be between {settings.EVALUATION_MIN_SCORE} and {e.max_score}"})
    if errors:
        raise _validation_failed("Grade validation failed", errors)

    for g in payload.grades:
        row = (
            db.query(Grade)
            .filter(Grade.evaluation_id == e.id, Grade.student_user_id == g.student_user_id)
            .one_or_none()
        )
        if row:
            row.score = g.score
        else:
            db.add(Grade(evaluation_id=e.id, student_user_id=g.student_user_id, score=g.score))
    db.flush()

    log_event(
        db=db,
        actor=actor.user,
        action="GRADES_RECORDED",
        entity_type="evaluation",
        entity_id=e.id,
        metadata={"count": len(payload.grades)},
    )
    return _results(db, e, actor)


def _results(db: Session, e: Evaluation, actor: Actor) -> EvaluationResultsOut:
    q = db.query(Grade).filter(Grade.evaluation_id == e.id)
    if not role_gate.is_staff(actor.roles):
        q = q.filter(Grade.student_user_id == actor.id)
    grades = q.all()

    average = round(sum(g.score for g in grades) / len(grades), 2) if grades else None
    return EvaluationResultsOut(
        evaluation_id=str(e.id),
        status=e.status,
        grades=[GradeOut(student_user_id=str(g.student_user_id), score=g.score) for g in grades],
        average=average,
    )


@router.get("/{evaluation_id}/results", response_model=EvaluationResultsOut)
def evaluation_results(
    evaluation_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Staff see every grade; students only their own, and only once approved."""
    e = _get_evaluation_or_404(db, evaluation_id, actor)
    if not role_gate.is_staff(actor.roles) and e.status != lifecycle.APPROVED:
        raise HTTPException(status_code=403, detail="Results are available once the evaluation is approved")
    return _results(db, e, actor)
