import logging
from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Header, Query, Response, status
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from school_eval.api.evaluations import create_evaluation_record, eval_to_out
from school_eval.api.questions import create_bank_question, query_bank, question_to_out
from school_eval.core import role_gate
from school_eval.core.audit import log_event
from school_eval.core.composition import STEP_NAMES, CompositionDraft
from school_eval.core.config import settings
from school_eval.core.difficulty import score_difficulties
from school_eval.core.idempotency import run_idempotent
from school_eval.core.objectives import flatten_objectives, load_materials
from school_eval.core.optimistic_lock import assert_version_matches, parse_if_match, set_etag
from school_eval.core.rbac import Actor, get_current_actor
from school_eval.db.session import get_db
from school_eval.models.composition_session import CompositionSession
from school_eval.models.directory import Course, Subject
from school_eval.models.evaluation import Evaluation
from school_eval.models.question import Question
from school_eval.schemas.composition import (
    BankQuestionOut,
    CompositionConfigure,
    CompositionOpen,
    CompositionOut,
    DifficultyOut,
    ObjectiveOptionOut,
    ObjectiveToggle,
)
from school_eval.schemas.evaluation import EvaluationOut
from school_eval.schemas.question import Difficulty, DraftQuestionCreate, QuestionOut
from school_eval.schemas.validation import ValidationError, ValidationPreviewResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/compositions", tags=["compositions"])

FINALIZED = "finalized"


def _wizard_error(field: str, code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"message": "Configuration validation failed",
                "errors": [{"field": field, "code": code, "message": message}]},
    )


def _as_str(value) -> str | None:
    return str(value) if value is not None else None


def _as_uuid(value) -> UUID | None:
    return UUID(value) if value else None


def _draft_from(row: CompositionSession) -> CompositionDraft:
    return CompositionDraft(
        date=row.date,
        step=row.step,
        title=row.title,
        type=row.type,
        course_id=_as_str(row.course_id),
        subject_id=_as_str(row.subject_id),
        max_score=row.max_score,
        category=row.category,
        objectives=list(row.objectives or []),
        question_ids=list(row.question_ids or []),
        title_max_length=settings.EVALUATION_TITLE_MAX_LENGTH,
    )


def _save(db: Session, row: CompositionSession, draft: CompositionDraft) -> None:
    row.step = draft.step
    row.title = draft.title
    row.date = draft.date
    row.type = draft.type
    row.course_id = _as_uuid(draft.course_id)
    row.subject_id = _as_uuid(draft.subject_id)
    row.category = draft.category
    row.objectives = list(draft.objectives)
    row.question_ids = list(draft.question_ids)
    _flush(db)


def _flush(db: Session) -> None:
    try:
        db.flush()
    except StaleDataError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Composition session was modified concurrently; reload and retry",
        )


def _get_session(db: Session, composition_id: UUID, actor: Actor) -> CompositionSession:
    row = db.get(CompositionSession, composition_id)
    # sessions are private to the teacher who opened them
    if not row or row.owner_user_id != actor.id:
        raise HTTPException(status_code=404, detail="Composition session not found")
    return row


def _get_open_session(
    db: Session, composition_id: UUID, actor: Actor, if_match: str | None = None
) -> CompositionSession:
    row = _get_session(db, composition_id, actor)
    if row.status == FINALIZED:
        raise HTTPException(status_code=409, detail="Composition session is already finalized")
    if if_match is not None:
        assert_version_matches(row, parse_if_match(if_match))
    return row


def _selected_difficulty(db: Session, question_ids: list[str]) -> DifficultyOut:
    ids = [UUID(qid) for qid in question_ids]
    by_id = {q.id: q.difficulty for q in db.query(Question).filter(Question.id.in_(ids)).all()} if ids else {}
    # questions removed from the bank after selection no longer count
    report = score_difficulties(by_id[qid] for qid in ids if qid in by_id)
    return DifficultyOut(**report.as_dict())


def session_to_out(db: Session, row: CompositionSession) -> CompositionOut:
    return CompositionOut(
        id=str(row.id),
        status=row.status,
        step=row.step,
        step_name=STEP_NAMES[row.step],
        title=row.title,
        date=row.date,
        type=row.type,
        max_score=row.max_score,
        category=row.category,
        course_id=_as_str(row.course_id),
        subject_id=_as_str(row.subject_id),
        objectives=list(row.objectives or []),
        question_ids=list(row.question_ids or []),
        difficulty=_selected_difficulty(db, list(row.question_ids or [])),
        evaluation_id=_as_str(row.evaluation_id),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _respond(db: Session, row: CompositionSession, response: Response) -> CompositionOut:
    set_etag(response, row.version)
    return session_to_out(db, row)


@router.post("", response_model=CompositionOut, status_code=status.HTTP_201_CREATED)
def open_composition(
    payload: CompositionOpen,
    response: Response,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    role_gate.assert_can_manage(actor.roles)

    course_id = payload.initial_course_id
    subject_id = payload.initial_subject_id
    if course_id is not None and not db.get(Course, course_id):
        raise _wizard_error("course_id", "not_found", "Course not found")
    if subject_id is not None:
        subject = db.get(Subject, subject_id)
        if not subject:
            raise _wizard_error("subject_id", "not_found", "Subject not found")
        if course_id is None:
            course_id = subject.course_id
        elif subject.course_id != course_id:
            raise _wizard_error("subject_id", "course_mismatch", "Subject does not belong to the selected course")

    row = CompositionSession(
        owner_user_id=actor.id,
        step=1,
        status="open",
        course_id=course_id,
        subject_id=subject_id,
        title="",
        date=date.today(),
        type="sumativa",
        max_score=settings.EVALUATION_MAX_SCORE,
        category=payload.initial_category,
        objectives=[],
        question_ids=[],
    )
    db.add(row)
    db.flush()

    log_event(
        db=db,
        actor=actor.user,
        action="COMPOSITION_OPENED",
        entity_type="composition_session",
        entity_id=row.id,
        metadata={"course_id": _as_str(course_id), "subject_id": _as_str(subject_id), "category": row.category},
    )
    return _respond(db, row, response)


@router.get("/{composition_id}", response_model=CompositionOut)
def get_composition(
    composition_id: UUID,
    response: Response,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return _respond(db, _get_session(db, composition_id, actor), response)


@router.patch("/{composition_id}/configuration", response_model=CompositionOut)
def configure_composition(
    composition_id: UUID,
    payload: CompositionConfigure,
    response: Response,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    if_match: str | None = Header(default=None, alias="If-Match"),
):
    row = _get_open_session(db, composition_id, actor, if_match)
    draft = _draft_from(row)
    draft.require_step(1)

    changes = payload.model_dump(exclude_unset=True)

    course_id = changes["course_id"] if "course_id" in changes else row.course_id
    if "course_id" in changes and course_id is not None and not db.get(Course, course_id):
        raise _wizard_error("course_id", "not_found", "Course not found")
    if changes.get("subject_id") is not None:
        subject = db.get(Subject, changes["subject_id"])
        if not subject:
            raise _wizard_error("subject_id", "not_found", "Subject not found")
        if subject.course_id != course_id:
            raise _wizard_error("subject_id", "course_mismatch", "Subject does not belong to the selected course")

    for key in ("course_id", "subject_id"):
        if key in changes:
            changes[key] = _as_str(changes[key])
    draft.configure(**changes)
    _save(db, row, draft)
    return _respond(db, row, response)


@router.post("/{composition_id}/advance", response_model=CompositionOut)
def advance_composition(
    composition_id: UUID,
    response: Response,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    if_match: str | None = Header(default=None, alias="If-Match"),
):
    row = _get_open_session(db, composition_id, actor, if_match)
    draft = _draft_from(row)
    draft.advance()
    _save(db, row, draft)
    return _respond(db, row, response)


@router.post("/{composition_id}/back", response_model=CompositionOut)
def back_composition(
    composition_id: UUID,
    response: Response,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    if_match: str | None = Header(default=None, alias="If-Match"),
):
    row = _get_open_session(db, composition_id, actor, if_match)
    draft = _draft_from(row)
    draft.back()
    _save(db, row, draft)
    return _respond(db, row, response)


def _objective_options(db: Session, row: CompositionSession) -> list[str]:
    if row.course_id is None or row.subject_id is None:
        return []
    return flatten_objectives(load_materials(db, course_id=row.course_id, subject_id=row.subject_id))


@router.get("/{composition_id}/objectives", response_model=list[ObjectiveOptionOut])
def list_composition_objectives(
    composition_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    row = _get_session(db, composition_id, actor)
    selected = set(row.objectives or [])
    return [ObjectiveOptionOut(objective=o, selected=o in selected) for o in _objective_options(db, row)]


@router.post("/{composition_id}/objectives/toggle", response_model=CompositionOut)
def toggle_composition_objective(
    composition_id: UUID,
    payload: ObjectiveToggle,
    response: Response,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    if_match: str | None = Header(default=None, alias="If-Match"),
):
    row = _get_open_session(db, composition_id, actor, if_match)
    draft = _draft_from(row)
    draft.require_step(2)

    objective = payload.objective.strip()
    # deselecting stays possible after the materials changed
    if objective not in draft.objectives and objective not in _objective_options(db, row):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Objective validation failed",
                    "errors": [{"field": "objective", "code": "not_found",
                                "message": "Not an objective of the selected subject"}]},
        )

    draft.toggle_objective(objective)
    _save(db, row, draft)
    return _respond(db, row, response)


@router.get("/{composition_id}/questions", response_model=list[BankQuestionOut])
def list_composition_questions(
    composition_id: UUID,
    difficulty: Difficulty | None = Query(default=None),
    search: str | None = Query(default=None, description="Case-insensitive text search"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    row = _get_session(db, composition_id, actor)
    if row.subject_id is None:
        return []

    selected = set(row.question_ids or [])
    return [
        BankQuestionOut(
            id=str(q.id),
            question_text=q.question_text,
            type=q.type,
            difficulty=q.difficulty,
            tags=list(q.tags or []),
            selected=str(q.id) in selected,
        )
        for q in query_bank(db, subject_id=row.subject_id, difficulty=difficulty, search=search).all()
    ]


@router.post("/{composition_id}/questions", response_model=QuestionOut, status_code=status.HTTP_201_CREATED)
def create_composition_question(
    composition_id: UUID,
    payload: DraftQuestionCreate,
    response: Response,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    if_match: str | None = Header(default=None, alias="If-Match"),
):
    """Add a new question to the bank and select it in one go."""
    row = _get_open_session(db, composition_id, actor, if_match)
    draft = _draft_from(row)
    draft.require_step(3)

    if payload.subject_id is not None and payload.subject_id != row.subject_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Question validation failed",
                    "errors": [{"field": "subject_id", "code": "subject_mismatch",
                                "message": "Question must belong to the session's subject"}]},
        )

    q = create_bank_question(db, actor=actor.user, payload=payload, subject_id=row.subject_id)
    draft.select_question(str(q.id))
    _save(db, row, draft)

    set_etag(response, row.version)
    return question_to_out(q)


@router.post("/{composition_id}/questions/{question_id}/toggle", response_model=CompositionOut)
def toggle_composition_question(
    composition_id: UUID,
    question_id: UUID,
    response: Response,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    if_match: str | None = Header(default=None, alias="If-Match"),
):
    row = _get_open_session(db, composition_id, actor, if_match)
    draft = _draft_from(row)
    draft.require_step(3)

    qid = str(question_id)
    if qid not in draft.question_ids:
        q = db.get(Question, question_id)
        if not q:
            raise HTTPException(status_code=404, detail="Question not found")
        if q.subject_id != row.subject_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"message": "Question selection validation failed",
                        "errors": [{"field": "questions", "code": "subject_mismatch",
                                    "message": "Question belongs to another subject"}]},
            )

    draft.toggle_question(qid)
    _save(db, row, draft)
    return _respond(db, row, response)


@router.get("/{composition_id}/difficulty", response_model=DifficultyOut)
def composition_difficulty(
    composition_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    row = _get_session(db, composition_id, actor)
    return _selected_difficulty(db, list(row.question_ids or []))


@router.get("/{composition_id}/validation", response_model=ValidationPreviewResponse)
def validate_composition(
    composition_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Dry run of the finalize gates; nothing is written."""
    row = _get_session(db, composition_id, actor)
    draft = _draft_from(row)

    errors = draft.validate_for_finalize(min_questions=settings.MIN_QUESTIONS_PER_EVALUATION)
    if draft.step != 3:
        errors.append({"field": "step", "code": "step", "message": "Finalize is only available at step 3"})

    warnings: list[str] = []
    if not draft.question_ids:
        warnings.append("No questions selected")
    if not draft.objectives:
        warnings.append("No learning objectives selected")

    return ValidationPreviewResponse(
        valid=not errors,
        errors=[ValidationError(**e) for e in errors],
        warnings=warnings,
    )


@router.post("/{composition_id}/finalize", response_model=EvaluationOut, status_code=status.HTTP_201_CREATED)
def finalize_composition(
    composition_id: UUID,
    response: Response,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    if_match: str | None = Header(default=None, alias="If-Match"),
):
    """
    Turn the session into a draft evaluation.

    Repeating the call on a finalized session returns the same evaluation.
    Two concurrent finalizes race on the session version; the loser gets 409
    and its evaluation row is rolled back.
    """
    role_gate.assert_can_manage(actor.roles)

    def _run() -> EvaluationOut:
        row = _get_session(db, composition_id, actor)
        if row.status == FINALIZED:
            e = db.get(Evaluation, row.evaluation_id) if row.evaluation_id else None
            if not e:
                raise HTTPException(status_code=404, detail="Evaluation created by this session no longer exists")
            return eval_to_out(e, actor)

        if if_match is not None:
            assert_version_matches(row, parse_if_match(if_match))

        draft = _draft_from(row)
        data = draft.build_payload(min_questions=settings.MIN_QUESTIONS_PER_EVALUATION)

        e = create_evaluation_record(
            db,
            actor=actor,
            title=data["title"],
            date=data["date"],
            course_id=UUID(data["course_id"]),
            subject_id=UUID(data["subject_id"]),
            max_score=data["max_score"],
            category=data["category"],
            type=data["type"],
            objectives=data["objectives"],
            questions=data["questions"],
            source="composition",
        )

        row.status = FINALIZED
        row.evaluation_id = e.id
        _flush(db)

        log_event(
            db=db,
            actor=actor.user,
            action="COMPOSITION_FINALIZED",
            entity_type="composition_session",
            entity_id=row.id,
            metadata={"evaluation_id": str(e.id), "question_count": len(data["questions"])},
        )
        logger.info("composition %s finalized into evaluation %s", row.id, e.id)
        return eval_to_out(e, actor)

    out = run_idempotent(
        db=db,
        user=actor.user,
        key=idempotency_key,
        method="POST",
        route="/compositions/{composition_id}/finalize",
        payload_for_hash={"composition_id": str(composition_id)},
        response_code=201,
        model=EvaluationOut,
        run=_run,
    )
    set_etag(response, out.version)
    return out


@router.delete("/{composition_id}", status_code=status.HTTP_204_NO_CONTENT)
def close_composition(
    composition_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    row = _get_session(db, composition_id, actor)
    db.delete(row)
    log_event(
        db=db,
        actor=actor.user,
        action="COMPOSITION_CLOSED",
        entity_type="composition_session",
        entity_id=composition_id,
        metadata={"status": row.status},
    )
