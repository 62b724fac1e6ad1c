from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from school_eval.core import role_gate
from school_eval.core.audit import log_event
from school_eval.core.lifecycle import APPROVED, SUBMITTED
from school_eval.core.rbac import Actor, get_current_actor
from school_eval.core.references import get_subject_or_404
from school_eval.db.session import get_db
from school_eval.models.evaluation import Evaluation, EvaluationQuestion
from school_eval.models.question import Question
from school_eval.models.user import User
from school_eval.schemas.question import (
    Difficulty,
    OptionOut,
    QuestionCreate,
    QuestionOut,
    QuestionUpdate,
    check_answer_shape,
)

router = APIRouter(prefix="/questions", tags=["question-bank"])

LOCKED_STATUSES = (SUBMITTED, APPROVED)


def question_to_out(q: Question) -> QuestionOut:
    return QuestionOut(
        id=str(q.id),
        question_text=q.question_text,
        type=q.type,
        difficulty=q.difficulty,
        subject_id=str(q.subject_id),
        grade=q.grade,
        tags=list(q.tags or []),
        options=[
            OptionOut(text=text, is_correct=(i == q.correct_option_index))
            for i, text in enumerate(q.options or [])
        ],
        created_at=q.created_at,
    )


def assert_answer_shape(qtype: str, options: list[str], correct_option: int | None) -> None:
    errors = check_answer_shape(qtype, options, correct_option)
    if errors:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Question validation failed", "errors": errors},
        )


def create_bank_question(db: Session, *, actor: User, payload: QuestionCreate, subject_id: UUID) -> Question:
    """Insert a bank question; shared with the wizard's inline creation."""
    get_subject_or_404(db, subject_id)
    assert_answer_shape(payload.type, payload.options, payload.correct_option)

    q = Question(
        question_text=payload.question_text.strip(),
        type=payload.type,
        difficulty=payload.difficulty,
        subject_id=subject_id,
        grade=payload.grade,
        tags=payload.tags,
        options=payload.options,
        correct_option_index=payload.correct_option,
        created_by_user_id=actor.id,
    )
    db.add(q)
    db.flush()

    log_event(
        db=db,
        actor=actor,
        action="QUESTION_CREATED",
        entity_type="question",
        entity_id=q.id,
        metadata={"subject_id": str(subject_id), "type": q.type, "difficulty": q.difficulty},
    )
    return q


def query_bank(
    db: Session,
    *,
    subject_id: UUID | None = None,
    difficulty: str | None = None,
    search: str | None = None,
):
    q = db.query(Question)
    if subject_id:
        q = q.filter(Question.subject_id == subject_id)
    if difficulty:
        q = q.filter(Question.difficulty == difficulty)
    if search:
        q = q.filter(Question.question_text.ilike(f"%{search.strip()}%"))
    # level label first, then oldest first
    return q.order_by(Question.grade, Question.created_at)


@router.get("", response_model=list[QuestionOut])
def list_questions(
    subject_id: UUID | None = Query(default=None),
    difficulty: Difficulty | None = Query(default=None),
    search: str | None = Query(default=None, description="Case-insensitive text search"),
    limit: int = Query(default=200, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    if not role_gate.is_staff(actor.roles):
        # bank items carry the answers
        raise HTTPException(status_code=403, detail="Forbidden. The question bank is staff-only")

    rows = query_bank(db, subject_id=subject_id, difficulty=difficulty, search=search).offset(offset).limit(limit).all()
    return [question_to_out(q) for q in rows]


@router.get("/{question_id}", response_model=QuestionOut)
def get_question(
    question_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    if not role_gate.is_staff(actor.roles):
        raise HTTPException(status_code=403, detail="Forbidden. The question bank is staff-only")
    q = db.get(Question, question_id)
    if not q:
        raise HTTPException(status_code=404, detail="Question not found")
    return question_to_out(q)


@router.post("", response_model=QuestionOut, status_code=status.HTTP_201_CREATED)
def create_question(
    payload: QuestionCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    role_gate.assert_can_manage(actor.roles)
    q = create_bank_question(db, actor=actor.user, payload=payload, subject_id=payload.subject_id)
    return question_to_out(q)


@router.put("/{question_id}", response_model=QuestionOut)
def update_question(
    question_id: UUID,
    payload: QuestionUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    role_gate.assert_can_manage(actor.roles)

    q = db.get(Question, question_id)
    if not q:
        raise HTTPException(status_code=404, detail="Question not found")

    locked = (
        db.query(EvaluationQuestion.id)
        .join(Evaluation, Evaluation.id == EvaluationQuestion.evaluation_id)
        .filter(EvaluationQuestion.question_id == q.id, Evaluation.status.in_(LOCKED_STATUSES))
        .first()
    )
    if locked:
        # submitted and approved evaluations reference the question as it is now
        raise HTTPException(status_code=409, detail="Question is used by a submitted or approved evaluation")

    changes = payload.model_dump(exclude_unset=True)

    qtype = changes.get("type") or q.type
    options = changes["options"] if changes.get("options") is not None else list(q.options or [])
    if "correct_option" in changes:
        correct = changes["correct_option"]
    elif qtype != "multiple_choice":
        correct = None
    else:
        correct = q.correct_option_index
    if qtype != "multiple_choice" and "options" not in changes:
        options = []
    options = [o.strip() for o in options]
    assert_answer_shape(qtype, options, correct)

    for field in ("question_text", "difficulty", "grade", "tags"):
        if changes.get(field) is not None:
            setattr(q, field, changes[field])
    q.type = qtype
    q.options = options
    q.correct_option_index = correct
    db.flush()

    log_event(
        db=db,
        actor=actor.user,
        action="QUESTION_UPDATED",
        entity_type="question",
        entity_id=q.id,
        metadata={"fields": sorted(changes)},
    )
    return question_to_out(q)


@router.delete("/{question_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_question(
    question_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    role_gate.assert_can_manage(actor.roles)

    q = db.get(Question, question_id)
    if not q:
        raise HTTPException(status_code=404, detail="Question not found")

    in_use = db.query(EvaluationQuestion.id).filter(EvaluationQuestion.question_id == q.id).first()
    if in_use:
        raise HTTPException(status_code=409, detail="Question is used by an evaluation")

    db.delete(q)
    log_event(db=db, actor=actor.user, action="QUESTION_DELETED", entity_type="question", entity_id=q.id)
