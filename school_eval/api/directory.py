from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from school_eval.core.audit import log_event
from school_eval.core.rbac import Actor, get_current_actor, require_roles
from school_eval.core.references import get_course_or_404
from school_eval.core.role_gate import ADMIN
from school_eval.db.session import get_db
from school_eval.models.directory import Course, Subject
from school_eval.schemas.directory import CourseCreate, CourseOut, SubjectCreate, SubjectOut

router = APIRouter(tags=["directory"])


def course_to_out(c: Course) -> CourseOut:
    return CourseOut(id=str(c.id), name=c.name)


def subject_to_out(s: Subject) -> SubjectOut:
    return SubjectOut(id=str(s.id), name=s.name, course_id=str(s.course_id))


@router.get("/courses", response_model=list[CourseOut])
def list_courses(
    db: Session = Depends(get_db),
    _: Actor = Depends(get_current_actor),
):
    return [course_to_out(c) for c in db.query(Course).order_by(Course.name).all()]


@router.post("/courses", response_model=CourseOut, status_code=status.HTTP_201_CREATED)
def create_course(
    payload: CourseCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(ADMIN)),
):
    c = Course(name=payload.name.strip())
    db.add(c)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Course name already exists")

    log_event(db=db, actor=actor.user, action="COURSE_CREATED", entity_type="course", entity_id=c.id,
              metadata={"name": c.name})
    return course_to_out(c)


@router.get("/subjects", response_model=list[SubjectOut])
def list_subjects(
    course_id: UUID | None = Query(default=None, description="Only subjects of this course"),
    db: Session = Depends(get_db),
    _: Actor = Depends(get_current_actor),
):
    q = db.query(Subject)
    if course_id:
        q = q.filter(Subject.course_id == course_id)
    return [subject_to_out(s) for s in q.order_by(Subject.name).all()]


@router.post("/subjects", response_model=SubjectOut, status_code=status.HTTP_201_CREATED)
def create_subject(
    payload: SubjectCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(ADMIN)),
):
    course = get_course_or_404(db, payload.course_id)

    s = Subject(name=payload.name.strip(), course_id=course.id)
    db.add(s)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Subject already exists in this course")

    log_event(db=db, actor=actor.user, action="SUBJECT_CREATED", entity_type="subject", entity_id=s.id,
              metadata={"name": s.name, "course_id": str(course.id)})
    return subject_to_out(s)
