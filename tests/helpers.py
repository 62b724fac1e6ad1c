from datetime import date

from sqlalchemy.orm import Session

from school_eval.db.base import utcnow
from school_eval.models.curriculum_material import CurriculumMaterial
from school_eval.models.directory import Course, Subject
from school_eval.models.evaluation import Evaluation, EvaluationQuestion
from school_eval.models.question import Question
from school_eval.models.rbac import Role, UserRole
from school_eval.models.user import User


def ensure_role(db, name: str) -> Role:
    r = db.query(Role).filter(Role.name == name).one_or_none()
    if r:
        return r
    r = Role(name=name)
    db.add(r)
    db.commit()
    db.refresh(r)
    return r

def create_user(db, email: str, full_name="User", *roles: str) -> User:
    u = User(email=email, full_name=full_name, is_active=True)
    db.add(u)
    db.commit()
    db.refresh(u)
    for role_name in roles:
        grant_role(db, u, role_name)
    return u

def grant_role(db, user: User, role_name: str):
    role = ensure_role(db, role_name)
    exists = db.query(UserRole).filter(UserRole.user_id == user.id, UserRole.role_id == role.id).one_or_none()
    if not exists:
        db.add(UserRole(user_id=user.id, role_id=role.id))
        db.commit()

def create_course(db, name: str = "1° Medio A") -> Course:
    c = Course(name=name)
    db.add(c)
    db.commit()
    db.refresh(c)
    return c

def create_subject(db, course: Course, name: str = "Matemática") -> Subject:
    s = Subject(course_id=course.id, name=name)
    db.add(s)
    db.commit()
    db.refresh(s)
    return s


def create_question(
    db: Session,
    subject: Subject,
    *,
    text: str = "¿Cuánto es 2 + 2?",
    difficulty: str = "medium",
    options: list[str] | None = None,
    correct: int | None = None,
) -> Question:
    q = Question(
        question_text=text,
        type="multiple_choice" if options else "open",
        difficulty=difficulty,
        subject_id=subject.id,
        tags=[],
        options=options or [],
        correct_option_index=correct,
    )
    db.add(q)
    db.commit()
    db.refresh(q)
    return q


def create_material(
    db: Session,
    course: Course,
    subject: Subject | None,
    *,
    title: str = "Unidad 1",
    objectives: list[str],
) -> CurriculumMaterial:
    m = CurriculumMaterial(
        course_id=course.id,
        subject_id=subject.id if subject else None,
        title=title,
        objectives=objectives,
    )
    db.add(m)
    db.commit()
    db.refresh(m)
    return m


def create_evaluation(
    db: Session,
    *,
    owner: User,
    course: Course,
    subject: Subject,
    title: str = "Prueba Unidad 1",
    on: date | None = None,
    category: str = "planificada",
    status: str = "draft",
    questions: list[Question] = (),
) -> Evaluation:
    """Seed an evaluation directly, bypassing the API (status timestamps filled in)."""
    e = Evaluation(
        title=title,
        date=on or date.today(),
        course_id=course.id,
        subject_id=subject.id,
        max_score=7.0,
        category=category,
        type="sumativa",
        status=status,
        objectives=[],
        created_by_user_id=owner.id,
    )
    if status != "draft":
        e.submitted_at = utcnow()
    if status in ("approved", "rejected"):
        e.reviewed_at = utcnow()
    if status == "rejected":
        e.feedback = "Revisar redacción"
    for position, q in enumerate(questions, start=1):
        e.question_links.append(EvaluationQuestion(question_id=q.id, position=position))
    db.add(e)
    db.commit()
    db.refresh(e)
    return e


def as_user(email: str, *, version: int | None = None, key: str | None = None) -> dict:
    headers = {"X-User-Email": email}
    if version is not None:
        headers["If-Match"] = str(version)
    if key is not None:
        headers["Idempotency-Key"] = key
    return headers
