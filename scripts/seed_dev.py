# seed_dev.py
"""
Seed a local database with a small, representative school.

Idempotent: re-running keeps the "desired state" and never duplicates rows.

Usage:
    python scripts/seed_dev.py
"""
from dotenv import load_dotenv
from sqlalchemy.orm import Session

load_dotenv()

from school_eval.db.session import SessionLocal
from school_eval.models.curriculum_material import CurriculumMaterial
from school_eval.models.directory import Course, Subject
from school_eval.models.question import Question
from school_eval.models.rbac import Role, UserRole
from school_eval.models.user import User


# ---------- helpers: RBAC ----------

def get_or_create_role(db: Session, name: str) -> Role:
    r = db.query(Role).filter(Role.name == name).one_or_none()
    if r:
        return r
    r = Role(name=name)
    db.add(r)
    db.commit()
    db.refresh(r)
    return r


def get_or_create_user(db: Session, email: str, full_name: str) -> User:
    u = db.query(User).filter(User.email == email).one_or_none()
    if u:
        # keep these up to date in dev
        changed = False
        if u.full_name != full_name:
            u.full_name = full_name
            changed = True
        if not u.is_active:
            u.is_active = True
            changed = True
        if changed:
            db.commit()
            db.refresh(u)
        return u

    u = User(email=email, full_name=full_name, is_active=True)
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


def ensure_user_role(db: Session, user_id, role_id):
    ur = (
        db.query(UserRole)
        .filter(UserRole.user_id == user_id, UserRole.role_id == role_id)
        .one_or_none()
    )
    if ur:
        return ur
    ur = UserRole(user_id=user_id, role_id=role_id)
    db.add(ur)
    db.commit()
    return ur


# ---------- helpers: directory ----------

def get_or_create_course(db: Session, name: str) -> Course:
    c = db.query(Course).filter(Course.name == name).one_or_none()
    if c:
        return c
    c = Course(name=name)
    db.add(c)
    db.commit()
    db.refresh(c)
    return c


def get_or_create_subject(db: Session, *, course: Course, name: str) -> Subject:
    s = (
        db.query(Subject)
        .filter(Subject.course_id == course.id, Subject.name == name)
        .one_or_none()
    )
    if s:
        return s
    s = Subject(course_id=course.id, name=name)
    db.add(s)
    db.commit()
    db.refresh(s)
    return s


# ---------- helpers: content ----------

def get_or_create_material(
    db: Session,
    *,
    course: Course,
    subject: Subject | None,
    title: str,
    objectives: list[str],
) -> CurriculumMaterial:
    m = (
        db.query(CurriculumMaterial)
        .filter(CurriculumMaterial.course_id == course.id, CurriculumMaterial.title == title)
        .one_or_none()
    )
    if m:
        if m.objectives != objectives:
            m.objectives = objectives
            db.commit()
            db.refresh(m)
        return m

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


def get_or_create_question(
    db: Session,
    *,
    subject: Subject,
    text: str,
    difficulty: str,
    options: list[str] | None = None,
    correct: int | None = None,
    created_by: User | None = None,
) -> Question:
    q = (
        db.query(Question)
        .filter(Question.subject_id == subject.id, Question.question_text == text)
        .one_or_none()
    )
    if q:
        return q

    q = Question(
        question_text=text,
        type="multiple_choice" if options else "open",
        difficulty=difficulty,
        subject_id=subject.id,
        options=options or [],
        correct_option_index=correct,
        tags=[],
        created_by_user_id=created_by.id if created_by else None,
    )
    db.add(q)
    db.commit()
    db.refresh(q)
    return q


# ---------- main ----------

USERS = [
    ("admin@local.test", "Admin Local", "admin"),
    ("utp@local.test", "Coordinación UTP", "utp"),
    ("director@local.test", "Dirección", "director"),
    ("teacher@local.test", "Profesora Local", "teacher"),
    ("student@local.test", "Estudiante Local", "student"),
    ("apoderado@local.test", "Apoderado Local", "apoderado"),
]


def main():
    db = SessionLocal()
    try:
        # ---- Users + roles ----
        users = {}
        for email, full_name, role_name in USERS:
            role = get_or_create_role(db, role_name)
            user = get_or_create_user(db, email, full_name)
            ensure_user_role(db, user.id, role.id)
            users[role_name] = user

        # ---- Directory ----
        course = get_or_create_course(db, "1° Medio A")
        math = get_or_create_subject(db, course=course, name="Matemática")
        language = get_or_create_subject(db, course=course, name="Lenguaje")

        # ---- Curriculum ----
        get_or_create_material(
            db,
            course=course,
            subject=math,
            title="Unidad 1: Números",
            objectives=["OA1: Calcular operaciones con números racionales", "OA2: Mostrar que comprenden las potencias"],
        )
        get_or_create_material(
            db,
            course=course,
            subject=None,
            title="Objetivos transversales",
            objectives=["OAT: Trabajar en equipo"],
        )

        # ---- Question bank ----
        teacher = users["teacher"]
        get_or_create_question(db, subject=math, text="¿Cuánto es 2 + 2?", difficulty="easy",
                               options=["3", "4", "5"], correct=1, created_by=teacher)
        get_or_create_question(db, subject=math, text="Resuelve 3x = 12", difficulty="medium",
                               options=["x = 3", "x = 4", "x = 36"], correct=1, created_by=teacher)
        get_or_create_question(db, subject=math, text="Demuestra que la raíz de 2 es irracional",
                               difficulty="hard", created_by=teacher)
        get_or_create_question(db, subject=language, text="Identifica el sujeto de la oración",
                               difficulty="easy", created_by=teacher)

        print("\n=== DEV SEED COMPLETE ===")
        print("Users (send as X-User-Email):")
        for email, _, role_name in USERS:
            print(f"  {role_name:<10} {email}")
        print(f"\nCourse:  {course.id} ({course.name})")
        print(f"Subject: {math.id} ({math.name})")
        print(f"Subject: {language.id} ({language.name})")

        print("\nNext API steps:")
        print("  POST /compositions                            (as teacher@local.test)")
        print("  POST /evaluations/<id>/submit  (If-Match: <version>)")
        print("  POST /evaluations/<id>/review  (If-Match: <version>, as utp@local.test)")

    finally:
        db.close()


if __name__ == "__main__":
    main()
