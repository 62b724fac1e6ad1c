"""
Course/subject reference handling.

Directory payloads sometimes carry a reference as a bare id and sometimes
as an expanded object (``{"id": ...}`` or ``{"_id": ...}``). ``normalize_ref``
collapses both shapes into a plain id before anything else looks at it.
"""
from typing import Annotated, Any
from uuid import UUID

from fastapi import HTTPException, status
from pydantic import BeforeValidator
from sqlalchemy import func
from sqlalchemy.orm import Session

from school_eval.models.directory import Course, Subject


def normalize_ref(value: Any) -> Any:
    if isinstance(value, dict):
        for key in ("id", "_id"):
            if value.get(key) is not None:
                return value[key]
        raise ValueError("Reference object has no 'id'")
    return value


RefId = Annotated[UUID, BeforeValidator(normalize_ref)]


def get_course_or_404(db: Session, course_id: UUID) -> Course:
    course = db.get(Course, course_id)
    if not course:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Course not found")
    return course


def get_subject_or_404(db: Session, subject_id: UUID) -> Subject:
    subject = db.get(Subject, subject_id)
    if not subject:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subject not found")
    return subject


def _subject_error(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={
            "message": "Subject validation failed",
            "errors": [{"field": "subject_id", "code": code, "message": message}],
        },
    )


def resolve_subject(
    db: Session,
    *,
    course_id: UUID,
    subject_id: UUID | None = None,
    subject_name: str | None = None,
) -> Subject:
    """
    Resolve the subject of an evaluation at save time, either from an id or
    from its name within the course. The subject must belong to the course.
    """
    if subject_id is not None:
        subject = db.get(Subject, subject_id)
        if not subject:
            raise _subject_error("not_found", "Subject not found")
    elif subject_name and subject_name.strip():
        subject = (
            db.query(Subject)
            .filter(
                Subject.course_id == course_id,
                func.lower(Subject.name) == subject_name.strip().lower(),
            )
            .one_or_none()
        )
        if not subject:
            raise _subject_error("not_found", "Please select a valid subject for this course")
    else:
        raise _subject_error("required", "Required")

    if subject.course_id != course_id:
        raise _subject_error("course_mismatch", "Subject does not belong to the selected course")
    return subject
