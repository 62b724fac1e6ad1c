from typing import Iterable
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from school_eval.models.curriculum_material import CurriculumMaterial


def load_materials(db: Session, *, course_id: UUID, subject_id: UUID | None) -> list[CurriculumMaterial]:
    """Materials for a subject plus the course-wide ones (no subject)."""
    q = db.query(CurriculumMaterial).filter(CurriculumMaterial.course_id == course_id)
    if subject_id is not None:
        q = q.filter(
            or_(
                CurriculumMaterial.subject_id == subject_id,
                CurriculumMaterial.subject_id.is_(None),
            )
        )
    return q.order_by(CurriculumMaterial.created_at, CurriculumMaterial.title).all()


def flatten_objectives(materials: Iterable[CurriculumMaterial]) -> list[str]:
    """Objectives across materials, in material order, first occurrence wins."""
    seen: set[str] = set()
    out: list[str] = []
    for m in materials:
        for obj in m.objectives or []:
            text = obj.strip()
            if text and text not in seen:
                seen.add(text)
                out.append(text)
    return out
