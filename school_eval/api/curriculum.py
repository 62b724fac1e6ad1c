from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from school_eval.core import role_gate
from school_eval.core.audit import log_event
from school_eval.core.objectives import flatten_objectives, load_materials
from school_eval.core.rbac import Actor, get_current_actor
from school_eval.core.references import get_course_or_404, get_subject_or_404
from school_eval.db.session import get_db
from school_eval.models.curriculum_material import CurriculumMaterial
from school_eval.schemas.curriculum import CurriculumMaterialCreate, CurriculumMaterialOut

router = APIRouter(prefix="/curriculum-materials", tags=["curriculum"])


def material_to_out(m: CurriculumMaterial) -> CurriculumMaterialOut:
    return CurriculumMaterialOut(
        id=str(m.id),
        course_id=str(m.course_id),
        subject_id=str(m.subject_id) if m.subject_id else None,
        title=m.title,
        objectives=list(m.objectives or []),
        created_at=m.created_at,
    )


@router.get("", response_model=list[CurriculumMaterialOut])
def list_materials(
    course_id: UUID = Query(...),
    db: Session = Depends(get_db),
    _: Actor = Depends(get_current_actor),
):
    get_course_or_404(db, course_id)
    return [material_to_out(m) for m in load_materials(db, course_id=course_id, subject_id=None)]


@router.get("/subject/{subject_id}", response_model=list[CurriculumMaterialOut])
def list_materials_for_subject(
    subject_id: UUID,
    db: Session = Depends(get_db),
    _: Actor = Depends(get_current_actor),
):
    subject = get_subject_or_404(db, subject_id)
    return [material_to_out(m) for m in load_materials(db, course_id=subject.course_id, subject_id=subject.id)]


@router.get("/subject/{subject_id}/objectives", response_model=list[str])
def list_objectives_for_subject(
    subject_id: UUID,
    db: Session = Depends(get_db),
    _: Actor = Depends(get_current_actor),
):
    """Flattened OA list, as offered by the composition wizard."""
    subject = get_subject_or_404(db, subject_id)
    return flatten_objectives(load_materials(db, course_id=subject.course_id, subject_id=subject.id))


@router.post("", response_model=CurriculumMaterialOut, status_code=status.HTTP_201_CREATED)
def create_material(
    payload: CurriculumMaterialCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    role_gate.assert_can_manage(actor.roles)

    course = get_course_or_404(db, payload.course_id)
    if payload.subject_id is not None:
        subject = get_subject_or_404(db, payload.subject_id)
        if subject.course_id != course.id:
            raise HTTPException(
                status_code=400,
                detail={
                    "message": "Material validation failed",
                    "errors": [{"field": "subject_id", "code": "course_mismatch",
                                "message": "Subject does not belong to the selected course"}],
                },
            )

    m = CurriculumMaterial(
        course_id=course.id,
        subject_id=payload.subject_id,
        title=payload.title.strip(),
        objectives=payload.objectives,
    )
    db.add(m)
    db.flush()

    log_event(
        db=db,
        actor=actor.user,
        action="CURRICULUM_MATERIAL_CREATED",
        entity_type="curriculum_material",
        entity_id=m.id,
        metadata={"course_id": str(m.course_id), "objective_count": len(m.objectives)},
    )
    return material_to_out(m)
