from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from school_eval.core.references import RefId


class CurriculumMaterialCreate(BaseModel):
    course_id: RefId
    subject_id: RefId | None = None
    title: str = Field(min_length=1, max_length=200)
    objectives: list[str] = Field(default_factory=list)

    @field_validator("objectives")
    @classmethod
    def _strip_objectives(cls, v: list[str]) -> list[str]:
        return [o.strip() for o in v if o and o.strip()]


class CurriculumMaterialOut(BaseModel):
    id: str
    course_id: str
    subject_id: str | None
    title: str
    objectives: list[str]
    created_at: datetime
