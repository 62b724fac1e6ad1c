import datetime as dt
from typing import Literal

from pydantic import BaseModel, Field

from school_eval.core.references import RefId

Category = Literal["planificada", "sorpresa"]
EvaluationType = Literal["formativa", "sumativa", "diagnostica"]


class EvaluationCreate(BaseModel):
    title: str = Field(min_length=1)
    date: dt.date
    course_id: RefId
    # either an id or the subject name within the course, resolved at save time
    subject_id: RefId | None = None
    subject_name: str | None = None
    max_score: float | None = None
    category: Category = "planificada"
    type: EvaluationType = "sumativa"
    objectives: list[str] = Field(default_factory=list)
    questions: list[RefId] = Field(default_factory=list)


class EvaluationUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1)
    date: dt.date | None = None
    course_id: RefId | None = None
    subject_id: RefId | None = None
    subject_name: str | None = None
    max_score: float | None = None
    category: Category | None = None
    type: EvaluationType | None = None
    objectives: list[str] | None = None
    questions: list[RefId] | None = None


class ReviewPayload(BaseModel):
    status: Literal["approved", "rejected"]
    feedback: str | None = None


class EvaluationOut(BaseModel):
    id: str
    title: str
    date: dt.date
    course_id: str
    subject_id: str
    max_score: float
    category: str
    type: str
    status: str
    feedback: str | None
    objectives: list[str]
    questions: list[str]
    created_by_user_id: str | None
    submitted_at: dt.datetime | None
    reviewed_at: dt.datetime | None
    created_at: dt.datetime
    updated_at: dt.datetime
    version: int
    # actions the caller may perform; clients render only these controls
    allowed_actions: list[str] = Field(default_factory=list)


class GradeUpsert(BaseModel):
    student_user_id: RefId
    score: float


class GradesPayload(BaseModel):
    grades: list[GradeUpsert] = Field(min_length=1)


class GradeOut(BaseModel):
    student_user_id: str
    score: float


class EvaluationResultsOut(BaseModel):
    evaluation_id: str
    status: str
    grades: list[GradeOut]
    average: float | None
