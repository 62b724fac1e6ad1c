import datetime as dt
from typing import Literal

from pydantic import BaseModel, Field

from school_eval.core.references import RefId
from school_eval.schemas.evaluation import Category, EvaluationType


class CompositionOpen(BaseModel):
    """Open a wizard, optionally preset (e.g. launched from a course page)."""
    initial_course_id: RefId | None = None
    initial_subject_id: RefId | None = None
    initial_category: Category = "planificada"


class CompositionConfigure(BaseModel):
    title: str | None = None
    date: dt.date | None = None
    type: EvaluationType | None = None
    course_id: RefId | None = None
    subject_id: RefId | None = None


class ObjectiveToggle(BaseModel):
    objective: str = Field(min_length=1)


class DifficultyOut(BaseModel):
    score: float
    level: Literal["low", "medium", "high"]
    label: str
    total: int
    counts: dict[str, int]
    distribution: dict[str, float]


class CompositionOut(BaseModel):
    id: str
    status: str
    step: int
    step_name: str
    title: str
    date: dt.date
    type: str
    max_score: float
    category: str
    course_id: str | None
    subject_id: str | None
    objectives: list[str]
    question_ids: list[str]
    difficulty: DifficultyOut
    evaluation_id: str | None
    created_at: dt.datetime
    updated_at: dt.datetime


class ObjectiveOptionOut(BaseModel):
    objective: str
    selected: bool


class BankQuestionOut(BaseModel):
    id: str
    question_text: str
    type: str
    difficulty: str
    tags: list[str]
    selected: bool
