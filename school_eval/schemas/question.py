from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field, StringConstraints, field_validator

from school_eval.core.references import RefId

QuestionType = Literal["multiple_choice", "open", "true_false"]
Difficulty = Literal["easy", "medium", "hard"]
QuestionText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


def check_answer_shape(qtype: str, options: list[str], correct_option: int | None) -> list[dict]:
    """
    Multiple choice: at least one option and exactly one correct index.
    Every other type: no options and no correct index.
    """
    errors: list[dict] = []
    if qtype == "multiple_choice":
        if not options:
            errors.append({"field": "options", "code": "required", "message": "Multiple choice needs options"})
        elif any(not o.strip() for o in options):
            errors.append({"field": "options", "code": "blank", "message": "Options cannot be blank"})
        if correct_option is None:
            errors.append({"field": "correct_option", "code": "required", "message": "Mark the correct option"})
        elif options and not 0 <= correct_option < len(options):
            errors.append({"field": "correct_option", "code": "range", "message": "Must point at one of the options"})
    else:
        if options:
            errors.append({"field": "options", "code": "not_allowed", "message": f"'{qtype}' questions have no options"})
        if correct_option is not None:
            errors.append({"field": "correct_option", "code": "not_allowed", "message": f"'{qtype}' questions have no correct option"})
    return errors


def _clean_tags(v: list[str]) -> list[str]:
    out: list[str] = []
    for t in v:
        t = t.strip()
        if t and t not in out:
            out.append(t)
    return out


class QuestionCreate(BaseModel):
    question_text: QuestionText
    type: QuestionType = "multiple_choice"
    difficulty: Difficulty = "medium"
    subject_id: RefId
    grade: str | None = Field(default=None, max_length=50)
    tags: list[str] = Field(default_factory=list)
    options: list[str] = Field(default_factory=list)
    correct_option: int | None = None

    @field_validator("tags")
    @classmethod
    def _tags(cls, v: list[str]) -> list[str]:
        return _clean_tags(v)

    @field_validator("options")
    @classmethod
    def _strip_options(cls, v: list[str]) -> list[str]:
        return [o.strip() for o in v]


class DraftQuestionCreate(QuestionCreate):
    """Inline question created from the wizard; subject comes from the session."""
    subject_id: RefId | None = None


class QuestionUpdate(BaseModel):
    question_text: QuestionText | None = None
    type: QuestionType | None = None
    difficulty: Difficulty | None = None
    grade: str | None = Field(default=None, max_length=50)
    tags: list[str] | None = None
    options: list[str] | None = None
    correct_option: int | None = None

    @field_validator("tags")
    @classmethod
    def _tags(cls, v: list[str] | None) -> list[str] | None:
        return None if v is None else _clean_tags(v)


class OptionOut(BaseModel):
    text: str
    is_correct: bool


class QuestionOut(BaseModel):
    id: str
    question_text: str
    type: str
    difficulty: str
    subject_id: str
    grade: str | None
    tags: list[str]
    options: list[OptionOut]
    created_at: datetime
