"""
Test-composition wizard state.

Three ordered steps:

    1. configuration  (title, course, subject, date, type)   -> validated
    2. objectives     (optional OA tags)                     -> never blocks
    3. questions      (bank selection, live difficulty)      -> finalize

``CompositionDraft`` only mutates itself. Loading the bank, persisting the
session and creating the evaluation happen in ``api/compositions.py``.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any

from fastapi import HTTPException, status

logger = logging.getLogger(__name__)

FIRST_STEP = 1
LAST_STEP = 3

STEP_NAMES = {1: "configuration", 2: "objectives", 3: "questions"}

EVALUATION_TYPES = ("formativa", "sumativa", "diagnostica")
CATEGORIES = ("planificada", "sorpresa")

CONFIGURATION_FIELDS = ("title", "date", "type", "course_id", "subject_id")


def _validation_failed(message: str, errors: list[dict]) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"message": message, "errors": errors},
    )


def _toggle(items: list, value) -> list:
    if value in items:
        return [x for x in items if x != value]
    return [*items, value]


@dataclass
class CompositionDraft:
    date: date
    step: int = FIRST_STEP
    title: str = ""
    type: str = "sumativa"
    course_id: str | None = None
    subject_id: str | None = None
    max_score: float = 7.0
    category: str = "planificada"
    objectives: list[str] = field(default_factory=list)
    question_ids: list[str] = field(default_factory=list)
    title_max_length: int = 40

    # ---------- step 1 ----------

    def configure(self, **changes: Any) -> None:
        self.require_step(1)
        unknown = set(changes) - set(CONFIGURATION_FIELDS)
        if unknown:
            raise _validation_failed(
                "Configuration validation failed",
                [{"field": k, "code": "unknown_field", "message": "Not a configuration field"} for k in sorted(unknown)],
            )

        if changes.get("type") is not None and changes["type"] not in EVALUATION_TYPES:
            raise _validation_failed(
                "Configuration validation failed",
                [{"field": "type", "code": "choice", "message": f"Must be one of {list(EVALUATION_TYPES)}"}],
            )

        if "title" in changes:
            self.title = (changes["title"] or "").strip()
        if "date" in changes and changes["date"] is not None:
            self.date = changes["date"]
        if "type" in changes and changes["type"] is not None:
            self.type = changes["type"]

        if "course_id" in changes and changes["course_id"] != self.course_id:
            self.course_id = changes["course_id"]
            # a subject always belongs to one course
            self._set_subject(None)

        if "subject_id" in changes:
            self._set_subject(changes["subject_id"])

    def _set_subject(self, subject_id: str | None) -> None:
        if subject_id == self.subject_id:
            return
        self.subject_id = subject_id
        # objectives and bank questions were listed for the previous subject
        self.objectives = []
        self.question_ids = []

    def validate_configuration(self) -> list[dict]:
        errors: list[dict] = []
        if not self.title:
            errors.append({"field": "title", "code": "required", "message": "Required"})
        elif len(self.title) > self.title_max_length:
            errors.append(
                {"field": "title", "code": "max_length", "message": f"Must be <= {self.title_max_length} chars"}
            )
        if not self.course_id:
            errors.append({"field": "course_id", "code": "required", "message": "Required"})
        if not self.subject_id:
            errors.append({"field": "subject_id", "code": "required", "message": "Required"})
        return errors

    # ---------- navigation ----------

    def advance(self) -> int:
        if self.step >= LAST_STEP:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Already at the last step; finalize instead",
            )
        if self.step == 1:
            errors = self.validate_configuration()
            if errors:
                logger.warning("advance refused, %d configuration error(s)", len(errors))
                raise _validation_failed("Configuration validation failed", errors)
        self.step += 1
        return self.step

    def back(self) -> int:
        if self.step <= FIRST_STEP:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Already at the first step",
            )
        self.step -= 1
        return self.step

    def require_step(self, step: int) -> None:
        if self.step != step:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Only allowed at step {step} ({STEP_NAMES[step]}); wizard is at step {self.step}",
            )

    # ---------- steps 2 and 3 ----------

    def toggle_objective(self, objective: str) -> list[str]:
        self.require_step(2)
        self.objectives = _toggle(self.objectives, objective)
        return self.objectives

    def toggle_question(self, question_id: str) -> list[str]:
        self.require_step(3)
        self.question_ids = _toggle(self.question_ids, question_id)
        return self.question_ids

    def select_question(self, question_id: str) -> list[str]:
        """Add without toggling (used for freshly created bank questions)."""
        self.require_step(3)
        if question_id not in self.question_ids:
            self.question_ids = [*self.question_ids, question_id]
        return self.question_ids

    # ---------- finalize ----------

    def validate_for_finalize(self, *, min_questions: int = 0) -> list[dict]:
        errors = self.validate_configuration()
        if len(self.question_ids) < min_questions:
            errors.append(
                {
                    "field": "questions",
                    "code": "min_items",
                    "message": f"Select at least {min_questions} question(s)",
                }
            )
        return errors

    def build_payload(self, *, min_questions: int = 0) -> dict[str, Any]:
        self.require_step(LAST_STEP)
        errors = self.validate_for_finalize(min_questions=min_questions)
        if errors:
            logger.warning("finalize refused: %s", [e["field"] for e in errors])
            raise _validation_failed("Finalize validation failed", errors)
        return {
            "title": self.title,
            "date": self.date,
            "type": self.type,
            "max_score": self.max_score,
            "course_id": self.course_id,
            "subject_id": self.subject_id,
            "objectives": list(self.objectives),
            "questions": list(self.question_ids),
            "category": self.category,
        }

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("title_max_length")
        return data
