import uuid
import datetime as dt

from sqlalchemy import (
    JSON, CheckConstraint, Date, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from school_eval.db.base import Base, utcnow


class Evaluation(Base):
    __tablename__ = "evaluations"
    __table_args__ = (
        CheckConstraint(
            "status IN ('draft','submitted','approved','rejected')",
            name="ck_evaluations_status",
        ),
        CheckConstraint(
            "category IN ('planificada','sorpresa')",
            name="ck_evaluations_category",
        ),
        CheckConstraint(
            "type IN ('formativa','sumativa','diagnostica')",
            name="ck_evaluations_type",
        ),
        # feedback only lives on rejected evaluations
        CheckConstraint(
            "(feedback IS NULL) OR (status = 'rejected')",
            name="ck_eval_feedback_rejected",
        ),
        # draft => never reviewed
        CheckConstraint(
            "(status <> 'draft') OR (reviewed_at IS NULL)",
            name="ck_eval_ts_draft",
        ),
        # approved/rejected => reviewed
        CheckConstraint(
            "(status NOT IN ('approved','rejected')) OR (submitted_at IS NOT NULL AND reviewed_at IS NOT NULL)",
            name="ck_eval_ts_reviewed",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    title: Mapped[str] = mapped_column(String(40), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)

    course_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("courses.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    subject_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("subjects.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    max_score: Mapped[float] = mapped_column(Float, nullable=False, default=7.0)
    category: Mapped[str] = mapped_column(String(20), nullable=False, default="planificada")
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="sumativa")

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    feedback: Mapped[str | None] = mapped_column(Text, nullable=True)

    # advisory learning-objective (OA) tags, in selection order
    objectives: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    created_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    reviewed_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    submitted_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    question_links = relationship(
        "EvaluationQuestion",
        order_by="EvaluationQuestion.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    grades = relationship("Grade", cascade="all, delete-orphan")

    # Optimistic locking
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version}

    @property
    def question_ids(self) -> list[uuid.UUID]:
        return [link.question_id for link in self.question_links]


class EvaluationQuestion(Base):
    __tablename__ = "evaluation_questions"
    __table_args__ = (
        UniqueConstraint("evaluation_id", "question_id", name="uq_eval_question"),
        UniqueConstraint("evaluation_id", "position", name="uq_eval_question_position"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    evaluation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("evaluations.id", ondelete="CASCADE"), nullable=False
    )
    question_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("questions.id", ondelete="RESTRICT"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
