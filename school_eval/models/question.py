import uuid
from datetime import datetime

from sqlalchemy import JSON, CheckConstraint, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from school_eval.db.base import Base, utcnow


class Question(Base):
    __tablename__ = "questions"
    __table_args__ = (
        CheckConstraint(
            "type IN ('multiple_choice','open','true_false')",
            name="ck_questions_type",
        ),
        CheckConstraint(
            "difficulty IN ('easy','medium','hard')",
            name="ck_questions_difficulty",
        ),
        # only multiple choice carries a correct option
        CheckConstraint(
            "(type = 'multiple_choice') OR (correct_option_index IS NULL)",
            name="ck_questions_correct_option",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="multiple_choice")
    difficulty: Mapped[str] = mapped_column(String(10), nullable=False, default="medium")

    subject_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    grade: Mapped[str | None] = mapped_column(String(50), nullable=True)  # level label, e.g. "7° Básico"
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # option texts in display order; the correct one is referenced by index
    options: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    correct_option_index: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
