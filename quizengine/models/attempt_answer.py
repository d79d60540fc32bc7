from typing import Optional, TYPE_CHECKING
from decimal import Decimal
from sqlalchemy import Integer, Boolean, ForeignKey, Numeric, UniqueConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column
from quizengine.db.base import BaseModel
if TYPE_CHECKING:
    from quizengine.models.quiz_attempt import QuizAttempt
    from quizengine.models.question import Question
    from quizengine.models.option import Option


class AttemptAnswer(BaseModel):
    __tablename__ = "attempt_answers"
    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_attempt_answers_attempt_question"),
    )

    attempt_id: Mapped[int] = mapped_column(Integer, ForeignKey("quiz_attempts.id", ondelete="CASCADE"), nullable=False)
    question_id: Mapped[int] = mapped_column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True)
    selected_option_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("options.id", ondelete="SET NULL"))
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    points_awarded: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("0"))

    # Relationships
    attempt: Mapped["QuizAttempt"] = relationship("QuizAttempt", back_populates="answers")
    question: Mapped["Question"] = relationship("Question", back_populates="attempt_answers")
    selected_option: Mapped[Optional["Option"]] = relationship("Option", back_populates="selected_in_answers")
