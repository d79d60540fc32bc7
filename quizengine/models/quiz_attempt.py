from typing import Optional, List, TYPE_CHECKING
from datetime import datetime
from decimal import Decimal
from sqlalchemy import Integer, ForeignKey, Numeric, DateTime
from sqlalchemy.orm import relationship, Mapped, mapped_column
from quizengine.db.base import BaseModel
if TYPE_CHECKING:
    from quizengine.models.quiz import Quiz
    from quizengine.models.attempt_answer import AttemptAnswer

STATUS_IN_PROGRESS = "in_progress"
STATUS_SUBMITTED = "submitted"


class QuizAttempt(BaseModel):
    __tablename__ = "quiz_attempts"

    quiz_id: Mapped[int] = mapped_column(Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    score: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False, default=Decimal("0"))
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # Null while in progress; set exactly once by the sealing write
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    duration_sec: Mapped[Optional[int]] = mapped_column(Integer)

    # Relationships
    quiz: Mapped["Quiz"] = relationship("Quiz", back_populates="attempts")
    answers: Mapped[List["AttemptAnswer"]] = relationship("AttemptAnswer", back_populates="attempt", cascade="all, delete-orphan")

    @property
    def status(self) -> str:
        return STATUS_SUBMITTED if self.submitted_at is not None else STATUS_IN_PROGRESS
