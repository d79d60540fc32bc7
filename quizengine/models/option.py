from typing import List, TYPE_CHECKING
from sqlalchemy import Integer, Text, ForeignKey
from sqlalchemy.orm import relationship, Mapped, mapped_column
from quizengine.db.base import BaseModel
if TYPE_CHECKING:
    from quizengine.models.question import Question
    from quizengine.models.attempt_answer import AttemptAnswer


class Option(BaseModel):
    __tablename__ = "options"

    question_id: Mapped[int] = mapped_column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Relationships
    question: Mapped["Question"] = relationship("Question", back_populates="options", foreign_keys=[question_id])
    # No delete cascade: answers that picked this option keep their row and lose the pointer
    selected_in_answers: Mapped[List["AttemptAnswer"]] = relationship("AttemptAnswer", back_populates="selected_option")
