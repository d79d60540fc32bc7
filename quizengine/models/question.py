from typing import Optional, List, TYPE_CHECKING
from decimal import Decimal
from sqlalchemy import Integer, Text, ForeignKey, Numeric, CheckConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column
from quizengine.db.base import BaseModel
if TYPE_CHECKING:
    from quizengine.models.quiz import Quiz
    from quizengine.models.option import Option
    from quizengine.models.attempt_answer import AttemptAnswer


class Question(BaseModel):
    __tablename__ = "questions"
    __table_args__ = (
        CheckConstraint("points > 0", name="ck_questions_points_positive"),
    )

    quiz_id: Mapped[int] = mapped_column(Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    points: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("1.00"))
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Points into this question's own options. Deleting the referenced option
    # is refused by the authoring service rather than cascaded.
    correct_option_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("options.id", use_alter=True, name="fk_questions_correct_option_id"),
        nullable=True
    )

    # Relationships
    quiz: Mapped["Quiz"] = relationship("Quiz", back_populates="questions")
    options: Mapped[List["Option"]] = relationship(
        "Option",
        back_populates="question",
        foreign_keys="Option.question_id",
        cascade="all, delete-orphan"
    )
    correct_option: Mapped[Optional["Option"]] = relationship(
        "Option",
        foreign_keys=[correct_option_id],
        post_update=True
    )
    attempt_answers: Mapped[List["AttemptAnswer"]] = relationship(
        "AttemptAnswer",
        back_populates="question",
        cascade="all, delete-orphan"
    )
