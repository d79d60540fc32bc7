import enum
from typing import Optional, List, TYPE_CHECKING
from sqlalchemy import String, Integer, Boolean, CheckConstraint, Index
from sqlalchemy.orm import relationship, Mapped, mapped_column
from quizengine.db.base import BaseModel
if TYPE_CHECKING:
    from quizengine.models.question import Question
    from quizengine.models.quiz_attempt import QuizAttempt


class ContentEntityType(str, enum.Enum):
    """Kinds of content node a quiz can be attached to"""
    LESSON = "Lesson"
    CHAPTER = "Chapter"
    COURSE = "Course"
    SUBJECT = "Subject"


class Quiz(BaseModel):
    __tablename__ = "quizzes"
    __table_args__ = (
        Index("ix_quizzes_entity", "entity_type", "entity_id"),
        Index("ix_quizzes_is_active", "is_active"),
        CheckConstraint("entity_id > 0", name="ck_quizzes_entity_id_positive"),
        CheckConstraint(
            "entity_type IN ('Lesson', 'Chapter', 'Course', 'Subject')",
            name="ck_quizzes_entity_type"
        ),
    )

    title: Mapped[Optional[str]] = mapped_column(String(255))
    entity_type: Mapped[Optional[str]] = mapped_column(String(20))
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)
    # Advisory only; nothing in the engine enforces it
    time_limit_sec: Mapped[Optional[int]] = mapped_column(Integer)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Relationships
    questions: Mapped[List["Question"]] = relationship("Question", back_populates="quiz", cascade="all, delete-orphan")
    attempts: Mapped[List["QuizAttempt"]] = relationship("QuizAttempt", back_populates="quiz", cascade="all, delete-orphan")
