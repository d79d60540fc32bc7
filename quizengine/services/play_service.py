from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from quizengine.models.quiz import Quiz, ContentEntityType
from quizengine.schemas.quiz_schema import PlayQuiz, PlayQuestion, PlayOption
from quizengine.services.quiz_service import QuizRepository, sorted_questions, sorted_options
from quizengine.utils.exceptions import NotFoundError, QuizInactiveError
from quizengine.core.logging import get_logger

logger = get_logger(__name__)


class PlayService:
    """Read-only view of a quiz as a student sees it while taking it"""

    def __init__(self):
        self.quiz_repo = QuizRepository()

    async def get_quiz_for_play(self, db: AsyncSession, quiz_id: int) -> PlayQuiz:
        quiz = await self.quiz_repo.get_with_questions(db, quiz_id=quiz_id)
        if not quiz:
            raise NotFoundError("Quiz not found", resource_type="Quiz")
        return self._project(quiz)

    async def get_quiz_for_play_by_entity(
            self,
            db: AsyncSession,
            entity_id: int,
            entity_type: Optional[ContentEntityType] = None
    ) -> PlayQuiz:
        """
        Play view of the quiz attached to a content node.

        When several quizzes share the node, the lowest display_order wins,
        ties broken by id.
        """
        quiz = await self.quiz_repo.get_with_questions(
            db,
            entity_id=entity_id,
            entity_type=entity_type.value if entity_type else None
        )
        if not quiz:
            raise NotFoundError("Quiz not found for this entity", resource_type="Quiz")
        return self._project(quiz)

    async def get_active_quiz(self, db: AsyncSession, quiz_id: int) -> Quiz:
        """Existence plus activity check used before any attempt is written"""
        quiz = await self.quiz_repo.get_by_id(db, quiz_id)
        if not quiz:
            raise NotFoundError("Quiz not found", resource_type="Quiz")
        if not quiz.is_active:
            raise QuizInactiveError()
        return quiz

    @staticmethod
    def _project(quiz: Quiz) -> PlayQuiz:
        if not quiz.is_active:
            logger.info(f"Play view requested for inactive quiz {quiz.id}", extra={"quiz_id": quiz.id})
            raise QuizInactiveError()

        # Built field by field so correct answers never reach the student
        return PlayQuiz(
            id=quiz.id,
            title=quiz.title,
            entity_type=quiz.entity_type,
            entity_id=quiz.entity_id,
            time_limit_sec=quiz.time_limit_sec,
            questions=[
                PlayQuestion(
                    id=question.id,
                    text=question.text,
                    points=question.points,
                    options=[PlayOption(id=o.id, text=o.text) for o in sorted_options(question)]
                )
                for question in sorted_questions(quiz)
            ]
        )


play_service = PlayService()
