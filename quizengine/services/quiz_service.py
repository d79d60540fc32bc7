from typing import List, Optional
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from quizengine.models.quiz import Quiz, ContentEntityType
from quizengine.models.question import Question
from quizengine.models.option import Option
from quizengine.db.utils import BaseRepository, unit_of_work
from quizengine.schemas.quiz_schema import (
    QuizCreate, QuizUpdate, QuizResponse, QuizDetailResponse,
    QuestionCreate, QuestionUpdate, QuestionCreated, QuestionResponse,
    OptionCreate, OptionUpdate, OptionResponse, CorrectOptionResponse
)
from quizengine.utils.exceptions import (
    NotFoundError, ConflictError, InvalidInputError, DatabaseError
)
from quizengine.core.logging import get_logger

logger = get_logger(__name__)


class QuizRepository(BaseRepository[Quiz]):
    def __init__(self):
        super().__init__(Quiz)

    async def get_with_questions(
            self,
            db: AsyncSession,
            quiz_id: Optional[int] = None,
            entity_id: Optional[int] = None,
            entity_type: Optional[str] = None
    ) -> Optional[Quiz]:
        """Load one quiz with its questions and their options, refreshing cached rows"""
        try:
            stmt = (
                select(Quiz)
                .options(selectinload(Quiz.questions).selectinload(Question.options))
                .execution_options(populate_existing=True)
            )
            if quiz_id is not None:
                stmt = stmt.where(Quiz.id == quiz_id)
            if entity_id is not None:
                stmt = stmt.where(Quiz.entity_id == entity_id)
            if entity_type is not None:
                stmt = stmt.where(Quiz.entity_type == entity_type)
            stmt = stmt.order_by(Quiz.display_order, Quiz.id).limit(1)

            result = await db.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error loading quiz with questions: {e}")
            raise DatabaseError("Failed to load quiz")

    async def list_quizzes(
            self,
            db: AsyncSession,
            entity_type: Optional[str] = None,
            entity_id: Optional[int] = None
    ) -> List[Quiz]:
        try:
            stmt = select(Quiz)
            if entity_type is not None:
                stmt = stmt.where(Quiz.entity_type == entity_type)
            if entity_id is not None:
                stmt = stmt.where(Quiz.entity_id == entity_id)
            result = await db.execute(stmt.order_by(Quiz.display_order, Quiz.id))
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error listing quizzes: {e}")
            raise DatabaseError("Failed to list quizzes")


class QuestionRepository(BaseRepository[Question]):
    def __init__(self):
        super().__init__(Question)

    async def next_display_order(self, db: AsyncSession, quiz_id: int) -> int:
        result = await db.execute(
            select(func.max(Question.display_order)).where(Question.quiz_id == quiz_id)
        )
        current = result.scalar()
        return 0 if current is None else current + 1

    async def find_designating(self, db: AsyncSession, option_id: int) -> Optional[Question]:
        """Question that currently marks this option as its correct answer, if any"""
        result = await db.execute(
            select(Question).where(Question.correct_option_id == option_id).limit(1)
        )
        return result.scalar_one_or_none()


class OptionRepository(BaseRepository[Option]):
    def __init__(self):
        super().__init__(Option)

    async def next_display_order(self, db: AsyncSession, question_id: int) -> int:
        result = await db.execute(
            select(func.max(Option.display_order)).where(Option.question_id == question_id)
        )
        current = result.scalar()
        return 0 if current is None else current + 1

    async def list_for_question(self, db: AsyncSession, question_id: int) -> List[Option]:
        result = await db.execute(
            select(Option)
            .where(Option.question_id == question_id)
            .order_by(Option.display_order, Option.id)
        )
        return list(result.scalars().all())


def sorted_questions(quiz: Quiz) -> List[Question]:
    return sorted(quiz.questions, key=lambda q: (q.display_order, q.id))


def sorted_options(question: Question) -> List[Option]:
    return sorted(question.options, key=lambda o: (o.display_order, o.id))


class QuizService:
    """Authoring operations on quizzes, questions and options"""

    def __init__(self):
        self.quiz_repo = QuizRepository()
        self.question_repo = QuestionRepository()
        self.option_repo = OptionRepository()

    # Quizzes

    async def create_quiz(self, db: AsyncSession, data: QuizCreate) -> QuizResponse:
        async with unit_of_work(db, "create quiz"):
            quiz = await self.quiz_repo.create(
                db,
                title=data.title,
                entity_type=data.entity_type.value if data.entity_type else None,
                entity_id=data.entity_id,
                time_limit_sec=data.time_limit_sec,
                is_active=data.is_active,
                display_order=data.display_order
            )
            response = QuizResponse.model_validate(quiz)

        logger.info(f"Created quiz {quiz.id} for {data.entity_type} {data.entity_id}", extra={"quiz_id": quiz.id})
        return response

    async def update_quiz(self, db: AsyncSession, quiz_id: int, data: QuizUpdate) -> QuizResponse:
        async with unit_of_work(db, "update quiz"):
            await self.quiz_repo.get_by_id_or_404(db, quiz_id)
            changes = data.model_dump(exclude_unset=True)
            if isinstance(changes.get("entity_type"), ContentEntityType):
                changes["entity_type"] = changes["entity_type"].value
            # Explicit nulls clear the nullable columns; the schema refuses them elsewhere
            quiz = await self.quiz_repo.update(db, quiz_id, keep_none=True, **changes)
            response = QuizResponse.model_validate(quiz)

        logger.info(f"Updated quiz {quiz_id}: {sorted(changes)}", extra={"quiz_id": quiz_id})
        return response

    async def set_published(self, db: AsyncSession, quiz_id: int, is_active: bool) -> QuizResponse:
        async with unit_of_work(db, "update quiz status"):
            await self.quiz_repo.get_by_id_or_404(db, quiz_id, for_update=True)
            quiz = await self.quiz_repo.update(db, quiz_id, is_active=is_active)
            response = QuizResponse.model_validate(quiz)

        logger.info(f"Quiz {quiz_id} {'published' if is_active else 'unpublished'}", extra={"quiz_id": quiz_id})
        return response

    async def delete_quiz(self, db: AsyncSession, quiz_id: int) -> None:
        """Delete a quiz together with its questions, options, attempts and answers"""
        async with unit_of_work(db, "delete quiz"):
            if not await self.quiz_repo.delete(db, quiz_id):
                raise NotFoundError("Quiz not found", resource_type="Quiz")

        logger.info(f"Deleted quiz {quiz_id}", extra={"quiz_id": quiz_id})

    async def get_quiz(self, db: AsyncSession, quiz_id: int) -> QuizDetailResponse:
        """Authoring view, correct option pointers included"""
        quiz = await self.quiz_repo.get_with_questions(db, quiz_id=quiz_id)
        if not quiz:
            raise NotFoundError("Quiz not found", resource_type="Quiz")

        response = QuizDetailResponse.model_validate(quiz, from_attributes=True)
        response.questions = [self._question_response(q) for q in sorted_questions(quiz)]
        return response

    async def list_quizzes(
            self,
            db: AsyncSession,
            entity_type: Optional[ContentEntityType] = None,
            entity_id: Optional[int] = None
    ) -> List[QuizResponse]:
        quizzes = await self.quiz_repo.list_quizzes(
            db,
            entity_type=entity_type.value if entity_type else None,
            entity_id=entity_id
        )
        return [QuizResponse.model_validate(q) for q in quizzes]

    # Questions

    async def add_question(self, db: AsyncSession, quiz_id: int, data: QuestionCreate) -> QuestionCreated:
        """
        Create a question, its options and its correct option pointer as one unit.

        Args:
            db: Database session
            quiz_id: Owning quiz
            data: Question text, points, ordered options and zero-based correct index

        Returns:
            Ids of the new question, its options and the correct option
        """
        if data.correct_option_index >= len(data.options):
            raise InvalidInputError(
                "Invalid correct_option_index",
                field="correct_option_index",
                value=data.correct_option_index
            )

        async with unit_of_work(db, "add question"):
            await self.quiz_repo.get_by_id_or_404(db, quiz_id)

            question = await self.question_repo.create(
                db,
                quiz_id=quiz_id,
                text=data.text,
                points=data.points,
                display_order=await self.question_repo.next_display_order(db, quiz_id)
            )

            options = [
                Option(question_id=question.id, text=option.text, display_order=index)
                for index, option in enumerate(data.options)
            ]
            db.add_all(options)
            await db.flush()

            correct_option = options[data.correct_option_index]
            question.correct_option_id = correct_option.id
            await db.flush()

            created = QuestionCreated(
                question_id=question.id,
                option_ids=[o.id for o in options],
                correct_option_id=correct_option.id
            )

        logger.info(
            f"Added question {created.question_id} with {len(created.option_ids)} options to quiz {quiz_id}",
            extra={"quiz_id": quiz_id, "question_id": created.question_id}
        )
        return created

    async def list_questions(self, db: AsyncSession, quiz_id: int) -> List[QuestionResponse]:
        quiz = await self.quiz_repo.get_with_questions(db, quiz_id=quiz_id)
        if not quiz:
            raise NotFoundError("Quiz not found", resource_type="Quiz")
        return [self._question_response(q) for q in sorted_questions(quiz)]

    async def update_question(self, db: AsyncSession, question_id: int, data: QuestionUpdate) -> QuestionResponse:
        async with unit_of_work(db, "update question"):
            await self.question_repo.get_by_id_or_404(db, question_id)
            question = await self.question_repo.update(db, question_id, **data.model_dump(exclude_unset=True))
            options = await self.option_repo.list_for_question(db, question_id)
            response = QuestionResponse(
                id=question.id,
                quiz_id=question.quiz_id,
                text=question.text,
                points=question.points,
                display_order=question.display_order,
                correct_option_id=question.correct_option_id,
                options=[OptionResponse.model_validate(o) for o in options]
            )

        logger.info(f"Updated question {question_id}", extra={"question_id": question_id})
        return response

    async def delete_question(self, db: AsyncSession, question_id: int) -> None:
        async with unit_of_work(db, "delete question"):
            if not await self.question_repo.delete(db, question_id):
                raise NotFoundError("Question not found", resource_type="Question")

        logger.info(f"Deleted question {question_id}", extra={"question_id": question_id})

    async def set_correct_option(
            self,
            db: AsyncSession,
            question_id: int,
            correct_option_id: Optional[int]
    ) -> CorrectOptionResponse:
        """
        Point a question at one of its own options, or clear the pointer with None.

        The ownership check and the write share one unit, with the question
        and option rows locked, so a concurrent reassignment or option delete
        cannot slip in between.
        """
        async with unit_of_work(db, "set correct option"):
            question = await self.question_repo.get_by_id_or_404(db, question_id, for_update=True)

            if correct_option_id is not None:
                option = await self.option_repo.get_by_id(db, correct_option_id, for_update=True)
                if option is None:
                    raise NotFoundError("Option not found", resource_type="Option")
                if option.question_id != question.id:
                    raise ConflictError("Option does not belong to this question", resource_type="Option")

            question.correct_option_id = correct_option_id
            await db.flush()

        logger.info(
            f"Question {question_id} correct option set to {correct_option_id}",
            extra={"question_id": question_id, "option_id": correct_option_id}
        )
        return CorrectOptionResponse(question_id=question_id, correct_option_id=correct_option_id)

    # Options

    async def add_option(self, db: AsyncSession, question_id: int, data: OptionCreate) -> OptionResponse:
        async with unit_of_work(db, "add option"):
            await self.question_repo.get_by_id_or_404(db, question_id)
            option = await self.option_repo.create(
                db,
                question_id=question_id,
                text=data.text,
                display_order=await self.option_repo.next_display_order(db, question_id)
            )
            response = OptionResponse.model_validate(option)

        logger.info(f"Added option {option.id} to question {question_id}", extra={"question_id": question_id})
        return response

    async def update_option(self, db: AsyncSession, option_id: int, data: OptionUpdate) -> OptionResponse:
        async with unit_of_work(db, "update option"):
            await self.option_repo.get_by_id_or_404(db, option_id)
            option = await self.option_repo.update(db, option_id, **data.model_dump(exclude_unset=True))
            response = OptionResponse.model_validate(option)

        return response

    async def delete_option(self, db: AsyncSession, option_id: int) -> None:
        """
        Delete an option unless a question still designates it as correct.

        The author has to reassign or clear the correct option first; the
        existence check and the delete run in the same unit.
        """
        async with unit_of_work(db, "delete option"):
            await self.option_repo.get_by_id_or_404(db, option_id, for_update=True)

            designating = await self.question_repo.find_designating(db, option_id)
            if designating is not None:
                raise ConflictError(
                    "Cannot delete option that is currently set as correct answer",
                    resource_type="Option"
                )

            await self.option_repo.delete(db, option_id)

        logger.info(f"Deleted option {option_id}", extra={"option_id": option_id})

    @staticmethod
    def _question_response(question: Question) -> QuestionResponse:
        return QuestionResponse(
            id=question.id,
            quiz_id=question.quiz_id,
            text=question.text,
            points=Decimal(question.points),
            display_order=question.display_order,
            correct_option_id=question.correct_option_id,
            options=[OptionResponse.model_validate(o) for o in sorted_options(question)]
        )


quiz_service = QuizService()
