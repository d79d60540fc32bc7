import math
from typing import Dict, List, Optional
from datetime import datetime, UTC
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from quizengine.models.quiz import Quiz
from quizengine.models.question import Question
from quizengine.models.quiz_attempt import QuizAttempt
from quizengine.models.attempt_answer import AttemptAnswer
from quizengine.db.utils import BaseRepository, unit_of_work
from quizengine.schemas.attempt_schema import (
    AnswerSubmission, AttemptStarted, AttemptResult, AnswerResult,
    AttemptDetail, AttemptAnswerDetail
)
from quizengine.services.play_service import PlayService
from quizengine.services.quiz_service import QuizRepository
from quizengine.utils.exceptions import (
    NotFoundError, ConflictError, InvalidInputError, DatabaseError,
    QuizInactiveError, AttemptAlreadySubmittedError
)
from quizengine.core.logging import get_logger, get_performance_logger, LogContext

logger = get_logger(__name__)
perf_logger = get_performance_logger(__name__)

ZERO = Decimal("0")


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything is stored in UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def elapsed_seconds(started_at: datetime, submitted_at: datetime) -> int:
    seconds = (as_utc(submitted_at) - as_utc(started_at)).total_seconds()
    return max(0, math.floor(seconds))


class AttemptRepository(BaseRepository[QuizAttempt]):
    def __init__(self):
        super().__init__(QuizAttempt)

    async def get_for_student(
            self,
            db: AsyncSession,
            attempt_id: int,
            student_id: int,
            for_update: bool = False
    ) -> Optional[QuizAttempt]:
        try:
            stmt = select(QuizAttempt).where(
                QuizAttempt.id == attempt_id,
                QuizAttempt.student_id == student_id
            )
            if for_update:
                stmt = stmt.with_for_update()
            result = await db.execute(stmt.execution_options(populate_existing=True))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error loading attempt {attempt_id}: {e}", extra={"attempt_id": attempt_id})
            raise DatabaseError("Failed to load attempt")

    async def get_with_answers(self, db: AsyncSession, attempt_id: int) -> Optional[QuizAttempt]:
        try:
            result = await db.execute(
                select(QuizAttempt)
                .where(QuizAttempt.id == attempt_id)
                .options(
                    selectinload(QuizAttempt.quiz),
                    selectinload(QuizAttempt.answers).selectinload(AttemptAnswer.question),
                    selectinload(QuizAttempt.answers).selectinload(AttemptAnswer.selected_option)
                )
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error loading attempt {attempt_id} with answers: {e}", extra={"attempt_id": attempt_id})
            raise DatabaseError("Failed to load attempt")

    async def seal(
            self,
            db: AsyncSession,
            attempt_id: int,
            score: Decimal,
            submitted_at: datetime,
            duration_sec: int
    ) -> bool:
        """
        Record the result of an attempt, once.

        The write only matches while submitted_at is still null, so of two
        racing submissions exactly one gets True back.
        """
        result = await db.execute(
            update(QuizAttempt)
            .where(QuizAttempt.id == attempt_id, QuizAttempt.submitted_at.is_(None))
            .values(score=score, submitted_at=submitted_at, duration_sec=duration_sec)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class AttemptAnswerRepository(BaseRepository[AttemptAnswer]):
    def __init__(self):
        super().__init__(AttemptAnswer)

    async def upsert_many(self, db: AsyncSession, rows: List[Dict]) -> None:
        """Insert answers, replacing any earlier row for the same (attempt, question)"""
        if not rows:
            return

        dialect = db.get_bind().dialect.name
        if dialect == "postgresql":
            insert = postgresql.insert
        elif dialect == "sqlite":
            insert = sqlite.insert
        else:
            raise DatabaseError(f"Answer upsert is not supported on {dialect}")

        stmt = insert(AttemptAnswer).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=["attempt_id", "question_id"],
            set_={
                "selected_option_id": stmt.excluded.selected_option_id,
                "is_correct": stmt.excluded.is_correct,
                "points_awarded": stmt.excluded.points_awarded,
                "updated_at": func.now(),
            }
        )
        await db.execute(stmt)


class AttemptService:
    def __init__(self):
        self.attempt_repo = AttemptRepository()
        self.answer_repo = AttemptAnswerRepository()
        self.quiz_repo = QuizRepository()
        self.play_service = PlayService()

    async def start_attempt(self, db: AsyncSession, quiz_id: int, student_id: int) -> AttemptStarted:
        """
        Open a new attempt on an active quiz.

        Args:
            db: Database session
            quiz_id: Quiz being attempted
            student_id: Caller's user id

        Returns:
            The attempt id and its start time
        """
        async with unit_of_work(db, "start attempt"):
            await self.play_service.get_active_quiz(db, quiz_id)
            attempt = await self.attempt_repo.create(
                db,
                quiz_id=quiz_id,
                student_id=student_id,
                started_at=datetime.now(UTC),
                score=ZERO
            )
            started = AttemptStarted(
                attempt_id=attempt.id,
                quiz_id=attempt.quiz_id,
                student_id=attempt.student_id,
                started_at=as_utc(attempt.started_at)
            )

        logger.info(
            f"Student {student_id} started attempt {started.attempt_id} on quiz {quiz_id}",
            extra={"quiz_id": quiz_id, "attempt_id": started.attempt_id, "user_id": str(student_id)}
        )
        return started

    async def submit_attempt(
            self,
            db: AsyncSession,
            attempt_id: int,
            student_id: int,
            answers: List[AnswerSubmission],
            quiz_id: Optional[int] = None
    ) -> AttemptResult:
        """
        Grade and seal an attempt in one unit.

        Every answer is checked against the quiz as it stands now before
        anything is written. Repeated answers for one question collapse to
        the last one given. Any failure leaves the attempt untouched.

        Args:
            db: Database session
            attempt_id: Attempt to submit
            student_id: Caller's user id; the attempt must be theirs
            answers: Selected option per question, None for unanswered
            quiz_id: Quiz named in the request path, if any

        Returns:
            Score, submission time, duration and per-question breakdown
        """
        if not answers:
            raise InvalidInputError("At least one answer is required", field="answers")

        context = LogContext(user_id=str(student_id), operation="submit_attempt")
        with perf_logger.measure_time("submit_attempt", "AttemptService", context):
            async with unit_of_work(db, "submit attempt"):
                attempt = await self.attempt_repo.get_for_student(db, attempt_id, student_id, for_update=True)
                if attempt is None or (quiz_id is not None and attempt.quiz_id != quiz_id):
                    raise NotFoundError("Attempt not found", resource_type="QuizAttempt")

                quiz = await self.quiz_repo.get_with_questions(db, quiz_id=attempt.quiz_id)
                if quiz is None:
                    raise NotFoundError("Quiz not found", resource_type="Quiz")
                if not quiz.is_active:
                    raise QuizInactiveError("Cannot submit to inactive quiz")
                if attempt.submitted_at is not None:
                    raise AttemptAlreadySubmittedError()

                graded = self._grade(quiz, answers)
                score = sum((row["points_awarded"] for row in graded), ZERO)

                await self.answer_repo.upsert_many(
                    db,
                    [dict(row, attempt_id=attempt.id) for row in graded]
                )

                submitted_at = datetime.now(UTC)
                duration_sec = elapsed_seconds(attempt.started_at, submitted_at)
                if not await self.attempt_repo.seal(db, attempt.id, score, submitted_at, duration_sec):
                    raise AttemptAlreadySubmittedError()

        logger.info(
            f"Attempt {attempt_id} submitted with score {score}",
            extra={"quiz_id": quiz.id, "attempt_id": attempt_id, "user_id": str(student_id)}
        )
        return AttemptResult(
            attempt_id=attempt.id,
            quiz_id=quiz.id,
            student_id=student_id,
            score=score,
            submitted_at=submitted_at,
            duration_sec=duration_sec,
            answers=[AnswerResult(**row) for row in graded]
        )

    @staticmethod
    def _grade(quiz: Quiz, answers: List[AnswerSubmission]) -> List[Dict]:
        """Validate the whole batch against the quiz, then score each question once"""
        questions: Dict[int, Question] = {q.id: q for q in quiz.questions}
        option_ids = {q.id: {o.id for o in q.options} for q in quiz.questions}

        latest: Dict[int, Optional[int]] = {}
        for answer in answers:
            if answer.question_id not in questions:
                raise ConflictError("Question does not belong to this quiz", resource_type="Question")
            if answer.selected_option_id is not None and answer.selected_option_id not in option_ids[answer.question_id]:
                raise ConflictError("Option does not belong to question", resource_type="Option")
            latest[answer.question_id] = answer.selected_option_id

        graded = []
        for question_id, selected_option_id in latest.items():
            question = questions[question_id]
            is_correct = (
                selected_option_id is not None
                and question.correct_option_id is not None
                and selected_option_id == question.correct_option_id
            )
            graded.append({
                "question_id": question_id,
                "selected_option_id": selected_option_id,
                "is_correct": is_correct,
                "points_awarded": Decimal(question.points) if is_correct else ZERO,
            })
        return graded

    async def get_attempt(
            self,
            db: AsyncSession,
            attempt_id: int,
            student_id: Optional[int] = None
    ) -> AttemptDetail:
        """Attempt with its recorded answers; restricted to the owner when student_id is given"""
        attempt = await self.attempt_repo.get_with_answers(db, attempt_id)
        if attempt is None or (student_id is not None and attempt.student_id != student_id):
            raise NotFoundError("Attempt not found", resource_type="QuizAttempt")

        answers = sorted(
            attempt.answers,
            key=lambda a: (a.question.display_order, a.question_id) if a.question else (0, a.question_id)
        )
        return AttemptDetail(
            id=attempt.id,
            quiz_id=attempt.quiz_id,
            quiz_title=attempt.quiz.title if attempt.quiz else None,
            student_id=attempt.student_id,
            status=attempt.status,
            score=attempt.score,
            started_at=as_utc(attempt.started_at),
            submitted_at=as_utc(attempt.submitted_at) if attempt.submitted_at else None,
            duration_sec=attempt.duration_sec,
            answers=[
                AttemptAnswerDetail(
                    question_id=a.question_id,
                    question_text=a.question.text if a.question else None,
                    question_points=a.question.points if a.question else None,
                    selected_option_id=a.selected_option_id,
                    selected_option_text=a.selected_option.text if a.selected_option else None,
                    is_correct=a.is_correct,
                    points_awarded=a.points_awarded
                )
                for a in answers
            ]
        )


attempt_service = AttemptService()
