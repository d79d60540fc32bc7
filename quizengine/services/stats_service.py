import math
from typing import Optional, Tuple
from decimal import Decimal, ROUND_HALF_UP
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from quizengine.models.quiz_attempt import QuizAttempt
from quizengine.schemas.attempt_schema import AttemptPage, AttemptSummary, PaginationInfo, QuizStats
from quizengine.services.attempt_service import AttemptRepository, as_utc
from quizengine.services.quiz_service import QuizRepository
from quizengine.utils.exceptions import InvalidInputError, DatabaseError
from quizengine.core.config import settings
from quizengine.core.logging import get_logger

logger = get_logger(__name__)

CENT = Decimal("0.01")


def to_score(value) -> Decimal:
    if value is None:
        return Decimal("0")
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def check_page(page: int, limit: int) -> Tuple[int, int]:
    if page < 1:
        raise InvalidInputError("Page must be at least 1", field="page", value=page)
    if limit < 1 or limit > settings.MAX_PAGE_SIZE:
        raise InvalidInputError(
            f"Limit must be between 1 and {settings.MAX_PAGE_SIZE}",
            field="limit",
            value=limit
        )
    return page, limit


class StatsService:
    def __init__(self):
        self.quiz_repo = QuizRepository()
        self.attempt_repo = AttemptRepository()

    async def get_quiz_stats(self, db: AsyncSession, quiz_id: int) -> QuizStats:
        """
        Aggregate attempt numbers for one quiz.

        Score and duration figures only consider submitted attempts; an
        attempt still in progress has neither.
        """
        await self.quiz_repo.get_by_id_or_404(db, quiz_id)
        total_attempts = await self.attempt_repo.count(db, {"quiz_id": quiz_id})

        try:
            result = await db.execute(
                select(
                    func.count(QuizAttempt.id),
                    func.avg(QuizAttempt.score),
                    func.max(QuizAttempt.score),
                    func.min(QuizAttempt.score),
                    func.avg(QuizAttempt.duration_sec)
                ).where(
                    QuizAttempt.quiz_id == quiz_id,
                    QuizAttempt.submitted_at.is_not(None)
                )
            )
            submitted, avg_score, max_score, min_score, avg_duration = result.one()
        except SQLAlchemyError as e:
            logger.error(f"Error computing stats for quiz {quiz_id}: {e}", extra={"quiz_id": quiz_id})
            raise DatabaseError("Failed to compute quiz stats")

        return QuizStats(
            quiz_id=quiz_id,
            total_attempts=total_attempts,
            submitted_attempts=submitted or 0,
            average_score=to_score(avg_score),
            highest_score=to_score(max_score),
            lowest_score=to_score(min_score),
            average_duration_sec=round(float(avg_duration), 2) if avg_duration is not None else None
        )

    async def list_quiz_attempts(
            self,
            db: AsyncSession,
            quiz_id: int,
            page: int = 1,
            limit: Optional[int] = None
    ) -> AttemptPage:
        """Every attempt on a quiz, newest first"""
        page, limit = check_page(page, settings.DEFAULT_PAGE_SIZE if limit is None else limit)
        await self.quiz_repo.get_by_id_or_404(db, quiz_id)
        return await self._page(db, QuizAttempt.quiz_id == quiz_id, page, limit)

    async def list_student_attempts(
            self,
            db: AsyncSession,
            student_id: int,
            page: int = 1,
            limit: Optional[int] = None
    ) -> AttemptPage:
        page, limit = check_page(page, settings.DEFAULT_PAGE_SIZE if limit is None else limit)
        return await self._page(db, QuizAttempt.student_id == student_id, page, limit)

    async def _page(self, db: AsyncSession, condition, page: int, limit: int) -> AttemptPage:
        try:
            total = (await db.execute(
                select(func.count(QuizAttempt.id)).where(condition)
            )).scalar() or 0

            result = await db.execute(
                select(QuizAttempt)
                .where(condition)
                .options(selectinload(QuizAttempt.quiz))
                .order_by(QuizAttempt.started_at.desc(), QuizAttempt.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .execution_options(populate_existing=True)
            )
            attempts = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Error listing attempts: {e}")
            raise DatabaseError("Failed to list attempts")

        total_pages = math.ceil(total / limit)
        return AttemptPage(
            attempts=[
                AttemptSummary(
                    id=a.id,
                    quiz_id=a.quiz_id,
                    quiz_title=a.quiz.title if a.quiz else None,
                    student_id=a.student_id,
                    status=a.status,
                    score=a.score,
                    started_at=as_utc(a.started_at),
                    submitted_at=as_utc(a.submitted_at) if a.submitted_at else None,
                    duration_sec=a.duration_sec
                )
                for a in attempts
            ],
            pagination=PaginationInfo(
                total_attempts=total,
                total_pages=total_pages,
                current_page=page,
                limit=limit,
                has_next_page=page < total_pages,
                has_prev_page=page > 1
            )
        )


stats_service = StatsService()
