from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from quizengine.core.security import CallerIdentity
from quizengine.db.session import get_db
from quizengine.dependencies import get_current_caller, require_author
from quizengine.core.logging import get_logger
from quizengine.models.quiz import ContentEntityType
from quizengine.services.quiz_service import quiz_service
from quizengine.services.play_service import play_service
from quizengine.services.attempt_service import attempt_service
from quizengine.services.stats_service import stats_service
from quizengine.schemas.quiz_schema import (
    QuizCreate, QuizUpdate, QuizPublish, QuizResponse, QuizDetailResponse,
    QuestionCreate, QuestionUpdate, QuestionCreated, QuestionResponse,
    OptionCreate, OptionUpdate, OptionResponse,
    CorrectOptionUpdate, CorrectOptionResponse, PlayQuiz
)
from quizengine.schemas.attempt_schema import (
    AttemptSubmission, AttemptStarted, AttemptResult, AttemptDetail, AttemptPage, QuizStats
)
from quizengine.utils.exceptions import CustomException

logger = get_logger(__name__)
router = APIRouter()


def _unexpected(action: str, e: Exception) -> HTTPException:
    logger.error(f"Failed to {action}: {str(e)}", exc_info=True)
    return HTTPException(status_code=500, detail=f"Failed to {action}")


# Student routes

@router.get("/students/me/attempts", response_model=AttemptPage)
async def list_my_attempts(
        caller: CallerIdentity = Depends(get_current_caller),
        db: AsyncSession = Depends(get_db),
        page: int = Query(1),
        limit: Optional[int] = Query(None)
):
    """
    Attempts made by the calling student, newest first

    Args:
        page: 1-based page number
        limit: Page size, capped by MAX_PAGE_SIZE
    """
    try:
        return await stats_service.list_student_attempts(db, caller.user_id, page=page, limit=limit)
    except CustomException:
        raise
    except Exception as e:
        raise _unexpected("retrieve attempts", e)


@router.get("/attempts/{attempt_id}", response_model=AttemptDetail)
async def get_attempt(
        attempt_id: int,
        caller: CallerIdentity = Depends(get_current_caller),
        db: AsyncSession = Depends(get_db)
):
    """Students may read their own attempts; authors may read any"""
    try:
        student_id = None if caller.is_author else caller.user_id
        return await attempt_service.get_attempt(db, attempt_id, student_id=student_id)
    except CustomException:
        raise
    except Exception as e:
        raise _unexpected("retrieve attempt", e)


@router.get("/entities/{entity_id}/play", response_model=PlayQuiz)
async def get_quiz_for_entity(
        entity_id: int,
        caller: CallerIdentity = Depends(get_current_caller),
        db: AsyncSession = Depends(get_db),
        entity_type: Optional[ContentEntityType] = Query(None)
):
    try:
        return await play_service.get_quiz_for_play_by_entity(db, entity_id, entity_type)
    except CustomException:
        raise
    except Exception as e:
        raise _unexpected("retrieve quiz", e)


@router.get("/{quiz_id}/play", response_model=PlayQuiz)
async def get_quiz_for_play(
        quiz_id: int,
        caller: CallerIdentity = Depends(get_current_caller),
        db: AsyncSession = Depends(get_db)
):
    """Quiz with questions and options, without correct answers"""
    try:
        return await play_service.get_quiz_for_play(db, quiz_id)
    except CustomException:
        raise
    except Exception as e:
        raise _unexpected("retrieve quiz", e)


@router.post("/{quiz_id}/attempts/start", response_model=AttemptStarted, status_code=status.HTTP_201_CREATED)
async def start_attempt(
        quiz_id: int,
        caller: CallerIdentity = Depends(get_current_caller),
        db: AsyncSession = Depends(get_db)
):
    try:
        return await attempt_service.start_attempt(db, quiz_id, caller.user_id)
    except CustomException:
        raise
    except Exception as e:
        raise _unexpected("start attempt", e)


@router.post("/{quiz_id}/attempts/{attempt_id}/submit", response_model=AttemptResult)
async def submit_attempt(
        quiz_id: int,
        attempt_id: int,
        submission: AttemptSubmission,
        caller: CallerIdentity = Depends(get_current_caller),
        db: AsyncSession = Depends(get_db)
):
    """
    Grade and seal an attempt

    The student is always the caller; an attempt belonging to someone else
    reads as not found.
    """
    try:
        return await attempt_service.submit_attempt(
            db,
            attempt_id=attempt_id,
            student_id=caller.user_id,
            answers=submission.answers,
            quiz_id=quiz_id
        )
    except CustomException:
        raise
    except Exception as e:
        raise _unexpected("submit attempt", e)


# Authoring routes

@router.post("/", response_model=QuizResponse, status_code=status.HTTP_201_CREATED)
async def create_quiz(
        data: QuizCreate,
        author: CallerIdentity = Depends(require_author),
        db: AsyncSession = Depends(get_db)
):
    try:
        return await quiz_service.create_quiz(db, data)
    except CustomException:
        raise
    except Exception as e:
        raise _unexpected("create quiz", e)


@router.get("/", response_model=List[QuizResponse])
async def list_quizzes(
        author: CallerIdentity = Depends(require_author),
        db: AsyncSession = Depends(get_db),
        entity_type: Optional[ContentEntityType] = Query(None),
        entity_id: Optional[int] = Query(None, gt=0)
):
    try:
        return await quiz_service.list_quizzes(db, entity_type=entity_type, entity_id=entity_id)
    except CustomException:
        raise
    except Exception as e:
        raise _unexpected("retrieve quizzes", e)


@router.get("/{quiz_id}", response_model=QuizDetailResponse)
async def get_quiz(
        quiz_id: int,
        author: CallerIdentity = Depends(require_author),
        db: AsyncSession = Depends(get_db)
):
    """Authoring view, including each question's correct option"""
    try:
        return await quiz_service.get_quiz(db, quiz_id)
    except CustomException:
        raise
    except Exception as e:
        raise _unexpected("retrieve quiz", e)


@router.put("/{quiz_id}", response_model=QuizResponse)
async def update_quiz(
        quiz_id: int,
        data: QuizUpdate,
        author: CallerIdentity = Depends(require_author),
        db: AsyncSession = Depends(get_db)
):
    try:
        return await quiz_service.update_quiz(db, quiz_id, data)
    except CustomException:
        raise
    except Exception as e:
        raise _unexpected("update quiz", e)


@router.delete("/{quiz_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_quiz(
        quiz_id: int,
        author: CallerIdentity = Depends(require_author),
        db: AsyncSession = Depends(get_db)
):
    try:
        await quiz_service.delete_quiz(db, quiz_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except CustomException:
        raise
    except Exception as e:
        raise _unexpected("delete quiz", e)


@router.put("/{quiz_id}/publish", response_model=QuizResponse)
async def publish_quiz(
        quiz_id: int,
        data: QuizPublish,
        author: CallerIdentity = Depends(require_author),
        db: AsyncSession = Depends(get_db)
):
    try:
        return await quiz_service.set_published(db, quiz_id, data.is_active)
    except CustomException:
        raise
    except Exception as e:
        raise _unexpected("update quiz status", e)


@router.get("/{quiz_id}/stats", response_model=QuizStats)
async def get_quiz_stats(
        quiz_id: int,
        author: CallerIdentity = Depends(require_author),
        db: AsyncSession = Depends(get_db)
):
    try:
        return await stats_service.get_quiz_stats(db, quiz_id)
    except CustomException:
        raise
    except Exception as e:
        raise _unexpected("retrieve quiz statistics", e)


@router.get("/{quiz_id}/attempts", response_model=AttemptPage)
async def list_quiz_attempts(
        quiz_id: int,
        author: CallerIdentity = Depends(require_author),
        db: AsyncSession = Depends(get_db),
        page: int = Query(1),
        limit: Optional[int] = Query(None)
):
    try:
        return await stats_service.list_quiz_attempts(db, quiz_id, page=page, limit=limit)
    except CustomException:
        raise
    except Exception as e:
        raise _unexpected("retrieve attempts", e)


@router.post("/{quiz_id}/questions", response_model=QuestionCreated, status_code=status.HTTP_201_CREATED)
async def add_question(
        quiz_id: int,
        data: QuestionCreate,
        author: CallerIdentity = Depends(require_author),
        db: AsyncSession = Depends(get_db)
):
    """
    Add a question together with its options

    Args:
        data: Question text, points, options in display order and the
            zero-based index of the correct option
    """
    try:
        return await quiz_service.add_question(db, quiz_id, data)
    except CustomException:
        raise
    except Exception as e:
        raise _unexpected("add question", e)


@router.get("/{quiz_id}/questions", response_model=List[QuestionResponse])
async def list_questions(
        quiz_id: int,
        author: CallerIdentity = Depends(require_author),
        db: AsyncSession = Depends(get_db)
):
    try:
        return await quiz_service.list_questions(db, quiz_id)
    except CustomException:
        raise
    except Exception as e:
        raise _unexpected("retrieve questions", e)


@router.put("/questions/{question_id}", response_model=QuestionResponse)
async def update_question(
        question_id: int,
        data: QuestionUpdate,
        author: CallerIdentity = Depends(require_author),
        db: AsyncSession = Depends(get_db)
):
    try:
        return await quiz_service.update_question(db, question_id, data)
    except CustomException:
        raise
    except Exception as e:
        raise _unexpected("update question", e)


@router.delete("/questions/{question_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_question(
        question_id: int,
        author: CallerIdentity = Depends(require_author),
        db: AsyncSession = Depends(get_db)
):
    try:
        await quiz_service.delete_question(db, question_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except CustomException:
        raise
    except Exception as e:
        raise _unexpected("delete question", e)


@router.post("/questions/{question_id}/options", response_model=OptionResponse, status_code=status.HTTP_201_CREATED)
async def add_option(
        question_id: int,
        data: OptionCreate,
        author: CallerIdentity = Depends(require_author),
        db: AsyncSession = Depends(get_db)
):
    try:
        return await quiz_service.add_option(db, question_id, data)
    except CustomException:
        raise
    except Exception as e:
        raise _unexpected("add option", e)


@router.put("/questions/{question_id}/correct", response_model=CorrectOptionResponse)
async def set_correct_option(
        question_id: int,
        data: CorrectOptionUpdate,
        author: CallerIdentity = Depends(require_author),
        db: AsyncSession = Depends(get_db)
):
    try:
        return await quiz_service.set_correct_option(db, question_id, data.correct_option_id)
    except CustomException:
        raise
    except Exception as e:
        raise _unexpected("set correct option", e)


@router.put("/options/{option_id}", response_model=OptionResponse)
async def update_option(
        option_id: int,
        data: OptionUpdate,
        author: CallerIdentity = Depends(require_author),
        db: AsyncSession = Depends(get_db)
):
    try:
        return await quiz_service.update_option(db, option_id, data)
    except CustomException:
        raise
    except Exception as e:
        raise _unexpected("update option", e)


@router.delete("/options/{option_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_option(
        option_id: int,
        author: CallerIdentity = Depends(require_author),
        db: AsyncSession = Depends(get_db)
):
    """Fails with 409 while a question still marks this option as correct"""
    try:
        await quiz_service.delete_option(db, option_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except CustomException:
        raise
    except Exception as e:
        raise _unexpected("delete option", e)
