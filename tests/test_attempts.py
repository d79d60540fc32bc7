import asyncio
from datetime import datetime, timedelta, UTC
from decimal import Decimal

import pytest
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from quizengine.models.attempt_answer import AttemptAnswer
from quizengine.models.quiz_attempt import QuizAttempt, STATUS_IN_PROGRESS, STATUS_SUBMITTED
from quizengine.schemas.attempt_schema import AnswerSubmission, AttemptResult
from quizengine.schemas.quiz_schema import QuizCreate, QuestionCreate, OptionCreate
from quizengine.services.attempt_service import (
    AttemptService, AttemptRepository, AttemptAnswerRepository, elapsed_seconds
)
from quizengine.services.quiz_service import QuizService
from quizengine.utils.exceptions import (
    ConflictError, InvalidInputError, InvalidStateError, NotFoundError,
    QuizInactiveError, AttemptAlreadySubmittedError
)

STUDENT = 42


def answer(question_id, option_id):
    return AnswerSubmission(question_id=question_id, selected_option_id=option_id)


async def _answer_rows(db, attempt_id):
    result = await db.execute(
        select(AttemptAnswer)
        .where(AttemptAnswer.attempt_id == attempt_id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
async def test_start_attempt(db, attempt_service, seeded):
    started = await attempt_service.start_attempt(db, seeded.quiz_id, STUDENT)

    assert started.quiz_id == seeded.quiz_id
    assert started.student_id == STUDENT
    assert started.started_at.tzinfo is not None

    detail = await attempt_service.get_attempt(db, started.attempt_id, STUDENT)
    assert detail.status == STATUS_IN_PROGRESS
    assert detail.submitted_at is None
    assert detail.score == Decimal("0")
    assert detail.answers == []


@pytest.mark.asyncio
async def test_start_attempt_on_missing_or_inactive_quiz(db, attempt_service, make_quiz):
    with pytest.raises(NotFoundError):
        await attempt_service.start_attempt(db, 999, STUDENT)

    hidden = await make_quiz(is_active=False)
    with pytest.raises(QuizInactiveError):
        await attempt_service.start_attempt(db, hidden.quiz_id, STUDENT)

    count = await db.execute(select(func.count(QuizAttempt.id)))
    assert count.scalar() == 0


@pytest.mark.asyncio
async def test_submit_correct_answer(db, attempt_service, seeded):
    started = await attempt_service.start_attempt(db, seeded.quiz_id, STUDENT)

    result = await attempt_service.submit_attempt(
        db, started.attempt_id, STUDENT, [answer(seeded.question_id, seeded.correct_option_id)]
    )

    assert result.score == Decimal("2")
    assert result.duration_sec >= 0
    assert result.submitted_at >= started.started_at
    assert len(result.answers) == 1
    assert result.answers[0].is_correct is True
    assert result.answers[0].points_awarded == Decimal("2")

    detail = await attempt_service.get_attempt(db, started.attempt_id, STUDENT)
    assert detail.status == STATUS_SUBMITTED
    assert detail.score == Decimal("2")
    assert detail.duration_sec == result.duration_sec
    assert detail.answers[0].question_text == "2+2=?"
    assert detail.answers[0].selected_option_text == "4"


@pytest.mark.asyncio
async def test_submit_wrong_and_unanswered(db, attempt_service, quiz_service, seeded):
    second = await quiz_service.add_question(db, seeded.quiz_id, QuestionCreate(
        text="5-2=?",
        points=Decimal("1.5"),
        options=[OptionCreate(text="3"), OptionCreate(text="2")],
        correct_option_index=0
    ))
    started = await attempt_service.start_attempt(db, seeded.quiz_id, STUDENT)

    result = await attempt_service.submit_attempt(db, started.attempt_id, STUDENT, [
        answer(seeded.question_id, seeded.option_ids[0]),
        answer(second.question_id, None),
    ])

    assert result.score == Decimal("0")
    assert [a.is_correct for a in result.answers] == [False, False]
    assert result.answers[1].selected_option_id is None
    assert all(a.points_awarded == Decimal("0") for a in result.answers)


@pytest.mark.asyncio
async def test_score_sums_question_points(db, attempt_service, quiz_service, seeded):
    second = await quiz_service.add_question(db, seeded.quiz_id, QuestionCreate(
        text="5-2=?",
        points=Decimal("1.5"),
        options=[OptionCreate(text="3"), OptionCreate(text="2")],
        correct_option_index=0
    ))
    started = await attempt_service.start_attempt(db, seeded.quiz_id, STUDENT)

    result = await attempt_service.submit_attempt(db, started.attempt_id, STUDENT, [
        answer(seeded.question_id, seeded.correct_option_id),
        answer(second.question_id, second.correct_option_id),
    ])

    assert result.score == Decimal("3.5")


@pytest.mark.asyncio
async def test_submit_twice_is_rejected(db, attempt_service, seeded):
    started = await attempt_service.start_attempt(db, seeded.quiz_id, STUDENT)
    first = await attempt_service.submit_attempt(
        db, started.attempt_id, STUDENT, [answer(seeded.question_id, seeded.correct_option_id)]
    )

    with pytest.raises(AttemptAlreadySubmittedError):
        await attempt_service.submit_attempt(
            db, started.attempt_id, STUDENT, [answer(seeded.question_id, seeded.option_ids[0])]
        )

    detail = await attempt_service.get_attempt(db, started.attempt_id, STUDENT)
    assert detail.score == first.score
    assert detail.answers[0].selected_option_id == seeded.correct_option_id


@pytest.mark.asyncio
async def test_submit_someone_elses_attempt(db, attempt_service, seeded):
    started = await attempt_service.start_attempt(db, seeded.quiz_id, STUDENT)

    with pytest.raises(NotFoundError) as exc_info:
        await attempt_service.submit_attempt(
            db, started.attempt_id, STUDENT + 1, [answer(seeded.question_id, seeded.correct_option_id)]
        )
    assert exc_info.value.message == "Attempt not found"

    with pytest.raises(NotFoundError):
        await attempt_service.submit_attempt(
            db, 9999, STUDENT, [answer(seeded.question_id, seeded.correct_option_id)]
        )


@pytest.mark.asyncio
async def test_submit_under_wrong_quiz_path(db, attempt_service, make_quiz, seeded):
    other = await make_quiz(entity_id=99)
    started = await attempt_service.start_attempt(db, seeded.quiz_id, STUDENT)

    with pytest.raises(NotFoundError):
        await attempt_service.submit_attempt(
            db, started.attempt_id, STUDENT,
            [answer(seeded.question_id, seeded.correct_option_id)],
            quiz_id=other.quiz_id
        )


@pytest.mark.asyncio
async def test_foreign_question_rejects_whole_batch(db, attempt_service, make_quiz, seeded):
    other = await make_quiz(entity_id=99)
    started = await attempt_service.start_attempt(db, seeded.quiz_id, STUDENT)

    with pytest.raises(ConflictError) as exc_info:
        await attempt_service.submit_attempt(db, started.attempt_id, STUDENT, [
            answer(seeded.question_id, seeded.correct_option_id),
            answer(other.question_id, other.correct_option_id),
        ])
    assert exc_info.value.message == "Question does not belong to this quiz"

    assert await _answer_rows(db, started.attempt_id) == []
    detail = await attempt_service.get_attempt(db, started.attempt_id, STUDENT)
    assert detail.status == STATUS_IN_PROGRESS


@pytest.mark.asyncio
async def test_foreign_option_rejects_whole_batch(db, attempt_service, quiz_service, seeded):
    second = await quiz_service.add_question(db, seeded.quiz_id, QuestionCreate(
        text="1+1=?",
        options=[OptionCreate(text="2"), OptionCreate(text="3")],
        correct_option_index=0
    ))
    started = await attempt_service.start_attempt(db, seeded.quiz_id, STUDENT)

    with pytest.raises(ConflictError) as exc_info:
        await attempt_service.submit_attempt(db, started.attempt_id, STUDENT, [
            answer(second.question_id, second.correct_option_id),
            answer(seeded.question_id, second.option_ids[1]),
        ])
    assert exc_info.value.message == "Option does not belong to question"

    assert await _answer_rows(db, started.attempt_id) == []

    # The attempt is still open after the rejected batch
    result = await attempt_service.submit_attempt(db, started.attempt_id, STUDENT, [
        answer(second.question_id, second.correct_option_id),
    ])
    assert result.score == Decimal("1")


@pytest.mark.asyncio
async def test_empty_submission(db, attempt_service, seeded):
    started = await attempt_service.start_attempt(db, seeded.quiz_id, STUDENT)
    with pytest.raises(InvalidInputError):
        await attempt_service.submit_attempt(db, started.attempt_id, STUDENT, [])


@pytest.mark.asyncio
async def test_duplicate_answers_collapse_to_last(db, attempt_service, seeded):
    started = await attempt_service.start_attempt(db, seeded.quiz_id, STUDENT)

    result = await attempt_service.submit_attempt(db, started.attempt_id, STUDENT, [
        answer(seeded.question_id, seeded.correct_option_id),
        answer(seeded.question_id, seeded.correct_option_id),
        answer(seeded.question_id, seeded.option_ids[2]),
    ])

    assert result.score == Decimal("0")
    assert len(result.answers) == 1
    assert result.answers[0].selected_option_id == seeded.option_ids[2]

    rows = await _answer_rows(db, started.attempt_id)
    assert len(rows) == 1
    assert rows[0].selected_option_id == seeded.option_ids[2]


@pytest.mark.asyncio
async def test_repeated_correct_answer_counts_once(db, attempt_service, seeded):
    started = await attempt_service.start_attempt(db, seeded.quiz_id, STUDENT)

    result = await attempt_service.submit_attempt(db, started.attempt_id, STUDENT, [
        answer(seeded.question_id, seeded.option_ids[0]),
        answer(seeded.question_id, seeded.correct_option_id),
        answer(seeded.question_id, seeded.correct_option_id),
    ])

    assert result.score == Decimal("2")


@pytest.mark.asyncio
async def test_scored_against_quiz_at_submission_time(db, attempt_service, quiz_service, seeded):
    started = await attempt_service.start_attempt(db, seeded.quiz_id, STUDENT)

    # Author moves the correct answer while the attempt is open
    await quiz_service.set_correct_option(db, seeded.question_id, seeded.option_ids[2])

    result = await attempt_service.submit_attempt(
        db, started.attempt_id, STUDENT, [answer(seeded.question_id, seeded.option_ids[1])]
    )
    assert result.score == Decimal("0")
    assert result.answers[0].is_correct is False


@pytest.mark.asyncio
async def test_question_without_correct_option_never_scores(db, attempt_service, quiz_service, seeded):
    await quiz_service.set_correct_option(db, seeded.question_id, None)
    started = await attempt_service.start_attempt(db, seeded.quiz_id, STUDENT)

    result = await attempt_service.submit_attempt(
        db, started.attempt_id, STUDENT, [answer(seeded.question_id, seeded.option_ids[1])]
    )
    assert result.score == Decimal("0")


@pytest.mark.asyncio
async def test_submit_to_quiz_unpublished_mid_attempt(db, attempt_service, quiz_service, seeded):
    started = await attempt_service.start_attempt(db, seeded.quiz_id, STUDENT)
    await quiz_service.set_published(db, seeded.quiz_id, False)

    with pytest.raises(QuizInactiveError) as exc_info:
        await attempt_service.submit_attempt(
            db, started.attempt_id, STUDENT, [answer(seeded.question_id, seeded.correct_option_id)]
        )
    assert exc_info.value.message == "Cannot submit to inactive quiz"


@pytest.mark.asyncio
async def test_deleted_option_clears_selection(db, attempt_service, quiz_service, seeded):
    started = await attempt_service.start_attempt(db, seeded.quiz_id, STUDENT)
    await attempt_service.submit_attempt(
        db, started.attempt_id, STUDENT, [answer(seeded.question_id, seeded.option_ids[0])]
    )

    await quiz_service.delete_option(db, seeded.option_ids[0])

    detail = await attempt_service.get_attempt(db, started.attempt_id, STUDENT)
    assert len(detail.answers) == 1
    assert detail.answers[0].selected_option_id is None
    assert detail.answers[0].selected_option_text is None


@pytest.mark.asyncio
async def test_get_attempt_visibility(db, attempt_service, seeded):
    started = await attempt_service.start_attempt(db, seeded.quiz_id, STUDENT)

    with pytest.raises(NotFoundError):
        await attempt_service.get_attempt(db, started.attempt_id, STUDENT + 1)

    # Authors read without a student filter
    detail = await attempt_service.get_attempt(db, started.attempt_id)
    assert detail.student_id == STUDENT
    assert detail.quiz_title == "Arithmetic"
    assert "correct_option_id" not in detail.model_dump()


@pytest.mark.asyncio
async def test_answer_upsert_replaces_row(db, attempt_service, seeded):
    started = await attempt_service.start_attempt(db, seeded.quiz_id, STUDENT)
    repo = AttemptAnswerRepository()

    for option_id, correct in ((seeded.option_ids[0], False), (seeded.correct_option_id, True)):
        await repo.upsert_many(db, [{
            "attempt_id": started.attempt_id,
            "question_id": seeded.question_id,
            "selected_option_id": option_id,
            "is_correct": correct,
            "points_awarded": Decimal("2") if correct else Decimal("0"),
        }])
    await db.commit()

    rows = await _answer_rows(db, started.attempt_id)
    assert len(rows) == 1
    assert rows[0].selected_option_id == seeded.correct_option_id
    assert rows[0].is_correct is True


@pytest.mark.asyncio
async def test_seal_applies_once(db, attempt_service, seeded):
    started = await attempt_service.start_attempt(db, seeded.quiz_id, STUDENT)
    repo = AttemptRepository()
    now = datetime.now(UTC)

    assert await repo.seal(db, started.attempt_id, Decimal("2"), now, 3) is True
    assert await repo.seal(db, started.attempt_id, Decimal("0"), now, 9) is False
    await db.commit()

    detail = await attempt_service.get_attempt(db, started.attempt_id, STUDENT)
    assert detail.score == Decimal("2")
    assert detail.duration_sec == 3


def test_elapsed_seconds_floors_and_clamps():
    start = datetime(2026, 10, 16, 9, 0, 0, tzinfo=UTC)

    assert elapsed_seconds(start, start + timedelta(seconds=61, milliseconds=900)) == 61
    assert elapsed_seconds(start, start - timedelta(seconds=5)) == 0
    # Naive values coming back from SQLite are read as UTC
    assert elapsed_seconds(start.replace(tzinfo=None), start + timedelta(seconds=2)) == 2


@pytest.mark.asyncio
async def test_racing_submissions_have_one_winner(locking_engine):
    factory = async_sessionmaker(locking_engine, expire_on_commit=False, class_=AsyncSession, autoflush=False)
    quiz_service = QuizService()

    async with factory() as session:
        quiz = await quiz_service.create_quiz(session, QuizCreate(title="Race", entity_id=3))
        created = await quiz_service.add_question(session, quiz.id, QuestionCreate(
            text="2+2=?",
            points=Decimal("2"),
            options=[OptionCreate(text="3"), OptionCreate(text="4")],
            correct_option_index=1
        ))
        started = await AttemptService().start_attempt(session, quiz.id, STUDENT)

    async def submit(option_id):
        async with factory() as session:
            return await AttemptService().submit_attempt(
                session, started.attempt_id, STUDENT, [answer(created.question_id, option_id)]
            )

    outcomes = await asyncio.gather(
        submit(created.correct_option_id),
        submit(created.option_ids[0]),
        return_exceptions=True
    )

    results = [o for o in outcomes if isinstance(o, AttemptResult)]
    rejected = [o for o in outcomes if isinstance(o, InvalidStateError)]
    assert len(results) == 1
    assert len(rejected) == 1

    async with factory() as session:
        detail = await AttemptService().get_attempt(session, started.attempt_id, STUDENT)
    assert detail.score == results[0].score
    assert len(detail.answers) == 1
    assert detail.answers[0].selected_option_id == results[0].answers[0].selected_option_id
