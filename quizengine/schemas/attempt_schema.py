from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field, ConfigDict


class AnswerSubmission(BaseModel):
    question_id: int = Field(..., gt=0)
    selected_option_id: Optional[int] = Field(None, gt=0, description="Omit to leave the question unanswered")


class AttemptSubmission(BaseModel):
    answers: List[AnswerSubmission] = Field(..., min_length=1)


class AttemptStarted(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    attempt_id: int
    quiz_id: int
    student_id: int
    started_at: datetime


class AnswerResult(BaseModel):
    question_id: int
    selected_option_id: Optional[int]
    is_correct: bool
    points_awarded: Decimal


class AttemptResult(BaseModel):
    attempt_id: int
    quiz_id: int
    student_id: int
    score: Decimal
    submitted_at: datetime
    duration_sec: int
    answers: List[AnswerResult]


class AttemptAnswerDetail(BaseModel):
    question_id: int
    question_text: Optional[str]
    question_points: Optional[Decimal]
    selected_option_id: Optional[int]
    selected_option_text: Optional[str]
    is_correct: bool
    points_awarded: Decimal


class AttemptSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    quiz_id: int
    quiz_title: Optional[str] = None
    student_id: int
    status: str
    score: Decimal
    started_at: datetime
    submitted_at: Optional[datetime]
    duration_sec: Optional[int]


class AttemptDetail(AttemptSummary):
    answers: List[AttemptAnswerDetail] = []


class PaginationInfo(BaseModel):
    total_attempts: int
    total_pages: int
    current_page: int
    limit: int
    has_next_page: bool
    has_prev_page: bool


class AttemptPage(BaseModel):
    attempts: List[AttemptSummary]
    pagination: PaginationInfo


class QuizStats(BaseModel):
    quiz_id: int
    total_attempts: int = Field(..., ge=0)
    submitted_attempts: int = Field(..., ge=0)
    average_score: Decimal
    highest_score: Decimal
    lowest_score: Decimal
    average_duration_sec: Optional[float] = None
