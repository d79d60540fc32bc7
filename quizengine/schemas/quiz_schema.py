from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field, ConfigDict, field_validator

from quizengine.models.quiz import ContentEntityType


class QuizBase(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    entity_type: Optional[ContentEntityType] = Field(None, description="Kind of content node the quiz is attached to")
    time_limit_sec: Optional[int] = Field(None, gt=0, description="Advisory time limit in seconds")


class QuizCreate(QuizBase):
    entity_id: int = Field(..., gt=0, description="Identifier of the content node")
    is_active: bool = True
    display_order: int = Field(0, ge=0)


class QuizUpdate(QuizBase):
    entity_id: Optional[int] = Field(None, gt=0)
    is_active: Optional[bool] = None
    display_order: Optional[int] = Field(None, ge=0)

    @field_validator("entity_id", "is_active", "display_order")
    @classmethod
    def not_null(cls, v, info):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v


class QuizPublish(BaseModel):
    is_active: bool


class OptionCreate(BaseModel):
    text: str = Field(..., min_length=1)


class OptionUpdate(BaseModel):
    text: Optional[str] = Field(None, min_length=1)
    display_order: Optional[int] = Field(None, ge=0)

    @field_validator("text", "display_order")
    @classmethod
    def not_null(cls, v, info):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v


class QuestionCreate(BaseModel):
    text: str = Field(..., min_length=1, description="Question text")
    points: Decimal = Field(Decimal("1.0"), gt=0, max_digits=6, decimal_places=2)
    options: List[OptionCreate] = Field(..., min_length=2, description="Answer options in display order")
    correct_option_index: int = Field(..., ge=0, description="Zero-based index of the correct option")


class QuestionUpdate(BaseModel):
    text: Optional[str] = Field(None, min_length=1)
    points: Optional[Decimal] = Field(None, gt=0, max_digits=6, decimal_places=2)

    @field_validator("text", "points")
    @classmethod
    def not_null(cls, v, info):
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v


class CorrectOptionUpdate(BaseModel):
    correct_option_id: Optional[int] = Field(..., gt=0, description="Option to mark correct, or null to clear")


class OptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    question_id: int
    text: str
    display_order: int


class QuestionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    quiz_id: int
    text: str
    points: Decimal
    display_order: int
    correct_option_id: Optional[int]
    options: List[OptionResponse] = []


class QuestionCreated(BaseModel):
    question_id: int
    option_ids: List[int]
    correct_option_id: int


class CorrectOptionResponse(BaseModel):
    question_id: int
    correct_option_id: Optional[int]


class QuizResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: Optional[str]
    entity_type: Optional[ContentEntityType]
    entity_id: int
    time_limit_sec: Optional[int]
    is_active: bool
    display_order: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class QuizDetailResponse(QuizResponse):
    questions: List[QuestionResponse] = []


# Play projection: no correctness data and no attempt data, by construction

class PlayOption(BaseModel):
    id: int
    text: str


class PlayQuestion(BaseModel):
    id: int
    text: str
    points: Decimal
    options: List[PlayOption]


class PlayQuiz(BaseModel):
    id: int
    title: Optional[str]
    entity_type: Optional[ContentEntityType]
    entity_id: int
    time_limit_sec: Optional[int]
    questions: List[PlayQuestion]
