from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator


# ---- Каталог ----

class CourseCreate(BaseModel):
    title: str
    description: Optional[str] = None
    is_published: bool = False


class CourseOut(BaseModel):
    id: int
    title: str
    is_published: bool

    class Config:
        from_attributes = True


class TestSeriesCreate(BaseModel):
    title: str
    description: Optional[str] = None
    price: float = Field(default=0, ge=0)
    is_published: bool = False


class TestSeriesOut(BaseModel):
    id: int
    title: str
    price: float
    is_published: bool

    class Config:
        from_attributes = True


class EnrollmentIn(BaseModel):
    user_id: int


# ---- Вопросы: отдельная модель на каждый тип ----

class OptionIn(BaseModel):
    text: str
    is_correct: bool = False


class _QuestionBase(BaseModel):
    text: str
    points: int = Field(default=1, ge=0)
    explanation: Optional[str] = None


class MultipleChoiceQuestionIn(_QuestionBase):
    type: Literal["multiple_choice"]
    options: List[OptionIn]

    @field_validator("options")
    @classmethod
    def _check_options(cls, v: List[OptionIn]) -> List[OptionIn]:
        if len(v) < 2:
            raise ValueError("multiple_choice needs at least two options")
        if not any(o.is_correct for o in v):
            raise ValueError("multiple_choice needs at least one correct option")
        return v


class TrueFalseQuestionIn(_QuestionBase):
    type: Literal["true_false"]
    options: List[OptionIn]

    @field_validator("options")
    @classmethod
    def _check_options(cls, v: List[OptionIn]) -> List[OptionIn]:
        if len(v) != 2:
            raise ValueError("true_false needs exactly two options")
        if sum(1 for o in v if o.is_correct) != 1:
            raise ValueError("true_false needs exactly one correct option")
        return v


class ShortAnswerQuestionIn(_QuestionBase):
    type: Literal["short_answer"]
    correct_answer: str = Field(min_length=1)


class EssayQuestionIn(_QuestionBase):
    type: Literal["essay"]


QuestionIn = Annotated[
    Union[
        MultipleChoiceQuestionIn,
        TrueFalseQuestionIn,
        ShortAnswerQuestionIn,
        EssayQuestionIn,
    ],
    Field(discriminator="type"),
]


# ---- Тесты ----

class QuizCreate(BaseModel):
    title: str
    description: str = ""
    course_id: Optional[int] = None
    test_series_id: Optional[int] = None
    questions: List[QuestionIn] = []
    time_limit: int = Field(default=30, ge=0)
    passing_score: float = Field(default=70, ge=0, le=100)
    max_attempts: int = Field(default=0, ge=0)
    allow_review: bool = True
    is_published: bool = False
    quiz_type: Literal["quiz", "exam"] = "quiz"
    difficulty: Literal["easy", "medium", "hard"] = "medium"

    @model_validator(mode="after")
    def _single_parent(self) -> "QuizCreate":
        if (self.course_id is None) == (self.test_series_id is None):
            raise ValueError("quiz must belong to exactly one of course or test series")
        return self


# ---- Прохождение ----

class AnswerIn(BaseModel):
    question_id: int = Field(alias="questionId")
    selected_options: List[int] = Field(default_factory=list, alias="selectedOptions")
    text_answer: str = Field(default="", alias="textAnswer")

    class Config:
        populate_by_name = True

    @field_validator("selected_options", mode="before")
    @classmethod
    def _none_to_list(cls, v):
        return [] if v is None else v

    @field_validator("text_answer", mode="before")
    @classmethod
    def _none_to_str(cls, v):
        return "" if v is None else v


class SubmitIn(BaseModel):
    # None отличаем от пустого списка: без массива ответов, ошибка валидации
    answers: Optional[List[AnswerIn]] = None


class AttemptAnswerOut(BaseModel):
    question_id: int
    selected_option_ids: List[int]
    text_answer: str
    is_correct: Optional[bool]
    points_earned: float

    class Config:
        from_attributes = True


class AttemptOut(BaseModel):
    id: int
    quiz_id: int
    user_id: int
    start_time: datetime
    end_time: Optional[datetime]
    answers: List[AttemptAnswerOut]
    score: float
    max_score: float
    percentage: float
    is_passed: bool
    is_completed: bool
    time_spent: int

    class Config:
        from_attributes = True


class ScoreSummary(BaseModel):
    earned: float
    total: float
    percentage: float


class SubmitOut(BaseModel):
    attempt: AttemptOut
    is_passed: bool
    score: ScoreSummary


# ---- Рейтинг ----

class LeaderboardEntryOut(BaseModel):
    rank: int
    user_id: int
    name: str
    score: float
    percentage: float
    attempts: int
    completed_at: datetime


# ---- Уборка ----

class CleanupOldIn(BaseModel):
    days_old: int = Field(default=365, alias="daysOld")

    class Config:
        populate_by_name = True


class FullCleanupIn(BaseModel):
    cleanup_expired: bool = Field(default=True, alias="cleanupExpired")
    cleanup_old: bool = Field(default=False, alias="cleanupOld")
    old_attempts_days: int = Field(default=365, alias="oldAttemptsDays")

    class Config:
        populate_by_name = True


class AttemptStatistics(BaseModel):
    total_attempts: int
    completed_attempts: int
    incomplete_attempts: int
    average_score: float
