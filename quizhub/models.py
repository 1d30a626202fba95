from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship, Mapped

from .database import Base


class UserRole(str):
    ADMIN = "admin"
    TEACHER = "teacher"
    STUDENT = "student"


class QuestionType(str):
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"
    ESSAY = "essay"


QUESTION_TYPES = (
    QuestionType.MULTIPLE_CHOICE,
    QuestionType.TRUE_FALSE,
    QuestionType.SHORT_ANSWER,
    QuestionType.ESSAY,
)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)
    email: Mapped[str] = Column(String, unique=True, index=True, nullable=False)
    full_name: Mapped[Optional[str]] = Column(String, nullable=True)
    password_hash: Mapped[str] = Column(String, nullable=False)
    role: Mapped[str] = Column(
        Enum(UserRole.ADMIN, UserRole.TEACHER, UserRole.STUDENT, name="user_roles"),
        nullable=False,
        default=UserRole.STUDENT,
    )
    created_at: Mapped[datetime] = Column(DateTime, default=datetime.utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


# ---------- КАТАЛОГ: КУРСЫ И СЕРИИ ТЕСТОВ ----------


class Course(Base):
    __tablename__ = "courses"

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)
    title: Mapped[str] = Column(String, nullable=False)
    description: Mapped[Optional[str]] = Column(Text, nullable=True)
    is_published: Mapped[bool] = Column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = Column(DateTime, default=datetime.utcnow)

    quizzes: Mapped[List["Quiz"]] = relationship("Quiz", back_populates="course")


class TestSeries(Base):
    __tablename__ = "test_series"

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)
    title: Mapped[str] = Column(String, nullable=False)
    description: Mapped[Optional[str]] = Column(Text, nullable=True)
    is_published: Mapped[bool] = Column(Boolean, default=False, nullable=False)
    # 0 — бесплатная серия, иначе её нужно купить
    price: Mapped[float] = Column(Float, default=0, nullable=False)
    created_at: Mapped[datetime] = Column(DateTime, default=datetime.utcnow)

    quizzes: Mapped[List["Quiz"]] = relationship("Quiz", back_populates="test_series")
    enrollments: Mapped[List["TestSeriesEnrollment"]] = relationship(
        "TestSeriesEnrollment",
        back_populates="test_series",
        cascade="all,delete-orphan",
    )

    @property
    def is_paid(self) -> bool:
        return (self.price or 0) > 0

    def is_enrolled(self, user_id: int) -> bool:
        return any(e.user_id == user_id for e in self.enrollments)


class TestSeriesEnrollment(Base):
    __tablename__ = "test_series_enrollments"

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)
    test_series_id: Mapped[int] = Column(
        Integer, ForeignKey("test_series.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    enrolled_at: Mapped[datetime] = Column(DateTime, default=datetime.utcnow)

    test_series: Mapped[TestSeries] = relationship("TestSeries", back_populates="enrollments")

    __table_args__ = (
        UniqueConstraint("test_series_id", "user_id", name="uq_series_enrollment"),
    )


# ---------- ТЕСТЫ И ВОПРОСЫ ----------


class Quiz(Base):
    __tablename__ = "quizzes"

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)
    title: Mapped[str] = Column(String, nullable=False)
    description: Mapped[Optional[str]] = Column(Text, nullable=True)

    # ровно один родитель: курс или серия тестов
    course_id: Mapped[Optional[int]] = Column(
        Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=True, index=True
    )
    test_series_id: Mapped[Optional[int]] = Column(
        Integer, ForeignKey("test_series.id", ondelete="CASCADE"), nullable=True, index=True
    )

    # лимит времени в минутах, 0 — без ограничения
    time_limit: Mapped[int] = Column(Integer, default=30, nullable=False)
    # проходной балл в процентах
    passing_score: Mapped[float] = Column(Float, default=70, nullable=False)
    is_published: Mapped[bool] = Column(Boolean, default=False, nullable=False)
    allow_review: Mapped[bool] = Column(Boolean, default=True, nullable=False)
    # 0 — неограниченное число попыток
    max_attempts: Mapped[int] = Column(Integer, default=0, nullable=False)
    quiz_type: Mapped[str] = Column(String, default="quiz", nullable=False)
    difficulty: Mapped[str] = Column(String, default="medium", nullable=False)

    creator_id: Mapped[Optional[int]] = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = Column(DateTime, default=datetime.utcnow)

    creator: Mapped[Optional[User]] = relationship("User")
    course: Mapped[Optional[Course]] = relationship("Course", back_populates="quizzes")
    test_series: Mapped[Optional[TestSeries]] = relationship(
        "TestSeries", back_populates="quizzes"
    )

    questions: Mapped[List["Question"]] = relationship(
        "Question",
        back_populates="quiz",
        cascade="all,delete-orphan",
        order_by="Question.position",
    )

    __table_args__ = (
        CheckConstraint(
            "(course_id IS NULL) <> (test_series_id IS NULL)",
            name="ck_quiz_single_parent",
        ),
    )

    @property
    def total_points(self) -> int:
        return sum(q.points or 0 for q in self.questions)


class Question(Base):
    __tablename__ = "questions"

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)
    quiz_id: Mapped[int] = Column(
        Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = Column(Integer, nullable=False, default=0)

    text: Mapped[str] = Column(Text, nullable=False)
    question_type: Mapped[str] = Column(
        "type",
        Enum(*QUESTION_TYPES, name="question_types", validate_strings=False),
        nullable=False,
        default=QuestionType.MULTIPLE_CHOICE,
    )
    points: Mapped[int] = Column(Integer, nullable=False, default=1)
    # только для short_answer
    correct_answer: Mapped[Optional[str]] = Column(Text, nullable=True)
    explanation: Mapped[Optional[str]] = Column(Text, nullable=True)

    quiz: Mapped[Quiz] = relationship("Quiz", back_populates="questions")

    # варианты ответа (для multiple_choice / true_false)
    options: Mapped[List["QuestionOption"]] = relationship(
        "QuestionOption",
        back_populates="question",
        cascade="all,delete-orphan",
        order_by="QuestionOption.position",
    )

    __table_args__ = (
        CheckConstraint("points >= 0", name="ck_question_points"),
    )


class QuestionOption(Base):
    __tablename__ = "question_options"

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)
    question_id: Mapped[int] = Column(
        Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = Column(Integer, nullable=False, default=0)

    text: Mapped[str] = Column(Text, nullable=False)
    is_correct: Mapped[bool] = Column(Boolean, default=False, nullable=False)

    question: Mapped[Question] = relationship("Question", back_populates="options")


# ---------- ПОПЫТКИ ----------


class QuizAttempt(Base):
    __tablename__ = "quiz_attempts"

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)
    # удаление теста явно удаляет его попытки (attempts.delete_quiz),
    # связь без каскада, чтобы сироты находила почасовая уборка
    quiz_id: Mapped[int] = Column(
        Integer, ForeignKey("quizzes.id"), nullable=False, index=True
    )
    user_id: Mapped[int] = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    start_time: Mapped[datetime] = Column(DateTime, default=datetime.utcnow, nullable=False)
    end_time: Mapped[Optional[datetime]] = Column(DateTime, nullable=True)

    score: Mapped[float] = Column(Float, default=0, nullable=False)
    max_score: Mapped[float] = Column(Float, default=0, nullable=False)
    percentage: Mapped[float] = Column(Float, default=0, nullable=False)
    is_passed: Mapped[bool] = Column(Boolean, default=False, nullable=False)
    is_completed: Mapped[bool] = Column(Boolean, default=False, nullable=False)
    # в секундах
    time_spent: Mapped[int] = Column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = Column(DateTime, default=datetime.utcnow)

    quiz: Mapped[Optional[Quiz]] = relationship("Quiz")
    user: Mapped[User] = relationship("User")

    answers: Mapped[List["AttemptAnswer"]] = relationship(
        "AttemptAnswer",
        back_populates="attempt",
        cascade="all,delete-orphan",
        order_by="AttemptAnswer.position",
    )

    __table_args__ = (
        # не больше одной незавершённой попытки на (тест, пользователь)
        Index(
            "uq_attempt_open_per_user",
            "quiz_id",
            "user_id",
            unique=True,
            sqlite_where=text("is_completed = 0"),
            postgresql_where=text("NOT is_completed"),
        ),
        Index("ix_attempt_quiz_completed", "quiz_id", "is_completed"),
    )


class AttemptAnswer(Base):
    __tablename__ = "attempt_answers"

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)
    attempt_id: Mapped[int] = Column(
        Integer,
        ForeignKey("quiz_attempts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # порядок, в котором ответы пришли от клиента
    position: Mapped[int] = Column(Integer, nullable=False, default=0)
    question_id: Mapped[int] = Column(Integer, nullable=False)

    selected_option_ids: Mapped[list] = Column(JSON, nullable=False, default=list)
    text_answer: Mapped[str] = Column(Text, nullable=False, default="")

    # None — ожидает ручной проверки (эссе)
    is_correct: Mapped[Optional[bool]] = Column(Boolean, nullable=True)
    points_earned: Mapped[float] = Column(Float, default=0, nullable=False)

    attempt: Mapped[QuizAttempt] = relationship("QuizAttempt", back_populates="answers")


# ---------- ПРОГРЕСС И БАЛЛЫ (внешние сервисы) ----------


class CourseProgress(Base):
    __tablename__ = "course_progress"

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    course_id: Mapped[int] = Column(
        Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    progress: Mapped[float] = Column(Float, default=0, nullable=False)
    completed: Mapped[bool] = Column(Boolean, default=False, nullable=False)
    last_activity: Mapped[datetime] = Column(DateTime, default=datetime.utcnow)

    quizzes: Mapped[List["CourseProgressQuiz"]] = relationship(
        "CourseProgressQuiz",
        back_populates="course_progress",
        cascade="all,delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_course_progress"),
    )


class CourseProgressQuiz(Base):
    __tablename__ = "course_progress_quizzes"

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)
    course_progress_id: Mapped[int] = Column(
        Integer,
        ForeignKey("course_progress.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    quiz_id: Mapped[int] = Column(Integer, nullable=False)
    best_percentage: Mapped[float] = Column(Float, default=0, nullable=False)

    course_progress: Mapped[CourseProgress] = relationship(
        "CourseProgress", back_populates="quizzes"
    )

    __table_args__ = (
        UniqueConstraint("course_progress_id", "quiz_id", name="uq_progress_quiz"),
    )


class UserPoints(Base):
    __tablename__ = "user_points"

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    total_points: Mapped[int] = Column(Integer, default=0, nullable=False)
    quiz_points: Mapped[int] = Column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = Column(DateTime, default=datetime.utcnow)


class PointTransaction(Base):
    __tablename__ = "point_transactions"

    id: Mapped[int] = Column(Integer, primary_key=True, index=True)
    user_id: Mapped[int] = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[int] = Column(Integer, nullable=False)
    category: Mapped[str] = Column(String, nullable=False)
    description: Mapped[Optional[str]] = Column(Text, nullable=True)
    created_at: Mapped[datetime] = Column(DateTime, default=datetime.utcnow)
