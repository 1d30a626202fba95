import os

# до импорта quizhub: БД в памяти и без фонового планировщика
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CLEANUP_SCHEDULER_ENABLED", "false")

from datetime import datetime, timedelta
from itertools import count
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from quizhub import models
from quizhub.database import Base, get_db
from quizhub.main import app
from quizhub.security import create_token

T0 = datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


class Factory:
    """Быстрое создание пользователей, курсов, серий и тестов в БД."""

    def __init__(self, db):
        self.db = db
        self._seq = count(1)

    def user(self, role: str = models.UserRole.STUDENT, full_name: Optional[str] = None) -> models.User:
        n = next(self._seq)
        user = models.User(
            email=f"user{n}@example.com",
            full_name=full_name,
            password_hash="x",
            role=role,
        )
        self.db.add(user)
        self.db.commit()
        return user

    def course(self) -> models.Course:
        course = models.Course(title="Geography", is_published=True)
        self.db.add(course)
        self.db.commit()
        return course

    def series(self, price: float = 0, published: bool = True) -> models.TestSeries:
        series = models.TestSeries(title="Mock exams", price=price, is_published=published)
        self.db.add(series)
        self.db.commit()
        return series

    def enroll(self, series: models.TestSeries, user: models.User) -> None:
        self.db.add(models.TestSeriesEnrollment(test_series_id=series.id, user_id=user.id))
        self.db.commit()

    def quiz(
        self,
        course: Optional[models.Course] = None,
        series: Optional[models.TestSeries] = None,
        time_limit: int = 30,
        passing_score: float = 70,
        max_attempts: int = 0,
        published: bool = True,
        allow_review: bool = True,
        creator: Optional[models.User] = None,
    ) -> models.Quiz:
        if course is None and series is None:
            course = self.course()

        quiz = models.Quiz(
            title="Capitals",
            description="European capitals",
            course_id=course.id if course else None,
            test_series_id=series.id if series else None,
            time_limit=time_limit,
            passing_score=passing_score,
            max_attempts=max_attempts,
            is_published=published,
            allow_review=allow_review,
            creator_id=creator.id if creator else None,
        )

        mc = models.Question(position=0, text="Pick capitals", question_type="multiple_choice", points=2)
        mc.options = [
            models.QuestionOption(position=0, text="Paris", is_correct=True),
            models.QuestionOption(position=1, text="Berlin", is_correct=True),
            models.QuestionOption(position=2, text="Sydney", is_correct=False),
        ]
        tf = models.Question(position=1, text="Rome is in Italy", question_type="true_false", points=1)
        tf.options = [
            models.QuestionOption(position=0, text="True", is_correct=True),
            models.QuestionOption(position=1, text="False", is_correct=False),
        ]
        sa = models.Question(
            position=2,
            text="Capital of France?",
            question_type="short_answer",
            points=1,
            correct_answer="Paris",
        )
        essay = models.Question(position=3, text="Describe Lisbon", question_type="essay", points=1)
        quiz.questions = [mc, tf, sa, essay]

        self.db.add(quiz)
        self.db.commit()
        return quiz


@pytest.fixture
def factory(db):
    return Factory(db)


def question_by_type(quiz: models.Quiz, question_type: str) -> models.Question:
    return next(q for q in quiz.questions if q.question_type == question_type)


def option_ids(question: models.Question, correct: Optional[bool] = None) -> list:
    return [o.id for o in question.options if correct is None or o.is_correct == correct]


@pytest.fixture
def helpers():
    class Helpers:
        T0 = T0
        by_type = staticmethod(question_by_type)
        options = staticmethod(option_ids)

        @staticmethod
        def minutes(n: float) -> timedelta:
            return timedelta(minutes=n)

    return Helpers


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def make(user: models.User) -> dict:
        return {"Authorization": f"Bearer {create_token(user.id, user.role)}"}

    return make
