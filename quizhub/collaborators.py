"""Внешние для движка попыток сервисы: прогресс по курсу и баллы.

Движок вызывает их после фиксации результата и сам ловит их ошибки,
поэтому здесь исключения просто пробрасываются.
"""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from quizhub.models import (
    CourseProgress,
    CourseProgressQuiz,
    PointTransaction,
    Quiz,
    UserPoints,
)

logger = logging.getLogger(__name__)


def notify_quiz_completed(db: Session, user_id: int, quiz: Quiz, percentage: float) -> None:
    """
    Отмечает тест пройденным в прогрессе курса.

    Для тестов из серий прогресс курса не ведётся.
    """
    if quiz.course_id is None:
        logger.debug("quiz %s is not part of a course, progress skipped", quiz.id)
        return

    progress = (
        db.query(CourseProgress)
        .filter(CourseProgress.user_id == user_id, CourseProgress.course_id == quiz.course_id)
        .first()
    )
    if progress is None:
        progress = CourseProgress(user_id=user_id, course_id=quiz.course_id, progress=0)
        db.add(progress)

    entry = next((q for q in progress.quizzes if q.quiz_id == quiz.id), None)
    if entry is None:
        progress.quizzes.append(CourseProgressQuiz(quiz_id=quiz.id, best_percentage=percentage))
    else:
        entry.best_percentage = max(entry.best_percentage or 0, percentage)

    total = db.query(Quiz).filter(Quiz.course_id == quiz.course_id).count()
    done = len(progress.quizzes)
    progress.progress = round(done / total * 100, 2) if total else 0
    progress.completed = total > 0 and done >= total
    progress.last_activity = datetime.utcnow()
    db.flush()


def award_points(db: Session, user_id: int, amount: int, category: str, description: str) -> None:
    points = db.query(UserPoints).filter(UserPoints.user_id == user_id).first()
    if points is None:
        points = UserPoints(user_id=user_id, total_points=0, quiz_points=0)
        db.add(points)

    points.total_points = (points.total_points or 0) + amount
    if category == "quiz":
        points.quiz_points = (points.quiz_points or 0) + amount
    points.updated_at = datetime.utcnow()

    db.add(
        PointTransaction(
            user_id=user_id,
            amount=amount,
            category=category,
            description=description,
        )
    )
    db.flush()
    logger.info("awarded %s %s points to user %s", amount, category, user_id)
