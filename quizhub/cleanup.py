"""Уборка попыток.

- cleanup_expired_attempts: удаляет незавершённые попытки, у которых тест
  удалён или давно вышло время (лимит + grace-период уборки);
- cleanup_old_completed_attempts: удаляет завершённые попытки старше N дней;
- get_attempt_statistics: сводка по всем попыткам.

Каждая попытка удаляется отдельной транзакцией: ошибка на одной
не прерывает уборку остальных.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from quizhub.config import settings
from quizhub.errors import ValidationError
from quizhub.models import QuizAttempt

logger = logging.getLogger(__name__)


def elapsed_minutes(start_time: datetime, now: datetime) -> int:
    """Полные минуты с начала попытки."""
    return int((now - start_time).total_seconds() // 60)


def _delete_attempt(db: Session, attempt: QuizAttempt) -> bool:
    attempt_id = attempt.id
    try:
        db.delete(attempt)
        db.commit()
        return True
    except Exception:
        db.rollback()
        logger.exception("failed to delete quiz attempt %s", attempt_id)
        return False


def cleanup_expired_attempts(
    db: Session,
    now: Optional[datetime] = None,
    grace_minutes: Optional[int] = None,
) -> int:
    """
    Удаляет брошенные незавершённые попытки.

    Возвращает число реально удалённых попыток.
    """
    now = now or datetime.utcnow()
    if grace_minutes is None:
        grace_minutes = settings.SWEEP_GRACE_MINUTES

    logger.info("starting cleanup of expired quiz attempts")
    attempts = db.query(QuizAttempt).filter(QuizAttempt.is_completed.is_(False)).all()

    cleaned = 0
    for attempt in attempts:
        attempt_id = attempt.id
        quiz = attempt.quiz
        if quiz is None:
            # тест удалён, попытка осиротела
            if _delete_attempt(db, attempt):
                cleaned += 1
                logger.info("removed orphaned attempt %s", attempt_id)
            continue

        if not quiz.time_limit or quiz.time_limit <= 0:
            continue

        elapsed = elapsed_minutes(attempt.start_time, now)
        allowed = quiz.time_limit + grace_minutes
        if elapsed > allowed:
            title = quiz.title
            if _delete_attempt(db, attempt):
                cleaned += 1
                logger.info(
                    "removed expired attempt %s for quiz %r (elapsed: %smin, limit: %smin)",
                    attempt_id,
                    title,
                    elapsed,
                    allowed,
                )

    logger.info("cleanup completed, removed %s expired attempts", cleaned)
    return cleaned


def check_retention_days(days_old: int) -> None:
    if days_old < settings.RETENTION_FLOOR_DAYS:
        raise ValidationError(
            f"Cannot delete attempts newer than {settings.RETENTION_FLOOR_DAYS} days"
        )


def cleanup_old_completed_attempts(
    db: Session,
    days_old: Optional[int] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Удаляет завершённые попытки, закончившиеся раньше, чем days_old дней назад.
    """
    if days_old is None:
        days_old = settings.RETENTION_DAYS
    check_retention_days(days_old)

    now = now or datetime.utcnow()
    cutoff = now - timedelta(days=days_old)
    logger.info("starting cleanup of completed attempts older than %s days", days_old)

    attempts = (
        db.query(QuizAttempt)
        .filter(QuizAttempt.is_completed.is_(True), QuizAttempt.end_time < cutoff)
        .all()
    )
    cleaned = sum(1 for attempt in attempts if _delete_attempt(db, attempt))

    logger.info("cleanup completed, removed %s old completed attempts", cleaned)
    return cleaned


def get_attempt_statistics(db: Session) -> Dict[str, Any]:
    total, completed, average = db.query(
        func.count(QuizAttempt.id),
        func.sum(case((QuizAttempt.is_completed.is_(True), 1), else_=0)),
        func.avg(case((QuizAttempt.is_completed.is_(True), QuizAttempt.percentage), else_=None)),
    ).one()

    total = total or 0
    completed = int(completed or 0)
    return {
        "total_attempts": total,
        "completed_attempts": completed,
        "incomplete_attempts": total - completed,
        "average_score": float(average or 0),
    }


def perform_manual_cleanup(
    db: Session,
    cleanup_expired: bool = True,
    cleanup_old: bool = False,
    old_attempts_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Ручная уборка для админки: выбранные проходы + свежая статистика."""
    if old_attempts_days is None:
        old_attempts_days = settings.RETENTION_DAYS
    if cleanup_old:
        # проверяем до любых удалений
        check_retention_days(old_attempts_days)

    results: Dict[str, Any] = {"expired_cleaned": 0, "old_cleaned": 0, "statistics": None}

    if cleanup_expired:
        results["expired_cleaned"] = cleanup_expired_attempts(db, now=now)
    if cleanup_old:
        results["old_cleaned"] = cleanup_old_completed_attempts(db, old_attempts_days, now=now)

    results["statistics"] = get_attempt_statistics(db)
    return results
