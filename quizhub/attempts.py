"""Жизненный цикл попытки прохождения теста.

NotStarted -> InProgress -> (истекла: удалить и начать заново) -> Completed.

"Истекла" в базе не хранится: это вычисляется на лету при старте
(попытка пересоздаётся) или при сдаче (принимается, только если есть ответы).
Единственное конечное состояние: завершённая попытка, её уже не меняем.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import ObjectDeletedError, StaleDataError

from quizhub import collaborators
from quizhub.cleanup import cleanup_expired_attempts
from quizhub.config import settings
from quizhub.errors import (
    ConflictError,
    ExpiredError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from quizhub.models import AttemptAnswer, Quiz, QuizAttempt, User
from quizhub.scoring import grade_submission, reward_points_for

logger = logging.getLogger(__name__)

ATTEMPT_GONE_MESSAGE = "Quiz attempt not found or has expired"
ALREADY_SUBMITTED_MESSAGE = "This quiz attempt has already been submitted"


@dataclass
class SubmitResult:
    attempt: QuizAttempt
    earned: float
    total: float
    percentage: float
    is_passed: bool


# ---------- ВСПОМОГАТЕЛЬНЫЕ ФУНКЦИИ ----------


def get_quiz_or_404(db: Session, quiz_id: int) -> Quiz:
    quiz = db.get(Quiz, quiz_id)
    if not quiz:
        raise NotFoundError("Quiz not found")
    return quiz


def can_manage_quiz(quiz: Quiz, user: User) -> bool:
    return user.is_admin or (quiz.creator_id is not None and quiz.creator_id == user.id)


def _check_series_access(quiz: Quiz, user: User) -> None:
    series = quiz.test_series
    if series is None:
        return
    if not series.is_published:
        raise ForbiddenError("This test series is not published yet")
    if not series.is_enrolled(user.id):
        if series.is_paid:
            raise ForbiddenError(
                f'You need to purchase the test series "{series.title}" to access this quiz'
            )
        raise ForbiddenError(
            f'You need to enroll in the test series "{series.title}" to access this quiz'
        )


def _find_open_attempt(db: Session, quiz_id: int, user_id: int) -> Optional[QuizAttempt]:
    return (
        db.query(QuizAttempt)
        .filter(
            QuizAttempt.quiz_id == quiz_id,
            QuizAttempt.user_id == user_id,
            QuizAttempt.is_completed.is_(False),
        )
        .order_by(QuizAttempt.id.desc())
        .first()
    )


def _is_overdue(quiz: Quiz, attempt: QuizAttempt, now: datetime, grace_minutes: int = 0) -> bool:
    if not quiz.time_limit or quiz.time_limit <= 0:
        return False
    return now - attempt.start_time >= timedelta(minutes=quiz.time_limit + grace_minutes)


def _run_expiry_sweep(db: Session, now: datetime) -> None:
    try:
        cleanup_expired_attempts(db, now=now)
    except Exception:
        db.rollback()
        logger.exception("expiry sweep before attempt start failed")


def _raise_lost_attempt(db: Session, attempt_id: int) -> None:
    """Попытку не удалось заморозить: её удалили или уже сдали."""
    exists = db.query(QuizAttempt.id).filter(QuizAttempt.id == attempt_id).first()
    if exists is None:
        raise NotFoundError(ATTEMPT_GONE_MESSAGE)
    raise ConflictError(ALREADY_SUBMITTED_MESSAGE)


def _best_effort(name: str, fn: Callable[..., Any], db: Session, *args: Any) -> None:
    """Побочный эффект после фиксации результата: ошибки только логируем."""
    try:
        fn(db, *args)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("%s update failed", name)


# ---------- СТАРТ ----------


def start_attempt(
    db: Session,
    quiz_id: int,
    user: User,
    now: Optional[datetime] = None,
) -> Tuple[QuizAttempt, bool]:
    """
    Начать или продолжить попытку.

    Возвращает (попытка, создана_ли_новая). Повторный вызов до истечения
    времени отдаёт ту же незавершённую попытку.
    """
    now = now or datetime.utcnow()

    quiz = get_quiz_or_404(db, quiz_id)
    if not quiz.is_published:
        raise ForbiddenError("This quiz is not available for attempts")

    _check_series_access(quiz, user)

    if quiz.max_attempts and quiz.max_attempts > 0:
        completed = (
            db.query(QuizAttempt)
            .filter(
                QuizAttempt.quiz_id == quiz.id,
                QuizAttempt.user_id == user.id,
                QuizAttempt.is_completed.is_(True),
            )
            .count()
        )
        if completed >= quiz.max_attempts:
            raise ForbiddenError(
                f"You have reached the maximum number of attempts ({quiz.max_attempts}) for this quiz"
            )

    # зависшие попытки не должны мешать новому старту
    _run_expiry_sweep(db, now)

    existing = _find_open_attempt(db, quiz.id, user.id)
    if existing is not None:
        if not _is_overdue(quiz, existing, now, settings.START_GRACE_MINUTES):
            return existing, False
        logger.info(
            "attempt %s for quiz %s is past its time limit, starting over",
            existing.id,
            quiz.id,
        )
        db.delete(existing)
        # DELETE должен уйти раньше INSERT из-за уникального индекса
        db.flush()

    attempt = QuizAttempt(
        quiz_id=quiz.id,
        user_id=user.id,
        start_time=now,
        score=0,
        max_score=quiz.total_points,
        percentage=0,
        is_passed=False,
        is_completed=False,
        time_spent=0,
    )
    db.add(attempt)
    try:
        db.commit()
    except IntegrityError:
        # параллельный старт того же пользователя успел раньше
        db.rollback()
        winner = _find_open_attempt(db, quiz.id, user.id)
        if winner is None:
            raise
        return winner, False

    db.refresh(attempt)
    logger.info("user %s started attempt %s for quiz %s", user.id, attempt.id, quiz.id)
    return attempt, True


# ---------- СДАЧА ----------


def submit_attempt(
    db: Session,
    attempt_id: int,
    user: User,
    answers: Optional[Sequence[Any]],
    now: Optional[datetime] = None,
    progress_hook: Optional[Callable[..., None]] = None,
    points_hook: Optional[Callable[..., None]] = None,
) -> SubmitResult:
    """
    Проверить ответы и заморозить попытку.

    answers: объекты с полями question_id / selected_options / text_answer,
    порядок сохраняется. Прогресс курса и баллы обновляются уже после
    коммита и не могут откатить результат.
    """
    now = now or datetime.utcnow()
    progress_hook = progress_hook or collaborators.notify_quiz_completed
    points_hook = points_hook or collaborators.award_points

    if answers is None:
        raise ValidationError("Answers are required")

    attempt = db.get(QuizAttempt, attempt_id)
    if not attempt:
        # попытку могла удалить уборка, повторять запрос бессмысленно
        raise NotFoundError(ATTEMPT_GONE_MESSAGE)

    if attempt.user_id != user.id:
        raise ForbiddenError("You don't have permission to submit this attempt")

    if attempt.is_completed:
        raise ConflictError(ALREADY_SUBMITTED_MESSAGE)

    quiz = attempt.quiz
    if quiz is None:
        raise NotFoundError("Quiz not found")

    time_limit = quiz.time_limit or 0
    if time_limit > 0 and now - attempt.start_time > timedelta(minutes=time_limit):
        if not answers:
            raise ExpiredError()
        logger.info("attempt %s submitted after the time limit, scoring as auto-submit", attempt.id)

    graded = grade_submission(quiz.questions, answers)
    percentage = graded.percentage
    is_passed = percentage >= (quiz.passing_score or 0)

    quiz_title = quiz.title

    # замораживаем только ещё открытую попытку: параллельная сдача
    # или удаление уборкой дают 0 обновлённых строк
    claimed = (
        db.query(QuizAttempt)
        .filter(QuizAttempt.id == attempt_id, QuizAttempt.is_completed.is_(False))
        .update(
            {
                "end_time": now,
                "score": graded.earned,
                "max_score": graded.total,
                "percentage": percentage,
                "is_passed": is_passed,
                "is_completed": True,
                "time_spent": int((now - attempt.start_time).total_seconds()),
            },
            synchronize_session=False,
        )
    )
    if claimed != 1:
        db.rollback()
        _raise_lost_attempt(db, attempt_id)

    db.add_all(
        AttemptAnswer(
            attempt_id=attempt_id,
            position=i,
            question_id=a.question_id,
            selected_option_ids=a.selected_option_ids,
            text_answer=a.text_answer,
            is_correct=a.is_correct,
            points_earned=a.points_earned,
        )
        for i, a in enumerate(graded.answers)
    )
    try:
        db.commit()
    except (StaleDataError, ObjectDeletedError):
        db.rollback()
        raise NotFoundError(ATTEMPT_GONE_MESSAGE)
    logger.info(
        "user %s submitted attempt %s: %s/%s (%.1f%%)",
        user.id,
        attempt_id,
        graded.earned,
        graded.total,
        percentage,
    )

    _best_effort("course progress", progress_hook, db, user.id, quiz, percentage)
    if is_passed:
        _best_effort(
            "reward points",
            points_hook,
            db,
            user.id,
            reward_points_for(percentage),
            "quiz",
            f"Completed {quiz_title} with {percentage:.1f}% score",
        )

    db.refresh(attempt)
    return SubmitResult(
        attempt=attempt,
        earned=graded.earned,
        total=graded.total,
        percentage=percentage,
        is_passed=is_passed,
    )


# ---------- ЧТЕНИЕ ----------


def get_attempt_for_viewer(db: Session, attempt_id: int, user: User) -> Tuple[QuizAttempt, bool]:
    """
    Попытка для владельца или админа.

    Второе значение: можно ли показывать правильные ответы: админу всегда,
    владельцу только после завершения и если тест разрешает разбор.
    """
    attempt = db.get(QuizAttempt, attempt_id)
    if not attempt:
        raise NotFoundError("Quiz attempt not found")

    if attempt.user_id != user.id and not user.is_admin:
        raise ForbiddenError("You don't have permission to view this attempt")

    quiz = attempt.quiz
    reveal = user.is_admin or bool(quiz and attempt.is_completed and quiz.allow_review)
    return attempt, reveal


def list_quiz_attempts(db: Session, quiz_id: int, user: User) -> List[QuizAttempt]:
    quiz = get_quiz_or_404(db, quiz_id)
    if not can_manage_quiz(quiz, user):
        raise ForbiddenError("You don't have permission to view these attempts")

    return (
        db.query(QuizAttempt)
        .filter(QuizAttempt.quiz_id == quiz.id)
        .order_by(QuizAttempt.created_at.desc(), QuizAttempt.id.desc())
        .all()
    )


def list_user_attempts(db: Session, quiz_id: int, user: User) -> List[QuizAttempt]:
    quiz = get_quiz_or_404(db, quiz_id)
    return (
        db.query(QuizAttempt)
        .filter(QuizAttempt.quiz_id == quiz.id, QuizAttempt.user_id == user.id)
        .order_by(QuizAttempt.created_at.desc(), QuizAttempt.id.desc())
        .all()
    )


def delete_quiz(db: Session, quiz_id: int, user: User) -> int:
    """Удаляет тест вместе с попытками. Возвращает число удалённых попыток."""
    quiz = get_quiz_or_404(db, quiz_id)
    if not can_manage_quiz(quiz, user):
        raise ForbiddenError("You don't have permission to delete this quiz")

    attempts = db.query(QuizAttempt).filter(QuizAttempt.quiz_id == quiz.id).all()
    for attempt in attempts:
        db.delete(attempt)
    db.flush()

    db.delete(quiz)
    db.commit()
    logger.info("deleted quiz %s with %s attempts", quiz_id, len(attempts))
    return len(attempts)


# ---------- ПРЕДСТАВЛЕНИЕ ТЕСТА ----------


def quiz_payload(quiz: Quiz, reveal_answers: bool = False) -> Dict[str, Any]:
    """
    Тест для клиента. Без reveal_answers поля is_correct / correct_answer
    не попадают в ответ вообще.
    """
    questions = []
    for q in quiz.questions:
        item: Dict[str, Any] = {
            "id": q.id,
            "text": q.text,
            "type": q.question_type,
            "points": q.points,
            "options": [],
        }
        for opt in q.options:
            option: Dict[str, Any] = {"id": opt.id, "text": opt.text}
            if reveal_answers:
                option["is_correct"] = opt.is_correct
            item["options"].append(option)
        if reveal_answers:
            item["correct_answer"] = q.correct_answer
            item["explanation"] = q.explanation
        questions.append(item)

    return {
        "id": quiz.id,
        "title": quiz.title,
        "description": quiz.description,
        "course_id": quiz.course_id,
        "test_series_id": quiz.test_series_id,
        "time_limit": quiz.time_limit,
        "passing_score": quiz.passing_score,
        "max_attempts": quiz.max_attempts,
        "is_published": quiz.is_published,
        "allow_review": quiz.allow_review,
        "quiz_type": quiz.quiz_type,
        "difficulty": quiz.difficulty,
        "total_points": quiz.total_points,
        "questions": questions,
    }
