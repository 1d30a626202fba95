"""Рейтинг по тесту: лучшие результаты пользователей среди завершённых попыток."""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session, joinedload

from quizhub.attempts import get_quiz_or_404
from quizhub.config import settings
from quizhub.errors import ForbiddenError
from quizhub.models import QuizAttempt, User


@dataclass
class LeaderboardEntry:
    user_id: int
    name: str
    score: float
    percentage: float
    attempts: int
    completed_at: datetime
    rank: int = 0

    def as_dict(self) -> dict:
        return {
            "rank": self.rank,
            "user_id": self.user_id,
            "name": self.name,
            "score": self.score,
            "percentage": self.percentage,
            "attempts": self.attempts,
            "completed_at": self.completed_at,
        }


def _display_name(user: Optional[User], user_id: int) -> str:
    if user is None:
        return f"user #{user_id}"
    return user.full_name or user.email


def aggregate_attempts(attempts: Iterable[QuizAttempt]) -> List[LeaderboardEntry]:
    """
    Сводит попытки в одну строку на пользователя.

    Лучший балл и лучший процент считаются независимо, они могут быть
    из разных попыток. completed_at: время первой попытки с лучшим процентом.
    """
    by_user: Dict[int, List[QuizAttempt]] = {}
    for attempt in attempts:
        by_user.setdefault(attempt.user_id, []).append(attempt)

    entries: List[LeaderboardEntry] = []
    for user_id, items in by_user.items():
        best_score = max(a.score for a in items)
        best_percentage = max(a.percentage for a in items)
        completed_at = min(
            (a.end_time or a.start_time) for a in items if a.percentage == best_percentage
        )
        entries.append(
            LeaderboardEntry(
                user_id=user_id,
                name=_display_name(items[0].user, user_id),
                score=best_score,
                percentage=best_percentage,
                attempts=len(items),
                completed_at=completed_at,
            )
        )
    return entries


def rank_entries(entries: Iterable[LeaderboardEntry], limit: int) -> List[LeaderboardEntry]:
    """percentage desc, score desc, completed_at asc; места 1..N без общих мест."""
    ordered = sorted(entries, key=lambda e: (-e.percentage, -e.score, e.completed_at))[:limit]
    for position, entry in enumerate(ordered, start=1):
        entry.rank = position
    return ordered


def get_leaderboard(
    db: Session,
    quiz_id: int,
    user: User,
    limit: Optional[int] = None,
) -> List[LeaderboardEntry]:
    quiz = get_quiz_or_404(db, quiz_id)
    if not quiz.is_published and not user.is_admin:
        raise ForbiddenError("This quiz is not published")

    attempts = (
        db.query(QuizAttempt)
        .options(joinedload(QuizAttempt.user))
        .filter(QuizAttempt.quiz_id == quiz.id, QuizAttempt.is_completed.is_(True))
        .all()
    )
    return rank_entries(aggregate_attempts(attempts), limit or settings.LEADERBOARD_SIZE)
