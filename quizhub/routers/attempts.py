from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from quizhub import attempts as attempt_service
from quizhub.database import get_db
from quizhub.deps import get_current_user
from quizhub.models import User
from quizhub.schemas import AttemptOut, ScoreSummary, SubmitIn, SubmitOut

router = APIRouter(prefix="/quizzes", tags=["attempts"])


def _attempt_view(attempt, reveal: bool) -> dict:
    """Без разбора ответов оценки по вопросам не отдаём: по ним видно правильный вариант."""
    data = AttemptOut.model_validate(attempt).model_dump()
    if not reveal:
        for answer in data["answers"]:
            answer.pop("is_correct", None)
            answer.pop("points_earned", None)
    return data


@router.post("/{quiz_id}/attempts")
def start_attempt(
    quiz_id: int,
    response: Response,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    Начать тест или продолжить незавершённую попытку.
    201 для новой попытки, 200 при продолжении старой.
    """
    attempt, created = attempt_service.start_attempt(db, quiz_id, user)
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return {
        "attempt": AttemptOut.model_validate(attempt),
        "quiz": attempt_service.quiz_payload(attempt.quiz),
        "resumed": not created,
    }


@router.post("/attempts/{attempt_id}/submit", response_model=SubmitOut)
def submit_attempt(
    attempt_id: int,
    payload: SubmitIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    result = attempt_service.submit_attempt(db, attempt_id, user, payload.answers)
    return SubmitOut(
        attempt=AttemptOut.model_validate(result.attempt),
        is_passed=result.is_passed,
        score=ScoreSummary(
            earned=result.earned,
            total=result.total,
            percentage=result.percentage,
        ),
    )


@router.get("/attempts/{attempt_id}")
def get_attempt(
    attempt_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    attempt, reveal = attempt_service.get_attempt_for_viewer(db, attempt_id, user)
    quiz = attempt.quiz
    return {
        "attempt": _attempt_view(attempt, reveal),
        "quiz": attempt_service.quiz_payload(quiz, reveal_answers=reveal) if quiz else None,
    }


@router.get("/{quiz_id}/attempts", response_model=List[AttemptOut])
def list_quiz_attempts(
    quiz_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return attempt_service.list_quiz_attempts(db, quiz_id, user)


@router.get("/{quiz_id}/my-attempts", response_model=List[AttemptOut])
def list_my_attempts(
    quiz_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return attempt_service.list_user_attempts(db, quiz_id, user)
