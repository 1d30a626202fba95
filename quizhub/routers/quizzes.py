from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from quizhub.attempts import can_manage_quiz, delete_quiz, get_quiz_or_404, quiz_payload
from quizhub.database import get_db
from quizhub.deps import get_current_user, require_role
from quizhub.errors import ForbiddenError, NotFoundError
from quizhub.models import Course, Question, QuestionOption, Quiz, TestSeries, User
from quizhub.schemas import QuizCreate

router = APIRouter(prefix="/quizzes", tags=["quizzes"])


def _build_question(position: int, payload) -> Question:
    question = Question(
        position=position,
        text=payload.text,
        question_type=payload.type,
        points=payload.points,
        explanation=payload.explanation,
        correct_answer=getattr(payload, "correct_answer", None),
    )
    for idx, opt in enumerate(getattr(payload, "options", None) or []):
        question.options.append(
            QuestionOption(position=idx, text=opt.text, is_correct=opt.is_correct)
        )
    return question


@router.post("", status_code=201)
def create_quiz(
    payload: QuizCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_role("admin", "teacher")),
):
    if payload.course_id is not None and not db.get(Course, payload.course_id):
        raise NotFoundError("Course not found")
    if payload.test_series_id is not None and not db.get(TestSeries, payload.test_series_id):
        raise NotFoundError("Test series not found")

    quiz = Quiz(
        title=payload.title,
        description=payload.description,
        course_id=payload.course_id,
        test_series_id=payload.test_series_id,
        time_limit=payload.time_limit,
        passing_score=payload.passing_score,
        max_attempts=payload.max_attempts,
        allow_review=payload.allow_review,
        is_published=payload.is_published,
        quiz_type=payload.quiz_type,
        difficulty=payload.difficulty,
        creator_id=user.id,
    )
    for position, q in enumerate(payload.questions):
        quiz.questions.append(_build_question(position, q))

    db.add(quiz)
    db.commit()
    db.refresh(quiz)
    return quiz_payload(quiz, reveal_answers=True)


@router.get("/{quiz_id}")
def get_quiz(
    quiz_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Правильные ответы видят только админ и автор теста."""
    quiz = get_quiz_or_404(db, quiz_id)
    manager = can_manage_quiz(quiz, user)
    if not quiz.is_published and not manager:
        raise ForbiddenError("This quiz is not published yet")
    return quiz_payload(quiz, reveal_answers=manager)


@router.post("/{quiz_id}/publish")
def publish_quiz(
    quiz_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_role("admin", "teacher")),
):
    quiz = get_quiz_or_404(db, quiz_id)
    if not can_manage_quiz(quiz, user):
        raise ForbiddenError("You don't have permission to publish this quiz")
    quiz.is_published = True
    db.commit()
    return {"ok": True, "id": quiz.id, "is_published": True}


@router.delete("/{quiz_id}")
def remove_quiz(
    quiz_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    removed = delete_quiz(db, quiz_id, user)
    return {"ok": True, "deleted_attempts": removed}
