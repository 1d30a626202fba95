"""Проверка ответов на вопросы теста.

Чистые функции без обращения к БД: на вход вопрос (любой объект с полями
question_type / points / options / correct_answer) и ответ ученика,
на выход: правильность и начисленные баллы.

- multiple_choice: множество выбранных вариантов должно совпасть с множеством
  правильных, частичных баллов нет;
- true_false: выбран ровно один вариант, и он правильный;
- short_answer: точное совпадение после trim + lower;
- essay: не проверяется автоматически, is_correct = None ("на проверке").
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from quizhub.models import QuestionType


@dataclass(frozen=True)
class AnswerScore:
    is_correct: Optional[bool]
    points: float


@dataclass
class GradedAnswer:
    question_id: int
    selected_option_ids: List[int]
    text_answer: str
    is_correct: Optional[bool]
    points_earned: float


@dataclass
class GradedSubmission:
    answers: List[GradedAnswer] = field(default_factory=list)
    earned: float = 0
    total: float = 0

    @property
    def percentage(self) -> float:
        if not self.total:
            return 0.0
        return self.earned / self.total * 100


def _correct_option_ids(question) -> List[int]:
    return [opt.id for opt in (question.options or []) if opt.is_correct]


def check_multiple_choice(question, selected: Sequence[int], text: str) -> bool:
    correct = _correct_option_ids(question)
    # размер тоже важен: [A, A] не равно {A}
    return len(selected) == len(correct) and set(selected) == set(correct)


def check_true_false(question, selected: Sequence[int], text: str) -> bool:
    correct = _correct_option_ids(question)
    if len(correct) != 1 or len(selected) != 1:
        return False
    return selected[0] == correct[0]


def check_short_answer(question, selected: Sequence[int], text: str) -> bool:
    canonical = question.correct_answer
    if not text or canonical is None:
        return False
    return text.strip().lower() == canonical.lower()


def check_essay(question, selected: Sequence[int], text: str) -> Optional[bool]:
    return None


CHECKERS: Dict[str, Callable[..., Optional[bool]]] = {
    QuestionType.MULTIPLE_CHOICE: check_multiple_choice,
    QuestionType.TRUE_FALSE: check_true_false,
    QuestionType.SHORT_ANSWER: check_short_answer,
    QuestionType.ESSAY: check_essay,
}


def score_answer(
    question,
    selected_option_ids: Optional[Sequence[int]] = None,
    text_answer: Optional[str] = None,
) -> Optional[AnswerScore]:
    """
    Оценивает один ответ.

    Возвращает None, если тип вопроса неизвестен: такой ответ не входит
    ни в набранные, ни в максимальные баллы.
    """
    checker = CHECKERS.get(question.question_type)
    if checker is None:
        return None

    is_correct = checker(question, list(selected_option_ids or []), text_answer or "")
    points = float(question.points or 0) if is_correct else 0.0
    return AnswerScore(is_correct=is_correct, points=points)


def grade_submission(questions: Iterable, answers: Iterable) -> GradedSubmission:
    """
    Проверяет все присланные ответы.

    answers: объекты с полями question_id / selected_options / text_answer.
    Ответы на вопросы, которых нет в тесте, молча отбрасываются.
    Порядок результатов совпадает с порядком ответов.
    """
    by_id = {q.id: q for q in questions}
    result = GradedSubmission()

    for answer in answers:
        question = by_id.get(answer.question_id)
        if question is None:
            continue

        scored = score_answer(question, answer.selected_options, answer.text_answer)
        if scored is None:
            continue

        result.total += question.points or 0
        result.earned += scored.points
        result.answers.append(
            GradedAnswer(
                question_id=question.id,
                selected_option_ids=list(answer.selected_options or []),
                text_answer=answer.text_answer or "",
                is_correct=scored.is_correct,
                points_earned=scored.points,
            )
        )

    return result


def reward_points_for(percentage: float) -> int:
    """Бонус за сданный тест: 50 базовых, +50 за ≥90 %, +25 за ≥75 %."""
    points = 50
    if percentage >= 90:
        points += 50
    elif percentage >= 75:
        points += 25
    return points
