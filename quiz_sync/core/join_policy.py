"""Join-time policy for late students, plus scoring that honours it."""

from __future__ import annotations

from typing import Sequence

from quiz_sync.core.models import JoinDecision, Quiz, QuizStatus
from quiz_sync.core.progression import elapsed_ms, has_ended


def canonical_student_name(name: str) -> str:
    """Key used everywhere students are matched: trimmed and case-folded."""
    return " ".join(name.split()).casefold()


def missed_count(quiz: Quiz | None, join_time_ms: int) -> int:
    """Number of leading questions a student joining at ``join_time_ms`` forfeits."""
    if quiz is None or quiz.question_count == 0:
        return 0
    if quiz.status is QuizStatus.PAUSED:
        return max(0, min(quiz.current_question_index, quiz.question_count))
    if quiz.status is not QuizStatus.ACTIVE or quiz.quiz_start_time is None:
        return 0
    if quiz.time_per_question <= 0:
        return 0
    missed = elapsed_ms(quiz, join_time_ms) // quiz.question_duration_ms
    return max(0, min(missed, quiz.question_count))


def evaluate_join(
    quiz: Quiz | None,
    join_time_ms: int,
    *,
    already_attempted: bool = False,
) -> JoinDecision:
    if quiz is None:
        return JoinDecision(can_join=False, reason="No active quiz.")
    if not quiz.status.is_live:
        return JoinDecision(can_join=False, reason=f"Quiz is {quiz.status.value}, not open for joining.")
    if already_attempted:
        return JoinDecision(can_join=False, reason="You have already attempted this quiz.")
    if has_ended(quiz, join_time_ms):
        return JoinDecision(can_join=False, reason="Quiz has ended.")
    missed = missed_count(quiz, join_time_ms)
    if missed >= quiz.question_count:
        return JoinDecision(can_join=False, missed_count=missed, reason="Quiz has already ended.")
    return JoinDecision(can_join=True, missed_count=missed)


def is_forfeited(question_index: int, missed: int) -> bool:
    return question_index < missed


def score_answers(quiz: Quiz, answers: Sequence[str | None], missed: int) -> int:
    """Count correct answers, ignoring forfeited questions whatever they hold."""
    score = 0
    for index, question in enumerate(quiz.questions):
        if is_forfeited(index, missed) or index >= len(answers):
            continue
        answer = answers[index]
        if answer and answer == question.correct_answer:
            score += 1
    return score


def percentage(score: int, total_questions: int) -> int:
    if total_questions <= 0:
        return 0
    return round(score / total_questions * 100)
