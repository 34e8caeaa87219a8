"""Quiz progression: which question is active and how long it has left.

Every function here is pure arithmetic over a quiz record and an instant in
epoch milliseconds. Nothing raises for a missing or half-populated quiz,
because clients routinely hold ``None`` while waiting for the first store
notification; callers get 0, ``False`` or the full duration instead.

Paused quizzes keep the index computed at pause time. Resuming shifts
``quiz_start_time`` forward by the pause length, so the interrupted question
continues with the time it had left.
"""

from __future__ import annotations

from quiz_sync.core.models import ProgressionState, Quiz, QuizStatus


def _is_running(quiz: Quiz | None) -> bool:
    return (
        quiz is not None
        and quiz.status is QuizStatus.ACTIVE
        and quiz.quiz_start_time is not None
        and quiz.question_count > 0
        and quiz.time_per_question > 0
    )


def _clamp_index(quiz: Quiz, index: int) -> int:
    if quiz.question_count == 0:
        return 0
    return max(0, min(index, quiz.question_count - 1))


def total_duration_ms(quiz: Quiz) -> int:
    return quiz.question_count * quiz.question_duration_ms


def elapsed_ms(quiz: Quiz, now_ms: int) -> int:
    """Milliseconds since the quiz started; 0 before the start or without one."""
    if quiz.quiz_start_time is None:
        return 0
    return max(0, now_ms - quiz.quiz_start_time)


def current_question_index(quiz: Quiz | None, now_ms: int) -> int:
    if quiz is None:
        return 0
    if quiz.status.is_frozen:
        return _clamp_index(quiz, quiz.current_question_index)
    if not _is_running(quiz):
        return 0
    return _clamp_index(quiz, elapsed_ms(quiz, now_ms) // quiz.question_duration_ms)


def question_start_time(quiz: Quiz, index: int) -> int | None:
    """Instant at which question ``index`` opens, for a started quiz."""
    if quiz.quiz_start_time is None:
        return None
    return quiz.quiz_start_time + index * quiz.question_duration_ms


def time_remaining(quiz: Quiz | None, now_ms: int) -> int:
    """Whole seconds left on the current question.

    Waiting and paused quizzes report the full per-question duration rather
    than a frozen partial countdown.
    """
    if quiz is None:
        return 0
    if quiz.status.is_frozen:
        return quiz.time_per_question
    if not _is_running(quiz):
        return 0
    return question_time_remaining(quiz, current_question_index(quiz, now_ms), now_ms)


def question_time_remaining(quiz: Quiz, index: int, now_ms: int) -> int:
    """Whole seconds left in question ``index``'s own window, within [0, duration]."""
    start = question_start_time(quiz, index)
    if start is None:
        return 0
    remaining = max(0, (start + quiz.question_duration_ms - now_ms) // 1000)
    return min(remaining, quiz.time_per_question)


def has_ended(quiz: Quiz | None, now_ms: int) -> bool:
    """True once a running quiz has used up every question's time window.

    Uses ``>=`` so it flips at the same instant the index clamps to the last
    question.
    """
    if not _is_running(quiz):
        return False
    return now_ms - quiz.quiz_start_time >= total_duration_ms(quiz)


def compute_progression(quiz: Quiz | None, now_ms: int) -> ProgressionState:
    return ProgressionState(
        quiz_id=quiz.id if quiz is not None else None,
        status=quiz.status if quiz is not None else None,
        current_question_index=current_question_index(quiz, now_ms),
        time_remaining=time_remaining(quiz, now_ms),
        has_ended=has_ended(quiz, now_ms),
        computed_at=now_ms,
    )
