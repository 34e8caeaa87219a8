import pytest

from quiz_sync.core.models import QuizStatus
from quiz_sync.core.progression import (
    compute_progression,
    current_question_index,
    has_ended,
    question_start_time,
    question_time_remaining,
    time_remaining,
)


def test_mid_second_question(make_quiz):
    quiz = make_quiz()
    state = compute_progression(quiz, 45_000)
    assert state.current_question_index == 1
    assert state.time_remaining == 15
    assert state.has_ended is False


def test_end_clamps_to_last_question(make_quiz):
    quiz = make_quiz()
    state = compute_progression(quiz, 90_000)
    assert state.has_ended is True
    assert state.current_question_index == 2
    assert state.time_remaining == 0


def test_has_ended_flips_exactly_at_total_duration(make_quiz):
    quiz = make_quiz()
    assert has_ended(quiz, 89_999) is False
    assert has_ended(quiz, 90_000) is True
    assert has_ended(quiz, 500_000) is True


@pytest.mark.parametrize("index", [0, 1, 2])
def test_full_time_at_question_start_and_none_at_its_end(make_quiz, index):
    quiz = make_quiz(quiz_start_time=10_000)
    start = question_start_time(quiz, index)
    assert time_remaining(quiz, start) == 30
    assert current_question_index(quiz, start) == index
    assert question_time_remaining(quiz, index, start + 30_000) == 0


def test_last_question_countdown_reaches_zero(make_quiz):
    quiz = make_quiz()
    assert time_remaining(quiz, question_start_time(quiz, 2) + 30_000) == 0


def test_index_never_decreases_while_running(make_quiz):
    quiz = make_quiz()
    indices = [current_question_index(quiz, t) for t in range(0, 120_000, 500)]
    assert indices == sorted(indices)
    assert max(indices) == 2


def test_remaining_time_stays_within_bounds(make_quiz):
    quiz = make_quiz(quiz_start_time=20_000)
    for t in range(0, 130_000, 750):
        assert 0 <= time_remaining(quiz, t) <= 30


def test_before_start_reports_first_question_capped(make_quiz):
    quiz = make_quiz(quiz_start_time=10_000)
    assert current_question_index(quiz, 0) == 0
    assert time_remaining(quiz, 0) == 30
    assert has_ended(quiz, 0) is False


def test_paused_quiz_keeps_persisted_index(make_quiz):
    quiz = make_quiz(status=QuizStatus.PAUSED, current_question_index=1)
    state = compute_progression(quiz, 1_000_000)
    assert state.current_question_index == 1
    assert state.time_remaining == 30
    assert state.has_ended is False


def test_waiting_quiz_shows_first_question_full_time(make_quiz):
    quiz = make_quiz(status=QuizStatus.WAITING, quiz_start_time=None)
    assert current_question_index(quiz, 5_000) == 0
    assert time_remaining(quiz, 5_000) == 30


@pytest.mark.parametrize(
    "status", [QuizStatus.DRAFT, QuizStatus.SCHEDULED, QuizStatus.COMPLETED, QuizStatus.INACTIVE]
)
def test_idle_statuses_report_nothing_running(make_quiz, status):
    state = compute_progression(make_quiz(status=status), 45_000)
    assert state.current_question_index == 0
    assert state.time_remaining == 0
    assert state.has_ended is False


def test_missing_quiz_is_harmless():
    state = compute_progression(None, 45_000)
    assert state.quiz_id is None
    assert state.status is None
    assert state.current_question_index == 0
    assert state.time_remaining == 0
    assert state.has_ended is False


def test_quiz_without_questions_or_start_time(make_quiz):
    assert compute_progression(make_quiz(questions=[]), 45_000).has_ended is False
    assert compute_progression(make_quiz(quiz_start_time=None), 45_000).current_question_index == 0
    assert time_remaining(make_quiz(time_per_question=0), 45_000) == 0
