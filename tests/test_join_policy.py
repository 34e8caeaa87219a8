import pytest

from quiz_sync.core.join_policy import (
    canonical_student_name,
    evaluate_join,
    is_forfeited,
    missed_count,
    percentage,
    score_answers,
)
from quiz_sync.core.models import QuizStatus


def test_join_at_start_misses_nothing(make_quiz):
    decision = evaluate_join(make_quiz(), 0)
    assert decision.can_join is True
    assert decision.missed_count == 0


def test_late_join_forfeits_elapsed_questions(make_quiz):
    quiz = make_quiz()
    decision = evaluate_join(quiz, 65_000)
    assert decision.can_join is True
    assert decision.missed_count == 2
    assert [is_forfeited(i, decision.missed_count) for i in range(3)] == [True, True, False]


def test_late_joiner_scores_at_most_remaining_questions(make_quiz, sample_questions):
    quiz = make_quiz()
    all_correct = [q.correct_answer for q in sample_questions]
    assert score_answers(quiz, all_correct, missed=2) == 1
    assert score_answers(quiz, all_correct, missed=0) == 3


@pytest.mark.parametrize("join_time", [90_000, 90_001, 200_000])
def test_join_at_or_after_end_is_refused(make_quiz, join_time):
    decision = evaluate_join(make_quiz(), join_time)
    assert decision.can_join is False
    assert decision.reason


def test_missed_count_never_exceeds_question_count(make_quiz):
    assert missed_count(make_quiz(), 10_000_000) == 3


def test_waiting_room_join_misses_nothing(make_quiz):
    decision = evaluate_join(make_quiz(status=QuizStatus.WAITING, quiz_start_time=None), 123_456)
    assert decision.can_join is True
    assert decision.missed_count == 0


def test_paused_join_uses_frozen_index(make_quiz):
    quiz = make_quiz(status=QuizStatus.PAUSED, current_question_index=1)
    decision = evaluate_join(quiz, 10_000_000)
    assert decision.can_join is True
    assert decision.missed_count == 1


@pytest.mark.parametrize(
    "status", [QuizStatus.DRAFT, QuizStatus.SCHEDULED, QuizStatus.COMPLETED, QuizStatus.INACTIVE]
)
def test_closed_quizzes_refuse_joins(make_quiz, status):
    assert evaluate_join(make_quiz(status=status), 1_000).can_join is False


def test_no_quiz_refuses():
    decision = evaluate_join(None, 0)
    assert decision.can_join is False
    assert decision.reason == "No active quiz."


def test_second_attempt_is_refused(make_quiz):
    decision = evaluate_join(make_quiz(), 0, already_attempted=True)
    assert decision.can_join is False
    assert "already attempted" in decision.reason


def test_forfeited_answers_never_count(make_quiz, sample_questions):
    quiz = make_quiz()
    answers = [sample_questions[0].correct_answer, "", ""]
    assert score_answers(quiz, answers, missed=1) == 0
    assert score_answers(quiz, ["", "Rome"], missed=0) == 0


def test_canonical_name_trims_and_casefolds():
    assert canonical_student_name("  Ada   LOVELACE ") == "ada lovelace"
    assert canonical_student_name("Straße") == canonical_student_name("STRASSE")


def test_percentage_rounds_and_handles_empty_quiz():
    assert percentage(1, 3) == 33
    assert percentage(2, 3) == 67
    assert percentage(3, 3) == 100
    assert percentage(0, 0) == 0
