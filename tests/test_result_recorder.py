import pytest

from quiz_sync.core.errors import (
    DuplicateAttemptError,
    JoinRefusedError,
    QuizNotFoundError,
    QuizStateError,
    QuizValidationError,
)


def test_join_seeds_blank_result(manager, started_quiz):
    decision, result = manager.join_quiz(started_quiz.id, "  Ada  Lovelace ")
    assert decision.can_join is True
    assert result.student_name == "Ada Lovelace"
    assert result.answers == ["", "", ""]
    assert result.missed_count == 0
    assert result.quiz_name == started_quiz.name
    assert manager.get_quiz(started_quiz.id).total_participants == 1


def test_same_student_cannot_join_twice(manager, started_quiz):
    manager.join_quiz(started_quiz.id, "Ada")
    with pytest.raises(JoinRefusedError) as excinfo:
        manager.join_quiz(started_quiz.id, " ADA ")
    assert excinfo.value.decision.can_join is False


def test_empty_name_is_rejected(manager, started_quiz):
    with pytest.raises(QuizValidationError):
        manager.join_quiz(started_quiz.id, "   ")


def test_late_joiner_can_only_answer_remaining_question(manager, started_quiz, clock):
    clock.advance(65_000)
    decision, result = manager.join_quiz(started_quiz.id, "Ben")
    assert decision.missed_count == 2
    assert result.missed_count == 2

    with pytest.raises(QuizStateError):
        manager.submit_answer(started_quiz.id, "Ben", 0, "4")

    result = manager.submit_answer(started_quiz.id, "Ben", 2, "Jupiter")
    assert result.score == 1
    assert result.percentage == 33


def test_join_after_time_ran_out_is_refused(manager, started_quiz, clock):
    clock.advance(90_000)
    with pytest.raises(JoinRefusedError):
        manager.join_quiz(started_quiz.id, "Cy")


def test_answers_are_scored_per_open_question(manager, started_quiz, clock):
    assert manager.submit_answer(started_quiz.id, "Ada", 0, "4").score == 1
    clock.advance(30_000)
    result = manager.submit_answer(started_quiz.id, "Ada", 1, "Rome")
    assert result.score == 1
    assert result.answers == ["4", "Rome", ""]


def test_question_cannot_be_answered_twice(manager, started_quiz):
    manager.submit_answer(started_quiz.id, "Ada", 0, "3")
    with pytest.raises(DuplicateAttemptError):
        manager.submit_answer(started_quiz.id, "Ada", 0, "4")
    assert manager.get_result(started_quiz.id, "Ada").score == 0


def test_answer_must_be_an_option(manager, started_quiz):
    with pytest.raises(QuizValidationError):
        manager.submit_answer(started_quiz.id, "Ada", 0, "four")
    with pytest.raises(QuizValidationError):
        manager.submit_answer(started_quiz.id, "Ada", 7, "4")


def test_rejected_first_answer_leaves_no_join_behind(manager, started_quiz, store, clock):
    with pytest.raises(QuizValidationError):
        manager.submit_answer(started_quiz.id, "Dana", 0, "not an option")
    clock.advance(30_000)
    with pytest.raises(QuizStateError):
        manager.submit_answer(started_quiz.id, "Dana", 0, "4")

    assert manager.get_quiz(started_quiz.id).total_participants == 0
    assert store.get_all("results", {"quizId": started_quiz.id}) == []
    assert store.get_all("attendance") == []
    assert manager.evaluate_join(started_quiz.id, "Dana").can_join is True


def test_answers_close_when_quiz_is_paused(manager, started_quiz):
    manager.join_quiz(started_quiz.id, "Ada")
    manager.pause_quiz(started_quiz.id)
    with pytest.raises(QuizStateError):
        manager.submit_answer(started_quiz.id, "Ada", 0, "4")


def test_finalize_requires_finishing(manager, started_quiz, clock):
    manager.submit_answer(started_quiz.id, "Ada", 0, "4")
    with pytest.raises(QuizStateError):
        manager.finalize_result(started_quiz.id, "Ada")

    clock.advance(30_000)
    manager.submit_answer(started_quiz.id, "Ada", 1, "Paris")
    clock.advance(30_000)
    manager.submit_answer(started_quiz.id, "Ada", 2, "Earth")

    final = manager.finalize_result(started_quiz.id, "Ada")
    assert final.completed_at == clock.now_ms()
    assert final.score == 2
    assert final.percentage == 67

    clock.advance(5_000)
    assert manager.finalize_result(started_quiz.id, "Ada").completed_at == final.completed_at


def test_late_joiner_finishes_after_remaining_questions(manager, started_quiz, clock):
    clock.advance(61_000)
    manager.submit_answer(started_quiz.id, "Ben", 2, "Jupiter")
    assert manager.finalize_result(started_quiz.id, "Ben").completed_at is not None


def test_finalize_allowed_once_time_runs_out(manager, started_quiz, clock):
    manager.join_quiz(started_quiz.id, "Ada")
    clock.advance(90_000)
    final = manager.finalize_result(started_quiz.id, "Ada")
    assert final.score == 0
    assert final.completed_at is not None


def test_finalized_result_accepts_no_more_answers(manager, started_quiz, clock):
    manager.join_quiz(started_quiz.id, "Ada")
    manager.end_quiz(started_quiz.id)
    manager.finalize_result(started_quiz.id, "Ada")
    with pytest.raises(QuizStateError):
        manager.submit_answer(started_quiz.id, "Ada", 0, "4")


def test_tab_switches_are_recorded(manager, started_quiz):
    manager.join_quiz(started_quiz.id, "Ada")
    assert manager.record_tab_switches(started_quiz.id, "ada", 3).tab_switches == 3
    with pytest.raises(QuizValidationError):
        manager.record_tab_switches(started_quiz.id, "Ada", -1)


def test_unknown_result_is_not_found(manager, started_quiz):
    with pytest.raises(QuizNotFoundError):
        manager.get_result(started_quiz.id, "Nobody")


def test_leaderboard_ranks_live_results(manager, started_quiz):
    manager.submit_answer(started_quiz.id, "Ada", 0, "4")
    manager.submit_answer(started_quiz.id, "Ben", 0, "3")
    board = manager.get_leaderboard(started_quiz.id)
    assert [(e.rank, e.student_name, e.score) for e in board] == [(1, "Ada", 1), (2, "Ben", 0)]
    assert len(manager.get_leaderboard(started_quiz.id, limit=1)) == 1
