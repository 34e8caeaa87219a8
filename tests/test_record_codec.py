from datetime import datetime, timedelta, timezone

import pytest

from quiz_sync.core.errors import QuizValidationError
from quiz_sync.core.models import QuizStatus
from quiz_sync.core.record_codec import (
    normalize_timestamp,
    quiz_from_record,
    quiz_to_record,
    result_from_record,
)
from quiz_sync.core.services.document_store import ServerTimestamp


class _NativeTimestamp:
    """Mimics a store client's timestamp type exposing to_datetime()"""

    def to_datetime(self):
        return datetime(1970, 1, 1, 0, 0, 2, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, None),
        (1_234, 1_234),
        (1_234.9, 1_234),
        (ServerTimestamp(seconds=1, nanos=500_000_000), 1_500),
        (datetime(1970, 1, 1, 0, 0, 1), 1_000),
        (datetime(1970, 1, 1, 1, 0, 1, tzinfo=timezone(timedelta(hours=1))), 1_000),
        ("1970-01-01T00:00:03+00:00", 3_000),
        (_NativeTimestamp(), 2_000),
    ],
)
def test_normalize_timestamp(value, expected):
    assert normalize_timestamp(value) == expected


@pytest.mark.parametrize("value", [True, "yesterday", object(), float("nan"), float("inf"), float("-inf")])
def test_normalize_timestamp_rejects_unknown_shapes(value):
    with pytest.raises(QuizValidationError):
        normalize_timestamp(value)


def test_legacy_quiz_fields_are_migrated():
    quiz = quiz_from_record(
        {
            "id": "current",
            "originalQuizId": "quiz-7",
            "quizName": "Old Quiz",
            "quizClass": "8B",
            "startTime": ServerTimestamp(seconds=10),
            "status": "active",
            "timePerQuestion": 20,
            "questions": [{"question": "Q", "options": ["a", "b"], "correctAnswer": "a"}],
        }
    )
    assert quiz.id == "quiz-7"
    assert quiz.name == "Old Quiz"
    assert quiz.quiz_class == "8B"
    assert quiz.quiz_start_time == 10_000
    assert quiz.status is QuizStatus.ACTIVE
    assert quiz.questions[0].correct_answer == "a"


def test_canonical_fields_win_over_legacy_duplicates():
    quiz = quiz_from_record({"id": "q", "quizStartTime": 5_000, "startTime": 9_000, "name": "New", "quizName": "Old"})
    assert quiz.quiz_start_time == 5_000
    assert quiz.name == "New"


def test_legacy_result_reference_is_migrated():
    result = result_from_record(
        {"id": "r1", "originalQuizId": "quiz-7", "studentName": "Ada", "answers": ["a", None], "score": 1}
    )
    assert result.quiz_id == "quiz-7"
    assert result.answers == ["a", ""]
    assert result.total_questions == 2


def test_quiz_round_trip(make_quiz):
    quiz = make_quiz(quiz_start_time=42_000, waiting_participants=["Ada"])
    assert quiz_from_record(quiz_to_record(quiz)) == quiz


def test_unknown_status_is_rejected():
    with pytest.raises(QuizValidationError):
        quiz_from_record({"id": "q", "status": "exploded"})
