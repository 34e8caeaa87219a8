"""Service for validating and persisting quiz records."""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from quiz_sync.constants.quiz_constants import MIN_OPTION_COUNT
from quiz_sync.constants.store_constants import QUIZZES_COLLECTION
from quiz_sync.core.errors import DocumentNotFoundError, QuizNotFoundError, QuizValidationError
from quiz_sync.core.models import LIVE_STATUSES, Question, Quiz, QuizStatus
from quiz_sync.core.record_codec import quiz_from_record, quiz_to_record
from quiz_sync.core.services.document_store import SERVER_TIMESTAMP, DocumentStore


class QuizRepository:
    """Manages the lifecycle and storage of quiz records."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def create_quiz(
        self,
        name: str,
        quiz_class: str,
        questions: Iterable[Question],
        time_per_question: int,
        scheduled_time: int | None = None,
    ) -> Quiz:
        """Validate and store a new quiz; nothing is written when validation fails."""
        cleaned_name = name.strip()
        if not cleaned_name:
            raise QuizValidationError("Quiz name must not be empty.")
        cleaned_class = quiz_class.strip()
        if not cleaned_class:
            raise QuizValidationError("Quiz class must not be empty.")

        prepared = [self._prepare_question(q, number) for number, q in enumerate(questions, start=1)]
        if not prepared:
            raise QuizValidationError("Quiz must contain at least one question.")

        quiz = Quiz(
            id="",
            name=cleaned_name,
            quiz_class=cleaned_class,
            questions=prepared,
            time_per_question=self._normalize_time_per_question(time_per_question),
            status=QuizStatus.SCHEDULED if scheduled_time is not None else QuizStatus.DRAFT,
            scheduled_time=scheduled_time,
        )
        record = quiz_to_record(quiz)
        record.pop("id")
        record["createdAt"] = SERVER_TIMESTAMP
        record["updatedAt"] = SERVER_TIMESTAMP
        quiz_id = self._store.create(QUIZZES_COLLECTION, record)
        return self.get_quiz(quiz_id)

    def find_quiz(self, quiz_id: str) -> Quiz | None:
        record = self._store.get(QUIZZES_COLLECTION, quiz_id)
        return quiz_from_record(record) if record is not None else None

    def get_quiz(self, quiz_id: str) -> Quiz:
        quiz = self.find_quiz(quiz_id)
        if quiz is None:
            raise QuizNotFoundError(f"Quiz {quiz_id} not found.")
        return quiz

    def list_quizzes(self, statuses: Iterable[QuizStatus] | None = None) -> list[Quiz]:
        record_filter = None
        if statuses is not None:
            record_filter = {"status": [status.value for status in statuses]}
        quizzes = [quiz_from_record(r) for r in self._store.get_all(QUIZZES_COLLECTION, record_filter)]
        return sorted(quizzes, key=lambda q: (q.scheduled_time or 0, q.created_at or 0, q.id))

    def get_live_quizzes(self) -> list[Quiz]:
        return self.list_quizzes(LIVE_STATUSES)

    def save_changes(self, quiz_id: str, changes: Mapping[str, Any]) -> Quiz:
        """Apply a partial update given in store field names and return the new record."""
        payload = dict(changes)
        payload["updatedAt"] = SERVER_TIMESTAMP
        try:
            self._store.update(QUIZZES_COLLECTION, quiz_id, payload)
        except DocumentNotFoundError as exc:
            raise QuizNotFoundError(f"Quiz {quiz_id} not found.") from exc
        return self.get_quiz(quiz_id)

    def delete_quiz(self, quiz_id: str) -> None:
        self.get_quiz(quiz_id)
        self._store.delete(QUIZZES_COLLECTION, quiz_id)

    def _prepare_question(self, question: Question, number: int) -> Question:
        """Validate and normalize a question before storage."""
        cleaned_text = question.question.strip()
        if not cleaned_text:
            raise QuizValidationError(f"Question {number}: question text must not be empty.")

        options = self._validate_options(question.options, number)
        correct = question.correct_answer.strip()
        if not correct:
            raise QuizValidationError(f"Question {number}: missing correct answer.")
        if correct not in options:
            raise QuizValidationError(f"Question {number}: correct answer must be one of the options.")

        return Question(question=cleaned_text, options=options, correct_answer=correct)

    @staticmethod
    def _validate_options(options: list[str], number: int) -> list[str]:
        if len(options) < MIN_OPTION_COUNT:
            raise QuizValidationError(
                f"Question {number}: needs at least {MIN_OPTION_COUNT} options."
            )
        cleaned = [option.strip() for option in options]
        if any(not option for option in cleaned):
            raise QuizValidationError(f"Question {number}: option text cannot be empty.")
        if len(set(cleaned)) != len(cleaned):
            raise QuizValidationError(f"Question {number}: options must be distinct.")
        return cleaned

    @staticmethod
    def _normalize_time_per_question(time_per_question: int) -> int:
        if isinstance(time_per_question, bool) or not isinstance(time_per_question, int):
            raise QuizValidationError("Time per question must be an integer number of seconds.")
        if time_per_question <= 0:
            raise QuizValidationError("Time per question must be a positive integer.")
        return time_per_question
