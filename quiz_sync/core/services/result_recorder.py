"""Service for saving students' answers as partial and final result records."""

from __future__ import annotations

import logging

from quiz_sync.constants.store_constants import RESULTS_COLLECTION
from quiz_sync.core.clock import Clock
from quiz_sync.core.errors import (
    DuplicateAttemptError,
    QuizNotFoundError,
    QuizStateError,
    QuizValidationError,
)
from quiz_sync.core.join_policy import (
    canonical_student_name,
    is_forfeited,
    percentage,
    score_answers,
)
from quiz_sync.core.models import Quiz, QuizResult, QuizStatus
from quiz_sync.core.progression import current_question_index, has_ended
from quiz_sync.core.record_codec import result_from_record, result_to_record
from quiz_sync.core.services.document_store import SERVER_TIMESTAMP, DocumentStore
from quiz_sync.core.services.quiz_repository import QuizRepository
from quiz_sync.core.services.scoreboard import deduplicate_results

logger = logging.getLogger(__name__)


class ResultRecorder:
    """Keeps one result record per (quiz, student), updated as answers arrive."""

    def __init__(self, store: DocumentStore, repository: QuizRepository, clock: Clock) -> None:
        self._store = store
        self._repository = repository
        self._clock = clock

    # --- Reads ---

    def results_for_quiz(self, quiz_id: str) -> list[QuizResult]:
        return [
            result_from_record(r)
            for r in self._store.get_all(RESULTS_COLLECTION, {"quizId": quiz_id})
        ]

    def find_result(self, quiz_id: str, student_name: str) -> QuizResult | None:
        key = canonical_student_name(student_name)
        matches = [
            r for r in self.results_for_quiz(quiz_id)
            if canonical_student_name(r.student_name) == key
        ]
        if not matches:
            return None
        return deduplicate_results(matches)[0]

    def get_result(self, quiz_id: str, student_name: str) -> QuizResult:
        result = self.find_result(quiz_id, student_name)
        if result is None:
            raise QuizNotFoundError(f"No result for {student_name!r} in quiz {quiz_id}.")
        return result

    # --- Writes ---

    def seed_result(self, quiz: Quiz, student_name: str, join_time: int, missed: int) -> QuizResult:
        """Create the blank record a student answers into; an existing one is returned as is."""
        existing = self.find_result(quiz.id, student_name)
        if existing is not None:
            return existing
        result = QuizResult(
            id="",
            quiz_id=quiz.id,
            student_name=student_name,
            answers=[""] * quiz.question_count,
            total_questions=quiz.question_count,
            join_time=join_time,
            missed_count=missed,
            quiz_name=quiz.name,
            quiz_class=quiz.quiz_class,
        )
        record = result_to_record(result)
        record.pop("id")
        record["submittedAt"] = SERVER_TIMESTAMP
        record["updatedAt"] = SERVER_TIMESTAMP
        self._store.create(RESULTS_COLLECTION, record)
        logger.info("Result record created for %s in quiz %s (missed %d)", student_name, quiz.id, missed)
        return self.get_result(quiz.id, student_name)

    def submit_answer(
        self,
        quiz_id: str,
        student_name: str,
        question_index: int,
        answer: str,
        now_ms: int | None = None,
    ) -> QuizResult:
        """Store the answer to the currently open question and rescore."""
        quiz = self._repository.get_quiz(quiz_id)
        now = self._clock.now_ms() if now_ms is None else now_ms
        choice = self.check_answer(quiz, question_index, answer, now)

        result = self.get_result(quiz_id, student_name)
        if result.completed_at is not None:
            raise QuizStateError("Your answers have already been submitted.")
        if is_forfeited(question_index, result.missed_count):
            raise QuizStateError(f"Question {question_index + 1} was missed because you joined late.")

        answers = self._aligned_answers(result, quiz)
        if answers[question_index]:
            raise DuplicateAttemptError(f"Question {question_index + 1} has already been answered.")

        answers[question_index] = choice
        score = max(result.score, score_answers(quiz, answers, result.missed_count))
        self._store.update(
            RESULTS_COLLECTION,
            result.id,
            {
                "answers": answers,
                "score": score,
                "percentage": percentage(score, quiz.question_count),
                "totalQuestions": quiz.question_count,
                "lastQuestionAnswered": question_index,
                "updatedAt": SERVER_TIMESTAMP,
            },
        )
        return self.get_result(quiz_id, student_name)

    def finalize(self, quiz_id: str, student_name: str, now_ms: int | None = None) -> QuizResult:
        """Mark a student's result complete; later calls return it unchanged."""
        quiz = self._repository.get_quiz(quiz_id)
        result = self.get_result(quiz_id, student_name)
        if result.completed_at is not None:
            return result

        now = self._clock.now_ms() if now_ms is None else now_ms
        answers = self._aligned_answers(result, quiz)
        if not self._is_finished_for(quiz, result, answers, now):
            raise QuizStateError(f"Quiz '{quiz.name}' is still running for {student_name}.")

        score = max(result.score, score_answers(quiz, answers, result.missed_count))
        self._store.update(
            RESULTS_COLLECTION,
            result.id,
            {
                "answers": answers,
                "score": score,
                "percentage": percentage(score, quiz.question_count),
                "completedAt": now,
                "updatedAt": SERVER_TIMESTAMP,
            },
        )
        logger.info("Result finalized for %s in quiz %s: %d/%d", student_name, quiz_id, score, quiz.question_count)
        return self.get_result(quiz_id, student_name)

    def record_tab_switches(self, quiz_id: str, student_name: str, switch_count: int) -> QuizResult:
        if switch_count < 0:
            raise QuizValidationError("Tab switch count cannot be negative.")
        result = self.get_result(quiz_id, student_name)
        self._store.update(
            RESULTS_COLLECTION,
            result.id,
            {"tabSwitches": switch_count, "updatedAt": SERVER_TIMESTAMP},
        )
        return self.get_result(quiz_id, student_name)

    # --- Helpers ---

    @staticmethod
    def check_answer(quiz: Quiz, question_index: int, answer: str, now: int) -> str:
        """Return the cleaned answer if ``question_index`` is open and ``answer`` is an option."""
        if quiz.status is not QuizStatus.ACTIVE:
            raise QuizStateError(f"Quiz '{quiz.name}' is {quiz.status.value}; answers are closed.")
        if has_ended(quiz, now):
            raise QuizStateError(f"Quiz '{quiz.name}' has ended.")
        if not 0 <= question_index < quiz.question_count:
            raise QuizValidationError(f"Question index {question_index} out of range.")
        if question_index != current_question_index(quiz, now):
            raise QuizStateError(f"Question {question_index + 1} is not open for answers.")
        choice = answer.strip()
        if choice not in quiz.questions[question_index].options:
            raise QuizValidationError("Answer must be one of the question's options.")
        return choice

    @staticmethod
    def _aligned_answers(result: QuizResult, quiz: Quiz) -> list[str]:
        answers = list(result.answers[: quiz.question_count])
        answers.extend([""] * (quiz.question_count - len(answers)))
        return answers

    @staticmethod
    def _is_finished_for(quiz: Quiz, result: QuizResult, answers: list[str], now: int) -> bool:
        if quiz.status.is_terminal or has_ended(quiz, now):
            return True
        return all(
            answers[index]
            for index in range(quiz.question_count)
            if not is_forfeited(index, result.missed_count)
        )
