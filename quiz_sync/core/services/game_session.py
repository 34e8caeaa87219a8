"""Service for driving quiz status transitions and archiving final standings."""

from __future__ import annotations

import logging
from typing import Iterable

from quiz_sync.constants.quiz_constants import TOP_RANKINGS_LIMIT
from quiz_sync.constants.store_constants import (
    CLASS_RESULTS_COLLECTION,
    COMPLETE_RESULTS_COLLECTION,
    RESULTS_COLLECTION,
)
from quiz_sync.core.clock import Clock
from quiz_sync.core.errors import QuizNotFoundError, QuizStateError
from quiz_sync.core.models import ClassResult, CompleteResults, Quiz, QuizStatus
from quiz_sync.core.progression import current_question_index, has_ended
from quiz_sync.core.record_codec import (
    class_result_from_record,
    class_result_to_record,
    complete_results_from_record,
    complete_results_to_record,
    result_from_record,
)
from quiz_sync.core.services.document_store import DocumentStore
from quiz_sync.core.services.quiz_repository import QuizRepository
from quiz_sync.core.services.scoreboard import rank_results
from quiz_sync.core.services.start_scheduler import StartScheduler

logger = logging.getLogger(__name__)

_SCHEDULABLE = frozenset({QuizStatus.DRAFT, QuizStatus.SCHEDULED})
_STARTABLE = frozenset({QuizStatus.DRAFT, QuizStatus.SCHEDULED, QuizStatus.WAITING})


class GameSession:
    """Owns the quiz state machine.

    ``draft -> scheduled -> waiting -> active <-> paused -> completed``, with
    shortcuts ``draft -> active``, ``draft -> waiting`` and
    ``scheduled -> active``. Live quizzes can be ended (``completed``, with
    archival) or cancelled (``inactive``). At most one quiz may be live.
    """

    def __init__(
        self,
        store: DocumentStore,
        repository: QuizRepository,
        clock: Clock,
        scheduler: StartScheduler,
    ) -> None:
        self._store = store
        self._repository = repository
        self._clock = clock
        self._scheduler = scheduler

    # --- Transitions ---

    def schedule(self, quiz_id: str, start_at_ms: int) -> Quiz:
        quiz = self._repository.get_quiz(quiz_id)
        self._require_status(quiz, _SCHEDULABLE, "schedule")
        updated = self._repository.save_changes(
            quiz_id,
            {"status": QuizStatus.SCHEDULED.value, "scheduledTime": start_at_ms},
        )
        self._scheduler.schedule(quiz_id, start_at_ms)
        logger.info("Quiz %s scheduled for %d", quiz_id, start_at_ms)
        return updated

    def open_waiting_room(self, quiz_id: str) -> Quiz:
        quiz = self._repository.get_quiz(quiz_id)
        self._require_status(quiz, _SCHEDULABLE, "open the waiting room for")
        self._ensure_no_other_live_quiz(quiz_id)
        updated = self._repository.save_changes(
            quiz_id,
            {
                "status": QuizStatus.WAITING.value,
                "quizStartTime": None,
                "currentQuestionIndex": 0,
                "waitingParticipants": [],
            },
        )
        self._scheduler.unschedule(quiz_id)
        logger.info("Waiting room open for quiz %s", quiz_id)
        return updated

    def start(self, quiz_id: str) -> Quiz:
        quiz = self._repository.get_quiz(quiz_id)
        self._require_status(quiz, _STARTABLE, "start")
        self._ensure_no_other_live_quiz(quiz_id)
        start_time = self._clock.now_ms()
        updated = self._repository.save_changes(
            quiz_id,
            {
                "status": QuizStatus.ACTIVE.value,
                "quizStartTime": start_time,
                "currentQuestionIndex": 0,
                "pauseStartedAt": None,
            },
        )
        self._scheduler.unschedule(quiz_id)
        logger.info("Quiz %s started at %d", quiz_id, start_time)
        return updated

    def pause(self, quiz_id: str) -> Quiz:
        quiz = self._repository.get_quiz(quiz_id)
        self._require_status(quiz, {QuizStatus.ACTIVE}, "pause")
        now = self._clock.now_ms()
        if has_ended(quiz, now):
            raise QuizStateError("Cannot pause: every question's time has already run out.")
        index = current_question_index(quiz, now)
        updated = self._repository.save_changes(
            quiz_id,
            {
                "status": QuizStatus.PAUSED.value,
                "currentQuestionIndex": index,
                "pauseStartedAt": now,
            },
        )
        logger.info("Quiz %s paused on question %d", quiz_id, index)
        return updated

    def resume(self, quiz_id: str) -> Quiz:
        """Resume a paused quiz so the interrupted question keeps its remaining time."""
        quiz = self._repository.get_quiz(quiz_id)
        self._require_status(quiz, {QuizStatus.PAUSED}, "resume")
        now = self._clock.now_ms()
        paused_at = quiz.pause_started_at if quiz.pause_started_at is not None else now
        pause_duration = max(0, now - paused_at)
        start_time = (quiz.quiz_start_time or now) + pause_duration
        updated = self._repository.save_changes(
            quiz_id,
            {
                "status": QuizStatus.ACTIVE.value,
                "quizStartTime": start_time,
                "pauseStartedAt": None,
            },
        )
        logger.info("Quiz %s resumed after %d ms pause", quiz_id, pause_duration)
        return updated

    def end(self, quiz_id: str) -> bool:
        """Complete a live quiz and archive its rankings.

        Returns False, without writing anything, when the quiz is already
        completed or inactive, so repeated end requests are harmless.
        """
        quiz = self._repository.get_quiz(quiz_id)
        if quiz.status.is_terminal:
            return False
        self._require_status(quiz, {QuizStatus.WAITING, QuizStatus.ACTIVE, QuizStatus.PAUSED}, "end")

        now = self._clock.now_ms()
        self._archive_rankings(quiz, now)
        self._repository.save_changes(
            quiz_id,
            {
                "status": QuizStatus.COMPLETED.value,
                "currentQuestionIndex": current_question_index(quiz, now),
                "pauseStartedAt": None,
            },
        )
        logger.info("Quiz %s completed", quiz_id)
        return True

    def cancel(self, quiz_id: str) -> bool:
        """Deactivate a quiz without archiving anything."""
        quiz = self._repository.get_quiz(quiz_id)
        if quiz.status.is_terminal:
            return False
        self._repository.save_changes(
            quiz_id,
            {"status": QuizStatus.INACTIVE.value, "pauseStartedAt": None},
        )
        self._scheduler.unschedule(quiz_id)
        logger.info("Quiz %s cancelled", quiz_id)
        return True

    # --- Archives ---

    def get_class_results(self, quiz_id: str | None = None) -> list[ClassResult]:
        record_filter = {"quizId": quiz_id} if quiz_id is not None else None
        archives = [
            class_result_from_record(r)
            for r in self._store.get_all(CLASS_RESULTS_COLLECTION, record_filter)
        ]
        return sorted(archives, key=lambda a: a.completed_at, reverse=True)

    def get_complete_results(self, quiz_id: str) -> CompleteResults | None:
        records = self._store.get_all(COMPLETE_RESULTS_COLLECTION, {"quizId": quiz_id})
        if not records:
            return None
        return complete_results_from_record(records[0])

    def delete_class_result(self, archive_id: str) -> ClassResult:
        record = self._store.get(CLASS_RESULTS_COLLECTION, archive_id)
        if record is None:
            raise QuizNotFoundError(f"Class result {archive_id} not found.")
        self._store.delete(CLASS_RESULTS_COLLECTION, archive_id)
        logger.info("Class result %s deleted", archive_id)
        return class_result_from_record(record)

    def _archive_rankings(self, quiz: Quiz, completed_at: int) -> None:
        """Write the ClassResult and CompleteResults for ``quiz``, keyed by its id.

        An archive that already exists is left untouched, so an end that is
        retried after a failed status write does not duplicate or rewrite it.
        """
        if self._store.get(CLASS_RESULTS_COLLECTION, quiz.id) is not None:
            logger.info("Rankings for quiz %s already archived", quiz.id)
            return
        results = [
            result_from_record(r)
            for r in self._store.get_all(RESULTS_COLLECTION, {"quizId": quiz.id})
        ]
        rankings = tuple(rank_results(results))
        class_result = ClassResult(
            id=quiz.id,
            quiz_id=quiz.id,
            quiz_name=quiz.name,
            quiz_class=quiz.quiz_class,
            completed_at=completed_at,
            total_participants=len(rankings),
            top_rankings=rankings[:TOP_RANKINGS_LIMIT],
        )
        complete = CompleteResults(
            id=quiz.id,
            quiz_id=quiz.id,
            quiz_name=quiz.name,
            quiz_class=quiz.quiz_class,
            completed_at=completed_at,
            rankings=rankings,
        )
        self._store.set(COMPLETE_RESULTS_COLLECTION, quiz.id, complete_results_to_record(complete))
        self._store.set(CLASS_RESULTS_COLLECTION, quiz.id, class_result_to_record(class_result))

    # --- Preconditions ---

    @staticmethod
    def _require_status(quiz: Quiz, allowed: Iterable[QuizStatus], action: str) -> None:
        if quiz.status not in allowed:
            raise QuizStateError(f"Cannot {action} quiz '{quiz.name}' while it is {quiz.status.value}.")

    def _ensure_no_other_live_quiz(self, quiz_id: str) -> None:
        others = [q for q in self._repository.get_live_quizzes() if q.id != quiz_id]
        if others:
            raise QuizStateError(
                f"Quiz '{others[0].name}' is already {others[0].status.value}; end it first."
            )
