"""Business logic for managing quiz state shared between the API and the background ticker."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Iterable

from quiz_sync.core.clock import Clock, SynchronizedClock
from quiz_sync.core.errors import QuizStateError
from quiz_sync.core.models import (
    ClassResult,
    CompleteResults,
    JoinDecision,
    ProgressionState,
    Question,
    Quiz,
    QuizResult,
    QuizStatus,
    RankingEntry,
)
from quiz_sync.core.notices import InfoNotice, Notice, confirm_delete_quiz
from quiz_sync.core.progression import compute_progression
from quiz_sync.core.services.document_store import DocumentStore, InMemoryDocumentStore
from quiz_sync.core.services.game_session import GameSession
from quiz_sync.core.services.lobby_manager import LobbyManager
from quiz_sync.core.services.quiz_repository import QuizRepository
from quiz_sync.core.services.result_recorder import ResultRecorder
from quiz_sync.core.services.scoreboard import rank_results
from quiz_sync.core.services.start_scheduler import StartScheduler
from quiz_sync.core.settings import SyncSettings

logger = logging.getLogger(__name__)


class QuizManager:
    """Facade for quiz services: Repository, Lobby, Recorder, Scoreboard, and GameSession."""

    def __init__(
        self,
        store: DocumentStore | None = None,
        clock: Clock | None = None,
        settings: SyncSettings | None = None,
    ) -> None:
        self._lock = Lock()
        self._settings = settings or SyncSettings()
        self._store = store if store is not None else InMemoryDocumentStore()
        self._clock = clock if clock is not None else SynchronizedClock(self._store)

        # Services
        self._repository = QuizRepository(self._store)
        self._scheduler = StartScheduler()
        self._session = GameSession(self._store, self._repository, self._clock, self._scheduler)
        self._recorder = ResultRecorder(self._store, self._repository, self._clock)
        self._lobby = LobbyManager(self._store, self._repository, self._recorder, self._clock)

        for quiz in self._repository.list_quizzes({QuizStatus.SCHEDULED}):
            if quiz.scheduled_time is not None:
                self._scheduler.schedule(quiz.id, quiz.scheduled_time)

    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def settings(self) -> SyncSettings:
        return self._settings

    # --- Quiz Repository Delegation ---

    def create_quiz(
        self,
        name: str,
        quiz_class: str,
        questions: Iterable[Question],
        time_per_question: int | None = None,
        scheduled_time: int | None = None,
    ) -> Quiz:
        with self._lock:
            quiz = self._repository.create_quiz(
                name,
                quiz_class,
                questions,
                time_per_question if time_per_question is not None else self._settings.default_time_per_question,
                scheduled_time,
            )
            if scheduled_time is not None:
                self._scheduler.schedule(quiz.id, scheduled_time)
            logger.info("Quiz %s created: '%s' for %s", quiz.id, quiz.name, quiz.quiz_class)
            return quiz

    def list_quizzes(self, statuses: Iterable[QuizStatus] | None = None) -> list[Quiz]:
        with self._lock:
            return self._repository.list_quizzes(statuses)

    def get_quiz(self, quiz_id: str) -> Quiz:
        with self._lock:
            return self._repository.get_quiz(quiz_id)

    def get_live_quiz(self) -> Quiz | None:
        with self._lock:
            live = self._repository.get_live_quizzes()
            return live[0] if live else None

    def delete_quiz(self, quiz_id: str, confirmed: bool = False) -> Notice:
        """Delete a quiz; without confirmation only the confirmation prompt is returned."""
        with self._lock:
            quiz = self._repository.get_quiz(quiz_id)
            if not confirmed:
                return confirm_delete_quiz(quiz.name)
            if quiz.status.is_live:
                raise QuizStateError(f"Quiz '{quiz.name}' is {quiz.status.value}; end it before deleting.")
            self._repository.delete_quiz(quiz_id)
            self._scheduler.unschedule(quiz_id)
            logger.info("Quiz %s deleted", quiz_id)
            return InfoNotice("Quiz deleted", f"Quiz '{quiz.name}' was deleted.")

    # --- Game Session Delegation ---

    def schedule_quiz(self, quiz_id: str, start_at_ms: int) -> Quiz:
        with self._lock:
            return self._session.schedule(quiz_id, start_at_ms)

    def open_waiting_room(self, quiz_id: str) -> Quiz:
        with self._lock:
            return self._session.open_waiting_room(quiz_id)

    def start_quiz(self, quiz_id: str) -> Quiz:
        with self._lock:
            return self._session.start(quiz_id)

    def pause_quiz(self, quiz_id: str) -> Quiz:
        with self._lock:
            return self._session.pause(quiz_id)

    def resume_quiz(self, quiz_id: str) -> Quiz:
        with self._lock:
            return self._session.resume(quiz_id)

    def end_quiz(self, quiz_id: str) -> bool:
        with self._lock:
            return self._session.end(quiz_id)

    def cancel_quiz(self, quiz_id: str) -> bool:
        with self._lock:
            return self._session.cancel(quiz_id)

    def get_progression(self, quiz_id: str, now_ms: int | None = None) -> ProgressionState:
        with self._lock:
            quiz = self._repository.get_quiz(quiz_id)
            now = self._clock.now_ms() if now_ms is None else now_ms
            return compute_progression(quiz, now)

    def get_current_question(self, quiz_id: str) -> tuple[Quiz, ProgressionState, Question | None]:
        """Return the quiz, its progression and the question students should see now."""
        with self._lock:
            quiz = self._repository.get_quiz(quiz_id)
            state = compute_progression(quiz, self._clock.now_ms())
            visible = quiz.status in (QuizStatus.ACTIVE, QuizStatus.PAUSED) and not state.has_ended
            question = quiz.questions[state.current_question_index] if visible else None
            return quiz, state, question

    def run_due_schedules(self, now_ms: int | None = None) -> list[Quiz]:
        """Open (or start) every scheduled quiz whose start time has passed."""
        with self._lock:
            now = self._clock.now_ms() if now_ms is None else now_ms
            opened: list[Quiz] = []
            for quiz_id in self._scheduler.pop_due(now):
                quiz = self._repository.find_quiz(quiz_id)
                if quiz is None or quiz.status is not QuizStatus.SCHEDULED:
                    continue
                try:
                    if self._settings.auto_start_scheduled:
                        opened.append(self._session.start(quiz_id))
                    else:
                        opened.append(self._session.open_waiting_room(quiz_id))
                except QuizStateError as exc:
                    logger.warning("Scheduled quiz %s left scheduled: %s", quiz_id, exc)
            return opened

    # --- Lobby Delegation ---

    def evaluate_join(self, quiz_id: str, student_name: str) -> JoinDecision:
        with self._lock:
            return self._lobby.evaluate(quiz_id, student_name)

    def join_quiz(self, quiz_id: str, student_name: str) -> tuple[JoinDecision, QuizResult]:
        with self._lock:
            decision, result = self._lobby.join(quiz_id, student_name)
            logger.info(
                "%s joined quiz %s (missed %d)", result.student_name, quiz_id, decision.missed_count
            )
            return decision, result

    def get_waiting_participants(self, quiz_id: str) -> list[str]:
        with self._lock:
            return self._lobby.get_waiting_participants(quiz_id)

    # --- Result Recorder Delegation ---

    def submit_answer(
        self,
        quiz_id: str,
        student_name: str,
        question_index: int,
        answer: str,
    ) -> QuizResult:
        """Record an answer, joining the student first when they have no result yet.

        The answer is checked before the implicit join, so a rejected answer
        leaves no participant, result or attendance record behind.
        """
        with self._lock:
            now = self._clock.now_ms()
            if self._recorder.find_result(quiz_id, student_name) is None:
                quiz = self._repository.get_quiz(quiz_id)
                self._recorder.check_answer(quiz, question_index, answer, now)
                self._lobby.join(quiz_id, student_name, now)
            return self._recorder.submit_answer(quiz_id, student_name, question_index, answer, now)

    def finalize_result(self, quiz_id: str, student_name: str) -> QuizResult:
        with self._lock:
            return self._recorder.finalize(quiz_id, student_name)

    def record_tab_switches(self, quiz_id: str, student_name: str, switch_count: int) -> QuizResult:
        with self._lock:
            return self._recorder.record_tab_switches(quiz_id, student_name, switch_count)

    def get_result(self, quiz_id: str, student_name: str) -> QuizResult:
        with self._lock:
            return self._recorder.get_result(quiz_id, student_name)

    # --- Scoreboard Delegation ---

    def get_leaderboard(self, quiz_id: str, limit: int | None = None) -> list[RankingEntry]:
        with self._lock:
            self._repository.get_quiz(quiz_id)
            rankings = rank_results(self._recorder.results_for_quiz(quiz_id))
            size = self._settings.leaderboard_size if limit is None else max(0, limit)
            return rankings[:size]

    def get_class_results(self, quiz_id: str | None = None) -> list[ClassResult]:
        with self._lock:
            return self._session.get_class_results(quiz_id)

    def get_complete_results(self, quiz_id: str) -> CompleteResults | None:
        with self._lock:
            return self._session.get_complete_results(quiz_id)

    def delete_class_result(self, archive_id: str) -> ClassResult:
        with self._lock:
            return self._session.delete_class_result(archive_id)

    # --- Time ---

    def server_time(self) -> int:
        return self._clock.now_ms()

    def sync_clock(self) -> int:
        """Re-estimate the clock offset; a no-op for clocks that are not synchronized."""
        if isinstance(self._clock, SynchronizedClock):
            return self._clock.sync()
        return 0
