"""Synchronization loop bridging the progression engine to observers and the store.

One loop follows one quiz at a time. It keeps the latest quiz record from the
store subscription, recomputes progression on a fixed tick using the
offset-corrected clock, pushes every tick's state to its observers, and asks
for the quiz to be ended once its time has run out.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Callable

from quiz_sync.constants.quiz_constants import CLOCK_SYNC_INTERVAL_MS, SYNC_TICK_INTERVAL_MS
from quiz_sync.constants.store_constants import QUIZZES_COLLECTION
from quiz_sync.core.clock import Clock, SynchronizedClock
from quiz_sync.core.models import ProgressionState, Quiz, QuizStatus
from quiz_sync.core.progression import compute_progression
from quiz_sync.core.record_codec import quiz_from_record
from quiz_sync.core.services.document_store import DocumentStore, Record, Unsubscribe

logger = logging.getLogger(__name__)

StateObserver = Callable[[ProgressionState], None]
EndQuizRequest = Callable[[str], Any]


def distinct_states(observer: StateObserver) -> StateObserver:
    """Wrap ``observer`` so it only sees states that differ from the previous one."""
    last: list[tuple[Any, ...]] = []

    def on_state(state: ProgressionState) -> None:
        signature = (
            state.quiz_id,
            state.status,
            state.current_question_index,
            state.time_remaining,
            state.has_ended,
        )
        if last and last[0] == signature:
            return
        last[:] = [signature]
        observer(state)

    return on_state


class QuizSyncLoop:
    """Ticks progression for the watched quiz until it is cleared, ends or the loop closes."""

    def __init__(
        self,
        store: DocumentStore,
        clock: Clock,
        end_quiz: EndQuizRequest | None = None,
        *,
        tick_interval_ms: int = SYNC_TICK_INTERVAL_MS,
        clock_sync_interval_ms: int = CLOCK_SYNC_INTERVAL_MS,
    ) -> None:
        self._store = store
        self._clock = clock
        self._end_quiz = end_quiz
        self._tick_interval = tick_interval_ms / 1000
        self._clock_sync_interval_ms = clock_sync_interval_ms

        self._observers: list[StateObserver] = []
        self._quiz_id: str | None = None
        self._quiz: Quiz | None = None
        self._unsubscribe: Unsubscribe | None = None
        self._task: asyncio.Task[None] | None = None
        self._latest_state: ProgressionState | None = None
        self._last_status: QuizStatus | None = None

        # Auto-end bookkeeping: one request in flight, never repeated after success.
        self._end_task: asyncio.Task[None] | None = None
        self._ended_quiz_id: str | None = None
        self._closed = False

    # --- Observation ---

    @property
    def quiz_id(self) -> str | None:
        return self._quiz_id

    @property
    def quiz(self) -> Quiz | None:
        return self._quiz

    @property
    def latest_state(self) -> ProgressionState | None:
        return self._latest_state

    @property
    def ended_quiz_id(self) -> str | None:
        """Id of the watched quiz this loop has already ended, if any."""
        return self._ended_quiz_id

    @property
    def is_ticking(self) -> bool:
        return self._task is not None and not self._task.done()

    def add_observer(self, observer: StateObserver) -> Callable[[], None]:
        self._observers.append(observer)

        def remove() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return remove

    # --- Lifecycle ---

    async def watch(self, quiz_id: str | None) -> None:
        """Follow ``quiz_id``; ``None`` clears the display and stops ticking."""
        if self._closed:
            raise RuntimeError("Sync loop is closed.")
        if quiz_id == self._quiz_id and (quiz_id is None or self._unsubscribe is not None):
            return

        await self._stop_ticking()
        self._release_subscription()
        self._quiz_id = quiz_id
        self._quiz = None
        self._last_status = None
        self._ended_quiz_id = None
        if quiz_id is None:
            return

        loop = asyncio.get_running_loop()
        self._unsubscribe = self._store.subscribe(
            QUIZZES_COLLECTION,
            {"id": quiz_id},
            lambda records: self._on_records(loop, quiz_id, records),
        )
        await self._sync_clock(force=True)
        self._task = asyncio.create_task(self._run(), name=f"quiz-sync-{quiz_id}")
        logger.debug("Watching quiz %s", quiz_id)

    async def close(self) -> None:
        """Stop ticking and release the subscription; safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        await self._stop_ticking()
        self._release_subscription()
        if self._end_task is not None and not self._end_task.done():
            await asyncio.gather(self._end_task, return_exceptions=True)
        self._observers.clear()

    async def __aenter__(self) -> QuizSyncLoop:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # --- Ticking ---

    async def tick(self) -> ProgressionState:
        """Recompute and publish progression once."""
        await self._sync_clock()
        now = self._clock.now_ms()
        quiz = self._quiz
        state = compute_progression(quiz, now)
        if quiz is not None and state.has_ended and self._last_status is QuizStatus.ACTIVE:
            self._request_end(quiz.id)
        self._last_status = state.status
        self._latest_state = state
        self._publish(state)
        return state

    async def _run(self) -> None:
        try:
            while True:
                try:
                    await self.tick()
                except Exception:
                    logger.exception("Sync tick for quiz %s failed", self._quiz_id)
                if self._quiz is not None and self._quiz.status.is_terminal:
                    logger.debug("Quiz %s is %s; ticking stopped", self._quiz_id, self._quiz.status.value)
                    return
                await asyncio.sleep(self._tick_interval)
        finally:
            if self._task is asyncio.current_task():
                self._task = None

    async def _stop_ticking(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    # --- Auto-end ---

    def _request_end(self, quiz_id: str) -> None:
        if self._end_quiz is None or quiz_id == self._ended_quiz_id:
            return
        if self._end_task is not None and not self._end_task.done():
            return
        self._end_task = asyncio.create_task(self._send_end_request(quiz_id))

    async def _send_end_request(self, quiz_id: str) -> None:
        try:
            await asyncio.to_thread(self._end_quiz, quiz_id)
        except Exception as exc:
            logger.warning("Ending quiz %s failed, will retry next tick: %s", quiz_id, exc)
            return
        self._ended_quiz_id = quiz_id
        logger.info("Quiz %s ended after its last question ran out", quiz_id)

    # --- Store plumbing ---

    def _on_records(self, loop: asyncio.AbstractEventLoop, quiz_id: str, records: list[Record]) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._apply_records(quiz_id, records)
        elif not loop.is_closed():
            loop.call_soon_threadsafe(self._apply_records, quiz_id, records)

    def _apply_records(self, quiz_id: str, records: list[Record]) -> None:
        if quiz_id != self._quiz_id:
            return
        self._quiz = quiz_from_record(records[0]) if records else None

    def _release_subscription(self) -> None:
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()

    async def _sync_clock(self, force: bool = False) -> None:
        if not isinstance(self._clock, SynchronizedClock):
            return
        if force or self._clock.sync_due(self._clock_sync_interval_ms):
            await asyncio.to_thread(self._clock.sync)

    def _publish(self, state: ProgressionState) -> None:
        for observer in list(self._observers):
            try:
                observer(state)
            except Exception:
                logger.exception("Progression observer failed")
