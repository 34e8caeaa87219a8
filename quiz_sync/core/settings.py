"""Runtime settings passed explicitly to the manager and the API server."""

from __future__ import annotations

from dataclasses import dataclass

from quiz_sync.constants.network_constants import API_LOG_LEVEL, DEFAULT_HOST, DEFAULT_PORT
from quiz_sync.constants.quiz_constants import (
    CLOCK_SYNC_INTERVAL_MS,
    DEFAULT_TIME_PER_QUESTION_SECONDS,
    SYNC_TICK_INTERVAL_MS,
    TOP_RANKINGS_LIMIT,
)


@dataclass(slots=True)
class SyncSettings:
    """Tunable behaviour of the quiz service."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = API_LOG_LEVEL
    tick_interval_ms: int = SYNC_TICK_INTERVAL_MS
    clock_sync_interval_ms: int = CLOCK_SYNC_INTERVAL_MS
    default_time_per_question: int = DEFAULT_TIME_PER_QUESTION_SECONDS
    leaderboard_size: int = TOP_RANKINGS_LIMIT
    # Scheduled quizzes open the waiting room when due unless this is set.
    auto_start_scheduled: bool = False
    run_background_ticker: bool = True

    def __post_init__(self) -> None:
        if self.tick_interval_ms <= 0:
            raise ValueError("Tick interval must be positive.")
        if self.default_time_per_question <= 0:
            raise ValueError("Default time per question must be positive.")
        self.leaderboard_size = max(1, self.leaderboard_size)
