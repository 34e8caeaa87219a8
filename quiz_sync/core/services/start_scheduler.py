"""Priority queue of pending scheduled-quiz starts."""

from __future__ import annotations

import heapq
from threading import Lock


class StartScheduler:
    """Orders pending starts by time; evaluated by the central ticker.

    Rescheduling or unscheduling leaves stale heap entries behind; they are
    discarded lazily when they reach the front.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._heap: list[tuple[int, str]] = []
        self._pending: dict[str, int] = {}

    def schedule(self, quiz_id: str, start_at_ms: int) -> None:
        with self._lock:
            self._pending[quiz_id] = start_at_ms
            heapq.heappush(self._heap, (start_at_ms, quiz_id))

    def unschedule(self, quiz_id: str) -> bool:
        with self._lock:
            return self._pending.pop(quiz_id, None) is not None

    def is_scheduled(self, quiz_id: str) -> bool:
        with self._lock:
            return quiz_id in self._pending

    def pop_due(self, now_ms: int) -> list[str]:
        """Remove and return every quiz id whose start time has passed, earliest first."""
        due: list[str] = []
        with self._lock:
            while self._heap and self._heap[0][0] <= now_ms:
                start_at, quiz_id = heapq.heappop(self._heap)
                if self._pending.get(quiz_id) != start_at:
                    continue
                del self._pending[quiz_id]
                due.append(quiz_id)
        return due

    def next_due_time(self) -> int | None:
        with self._lock:
            while self._heap and self._pending.get(self._heap[0][1]) != self._heap[0][0]:
                heapq.heappop(self._heap)
            return self._heap[0][0] if self._heap else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)
