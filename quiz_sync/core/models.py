"""Domain models for the quiz service."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class QuizStatus(str, Enum):
    """Lifecycle status of a quiz record."""

    DRAFT = "draft"
    SCHEDULED = "scheduled"
    WAITING = "waiting"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    INACTIVE = "inactive"

    @property
    def is_live(self) -> bool:
        return self in LIVE_STATUSES

    @property
    def is_frozen(self) -> bool:
        return self in FROZEN_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


LIVE_STATUSES = frozenset({QuizStatus.WAITING, QuizStatus.ACTIVE, QuizStatus.PAUSED})
FROZEN_STATUSES = frozenset({QuizStatus.WAITING, QuizStatus.PAUSED})
TERMINAL_STATUSES = frozenset({QuizStatus.COMPLETED, QuizStatus.INACTIVE})


@dataclass(slots=True)
class Question:
    """Multiple-choice question; the correct answer is stored as option text."""

    question: str
    options: list[str]
    correct_answer: str


@dataclass(slots=True)
class Quiz:
    """Quiz definition plus its runtime state."""

    id: str
    name: str
    quiz_class: str
    questions: list[Question]
    time_per_question: int
    status: QuizStatus = QuizStatus.DRAFT
    scheduled_time: int | None = None
    quiz_start_time: int | None = None
    current_question_index: int = 0
    pause_started_at: int | None = None
    waiting_participants: list[str] = field(default_factory=list)
    total_participants: int = 0
    created_at: int | None = None
    updated_at: int | None = None

    @property
    def question_count(self) -> int:
        return len(self.questions)

    @property
    def question_duration_ms(self) -> int:
        return self.time_per_question * 1000


@dataclass(slots=True)
class QuizResult:
    """One student's answers for one quiz, updated in place as they answer."""

    id: str
    quiz_id: str
    student_name: str
    answers: list[str]
    total_questions: int
    score: int = 0
    percentage: int = 0
    completed_at: int | None = None
    tab_switches: int = 0
    join_time: int | None = None
    missed_count: int = 0
    quiz_name: str = ""
    quiz_class: str = ""

    @property
    def answered_count(self) -> int:
        return sum(1 for answer in self.answers if answer)


@dataclass(frozen=True, slots=True)
class RankingEntry:
    """Immutable leaderboard row."""

    rank: int
    student_name: str
    score: int
    percentage: int
    total_questions: int
    tab_switches: int = 0
    completed_at: int | None = None


@dataclass(frozen=True, slots=True)
class ClassResult:
    """Top rankings archived when a quiz ends."""

    id: str
    quiz_id: str
    quiz_name: str
    quiz_class: str
    completed_at: int
    total_participants: int
    top_rankings: tuple[RankingEntry, ...]


@dataclass(frozen=True, slots=True)
class CompleteResults:
    """Full standings archived alongside the class result."""

    id: str
    quiz_id: str
    quiz_name: str
    quiz_class: str
    completed_at: int
    rankings: tuple[RankingEntry, ...]

    @property
    def total_participants(self) -> int:
        return len(self.rankings)


@dataclass(frozen=True, slots=True)
class ProgressionState:
    """Snapshot of derived progression at one instant."""

    quiz_id: str | None
    status: QuizStatus | None
    current_question_index: int
    time_remaining: int
    has_ended: bool
    computed_at: int


@dataclass(frozen=True, slots=True)
class JoinDecision:
    """Outcome of the join-time policy for one student."""

    can_join: bool
    missed_count: int = 0
    reason: str | None = None
