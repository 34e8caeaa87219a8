"""Service for admitting students to a quiz and tracking attendance."""

from __future__ import annotations

from quiz_sync.constants.store_constants import ATTENDANCE_COLLECTION
from quiz_sync.core.clock import Clock
from quiz_sync.core.errors import JoinRefusedError, QuizValidationError
from quiz_sync.core.join_policy import canonical_student_name, evaluate_join
from quiz_sync.core.models import JoinDecision, QuizResult, QuizStatus
from quiz_sync.core.services.document_store import DocumentStore
from quiz_sync.core.services.quiz_repository import QuizRepository
from quiz_sync.core.services.result_recorder import ResultRecorder


def attendance_key(quiz_id: str, student_name: str) -> str:
    return f"{quiz_id}_{canonical_student_name(student_name)}"


class LobbyManager:
    """Applies the join-time policy and records who has attempted each quiz."""

    def __init__(
        self,
        store: DocumentStore,
        repository: QuizRepository,
        recorder: ResultRecorder,
        clock: Clock,
    ) -> None:
        self._store = store
        self._repository = repository
        self._recorder = recorder
        self._clock = clock

    def has_attempted(self, quiz_id: str, student_name: str) -> bool:
        return self._store.get(ATTENDANCE_COLLECTION, attendance_key(quiz_id, student_name)) is not None

    def mark_attempted(self, quiz_id: str, student_name: str, joined_at: int) -> None:
        self._store.set(
            ATTENDANCE_COLLECTION,
            attendance_key(quiz_id, student_name),
            {"quizId": quiz_id, "studentName": student_name, "joinedAt": joined_at},
        )

    def evaluate(self, quiz_id: str, student_name: str, join_time: int | None = None) -> JoinDecision:
        """Check whether a student could join right now, without side effects."""
        quiz = self._repository.get_quiz(quiz_id)
        when = self._clock.now_ms() if join_time is None else join_time
        return evaluate_join(quiz, when, already_attempted=self.has_attempted(quiz_id, student_name))

    def join(
        self,
        quiz_id: str,
        student_name: str,
        join_time: int | None = None,
    ) -> tuple[JoinDecision, QuizResult]:
        """Admit a student, seed their result record and mark attendance."""
        name = " ".join(student_name.split())
        if not name:
            raise QuizValidationError("Student name must not be empty.")

        quiz = self._repository.get_quiz(quiz_id)
        when = self._clock.now_ms() if join_time is None else join_time
        decision = evaluate_join(quiz, when, already_attempted=self.has_attempted(quiz_id, name))
        if not decision.can_join:
            raise JoinRefusedError(decision)

        changes: dict[str, object] = {"totalParticipants": quiz.total_participants + 1}
        if quiz.status is QuizStatus.WAITING:
            known = {canonical_student_name(p) for p in quiz.waiting_participants}
            if canonical_student_name(name) not in known:
                changes["waitingParticipants"] = [*quiz.waiting_participants, name]
        self._repository.save_changes(quiz_id, changes)

        result = self._recorder.seed_result(quiz, name, when, decision.missed_count)
        self.mark_attempted(quiz_id, name, when)
        return decision, result

    def get_waiting_participants(self, quiz_id: str) -> list[str]:
        return list(self._repository.get_quiz(quiz_id).waiting_participants)
