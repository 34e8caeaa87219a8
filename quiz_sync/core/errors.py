"""Exception hierarchy shared by the quiz services and the API layer."""

from __future__ import annotations

from quiz_sync.core.models import JoinDecision


class QuizSyncError(Exception):
    """Base class for every error raised by the quiz services."""


class QuizValidationError(QuizSyncError, ValueError):
    """Raised when quiz metadata, questions or an answer are malformed."""


class QuizNotFoundError(QuizSyncError, LookupError):
    """Raised when a quiz or result record does not exist."""


class QuizStateError(QuizSyncError, RuntimeError):
    """Raised when an action is not allowed in the quiz's current state."""


class DuplicateAttemptError(QuizStateError):
    """Raised when a student tries to take the same quiz twice."""


class JoinRefusedError(QuizStateError):
    """Raised when the join-time policy refuses a student."""

    def __init__(self, decision: JoinDecision) -> None:
        super().__init__(decision.reason or "Unable to join this quiz.")
        self.decision = decision


class StoreError(QuizSyncError):
    """Base class for document store failures."""


class DocumentNotFoundError(StoreError, LookupError):
    """Raised by the store when updating or reading a missing document."""

    def __init__(self, collection: str, document_id: str) -> None:
        super().__init__(f"Document {collection}/{document_id} not found")
        self.collection = collection
        self.document_id = document_id


class StoreUnavailableError(StoreError):
    """Raised when the store cannot be reached."""
