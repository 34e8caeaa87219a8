"""
Pytest configuration and fixtures for QuizSync tests.
"""
import pytest

from quiz_sync.core.clock import ManualClock
from quiz_sync.core.models import Question, Quiz, QuizStatus
from quiz_sync.core.quiz_manager import QuizManager
from quiz_sync.core.services.document_store import InMemoryDocumentStore
from quiz_sync.core.settings import SyncSettings


START_MS = 1_000_000


@pytest.fixture
def sample_questions():
    """Three questions, 30 seconds each, as used throughout the scenarios"""
    return [
        Question("What is 2+2?", ["3", "4", "5", "6"], "4"),
        Question("What is the capital of France?", ["Paris", "Rome", "Madrid", "Berlin"], "Paris"),
        Question("Which planet is largest?", ["Earth", "Mars", "Jupiter", "Venus"], "Jupiter"),
    ]


@pytest.fixture
def make_quiz(sample_questions):
    """Build an in-memory quiz record without touching a store"""
    def factory(status=QuizStatus.ACTIVE, quiz_start_time=0, **overrides):
        fields = {
            "id": "quiz-1",
            "name": "General Knowledge",
            "quiz_class": "7A",
            "questions": list(sample_questions),
            "time_per_question": 30,
            "status": status,
            "quiz_start_time": quiz_start_time,
        }
        fields.update(overrides)
        return Quiz(**fields)

    return factory


@pytest.fixture
def clock():
    return ManualClock(START_MS)


@pytest.fixture
def store(clock):
    return InMemoryDocumentStore(time_source=clock.now_ms)


@pytest.fixture
def settings():
    return SyncSettings(run_background_ticker=False)


@pytest.fixture
def manager(store, clock, settings):
    return QuizManager(store=store, clock=clock, settings=settings)


@pytest.fixture
def created_quiz(manager, sample_questions):
    return manager.create_quiz("General Knowledge", "7A", sample_questions, 30)


@pytest.fixture
def started_quiz(manager, created_quiz):
    """Quiz started at START_MS"""
    return manager.start_quiz(created_quiz.id)
