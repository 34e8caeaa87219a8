"""FastAPI server that exposes admin and student endpoints."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager, contextmanager
from typing import Any, Iterator

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field
import uvicorn

from quiz_sync.constants.about import APP_ABOUT_TEXT, APP_LICENSE, APP_NAME, APP_VERSION
from quiz_sync.core.errors import QuizNotFoundError, StoreUnavailableError
from quiz_sync.core.markdown_renderer import renderer
from quiz_sync.core.models import JoinDecision, ProgressionState, Question, QuizStatus
from quiz_sync.core.notices import ConfirmNotice, ErrorNotice, InfoNotice, notice_to_dict
from quiz_sync.core.quiz_manager import QuizManager
from quiz_sync.core.record_codec import (
    class_result_to_record,
    complete_results_to_record,
    quiz_to_record,
    ranking_to_record,
    result_to_record,
)
from quiz_sync.core.settings import SyncSettings
from quiz_sync.core.sync_loop import QuizSyncLoop

logger = logging.getLogger(__name__)


class QuestionPayload(BaseModel):
    """Payload schema for one multiple-choice question."""

    question: str
    options: list[str]
    correct_answer: str


class CreateQuizPayload(BaseModel):
    """Payload schema for creating a quiz."""

    name: str
    quiz_class: str
    questions: list[QuestionPayload] = Field(default_factory=list)
    time_per_question: int | None = None
    scheduled_time: int | None = None


class SchedulePayload(BaseModel):
    scheduled_time: int


class JoinPayload(BaseModel):
    """Payload schema for the join flow."""

    student_name: str


class AnswerPayload(BaseModel):
    """Payload schema for submitted answers."""

    quiz_id: str
    student_name: str
    question_index: int
    answer: str


class FinalizePayload(BaseModel):
    quiz_id: str
    student_name: str


class TabSwitchPayload(BaseModel):
    quiz_id: str
    student_name: str
    tab_switches: int


@contextmanager
def _reporting(action: str) -> Iterator[None]:
    """Translate service errors into HTTP errors carrying an error notice."""
    try:
        yield
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=_error_detail(action, exc)) from exc
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=_error_detail(action, exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=_error_detail(action, exc)) from exc
    except RuntimeError as exc:
        raise HTTPException(status_code=409, detail=_error_detail(action, exc)) from exc


def _error_detail(action: str, exc: Exception) -> dict[str, str]:
    return notice_to_dict(ErrorNotice(action, str(exc)))


def _progression_payload(state: ProgressionState) -> dict[str, Any]:
    return {
        "quizId": state.quiz_id,
        "status": state.status.value if state.status is not None else None,
        "currentQuestionIndex": state.current_question_index,
        "timeRemaining": state.time_remaining,
        "hasEnded": state.has_ended,
        "computedAt": state.computed_at,
    }


def _decision_payload(decision: JoinDecision) -> dict[str, Any]:
    return {
        "canJoin": decision.can_join,
        "missedCount": decision.missed_count,
        "reason": decision.reason,
    }


def _get_quiz_manager_dependency(quiz_manager: QuizManager):
    def dependency() -> QuizManager:
        return quiz_manager

    return dependency


async def _follow_live_quiz(manager: QuizManager, sync_loop: QuizSyncLoop, interval: float) -> None:
    """Start due scheduled quizzes and keep the sync loop on the live quiz."""
    while True:
        try:
            await asyncio.to_thread(manager.run_due_schedules)
            live = await asyncio.to_thread(manager.get_live_quiz)
            await sync_loop.watch(live.id if live is not None else None)
        except Exception:
            logger.exception("Background quiz ticker failed")
        await asyncio.sleep(interval)


def create_api_app(quiz_manager: QuizManager, settings: SyncSettings | None = None) -> FastAPI:
    """Create a FastAPI application wired to the provided quiz manager."""
    settings = settings or quiz_manager.settings
    quiz_manager_dep = _get_quiz_manager_dependency(quiz_manager)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sync_loop = QuizSyncLoop(
            quiz_manager.store,
            quiz_manager.clock,
            quiz_manager.end_quiz,
            tick_interval_ms=settings.tick_interval_ms,
            clock_sync_interval_ms=settings.clock_sync_interval_ms,
        )
        app.state.sync_loop = sync_loop
        ticker = None
        if settings.run_background_ticker:
            ticker = asyncio.create_task(
                _follow_live_quiz(quiz_manager, sync_loop, settings.tick_interval_ms / 1000),
                name="quiz-ticker",
            )
        logger.info("%s API ready", APP_NAME)
        try:
            yield
        finally:
            if ticker is not None:
                ticker.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await ticker
            await sync_loop.close()

    app = FastAPI(
        title=f"{APP_NAME} API",
        version=APP_VERSION,
        description=APP_ABOUT_TEXT,
        license_info={"name": APP_LICENSE},
        lifespan=lifespan,
    )

    # --- Quizzes ---

    @app.post("/quizzes", status_code=201)
    def create_quiz(
        payload: CreateQuizPayload,
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        questions = [Question(q.question, list(q.options), q.correct_answer) for q in payload.questions]
        with _reporting("create quiz"):
            quiz = manager.create_quiz(
                payload.name,
                payload.quiz_class,
                questions,
                payload.time_per_question,
                payload.scheduled_time,
            )
        return quiz_to_record(quiz)

    @app.get("/quizzes")
    def list_quizzes(
        status: list[QuizStatus] | None = Query(default=None),
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> list[dict[str, object]]:
        with _reporting("list quizzes"):
            quizzes = manager.list_quizzes(status)
        return [quiz_to_record(quiz) for quiz in quizzes]

    @app.get("/quizzes/{quiz_id}")
    def get_quiz(quiz_id: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        with _reporting("load quiz"):
            return quiz_to_record(manager.get_quiz(quiz_id))

    @app.delete("/quizzes/{quiz_id}")
    def delete_quiz(
        quiz_id: str,
        confirm: bool = False,
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        with _reporting("delete quiz"):
            notice = manager.delete_quiz(quiz_id, confirmed=confirm)
        return {
            "deleted": not isinstance(notice, ConfirmNotice),
            "notice": notice_to_dict(notice),
        }

    # --- Lifecycle ---

    @app.post("/quizzes/{quiz_id}/schedule")
    def schedule_quiz(
        quiz_id: str,
        payload: SchedulePayload,
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        with _reporting("schedule quiz"):
            return quiz_to_record(manager.schedule_quiz(quiz_id, payload.scheduled_time))

    @app.post("/quizzes/{quiz_id}/waiting-room")
    def open_waiting_room(quiz_id: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        with _reporting("open waiting room"):
            return quiz_to_record(manager.open_waiting_room(quiz_id))

    @app.post("/quizzes/{quiz_id}/start")
    def start_quiz(quiz_id: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        with _reporting("start quiz"):
            return quiz_to_record(manager.start_quiz(quiz_id))

    @app.post("/quizzes/{quiz_id}/pause")
    def pause_quiz(quiz_id: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        with _reporting("pause quiz"):
            return quiz_to_record(manager.pause_quiz(quiz_id))

    @app.post("/quizzes/{quiz_id}/resume")
    def resume_quiz(quiz_id: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        with _reporting("resume quiz"):
            return quiz_to_record(manager.resume_quiz(quiz_id))

    @app.post("/quizzes/{quiz_id}/end")
    def end_quiz(quiz_id: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        with _reporting("end quiz"):
            ended = manager.end_quiz(quiz_id)
            return {"ended": ended, "quiz": quiz_to_record(manager.get_quiz(quiz_id))}

    @app.post("/quizzes/{quiz_id}/cancel")
    def cancel_quiz(quiz_id: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        with _reporting("cancel quiz"):
            cancelled = manager.cancel_quiz(quiz_id)
            return {"cancelled": cancelled, "quiz": quiz_to_record(manager.get_quiz(quiz_id))}

    # --- Students ---

    @app.post("/quizzes/{quiz_id}/join", status_code=201)
    def join_quiz(
        quiz_id: str,
        payload: JoinPayload,
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        with _reporting("join quiz"):
            decision, result = manager.join_quiz(quiz_id, payload.student_name)
        return {**_decision_payload(decision), "result": result_to_record(result)}

    @app.get("/quizzes/{quiz_id}/participants")
    def get_participants(quiz_id: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        with _reporting("load participants"):
            waiting = manager.get_waiting_participants(quiz_id)
        return {"quizId": quiz_id, "waitingParticipants": waiting}

    @app.get("/quizzes/{quiz_id}/progression")
    def get_progression(quiz_id: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        with _reporting("load progression"):
            return _progression_payload(manager.get_progression(quiz_id))

    @app.get("/quizzes/{quiz_id}/question")
    def get_question(quiz_id: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        with _reporting("load question"):
            quiz, state, question = manager.get_current_question(quiz_id)
        payload: dict[str, object] = {
            **_progression_payload(state),
            "quizName": quiz.name,
            "questionCount": quiz.question_count,
            "timePerQuestion": quiz.time_per_question,
            "question_html": None,
            "options": [],
            "options_html": [],
        }
        if question is None:
            return payload
        # The correct answer is never sent to students.
        payload["question_html"] = renderer.render_fragment(question.question)
        payload["options"] = list(question.options)
        payload["options_html"] = [renderer.render_inline(option) for option in question.options]
        return payload

    @app.post("/results", status_code=201)
    def submit_answer(
        payload: AnswerPayload,
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        with _reporting("save answer"):
            result = manager.submit_answer(
                payload.quiz_id,
                payload.student_name,
                payload.question_index,
                payload.answer,
            )
        return result_to_record(result)

    @app.post("/results/finalize")
    def finalize_result(
        payload: FinalizePayload,
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        with _reporting("submit results"):
            return result_to_record(manager.finalize_result(payload.quiz_id, payload.student_name))

    @app.post("/results/tab-switches")
    def record_tab_switches(
        payload: TabSwitchPayload,
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        with _reporting("record tab switches"):
            result = manager.record_tab_switches(payload.quiz_id, payload.student_name, payload.tab_switches)
        return result_to_record(result)

    # --- Standings ---

    @app.get("/quizzes/{quiz_id}/leaderboard")
    def get_leaderboard(
        quiz_id: str,
        limit: int | None = None,
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> dict[str, object]:
        with _reporting("load leaderboard"):
            rankings = manager.get_leaderboard(quiz_id, limit)
        return {"quizId": quiz_id, "rankings": [ranking_to_record(entry) for entry in rankings]}

    @app.get("/class-results")
    def get_class_results(
        quiz_id: str | None = None,
        manager: QuizManager = Depends(quiz_manager_dep),
    ) -> list[dict[str, object]]:
        with _reporting("load class results"):
            archives = manager.get_class_results(quiz_id)
        return [{"id": archive.id, **class_result_to_record(archive)} for archive in archives]

    @app.delete("/class-results/{archive_id}")
    def delete_class_result(archive_id: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        with _reporting("delete class result"):
            archive = manager.delete_class_result(archive_id)
        notice = InfoNotice("Result deleted", f"Results for '{archive.quiz_name}' were deleted.")
        return {"deleted": True, "notice": notice_to_dict(notice)}

    @app.get("/quizzes/{quiz_id}/complete-results")
    def get_complete_results(quiz_id: str, manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        with _reporting("load complete results"):
            manager.get_quiz(quiz_id)
            archive = manager.get_complete_results(quiz_id)
            if archive is None:
                raise QuizNotFoundError(f"Quiz {quiz_id} has no archived results yet.")
        return {"id": archive.id, **complete_results_to_record(archive)}

    @app.get("/time")
    def get_server_time(manager: QuizManager = Depends(quiz_manager_dep)) -> dict[str, object]:
        return {"serverTime": manager.server_time()}

    return app


def run_api_server(quiz_manager: QuizManager) -> None:
    """Run the FastAPI server in the foreground until interrupted."""
    settings = quiz_manager.settings
    uvicorn.run(
        create_api_app(quiz_manager),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )
