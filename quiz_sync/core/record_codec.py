"""Conversion between store records and canonical domain models.

Store records use camelCase keys. Older records written by the browser
client used different names for some concepts (``startTime`` for the quiz
start, ``originalQuizId`` for the quiz reference). Those are migrated here,
once, so nothing past this boundary ever sees a legacy name. Timestamps of
every supported shape are normalized to epoch milliseconds on the way in.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Mapping

from quiz_sync.core.errors import QuizValidationError
from quiz_sync.core.models import (
    ClassResult,
    CompleteResults,
    Question,
    Quiz,
    QuizResult,
    QuizStatus,
    RankingEntry,
)
from quiz_sync.core.services.document_store import ServerTimestamp

_LEGACY_QUIZ_FIELDS = {
    "startTime": "quizStartTime",
    "originalQuizId": "id",
    "quizName": "name",
    "quizClass": "class",
}
_LEGACY_RESULT_FIELDS = {
    "originalQuizId": "quizId",
}
# The old single "current" quiz document kept the real quiz id here.
_OVERRIDING_LEGACY_FIELDS = frozenset({"originalQuizId"})


def normalize_timestamp(value: Any) -> int | None:
    """Return ``value`` as epoch milliseconds, or None when absent."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise QuizValidationError(f"Unsupported timestamp value: {value!r}")
    if isinstance(value, ServerTimestamp):
        return value.to_millis()
    if isinstance(value, float) and not math.isfinite(value):
        raise QuizValidationError(f"Unsupported timestamp value: {value!r}")
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() * 1000)
    if isinstance(value, str):
        try:
            return normalize_timestamp(datetime.fromisoformat(value))
        except ValueError as exc:
            raise QuizValidationError(f"Unsupported timestamp value: {value!r}") from exc
    to_datetime = getattr(value, "to_datetime", None)
    if callable(to_datetime):
        return normalize_timestamp(to_datetime())
    raise QuizValidationError(f"Unsupported timestamp value: {value!r}")


def migrate_legacy_fields(record: Mapping[str, Any], renames: Mapping[str, str]) -> dict[str, Any]:
    """Copy ``record`` renaming legacy keys.

    Canonical keys win over legacy ones, except for the reference fields in
    ``_OVERRIDING_LEGACY_FIELDS`` which always carry the real identity.
    """
    migrated = dict(record)
    for legacy, canonical in renames.items():
        if legacy not in migrated:
            continue
        legacy_value = migrated.pop(legacy)
        if legacy_value is None:
            continue
        if legacy in _OVERRIDING_LEGACY_FIELDS or migrated.get(canonical) is None:
            migrated[canonical] = legacy_value
    return migrated


# --- Quiz ---

def question_to_record(question: Question) -> dict[str, Any]:
    return {
        "question": question.question,
        "options": list(question.options),
        "correctAnswer": question.correct_answer,
    }


def question_from_record(record: Mapping[str, Any]) -> Question:
    return Question(
        question=str(record.get("question", "")),
        options=[str(option) for option in record.get("options") or []],
        correct_answer=str(record.get("correctAnswer", "")),
    )


def quiz_to_record(quiz: Quiz) -> dict[str, Any]:
    return {
        "id": quiz.id,
        "name": quiz.name,
        "class": quiz.quiz_class,
        "questions": [question_to_record(q) for q in quiz.questions],
        "timePerQuestion": quiz.time_per_question,
        "status": quiz.status.value,
        "scheduledTime": quiz.scheduled_time,
        "quizStartTime": quiz.quiz_start_time,
        "currentQuestionIndex": quiz.current_question_index,
        "pauseStartedAt": quiz.pause_started_at,
        "waitingParticipants": list(quiz.waiting_participants),
        "totalParticipants": quiz.total_participants,
        "createdAt": quiz.created_at,
        "updatedAt": quiz.updated_at,
    }


def quiz_from_record(record: Mapping[str, Any]) -> Quiz:
    data = migrate_legacy_fields(record, _LEGACY_QUIZ_FIELDS)
    try:
        status = QuizStatus(data.get("status") or QuizStatus.DRAFT.value)
    except ValueError as exc:
        raise QuizValidationError(f"Unknown quiz status: {data.get('status')!r}") from exc
    return Quiz(
        id=str(data.get("id", "")),
        name=str(data.get("name", "")),
        quiz_class=str(data.get("class", "")),
        questions=[question_from_record(q) for q in data.get("questions") or []],
        time_per_question=int(data.get("timePerQuestion") or 0),
        status=status,
        scheduled_time=normalize_timestamp(data.get("scheduledTime")),
        quiz_start_time=normalize_timestamp(data.get("quizStartTime")),
        current_question_index=int(data.get("currentQuestionIndex") or 0),
        pause_started_at=normalize_timestamp(data.get("pauseStartedAt")),
        waiting_participants=list(data.get("waitingParticipants") or []),
        total_participants=int(data.get("totalParticipants") or 0),
        created_at=normalize_timestamp(data.get("createdAt")),
        updated_at=normalize_timestamp(data.get("updatedAt")),
    )


# --- Results ---

def result_to_record(result: QuizResult) -> dict[str, Any]:
    return {
        "id": result.id,
        "quizId": result.quiz_id,
        "studentName": result.student_name,
        "answers": list(result.answers),
        "totalQuestions": result.total_questions,
        "score": result.score,
        "percentage": result.percentage,
        "completedAt": result.completed_at,
        "tabSwitches": result.tab_switches,
        "joinTime": result.join_time,
        "missedCount": result.missed_count,
        "quizName": result.quiz_name,
        "quizClass": result.quiz_class,
    }


def result_from_record(record: Mapping[str, Any]) -> QuizResult:
    data = migrate_legacy_fields(record, _LEGACY_RESULT_FIELDS)
    answers = ["" if answer is None else str(answer) for answer in data.get("answers") or []]
    total = int(data.get("totalQuestions") or len(answers) or 0)
    return QuizResult(
        id=str(data.get("id", "")),
        quiz_id=str(data.get("quizId", "")),
        student_name=str(data.get("studentName", "")),
        answers=answers,
        total_questions=total,
        score=int(data.get("score") or 0),
        percentage=int(data.get("percentage") or 0),
        completed_at=normalize_timestamp(data.get("completedAt")),
        tab_switches=int(data.get("tabSwitches") or 0),
        join_time=normalize_timestamp(data.get("joinTime")),
        missed_count=int(data.get("missedCount") or 0),
        quiz_name=str(data.get("quizName") or ""),
        quiz_class=str(data.get("quizClass") or ""),
    )


# --- Archives ---

def ranking_to_record(entry: RankingEntry) -> dict[str, Any]:
    return {
        "rank": entry.rank,
        "studentName": entry.student_name,
        "score": entry.score,
        "percentage": entry.percentage,
        "totalQuestions": entry.total_questions,
        "tabSwitches": entry.tab_switches,
        "completedAt": entry.completed_at,
    }


def ranking_from_record(record: Mapping[str, Any]) -> RankingEntry:
    return RankingEntry(
        rank=int(record.get("rank") or 0),
        student_name=str(record.get("studentName", "")),
        score=int(record.get("score") or 0),
        percentage=int(record.get("percentage") or 0),
        total_questions=int(record.get("totalQuestions") or 0),
        tab_switches=int(record.get("tabSwitches") or 0),
        completed_at=normalize_timestamp(record.get("completedAt")),
    )


def class_result_to_record(archive: ClassResult) -> dict[str, Any]:
    return {
        "quizId": archive.quiz_id,
        "quizName": archive.quiz_name,
        "quizClass": archive.quiz_class,
        "completedAt": archive.completed_at,
        "totalParticipants": archive.total_participants,
        "topRankings": [ranking_to_record(entry) for entry in archive.top_rankings],
    }


def class_result_from_record(record: Mapping[str, Any]) -> ClassResult:
    data = migrate_legacy_fields(record, _LEGACY_RESULT_FIELDS)
    return ClassResult(
        id=str(data.get("id", "")),
        quiz_id=str(data.get("quizId", "")),
        quiz_name=str(data.get("quizName", "")),
        quiz_class=str(data.get("quizClass", "")),
        completed_at=normalize_timestamp(data.get("completedAt")) or 0,
        total_participants=int(data.get("totalParticipants") or 0),
        top_rankings=tuple(ranking_from_record(r) for r in data.get("topRankings") or []),
    )


def complete_results_to_record(archive: CompleteResults) -> dict[str, Any]:
    return {
        "quizId": archive.quiz_id,
        "quizName": archive.quiz_name,
        "quizClass": archive.quiz_class,
        "completedAt": archive.completed_at,
        "totalParticipants": archive.total_participants,
        "allResults": [ranking_to_record(entry) for entry in archive.rankings],
    }


def complete_results_from_record(record: Mapping[str, Any]) -> CompleteResults:
    return CompleteResults(
        id=str(record.get("id", "")),
        quiz_id=str(record.get("quizId", "")),
        quiz_name=str(record.get("quizName", "")),
        quiz_class=str(record.get("quizClass", "")),
        completed_at=normalize_timestamp(record.get("completedAt")) or 0,
        rankings=tuple(ranking_from_record(r) for r in record.get("allResults") or []),
    )
