"""Leaderboard computation over stored quiz results."""

from __future__ import annotations

from typing import Iterable

from quiz_sync.constants.quiz_constants import TOP_RANKINGS_LIMIT
from quiz_sync.core.join_policy import canonical_student_name
from quiz_sync.core.models import QuizResult, RankingEntry


def _preference_key(result: QuizResult) -> tuple[int, int, int]:
    # Smaller is preferred: completed first, then higher score, then earlier finish.
    completed = 0 if result.completed_at is not None else 1
    finished_at = result.completed_at if result.completed_at is not None else 0
    return completed, -result.score, finished_at


def _order_key(result: QuizResult) -> tuple[int, int, int, str]:
    # In-progress records sort after completed ones holding the same score.
    unfinished = 1 if result.completed_at is None else 0
    finished_at = result.completed_at if result.completed_at is not None else 0
    return -result.score, unfinished, finished_at, canonical_student_name(result.student_name)


def deduplicate_results(results: Iterable[QuizResult]) -> list[QuizResult]:
    """Keep exactly one record per student."""
    chosen: dict[str, QuizResult] = {}
    for result in results:
        key = canonical_student_name(result.student_name)
        current = chosen.get(key)
        if current is None or _preference_key(result) < _preference_key(current):
            chosen[key] = result
    return list(chosen.values())


def order_results(results: Iterable[QuizResult]) -> list[QuizResult]:
    return sorted(results, key=_order_key)


def rank_results(results: Iterable[QuizResult]) -> list[RankingEntry]:
    """Deduplicate, order and number results; ties still get distinct ranks."""
    ordered = order_results(deduplicate_results(results))
    return [
        RankingEntry(
            rank=position,
            student_name=result.student_name,
            score=result.score,
            percentage=result.percentage,
            total_questions=result.total_questions,
            tab_switches=result.tab_switches,
            completed_at=result.completed_at,
        )
        for position, result in enumerate(ordered, start=1)
    ]


def top_rankings(results: Iterable[QuizResult], limit: int = TOP_RANKINGS_LIMIT) -> list[RankingEntry]:
    return rank_results(results)[:limit]

