from quiz_sync.core.models import QuizResult
from quiz_sync.core.services.scoreboard import (
    deduplicate_results,
    order_results,
    rank_results,
    top_rankings,
)


def _result(name, score, completed_at=None, result_id=None):
    return QuizResult(
        id=result_id or name,
        quiz_id="quiz-1",
        student_name=name,
        answers=[],
        total_questions=5,
        score=score,
        percentage=score * 20,
        completed_at=completed_at,
    )


def test_ranking_orders_by_score_then_completion():
    results = [_result("A", 3, 100), _result("B", 3, 50), _result("C", 5, None)]
    rankings = rank_results(results)
    assert [(r.rank, r.student_name, r.score) for r in rankings] == [
        (1, "C", 5),
        (2, "B", 3),
        (3, "A", 3),
    ]


def test_unfinished_results_sort_after_finished_ties():
    ordered = order_results([_result("Late", 2, None), _result("Done", 2, 900)])
    assert [r.student_name for r in ordered] == ["Done", "Late"]


def test_ties_get_distinct_sequential_ranks():
    rankings = rank_results([_result("Bo", 1), _result("Al", 1), _result("Cy", 1)])
    assert [r.rank for r in rankings] == [1, 2, 3]
    assert [r.student_name for r in rankings] == ["Al", "Bo", "Cy"]


def test_duplicates_keep_completed_then_best_record():
    kept = deduplicate_results(
        [
            _result("ada", 4, None, "r1"),
            _result("Ada ", 2, 300, "r2"),
            _result("ADA", 3, 400, "r3"),
        ]
    )
    assert len(kept) == 1
    assert kept[0].id == "r3"


def test_top_rankings_truncates():
    results = [_result(f"s{i}", i) for i in range(8)]
    top = top_rankings(results)
    assert len(top) == 5
    assert top[0].student_name == "s7"
    assert top_rankings(results, limit=2)[-1].rank == 2


def test_empty_input():
    assert rank_results([]) == []
