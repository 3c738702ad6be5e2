import math

import pytest

from core.domain import EvaluationMetric
from services.evaluation import average_metrics, ndcg, precision, recall, reciprocal_rank


def test_precision():
    assert precision(["a", "b", "c", "d"], {"a", "c"}) == 0.5
    assert precision([], {"a"}) == 0.0


def test_recall():
    assert recall(["a", "b"], {"a", "c"}) == 0.5
    assert recall(["a"], set()) == 0.0


def test_reciprocal_rank():
    assert reciprocal_rank(["x", "y", "a"], {"a"}) == pytest.approx(1 / 3)
    assert reciprocal_rank(["x"], {"a"}) == 0.0


def test_ndcg_single_relevant_at_second_position():
    assert ndcg(["x", "a"], {"a"}) == pytest.approx(1 / math.log2(3))


def test_ndcg_perfect_ranking():
    assert ndcg(["a", "b", "x"], {"a", "b"}) == pytest.approx(1.0)


def test_ndcg_ideal_is_capped_by_retrieved_length():
    # Three relevant items but only two retrieved: IDCG uses two slots
    assert ndcg(["a", "b"], {"a", "b", "c"}) == pytest.approx(1.0)


def test_ndcg_without_hits():
    assert ndcg(["x", "y"], {"a"}) == 0.0
    assert ndcg([], {"a"}) == 0.0


def test_metrics_stay_in_unit_interval():
    retrieved = ["a", "x", "b", "y"]
    relevant = {"a", "b", "z"}
    for value in (
        precision(retrieved, relevant),
        recall(retrieved, relevant),
        reciprocal_rank(retrieved, relevant),
        ndcg(retrieved, relevant),
    ):
        assert 0.0 <= value <= 1.0


def test_average_metrics():
    averaged = average_metrics([
        EvaluationMetric(precision=1.0, recall=0.5, mrr=1.0, ndcg=1.0, avg_relevance_score=0.8),
        EvaluationMetric(precision=0.0, recall=0.5, mrr=0.5, ndcg=0.0, avg_relevance_score=0.2),
    ])
    assert averaged.precision == 0.5
    assert averaged.recall == 0.5
    assert averaged.mrr == 0.75
    assert averaged.ndcg == 0.5
    assert averaged.avg_relevance_score == pytest.approx(0.5)
    assert average_metrics([]) == EvaluationMetric()
