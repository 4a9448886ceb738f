import numpy as np
import pytest
from scipy import stats

from lotto_backtest.backtester import CombinationRound, EvaluationRecord
from lotto_backtest.config import MetricsConfig
from lotto_backtest.errors import InsufficientData, InvalidConfig
from lotto_backtest.metrics import (
    aggregate,
    calibration_report,
    combination_metrics,
    compare_metrics,
    compute_lift,
    format_metrics,
    is_known_metric,
    longest_run_below,
    number_accuracy,
    performance_trend,
    score_bands,
    significance_vs_random,
    top_n_comparison,
)


def make_record(round_number, hits, ranks=(1, 2, 3, 4, 5, 6), bonus_hit=False,
                probabilities=None, actual=(1, 2, 3, 4, 5, 6), predicted=(1, 2, 3, 4, 5, 6)):
    return EvaluationRecord(
        round=round_number,
        fold_index=0,
        predicted=tuple(predicted),
        actual=tuple(actual),
        bonus=7,
        hit_count=hits,
        actual_ranks=tuple(ranks),
        bonus_hit=bonus_hit,
        probabilities=probabilities,
    )


def test_aggregate_empty_raises():
    with pytest.raises(InsufficientData):
        aggregate([])


def test_aggregate_basic_statistics():
    hits = [0, 1, 3, 3, 6]
    records = [make_record(i + 1, h, bonus_hit=(i == 0)) for i, h in enumerate(hits)]
    result = aggregate(records)

    assert result.total_rounds == 5
    assert result.hit_distribution == {0: 1, 1: 1, 2: 0, 3: 2, 4: 0, 5: 0, 6: 1}
    assert result.hit_rates[3] == pytest.approx(3 / 5)
    assert result.hit_rates[6] == pytest.approx(1 / 5)
    assert result.average_hits == pytest.approx(2.6)
    assert result.max_hits == 6
    assert result.std_hits == pytest.approx(np.std(hits))
    assert result.sharpe_like_ratio == pytest.approx(2.6 / np.std(hits))
    assert result.bonus_hit_rate == pytest.approx(0.2)
    assert result.best_round == 5
    assert result.worst_round == 1
    assert result.calibration is None


def test_sharpe_is_zero_without_variance():
    result = aggregate([make_record(i, 2) for i in range(1, 4)])
    assert result.std_hits == 0
    assert result.sharpe_like_ratio == 0.0


def test_drawdown_is_longest_run_below_three():
    hits = [0, 1, 3, 2, 2, 2, 4]
    result = aggregate([make_record(i + 1, h) for i, h in enumerate(hits)])
    assert result.drawdown == 3
    assert longest_run_below([3, 4, 5]) == 0
    assert longest_run_below([]) == 0


def test_rank_metrics():
    records = [
        make_record(1, 2, ranks=(1, 5, 9, 20, 30, 40)),
        make_record(2, 1, ranks=(2, 4, 6, 8, 10, 12)),
    ]
    result = aggregate(records)
    assert result.mrr == pytest.approx(0.75)
    assert result.average_rank == pytest.approx((np.mean([1, 5, 9, 20, 30, 40]) + 7.0) / 2)


def test_lift_identity_when_rate_equals_baseline():
    config = MetricsConfig(universe_size=4, outcome_size=2, top_n=2, hit_ks=(1,))
    records = [make_record(i + 1, 1 if i < 5 else 0, ranks=(1, 2), actual=(1, 2), predicted=(1, 2))
               for i in range(6)]
    result = aggregate(records, config)
    assert result.random_baselines[1] == pytest.approx(5 / 6)
    assert result.hit_rates[1] == pytest.approx(5 / 6)
    assert result.lifts[1] == pytest.approx(1.0)
    assert compute_lift(0.25, 0.25) == 1.0


def test_lift_undefined_when_baseline_is_zero():
    config = MetricsConfig(top_n=2, hit_ks=(3,))
    result = aggregate([make_record(1, 2)], config)
    assert result.random_baselines[3] == 0.0
    assert result.lifts[3] is None
    assert compute_lift(0.5, 0.0) is None


def test_metric_lookup():
    result = aggregate([make_record(1, 3), make_record(2, 1)])
    assert result.metric("hit_rate_3") == pytest.approx(0.5)
    assert result.metric("lift_3") == result.lifts[3]
    assert result.metric("sharpe_ratio") == result.sharpe_like_ratio
    assert result.metric("average_hits") == pytest.approx(2.0)
    assert result.metric("ece") is None
    with pytest.raises(InvalidConfig):
        result.metric("hit_rate_7")
    with pytest.raises(InvalidConfig):
        result.metric("profit")
    assert result.as_dict()["hit_rate_3"] == pytest.approx(0.5)


def test_is_known_metric():
    assert is_known_metric("hit_rate_3")
    assert is_known_metric("lift_6")
    assert is_known_metric("mrr")
    assert is_known_metric("brier_score")
    assert not is_known_metric("hit_rate")
    assert not is_known_metric("profit")


def test_perfect_calibration():
    record = make_record(1, 1, probabilities={1: 100.0, 40: 0.0})
    report = calibration_report([record])
    assert report.ece == pytest.approx(0.0)
    assert report.brier_score == pytest.approx(0.0)
    assert report.total_predictions == 2
    assert report.bins[-1].count == 1
    assert report.bins[0].count == 1


def test_worst_calibration_hits_the_bounds():
    record = make_record(1, 1, probabilities={1: 0.0, 40: 100.0})
    report = calibration_report([record])
    assert report.ece == pytest.approx(100.0)
    assert report.brier_score == pytest.approx(1.0)


def test_calibration_bounds_on_random_data():
    rng = np.random.RandomState(3)
    records = []
    for i in range(30):
        probs = {n: float(rng.uniform(0, 100)) for n in range(1, 46)}
        actual = tuple(sorted(rng.choice(np.arange(1, 46), 6, replace=False)))
        records.append(make_record(i + 1, 0, probabilities=probs, actual=actual))
    report = aggregate(records).calibration
    assert 0.0 <= report.ece <= 100.0
    assert 0.0 <= report.brier_score <= 1.0
    assert sum(b.count for b in report.bins) == 30 * 45


def test_calibration_none_without_probabilities():
    assert calibration_report([make_record(1, 2)]) is None


def test_combination_metrics():
    rounds = [
        CombinationRound(1, 0, ((1, 2, 3, 4, 5, 6), (7, 8, 9, 10, 11, 12)), (1, 2, 3, 20, 21, 22), (3, 0)),
        CombinationRound(2, 0, ((1, 2, 3, 4, 5, 6), (7, 8, 9, 10, 11, 12)), (1, 7, 8, 30, 31, 32), (1, 2)),
    ]
    result = combination_metrics(rounds, k=3)
    assert result.total_rounds == 2
    assert result.total_tickets == 4
    assert result.ticket_hit_rate == pytest.approx(0.25)
    assert result.round_hit_rate == pytest.approx(0.5)
    assert result.average_hits == pytest.approx(1.5)
    assert result.max_hits == 3
    assert result.average_max_hits == pytest.approx(2.5)
    assert result.drawdown == 1
    assert result.average_tickets_per_round == 2
    assert result.lift > 1

    with pytest.raises(InsufficientData):
        combination_metrics([])


def test_compare_metrics():
    better = aggregate([make_record(1, 4), make_record(2, 3)])
    worse = aggregate([make_record(1, 2), make_record(2, 1)])
    comparison = compare_metrics(better, worse)
    assert comparison["average_hits"]["diff"] == pytest.approx(2.0)
    assert comparison["average_hits"]["improvement"] == pytest.approx(2.0 / 1.5 * 100)
    assert comparison["hit_rate_3"]["improvement"] is None
    assert compare_metrics(better, None) is None


def test_format_metrics():
    assert format_metrics(None) == "No metrics available"
    text = format_metrics(aggregate([make_record(1, 3), make_record(2, 1)]))
    assert "3+ hit rate: 50.00%" in text
    assert "Max drawdown" in text


def test_performance_trend():
    records = [make_record(i + 1, i % 4) for i in range(12)]
    assert performance_trend(records[:5], window=10).empty
    trend = performance_trend(records, window=10)
    assert list(trend.columns) == ["round", "avg_hits", "avg_rank", "hit_rate_3"]
    assert list(trend["round"]) == [10, 11, 12]
    assert trend["avg_hits"].iloc[0] == pytest.approx(np.mean([i % 4 for i in range(10)]))


def test_number_accuracy():
    records = [
        make_record(1, 2, predicted=(1, 2, 3), actual=(1, 2, 10, 11, 12, 13)),
        make_record(2, 1, predicted=(1, 4, 5), actual=(4, 20, 21, 22, 23, 24)),
    ]
    table = number_accuracy(records)
    assert len(table) == 45
    assert table.loc[1, "predicted"] == 2
    assert table.loc[1, "precision"] == pytest.approx(0.5)
    assert table.loc[4, "recall"] == pytest.approx(1.0)
    assert table.loc[10, "precision"] == 0.0


def test_top_n_comparison():
    records = [make_record(1, 0, ranks=(1, 2, 7, 9, 14, 30))]
    comparison = top_n_comparison(records, ns=(6, 10, 15))
    assert comparison["top6"]["avg_hits"] == 2
    assert comparison["top10"]["avg_hits"] == 4
    assert comparison["top15"]["accuracy"] == pytest.approx(5 / 6)


def test_score_bands_include_100():
    record = make_record(1, 1, probabilities={1: 100.0, 2: 85.0, 40: 10.0})
    bands = {b["range"]: b for b in score_bands([record])}
    assert bands["80-100"]["predicted"] == 2
    assert bands["80-100"]["hits"] == 2
    assert bands["0-20"]["predicted"] == 1
    assert bands["0-20"]["hits"] == 0
    assert bands["40-60"]["accuracy"] == 0.0


def test_significance_vs_random():
    assert significance_vs_random([make_record(1, 2)]) is None

    hits = [0, 1, 2, 3, 1, 2, 0, 4]
    result = significance_vs_random([make_record(i, h) for i, h in enumerate(hits)])
    t_stat, p_value = stats.ttest_1samp(hits, 60 / 45)
    assert result["t_statistic"] == pytest.approx(t_stat, abs=1e-4)
    assert result["p_value"] == pytest.approx(p_value, abs=1e-6)
    assert result["significant_at_005"] == (p_value < 0.05)


def test_significance_without_variance():
    result = significance_vs_random([make_record(i, 2) for i in range(5)])
    assert result["t_statistic"] == float("inf")
    assert result["p_value"] == 0.0
    assert result["significant_at_005"]


def test_top6_accuracy():
    records = [
        make_record(1, 2, ranks=(1, 5, 9, 20, 30, 40)),
        make_record(2, 1, ranks=(2, 4, 6, 8, 10, 12)),
    ]
    result = aggregate(records)
    assert result.top6_accuracy == pytest.approx(5 / 12)
    assert result.metric("top6_accuracy") == result.top6_accuracy
    assert is_known_metric("top6_accuracy")
    assert aggregate([make_record(1, 0, ranks=())]).metric("top6_accuracy") is None
