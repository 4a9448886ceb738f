import pytest

from lotto_backtest.backtester import (
    evaluate_fold,
    print_summary,
    run_backtest,
    run_combination_backtest,
    run_walk_forward,
    score_round,
)
from lotto_backtest.config import SENTINEL_RANK, FoldConfig
from lotto_backtest.errors import InvalidConfig, StrategyFailure
from lotto_backtest.folds import Fold, generate_folds
from lotto_backtest.strategy import RankedCandidates

from conftest import frequency_strategy


CONFIG = FoldConfig(train_size=30, test_size=10, step_size=10,
                    window_type="rolling", min_train_size=30)


def test_strategy_called_once_per_fold_with_train_slice_only(draws, recording_strategy):
    result = run_walk_forward(draws, recording_strategy, CONFIG)
    folds = generate_folds(len(draws), CONFIG)

    assert len(folds) == 9
    assert len(recording_strategy.calls) == len(folds)
    for fold, (training, as_of_round) in zip(folds, recording_strategy.calls):
        assert training == draws.slice(fold.train_start, fold.train_end + 1)
        assert as_of_round == training[-1].round
        assert max(r.round for r in training) < draws[fold.test_start].round
    assert result.statistics.total_rounds == 90
    assert len(result.records) == 90


def test_same_ranking_scored_on_every_test_round(draws, recording_strategy):
    result = run_walk_forward(draws, recording_strategy, CONFIG)
    first = result.fold_results[0]
    assert [r.round for r in first.records] == list(range(31, 41))
    assert {r.predicted for r in first.records} == {tuple(range(1, 11))}
    assert first.train_rounds == (1, 30)
    assert first.test_rounds == (31, 40)


def test_hit_count_bound(draws):
    result = run_walk_forward(draws, frequency_strategy, CONFIG, top_n=6)
    for record in result.records:
        assert len(record.predicted) == 6
        assert 0 <= record.hit_count <= min(len(record.predicted), len(record.actual))
        assert record.hit_count == len(set(record.predicted) & set(record.actual))


def test_score_round_uses_sentinel_for_unranked(draws):
    draw = draws[0]
    missing = next(n for n in range(1, 46) if n not in draw.numbers)
    candidates = RankedCandidates.from_order([draw.numbers[0], missing])
    record = score_round(candidates, draw, top_n=10, fold_index=3)
    assert record.actual_ranks[0] == 1
    assert record.actual_ranks[1:] == (SENTINEL_RANK,) * 5
    assert record.hit_count == 1
    assert record.fold_index == 3
    assert record.bonus_hit == (draw.bonus in record.predicted)


def test_failing_fold_is_isolated(draws):
    def strategy(training, as_of_round):
        if as_of_round == 40:
            raise RuntimeError("model diverged")
        return frequency_strategy(training, as_of_round)

    result = run_walk_forward(draws, strategy, CONFIG)
    assert result.total_folds == 9
    assert result.failure_count == 1
    failed = result.failed_folds[0]
    assert failed.fold.index == 1
    assert isinstance(failed.error, StrategyFailure)
    assert failed.error.fold_index == 1
    assert "model diverged" in failed.error_message
    assert failed.records == ()
    assert result.statistics.total_rounds == 80


def test_malformed_output_fails_fold(draws):
    fold = Fold(0, 0, 29, 30, 39)
    result = evaluate_fold(fold, draws, lambda training, as_of_round: {99: 1.0})
    assert not result.succeeded
    assert "outside" in result.error_message


def test_all_folds_failing_gives_no_statistics(draws):
    def strategy(training, as_of_round):
        raise ValueError("no")

    with pytest.warns(UserWarning, match="failed"):
        result = run_walk_forward(draws, strategy, CONFIG)
    assert result.statistics is None
    assert result.failure_count == 9


def test_zero_folds_gives_no_statistics(draws, recording_strategy):
    with pytest.warns(UserWarning, match="No folds"):
        result = run_walk_forward(draws.head(20), recording_strategy, CONFIG)
    assert result.statistics is None
    assert result.total_folds == 0
    assert recording_strategy.calls == []


def test_progress_reported_after_each_fold(draws, recording_strategy):
    calls = []
    run_walk_forward(draws, recording_strategy, CONFIG,
                     progress=lambda *args: calls.append(args))
    assert len(calls) == 9
    assert [c[1] for c in calls] == list(range(1, 10))
    assert all(c[2] == 9 for c in calls)
    assert calls[-1][0] == pytest.approx(100.0)
    assert "Fold 1/9" in calls[0][3]


def test_should_continue_stops_cleanly(draws, recording_strategy):
    budget = iter([True, True, True, False])
    result = run_walk_forward(draws, recording_strategy, CONFIG,
                              should_continue=lambda: next(budget))
    assert result.stopped_early
    assert result.total_folds == 3
    assert len(recording_strategy.calls) == 3
    assert result.statistics.total_rounds == 30


def test_draws_not_modified(draws, recording_strategy):
    before = draws.records
    run_walk_forward(draws, recording_strategy, CONFIG)
    assert draws.records is before


def test_strategy_must_be_callable(draws):
    with pytest.raises(InvalidConfig):
        run_walk_forward(draws, [1, 2, 3], CONFIG)


def test_to_frame(draws, recording_strategy):
    df = run_walk_forward(draws, recording_strategy, CONFIG).to_frame()
    assert len(df) == 90
    assert {"fold", "round", "hits", "avg_rank"} <= set(df.columns)


def test_run_backtest_refits_every_round(draws, recording_strategy):
    result = run_backtest(draws, recording_strategy, start_round=101, end_round=110)
    assert [r.round for r in result.records] == list(range(101, 111))
    assert [as_of for _, as_of in recording_strategy.calls] == list(range(100, 110))
    assert [len(training) for training, _ in recording_strategy.calls] == list(range(100, 110))


def test_run_backtest_to_last_round(draws, recording_strategy):
    result = run_backtest(draws, recording_strategy, start_round=115)
    assert [r.round for r in result.records] == list(range(115, 121))


def test_run_backtest_rejects_bad_range(draws, recording_strategy):
    with pytest.raises(InvalidConfig):
        run_backtest(draws, recording_strategy, start_round=1)
    with pytest.raises(InvalidConfig):
        run_backtest(draws, recording_strategy, start_round=50, end_round=40)


def test_combination_backtest(draws):
    def tickets(training, as_of_round):
        return [[1, 2, 3, 4, 5, 6], {"numbers": [7, 8, 9, 10, 11, 12]}]

    result = run_combination_backtest(draws, tickets, CONFIG, k=2)
    assert len(result.rounds) == 90
    assert result.statistics.total_tickets == 180
    for r in result.rounds:
        assert r.ticket_hits == (
            len(set(r.tickets[0]) & set(r.actual)),
            len(set(r.tickets[1]) & set(r.actual)),
        )


def test_combination_backtest_rejects_short_ticket(draws):
    def tickets(training, as_of_round):
        if as_of_round == 30:
            return [[1, 2, 3, 4, 5]]
        return [[1, 2, 3, 4, 5, 6]]

    result = run_combination_backtest(draws, tickets, CONFIG)
    assert len(result.failed_folds) == 1
    assert result.statistics.total_rounds == 80


def test_print_summary(draws, capsys):
    def strategy(training, as_of_round):
        if as_of_round == 40:
            raise RuntimeError("boom")
        return frequency_strategy(training, as_of_round)

    print_summary(run_walk_forward(draws, strategy, CONFIG))
    out = capsys.readouterr().out
    assert "BACKTEST RESULTS SUMMARY" in out
    assert "1 failed" in out
    assert "boom" in out


def test_records_hold_read_only_probabilities(draws):
    stated = {n: 600.0 / 45 for n in range(1, 46)}

    def strategy(training, as_of_round):
        return RankedCandidates({n: float(n) for n in range(1, 46)}, stated)

    records = run_walk_forward(draws, strategy, CONFIG).records
    with pytest.raises(TypeError):
        records[0].probabilities[1] = 0.0
    stated[1] = 0.0
    assert records[1].probabilities[1] == pytest.approx(600.0 / 45)
    assert len({records[0], records[1]}) == 2
