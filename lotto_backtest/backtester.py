"""
Backtesting Engine

Walk-forward validation: fits a strategy on a train window, scores the
same ranking against every round of the following test window, then
moves the window. The strategy only ever receives draws that precede the
rounds it is scored on.

A strategy that raises (or returns an unusable ranking) fails its fold
only; the run carries on and the failure is reported on the result.
"""
import warnings
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

import pandas as pd

from lotto_backtest.config import (
    DEFAULT_TOP_N,
    SENTINEL_RANK,
    MetricsConfig,
    expanding_config,
    get_default_walk_forward_config,
)
from lotto_backtest.errors import InsufficientData, InvalidConfig, StrategyFailure
from lotto_backtest.folds import generate_folds
from lotto_backtest.metrics import aggregate, combination_metrics, format_metrics
from lotto_backtest.strategy import as_ranked_candidates


@dataclass(frozen=True)
class EvaluationRecord:
    """How one fitted ranking fared against one held-out draw."""

    round: int
    fold_index: int
    predicted: Tuple[int, ...]
    actual: Tuple[int, ...]
    bonus: int
    hit_count: int
    actual_ranks: Tuple[int, ...]
    bonus_hit: bool
    probabilities: Optional[Mapping[int, float]] = field(default=None, hash=False)

    @property
    def avg_rank(self):
        if not self.actual_ranks:
            return None
        return sum(self.actual_ranks) / len(self.actual_ranks)

    @property
    def best_rank(self):
        if not self.actual_ranks:
            return None
        return min(self.actual_ranks)


@dataclass(frozen=True)
class FoldResult:
    """Records of one fold, or the error that stopped it."""

    fold: object
    train_rounds: Tuple[int, int]
    test_rounds: Tuple[int, int]
    records: tuple = ()
    error: Optional[StrategyFailure] = None

    @property
    def succeeded(self):
        return self.error is None

    @property
    def error_message(self):
        if self.error is None:
            return None
        return f"{type(self.error).__name__}: {self.error}"


@dataclass(frozen=True)
class WalkForwardResult:
    config: object
    fold_results: Tuple[FoldResult, ...]
    statistics: object
    metrics_config: MetricsConfig
    stopped_early: bool = False

    @property
    def records(self):
        return [r for fr in self.fold_results for r in fr.records]

    @property
    def total_folds(self):
        return len(self.fold_results)

    @property
    def failed_folds(self):
        return [fr for fr in self.fold_results if not fr.succeeded]

    @property
    def failure_count(self):
        return len(self.failed_folds)

    def to_frame(self):
        """One row per evaluated round."""
        rows = []
        for r in self.records:
            rows.append({
                "fold": r.fold_index,
                "round": r.round,
                "predicted": list(r.predicted),
                "actual": list(r.actual),
                "bonus": r.bonus,
                "hits": r.hit_count,
                "bonus_hit": r.bonus_hit,
                "avg_rank": r.avg_rank,
                "actual_ranks": list(r.actual_ranks),
            })
        return pd.DataFrame(rows, columns=[
            "fold", "round", "predicted", "actual", "bonus",
            "hits", "bonus_hit", "avg_rank", "actual_ranks",
        ])


def count_matches(predicted, actual):
    """Count how many numbers match between predicted and actual."""
    return len(set(predicted) & set(actual))


def score_round(candidates, draw, top_n, fold_index):
    """Compare one fitted ranking with one actual draw."""
    predicted = candidates.top(top_n)
    ranks = []
    for n in draw.numbers:
        rank = candidates.rank_of(n)
        ranks.append(rank if rank is not None else SENTINEL_RANK)
    return EvaluationRecord(
        round=draw.round,
        fold_index=fold_index,
        predicted=tuple(predicted),
        actual=draw.numbers,
        bonus=draw.bonus,
        hit_count=count_matches(predicted, draw.numbers),
        actual_ranks=tuple(ranks),
        bonus_hit=draw.bonus in predicted,
        probabilities=candidates.probabilities,
    )


def _call_strategy(strategy, fold, draws):
    training = draws.slice(fold.train_start, fold.train_end + 1)
    try:
        return strategy(training, training[-1].round)
    except StrategyFailure as e:
        e.fold_index = fold.index
        raise
    except Exception as e:
        raise StrategyFailure(f"{type(e).__name__}: {e}", fold_index=fold.index) from e


def _fold_bounds(fold, draws):
    return (
        (draws[fold.train_start].round, draws[fold.train_end].round),
        (draws[fold.test_start].round, draws[fold.test_end].round),
    )


def evaluate_fold(fold, draws, strategy, top_n=DEFAULT_TOP_N):
    """
    Fit ``strategy`` once on the fold's train window and score it on every
    round of the test window.

    Returns
    -------
    FoldResult
        With one EvaluationRecord per test round, or with ``error`` set
        and no records if the strategy failed.
    """
    train_rounds, test_rounds = _fold_bounds(fold, draws)
    try:
        output = _call_strategy(strategy, fold, draws)
        candidates = as_ranked_candidates(output, draws.universe_size)
    except StrategyFailure as e:
        e.fold_index = fold.index
        return FoldResult(fold, train_rounds, test_rounds, (), e)

    records = tuple(
        score_round(candidates, draws[i], top_n, fold.index)
        for i in fold.test_range
    )
    return FoldResult(fold, train_rounds, test_rounds, records)


def _resolve_metrics_config(draws, top_n, metrics_config):
    if metrics_config is None:
        metrics_config = MetricsConfig(
            universe_size=draws.universe_size,
            outcome_size=draws.outcome_size,
        )
    if top_n is not None:
        metrics_config = metrics_config.replace(top_n=top_n)
    return metrics_config


def _run_folds(folds, evaluate, progress, should_continue, verbose, label):
    fold_results = []
    stopped_early = False
    total = len(folds)

    for i, fold in enumerate(folds):
        if should_continue is not None and not should_continue():
            stopped_early = True
            if verbose:
                print(f"  Stopped after {i}/{total} folds.")
            break

        result = evaluate(fold)
        fold_results.append(result)
        current = i + 1

        if verbose and (i % 10 == 0 or current == total):
            print(f"  {label} fold {current}/{total} "
                  f"(test rounds {result.test_rounds[0]}-{result.test_rounds[1]})...")
        if verbose and not result.succeeded:
            print(f"    Error on fold {current}: {result.error_message}")

        if progress is not None:
            progress(
                100.0 * current / total,
                current,
                total,
                f"Fold {current}/{total}: rounds "
                f"{result.test_rounds[0]}-{result.test_rounds[1]}",
            )

    return fold_results, stopped_early


def run_walk_forward(draws, strategy, config=None, top_n=None, metrics_config=None,
                     progress=None, should_continue=None, verbose=False):
    """
    Run walk-forward backtesting.

    Args:
        draws: DrawSequence, never modified
        strategy: callable (training, as_of_round) -> ranking
        config: FoldConfig, defaults to get_default_walk_forward_config()
        top_n: size of the played prediction; overrides metrics_config.top_n
        metrics_config: MetricsConfig for aggregation
        progress: optional callback (percent, current, total, detail),
            called after every fold
        should_continue: optional predicate checked before every fold;
            returning False stops the run
        verbose: Print progress

    Returns:
        WalkForwardResult. ``statistics`` is None when there was nothing
        to aggregate (no folds, or every fold failed).
    """
    if not callable(strategy):
        raise InvalidConfig("strategy must be callable")
    if config is None:
        config = get_default_walk_forward_config()
    metrics_config = _resolve_metrics_config(draws, top_n, metrics_config)
    folds = generate_folds(len(draws), config)

    if verbose:
        print(f"\n{'='*60}")
        print("WALK-FORWARD BACKTEST")
        print(f"{'='*60}")
        print(f"Total draws: {len(draws)}")
        print(f"Window: {config.window_type}, train={config.train_size}, "
              f"test={config.test_size}, step={config.step_size}")
        print(f"Folds: {len(folds)}")
        print(f"{'='*60}\n")

    if not folds:
        warnings.warn(
            f"No folds: {len(draws)} draws cannot hold train_size={config.train_size} "
            f"plus test_size={config.test_size}."
        )

    fold_results, stopped_early = _run_folds(
        folds,
        lambda fold: evaluate_fold(fold, draws, strategy, metrics_config.top_n),
        progress,
        should_continue,
        verbose,
        "Backtesting",
    )

    records = [r for fr in fold_results for r in fr.records]
    try:
        statistics = aggregate(records, metrics_config)
    except InsufficientData:
        statistics = None
        if folds and fold_results:
            warnings.warn(f"All {len(fold_results)} evaluated folds failed; no statistics.")

    return WalkForwardResult(
        config=config,
        fold_results=tuple(fold_results),
        statistics=statistics,
        metrics_config=metrics_config,
        stopped_early=stopped_early,
    )


def run_backtest(draws, strategy, start_round, end_round=None, top_n=None,
                 metrics_config=None, progress=None, should_continue=None, verbose=False):
    """
    Round-by-round backtest over ``start_round`` .. ``end_round``.

    Each round is predicted from every draw before it, so the strategy is
    refitted once per round. Equivalent to a walk-forward run with an
    anchored window and ``test_size = 1``.
    """
    start_index = draws.index_of(start_round)
    if start_index < 1:
        raise InvalidConfig(f"Round {start_round} has no earlier draws to train on")
    end_index = len(draws) - 1 if end_round is None else draws.index_of(end_round)
    if end_index < start_index:
        raise InvalidConfig(f"end_round {end_round} precedes start_round {start_round}")

    window = draws.head(end_index + 1)
    return run_walk_forward(
        window,
        strategy,
        config=expanding_config(start_index),
        top_n=top_n,
        metrics_config=metrics_config,
        progress=progress,
        should_continue=should_continue,
        verbose=verbose,
    )


# ── Ticket backtests ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class CombinationRound:
    round: int
    fold_index: int
    tickets: Tuple[Tuple[int, ...], ...]
    actual: Tuple[int, ...]
    ticket_hits: Tuple[int, ...]


@dataclass(frozen=True)
class CombinationBacktestResult:
    config: object
    fold_results: Tuple[FoldResult, ...]
    statistics: object
    stopped_early: bool = False

    @property
    def rounds(self):
        return [r for fr in self.fold_results for r in fr.records]

    @property
    def failed_folds(self):
        return [fr for fr in self.fold_results if not fr.succeeded]


def _normalize_tickets(output, draws):
    if not isinstance(output, (list, tuple)) or not output:
        raise StrategyFailure("Combination strategy must return a non-empty list of tickets")
    tickets = []
    for item in output:
        numbers = item.get("numbers") if isinstance(item, dict) else item
        try:
            ticket = tuple(sorted(int(n) for n in numbers))
        except (TypeError, ValueError):
            raise StrategyFailure(f"Malformed ticket {item!r}") from None
        if len(set(ticket)) != draws.outcome_size or len(ticket) != draws.outcome_size:
            raise StrategyFailure(
                f"Ticket {list(ticket)} must hold {draws.outcome_size} distinct numbers"
            )
        if not all(1 <= n <= draws.universe_size for n in ticket):
            raise StrategyFailure(f"Ticket {list(ticket)} leaves 1..{draws.universe_size}")
        tickets.append(ticket)
    return tuple(tickets)


def evaluate_combination_fold(fold, draws, strategy):
    """Like evaluate_fold, for a strategy that returns whole tickets."""
    train_rounds, test_rounds = _fold_bounds(fold, draws)
    try:
        tickets = _normalize_tickets(_call_strategy(strategy, fold, draws), draws)
    except StrategyFailure as e:
        e.fold_index = fold.index
        return FoldResult(fold, train_rounds, test_rounds, (), e)

    rounds = []
    for i in fold.test_range:
        draw = draws[i]
        rounds.append(CombinationRound(
            round=draw.round,
            fold_index=fold.index,
            tickets=tickets,
            actual=draw.numbers,
            ticket_hits=tuple(count_matches(t, draw.numbers) for t in tickets),
        ))
    return FoldResult(fold, train_rounds, test_rounds, tuple(rounds))


def run_combination_backtest(draws, strategy, config=None, k=3, metrics_config=None,
                             progress=None, should_continue=None, verbose=False):
    """Walk-forward run for ticket strategies, aggregated by combination_metrics."""
    if not callable(strategy):
        raise InvalidConfig("strategy must be callable")
    if config is None:
        config = get_default_walk_forward_config()
    metrics_config = _resolve_metrics_config(draws, None, metrics_config)
    folds = generate_folds(len(draws), config)
    if not folds:
        warnings.warn(f"No folds for {len(draws)} draws with {config}.")

    fold_results, stopped_early = _run_folds(
        folds,
        lambda fold: evaluate_combination_fold(fold, draws, strategy),
        progress,
        should_continue,
        verbose,
        "Ticket backtest",
    )

    rounds = [r for fr in fold_results for r in fr.records]
    try:
        statistics = combination_metrics(rounds, k, metrics_config)
    except InsufficientData:
        statistics = None

    return CombinationBacktestResult(
        config=config,
        fold_results=tuple(fold_results),
        statistics=statistics,
        stopped_early=stopped_early,
    )


def print_summary(result):
    """Print a formatted backtest report."""
    print(f"\n{'='*60}")
    print("BACKTEST RESULTS SUMMARY")
    print(f"{'='*60}")
    print(f"Folds: {result.total_folds} "
          f"({result.failure_count} failed{', stopped early' if result.stopped_early else ''})")
    print()
    print(format_metrics(result.statistics))

    if result.failed_folds:
        print("\nFAILED FOLDS:")
        for fr in result.failed_folds:
            print(f"  Fold {fr.fold.index} (test rounds {fr.test_rounds[0]}-"
                  f"{fr.test_rounds[1]}): {fr.error_message}")
    print(f"\n{'='*60}")
