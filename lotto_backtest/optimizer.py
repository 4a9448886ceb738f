"""
Strategy optimisation by grid search.

Every combination of a parameter grid is pushed through an evaluation
pipeline (fold generation, evaluation, aggregation) and scored by one
metric of the resulting Statistics. A combination whose pipeline fails
is kept for diagnostics with score -inf and never becomes the best.

Sensitivity analysis then marginalises over the other parameters: for
each parameter value, the mean/std of the score across every combination
holding that value shows how much the parameter alone moves the metric.
"""
import itertools
import math
import random
import warnings
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import numpy as np
import pandas as pd

from lotto_backtest.backtester import WalkForwardResult, run_walk_forward
from lotto_backtest.config import FoldConfig, get_default_walk_forward_config
from lotto_backtest.errors import InsufficientData, InvalidConfig
from lotto_backtest.metrics import is_known_metric


FOLD_KEYS = ("train_size", "test_size", "step_size", "window_type", "min_train_size")
WORST_SCORE = float("-inf")


@dataclass(frozen=True)
class CombinationResult:
    params: Dict[str, Any]
    statistics: Any
    score: float
    error: Optional[str] = None
    output: Any = None

    @property
    def succeeded(self):
        return self.error is None


@dataclass(frozen=True)
class ValueScore:
    mean: float
    std: float
    count: int


@dataclass(frozen=True)
class ParamSensitivity:
    value_scores: Dict[Any, ValueScore]
    best_value: Any
    worst_value: Any
    range: float
    relative_range: float


@dataclass(frozen=True)
class OptimizationResult:
    best_params: Optional[Dict[str, Any]]
    best_score: float
    metric: str
    results: Tuple[CombinationResult, ...]
    sensitivity: Dict[str, ParamSensitivity]
    total_combinations: int
    stopped_early: bool = False

    @property
    def failed(self):
        return [r for r in self.results if not r.succeeded]

    def ranked(self):
        """Results by descending score; equal scores keep grid order."""
        return sorted(self.results, key=lambda r: -r.score)

    def to_frame(self):
        rows = []
        for r in self.results:
            row = dict(r.params)
            row["score"] = r.score
            row["error"] = r.error
            rows.append(row)
        return pd.DataFrame(rows)


def generate_param_combinations(param_grid, max_combinations=None, seed=None):
    """
    Cartesian product of a parameter grid.

    Parameters vary in key order, the last key fastest. When
    ``max_combinations`` is smaller than the product a seeded random
    subset is kept, still in enumeration order.
    """
    if not param_grid:
        raise InvalidConfig("param_grid must not be empty")
    names = list(param_grid)
    values = []
    for name in names:
        options = param_grid[name]
        if isinstance(options, (str, bytes)) or not hasattr(options, "__iter__"):
            raise InvalidConfig(f"Values for {name!r} must be a list, got {options!r}")
        options = list(options)
        if not options:
            raise InvalidConfig(f"No values given for parameter {name!r}")
        values.append(options)

    combinations = [dict(zip(names, combo)) for combo in itertools.product(*values)]

    if max_combinations is not None:
        if max_combinations <= 0:
            raise InvalidConfig(f"max_combinations must be positive, got {max_combinations}")
        if len(combinations) > max_combinations:
            warnings.warn(
                f"{len(combinations)} combinations exceed max_combinations="
                f"{max_combinations}; sampling at random."
            )
            rng = random.Random(seed)
            keep = sorted(rng.sample(range(len(combinations)), max_combinations))
            combinations = [combinations[i] for i in keep]

    return combinations


def _group_key(value):
    try:
        hash(value)
    except TypeError:
        return repr(value)
    return value


def analyze_param_sensitivity(results, param_names):
    """
    Mean/std/count of the score per value of each parameter.

    Only combinations with a finite score take part. Values appear in the
    order they were first seen; ties for best/worst go to the earlier one.
    """
    sensitivity = {}
    scored = [r for r in results if r.succeeded and math.isfinite(r.score)]

    for name in param_names:
        groups = {}
        for r in scored:
            groups.setdefault(_group_key(r.params[name]), []).append(r.score)
        if not groups:
            continue

        value_scores = {
            value: ValueScore(
                mean=float(np.mean(scores)),
                std=float(np.std(scores)),
                count=len(scores),
            )
            for value, scores in groups.items()
        }
        means = [vs.mean for vs in value_scores.values()]
        best_mean = max(means)
        worst_mean = min(means)
        best_value = next(v for v, vs in value_scores.items() if vs.mean == best_mean)
        worst_value = next(v for v, vs in value_scores.items() if vs.mean == worst_mean)

        sensitivity[name] = ParamSensitivity(
            value_scores=value_scores,
            best_value=best_value,
            worst_value=worst_value,
            range=best_mean - worst_mean,
            relative_range=(best_mean - worst_mean) / worst_mean if worst_mean > 0 else 0.0,
        )
    return sensitivity


def _statistics_of(output):
    if isinstance(output, WalkForwardResult):
        return output.statistics
    return output


def optimize(param_grid, metric, pipeline, max_combinations=None, seed=None,
             progress=None, should_continue=None, verbose=False):
    """
    Grid search.

    Args:
        param_grid: {name: [values]}
        metric: objective name understood by Statistics.metric, maximised
        pipeline: callable(params) -> Statistics or WalkForwardResult
        max_combinations: optional cap, sampled with ``seed``
        progress: optional callback (percent, current, total, detail),
            called after each combination
        should_continue: optional predicate checked before each
            combination; returning False stops the search
        verbose: Print progress

    Returns:
        OptimizationResult. Exact score ties keep the combination that was
        enumerated first.
    """
    if not is_known_metric(metric):
        raise InvalidConfig(f"Unknown metric {metric!r}")
    if not callable(pipeline):
        raise InvalidConfig("pipeline must be callable")

    combinations = generate_param_combinations(param_grid, max_combinations, seed)
    total = len(combinations)

    if verbose:
        print(f"\n{'='*60}")
        print("GRID SEARCH")
        print(f"{'='*60}")
        print(f"Combinations: {total} | Metric: {metric}")
        print(f"{'='*60}\n")

    results = []
    best_score = WORST_SCORE
    best_params = None
    stopped_early = False

    for i, params in enumerate(combinations):
        if should_continue is not None and not should_continue():
            stopped_early = True
            break
        current = i + 1

        try:
            output = pipeline(dict(params))
            statistics = _statistics_of(output)
            if statistics is None:
                raise InsufficientData("pipeline produced no statistics")
            value = statistics.metric(metric)
            score = float(value) if value is not None else WORST_SCORE
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            results.append(CombinationResult(params, None, WORST_SCORE, error))
            if verbose:
                print(f"  [{current}/{total}] {params} -> FAILED ({error})")
        else:
            results.append(CombinationResult(params, statistics, score, None, output))
            if verbose:
                print(f"  [{current}/{total}] {params} -> {metric}={score:.4f}")
            if score > best_score:
                best_score = score
                best_params = dict(params)
                if verbose:
                    print(f"    New best: {score:.4f}")

        if progress is not None:
            progress(100.0 * current / total, current, total,
                     f"Combination {current}/{total}: {params}")

    sensitivity = analyze_param_sensitivity(results, list(param_grid))

    if verbose:
        print(f"\nBest {metric}: {best_score:.4f} with {best_params}")

    return OptimizationResult(
        best_params=best_params,
        best_score=best_score,
        metric=metric,
        results=tuple(results),
        sensitivity=sensitivity,
        total_combinations=total,
        stopped_early=stopped_early,
    )


def make_walk_forward_pipeline(draws, strategy_factory, base_config=None,
                               metrics_config=None, fold_keys=FOLD_KEYS, top_n_key="top_n"):
    """
    Build ``pipeline(params)`` for ``optimize``.

    Parameters named in ``fold_keys`` override ``base_config``,
    ``top_n_key`` sets the prediction size, and everything else is passed
    to ``strategy_factory(**rest)`` to build the strategy. Each call
    derives its own folds from the same read-only draw sequence.
    """
    if base_config is None:
        base_config = get_default_walk_forward_config()
    if not isinstance(base_config, FoldConfig):
        raise InvalidConfig(f"Expected FoldConfig, got {type(base_config).__name__}")

    def pipeline(params):
        fold_changes = {k: v for k, v in params.items() if k in fold_keys}
        top_n = params.get(top_n_key)
        strategy_params = {
            k: v for k, v in params.items() if k not in fold_keys and k != top_n_key
        }
        config = base_config.replace(**fold_changes) if fold_changes else base_config
        strategy = strategy_factory(**strategy_params)
        return run_walk_forward(
            draws, strategy, config, top_n=top_n, metrics_config=metrics_config
        )

    return pipeline


@dataclass(frozen=True)
class SequentialStep:
    param: str
    best_value: Any
    best_score: float
    search: OptimizationResult


@dataclass(frozen=True)
class SequentialResult:
    best_params: Dict[str, Any]
    history: Tuple[SequentialStep, ...]
    metric: str
    stopped_early: bool = False


def sequential_optimize(pipeline, base_params, param_grid, param_order, metric,
                        progress=None, should_continue=None):
    """
    Coordinate-wise search: tune one parameter at a time, in
    ``param_order``, holding the others at their best value so far.

    Much cheaper than the full grid, at the cost of missing interactions
    between parameters. Parameters without grid values are skipped.
    """
    current = dict(base_params)
    history = []
    stopped_early = False
    steps = len(param_order)

    for idx, name in enumerate(param_order):
        if not param_grid.get(name):
            continue

        def step_progress(percent, _current, _total, _detail, idx=idx, name=name):
            if progress is not None:
                overall = (idx / steps) * 100 + percent / steps
                progress(overall, idx + 1, steps, f"Optimizing {name}...")

        search = optimize(
            {name: param_grid[name]},
            metric,
            lambda params: pipeline({**current, **params}),
            progress=step_progress,
            should_continue=should_continue,
        )

        if search.best_params is not None:
            current[name] = search.best_params[name]
            history.append(SequentialStep(name, current[name], search.best_score, search))
        if search.stopped_early:
            stopped_early = True
            break

    return SequentialResult(
        best_params=current,
        history=tuple(history),
        metric=metric,
        stopped_early=stopped_early,
    )
