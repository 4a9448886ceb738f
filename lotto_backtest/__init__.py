"""
Lottery strategy backtesting

Walk-forward evaluation of number-ranking strategies against historical
draws, with random-baseline statistics, calibration, and grid search over
strategy and window parameters.
"""

from lotto_backtest.backtester import (
    EvaluationRecord,
    FoldResult,
    WalkForwardResult,
    evaluate_fold,
    print_summary,
    run_backtest,
    run_combination_backtest,
    run_walk_forward,
)
from lotto_backtest.baseline import comb, hypergeometric_at_least
from lotto_backtest.config import FoldConfig, MetricsConfig, get_default_walk_forward_config
from lotto_backtest.draws import DrawRecord, DrawSequence
from lotto_backtest.errors import (
    BacktestError,
    InsufficientData,
    InvalidConfig,
    InvalidDrawData,
    StrategyFailure,
)
from lotto_backtest.folds import Fold, generate_folds, iter_folds
from lotto_backtest.metrics import Statistics, aggregate
from lotto_backtest.optimizer import (
    OptimizationResult,
    generate_param_combinations,
    make_walk_forward_pipeline,
    optimize,
    sequential_optimize,
)
from lotto_backtest.strategy import RankedCandidates

__all__ = [
    "BacktestError",
    "DrawRecord",
    "DrawSequence",
    "EvaluationRecord",
    "Fold",
    "FoldConfig",
    "FoldResult",
    "InsufficientData",
    "InvalidConfig",
    "InvalidDrawData",
    "MetricsConfig",
    "OptimizationResult",
    "RankedCandidates",
    "Statistics",
    "StrategyFailure",
    "WalkForwardResult",
    "aggregate",
    "comb",
    "evaluate_fold",
    "generate_folds",
    "generate_param_combinations",
    "get_default_walk_forward_config",
    "hypergeometric_at_least",
    "iter_folds",
    "make_walk_forward_pipeline",
    "optimize",
    "print_summary",
    "run_backtest",
    "run_combination_backtest",
    "run_walk_forward",
    "sequential_optimize",
]
