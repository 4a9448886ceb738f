"""
Exception taxonomy for the backtesting engine.

InvalidConfig and InvalidDrawData are fatal and raised immediately.
StrategyFailure is recovered per fold by the evaluator. InsufficientData
is raised by the aggregator and turned into ``statistics = None`` by the
runners.
"""


class BacktestError(Exception):
    """Base class for all errors raised by lotto_backtest."""


class InvalidConfig(BacktestError, ValueError):
    """Malformed fold, metrics or grid parameters."""


class InvalidDrawData(BacktestError, ValueError):
    """A draw record or draw sequence violates its invariants."""


class StrategyFailure(BacktestError):
    """The supplied strategy raised, or returned something unusable."""

    def __init__(self, message, fold_index=None):
        super().__init__(message)
        self.fold_index = fold_index


class InsufficientData(BacktestError):
    """Nothing to aggregate."""
