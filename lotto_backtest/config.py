"""
Configuration for the walk-forward engine.

Constants describe the lottery (6 of 45 plus a bonus number). FoldConfig
and MetricsConfig are validated on construction so a bad value fails
before any strategy is run.
"""
from dataclasses import dataclass, fields, replace as _replace

from lotto_backtest.errors import InvalidConfig


UNIVERSE_SIZE = 45
OUTCOME_SIZE = 6
SENTINEL_RANK = 999

DEFAULT_TOP_N = 10
DEFAULT_HIT_KS = (3, 4, 5, 6)
DEFAULT_DRAWDOWN_THRESHOLD = 3
CALIBRATION_BINS = 10

WINDOW_TYPES = ("anchored", "rolling")


@dataclass(frozen=True)
class FoldConfig:
    """
    Windowing policy for the fold generator.

    Attributes
    ----------
    train_size : int
        Draws in each training window (rolling) or the initial window
        (anchored).
    test_size : int
        Draws scored against one fit of the strategy.
    step_size : int
        How far the window start moves between folds.
    window_type : str
        'rolling' moves both ends of the train window, 'anchored' keeps
        the start at index 0 and only extends the end.
    min_train_size : int
        Folds whose train window is shorter than this are not emitted.
    """

    train_size: int = 100
    test_size: int = 50
    step_size: int = 1
    window_type: str = "rolling"
    min_train_size: int = 50

    def __post_init__(self):
        for name in ("train_size", "test_size", "step_size", "min_train_size"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidConfig(f"{name} must be an integer, got {value!r}")
        if self.train_size <= 0:
            raise InvalidConfig(f"train_size must be positive, got {self.train_size}")
        if self.test_size <= 0:
            raise InvalidConfig(f"test_size must be positive, got {self.test_size}")
        if self.step_size <= 0:
            raise InvalidConfig(f"step_size must be positive, got {self.step_size}")
        if self.min_train_size < 0:
            raise InvalidConfig(f"min_train_size must be >= 0, got {self.min_train_size}")
        if self.window_type not in WINDOW_TYPES:
            raise InvalidConfig(
                f"window_type must be one of {WINDOW_TYPES}, got {self.window_type!r}"
            )

    def replace(self, **changes):
        """Return a copy with ``changes`` applied, validated again."""
        unknown = set(changes) - {f.name for f in fields(self)}
        if unknown:
            raise InvalidConfig(f"Unknown fold parameters: {sorted(unknown)}")
        return _replace(self, **changes)


def get_default_walk_forward_config():
    """Defaults used when a caller does not pass a FoldConfig."""
    return FoldConfig(
        train_size=100,
        test_size=50,
        step_size=1,
        window_type="rolling",
        min_train_size=50,
    )


def expanding_config(start_index):
    """
    Fold config reproducing the round-by-round backtester.

    Every round from ``start_index`` on is predicted from all draws before
    it: the train window is anchored at 0 and grows by one each fold.
    """
    if start_index < 1:
        raise InvalidConfig(f"start_index must be >= 1, got {start_index}")
    return FoldConfig(
        train_size=start_index,
        test_size=1,
        step_size=1,
        window_type="anchored",
        min_train_size=1,
    )


@dataclass(frozen=True)
class MetricsConfig:
    """Parameters of the aggregate statistics."""

    universe_size: int = UNIVERSE_SIZE
    outcome_size: int = OUTCOME_SIZE
    top_n: int = DEFAULT_TOP_N
    hit_ks: tuple = DEFAULT_HIT_KS
    drawdown_threshold: int = DEFAULT_DRAWDOWN_THRESHOLD
    calibration_bins: int = CALIBRATION_BINS

    def __post_init__(self):
        if self.universe_size <= 0 or self.outcome_size <= 0:
            raise InvalidConfig("universe_size and outcome_size must be positive")
        if self.outcome_size > self.universe_size:
            raise InvalidConfig("outcome_size cannot exceed universe_size")
        if self.top_n <= 0:
            raise InvalidConfig(f"top_n must be positive, got {self.top_n}")
        if not self.hit_ks:
            raise InvalidConfig("hit_ks must not be empty")
        if any(k < 0 for k in self.hit_ks):
            raise InvalidConfig(f"hit_ks must be non-negative, got {self.hit_ks}")
        if self.calibration_bins <= 0:
            raise InvalidConfig("calibration_bins must be positive")
        object.__setattr__(self, "hit_ks", tuple(sorted(set(self.hit_ks))))

    def replace(self, **changes):
        return _replace(self, **changes)
