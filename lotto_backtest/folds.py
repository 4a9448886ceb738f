"""
Fold generation for walk-forward validation.

Splits a draw sequence of known length into consecutive (train, test)
index windows. Every train index is strictly smaller than every test
index, so a strategy fitted on the train window never sees the rounds it
is scored on.
"""
from dataclasses import dataclass

from lotto_backtest.config import FoldConfig, get_default_walk_forward_config
from lotto_backtest.errors import InvalidConfig


@dataclass(frozen=True)
class Fold:
    """Inclusive index bounds of one train window and its test window."""

    index: int
    train_start: int
    train_end: int
    test_start: int
    test_end: int

    def __post_init__(self):
        if self.train_end >= self.test_start:
            raise ValueError(
                f"Fold {self.index}: train end {self.train_end} must precede "
                f"test start {self.test_start}"
            )

    @property
    def train_range(self):
        return range(self.train_start, self.train_end + 1)

    @property
    def test_range(self):
        return range(self.test_start, self.test_end + 1)

    @property
    def train_size(self):
        return self.train_end - self.train_start + 1

    @property
    def test_size(self):
        return self.test_end - self.test_start + 1


def iter_folds(sequence_length, config=None):
    """
    Lazily yield folds over a sequence of ``sequence_length`` draws.

    The window start advances by ``step_size`` each iteration. For a
    rolling window the train window starts there; for an anchored window
    it always starts at 0 and only its end moves. Generation stops at the
    first window that would run past the end of the sequence or whose
    train window is shorter than ``min_train_size``.
    """
    if config is None:
        config = get_default_walk_forward_config()
    if not isinstance(config, FoldConfig):
        raise InvalidConfig(f"Expected FoldConfig, got {type(config).__name__}")
    if sequence_length < 0:
        raise InvalidConfig(f"sequence_length must be >= 0, got {sequence_length}")

    start = 0
    index = 0
    while True:
        train_start = 0 if config.window_type == "anchored" else start
        train_end = start + config.train_size - 1
        test_start = train_end + 1
        test_end = test_start + config.test_size - 1

        if train_end >= sequence_length or test_end >= sequence_length:
            return
        if train_end - train_start + 1 < config.min_train_size:
            return

        yield Fold(index, train_start, train_end, test_start, test_end)
        index += 1
        start += config.step_size


def generate_folds(sequence_length, config=None):
    """All folds for ``sequence_length`` draws, in order."""
    return list(iter_folds(sequence_length, config))
