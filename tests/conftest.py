# tests/conftest.py
import numpy as np
import pytest

from lotto_backtest.config import UNIVERSE_SIZE
from lotto_backtest.draws import DrawRecord, DrawSequence


def _make_draws(n, seed=0, universe_size=UNIVERSE_SIZE, start_round=1):
    rng = np.random.RandomState(seed)
    records = []
    for i in range(n):
        picks = rng.choice(np.arange(1, universe_size + 1), size=7, replace=False)
        records.append(DrawRecord(
            round=start_round + i,
            date=None,
            numbers=tuple(int(x) for x in picks[:6]),
            bonus=int(picks[6]),
        ))
    return DrawSequence(records, universe_size)


@pytest.fixture
def make_draws():
    return _make_draws


@pytest.fixture
def draws():
    """120 reproducible random draws, rounds 1..120."""
    return _make_draws(120)


class RecordingStrategy:
    """Ranks 1..45 in order and remembers what it was called with."""

    def __init__(self):
        self.calls = []

    def __call__(self, training, as_of_round):
        self.calls.append((training, as_of_round))
        return list(range(1, UNIVERSE_SIZE + 1))


@pytest.fixture
def recording_strategy():
    return RecordingStrategy()


def frequency_strategy(training, as_of_round):
    scores = {n: 0.0 for n in range(1, UNIVERSE_SIZE + 1)}
    for draw in training:
        for n in draw.numbers:
            scores[n] += 1
    return scores
