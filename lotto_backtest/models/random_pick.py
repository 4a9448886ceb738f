"""
Random pick: a uniformly random ranking of the universe.

The reference point every other strategy should beat. Each call draws from
its own generator seeded by ``seed`` and the as-of round, so reruns are
reproducible and folds do not share state.
"""
import numpy as np

from lotto_backtest.config import OUTCOME_SIZE, UNIVERSE_SIZE
from lotto_backtest.strategy import RankedCandidates


def predict(training, as_of_round, seed=42, universe_size=UNIVERSE_SIZE,
            outcome_size=OUTCOME_SIZE):
    rng = np.random.RandomState((seed + int(as_of_round)) % (2 ** 32))
    order = [int(n) for n in rng.permutation(np.arange(1, universe_size + 1))]
    scores = {n: float(universe_size - i) for i, n in enumerate(order)}
    uniform = 100.0 * outcome_size / universe_size
    return RankedCandidates(scores, {n: uniform for n in order})


def make_strategy(seed=42, universe_size=UNIVERSE_SIZE, outcome_size=OUTCOME_SIZE):
    def strategy(training, as_of_round):
        return predict(training, as_of_round, seed, universe_size, outcome_size)

    return strategy
