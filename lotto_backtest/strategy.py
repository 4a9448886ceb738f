"""
The strategy boundary.

A strategy is any callable ``strategy(training, as_of_round)`` where
``training`` is a tuple of DrawRecords (oldest first) and ``as_of_round``
is the round of the most recent of them. It returns a ranking of the
universe, either as a RankedCandidates or as one of the looser shapes
accepted by ``as_ranked_candidates``.
"""
import math
import numbers
from types import MappingProxyType
from typing import Callable, Dict, Optional, Sequence

from lotto_backtest.config import UNIVERSE_SIZE
from lotto_backtest.errors import StrategyFailure


Strategy = Callable[[Sequence, int], object]


class RankedCandidates:
    """
    Scores (higher = more likely) for universe members, with optional
    calibrated probabilities in [0, 100].

    The ranking is by descending score; equal scores are ordered by
    ascending number so that the same scores always produce the same
    ranking.
    """

    def __init__(self, scores: Dict[int, float], probabilities: Optional[Dict[int, float]] = None):
        self.scores = dict(scores)
        self.probabilities = (
            MappingProxyType(dict(probabilities)) if probabilities is not None else None
        )
        self.ranking = tuple(
            n for n, _ in sorted(self.scores.items(), key=lambda x: (-x[1], x[0]))
        )
        self._ranks = {n: i + 1 for i, n in enumerate(self.ranking)}

    def __len__(self):
        return len(self.ranking)

    def __repr__(self):
        return f"RankedCandidates(top={list(self.ranking[:6])}, n={len(self)})"

    def top(self, n):
        return self.ranking[:n]

    def rank_of(self, number):
        """1-based rank of ``number``, or None if it was not ranked."""
        return self._ranks.get(number)

    def probability_of(self, number):
        if self.probabilities is None:
            return None
        return self.probabilities.get(number)

    @classmethod
    def from_order(cls, order):
        """Ranking given as an ordered list, best first."""
        order = list(order)
        return cls({n: float(len(order) - i) for i, n in enumerate(order)})


def as_ranked_candidates(output, universe_size=UNIVERSE_SIZE):
    """
    Normalise a strategy's return value.

    Accepted shapes: RankedCandidates; dict {number: score}; list of
    (number, score) pairs (the ``rankings`` list the scoring models
    build); ordered list of numbers, best first.

    Raises StrategyFailure for anything else, for numbers outside the
    universe, repeated numbers, non-finite scores, and probabilities
    outside [0, 100].
    """
    probabilities = None
    if isinstance(output, RankedCandidates):
        pairs = list(output.scores.items())
        probabilities = output.probabilities
    elif isinstance(output, dict):
        pairs = list(output.items())
    elif isinstance(output, (list, tuple)):
        if all(isinstance(item, (list, tuple)) and len(item) == 2 for item in output):
            pairs = [(item[0], item[1]) for item in output]
        else:
            pairs = [(n, float(len(output) - i)) for i, n in enumerate(output)]
    else:
        raise StrategyFailure(
            f"Strategy returned {type(output).__name__}; expected RankedCandidates, "
            "a score dict or a ranked list"
        )

    if not pairs:
        raise StrategyFailure("Strategy returned an empty ranking")

    scores = {}
    for number, score in pairs:
        if isinstance(number, bool) or not isinstance(number, numbers.Integral):
            raise StrategyFailure(f"Candidate {number!r} is not an integer")
        number = int(number)
        if not 1 <= number <= universe_size:
            raise StrategyFailure(f"Candidate {number} outside 1..{universe_size}")
        if number in scores:
            raise StrategyFailure(f"Strategy ranking repeats number {number}")
        if isinstance(score, bool) or not isinstance(score, numbers.Real):
            raise StrategyFailure(f"Score for {number} is not numeric: {score!r}")
        if not math.isfinite(score):
            raise StrategyFailure(f"Score for {number} is not finite: {score!r}")
        scores[number] = float(score)

    checked = None
    if probabilities is not None:
        checked = {}
        for number, p in probabilities.items():
            if number not in scores:
                raise StrategyFailure(f"Probability given for unranked number {number}")
            if isinstance(p, bool) or not isinstance(p, numbers.Real) or not 0.0 <= p <= 100.0:
                raise StrategyFailure(f"Probability for {number} outside [0, 100]: {p!r}")
            checked[int(number)] = float(p)

    return RankedCandidates(scores, checked)
