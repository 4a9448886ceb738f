"""
Weighted Scoring Model

Scores every number in the universe with a composite of statistical
factors computed from the training draws only:
- Overall frequency: 30%
- Recent frequency (last ``recent_window`` draws): 35%
- Recency / overdue factor: 35%

Each factor is min-max normalised before weighting. Probabilities are the
weighted scores rescaled so that they sum to ``outcome_size * 100``, i.e.
an estimate in percent that each number is among the next winners.
"""
from collections import Counter
from itertools import combinations

import numpy as np

from lotto_backtest.config import OUTCOME_SIZE, UNIVERSE_SIZE
from lotto_backtest.strategy import RankedCandidates


# Weight configuration
WEIGHTS = {
    "overall_freq": 0.30,
    "recent_freq": 0.35,
    "recency_overdue": 0.35,
}

DEFAULT_RECENT_WINDOW = 50


def _normalize_scores(scores_dict):
    """Min-max normalize a dict of {number: score} to [0, 1]."""
    vals = np.array(list(scores_dict.values()), dtype=float)
    mn, mx = vals.min(), vals.max()
    if mx - mn < 1e-12:
        return {k: 0.5 for k in scores_dict}
    return {k: (v - mn) / (mx - mn) for k, v in scores_dict.items()}


def _frequency(training, universe_size):
    counts = Counter()
    for draw in training:
        counts.update(draw.numbers)
    total = max(len(training), 1)
    return {n: counts.get(n, 0) / total for n in range(1, universe_size + 1)}


def _overall_frequency(training, universe_size):
    """Frequency of each number across every training draw."""
    return _frequency(training, universe_size)


def _recent_frequency(training, universe_size, window):
    """Frequency of each number in the most recent ``window`` draws."""
    return _frequency(training[-window:], universe_size)


def _recency_overdue(training, universe_size, outcome_size):
    """
    Score numbers based on how overdue they are.
    Numbers that haven't appeared recently get higher scores (mean reversion).
    """
    last_seen = {}
    for idx, draw in enumerate(training):
        for n in draw.numbers:
            last_seen[n] = idx

    expected_gap = universe_size / outcome_size
    total = len(training)
    scores = {}
    for n in range(1, universe_size + 1):
        if n in last_seen:
            overdue_ratio = (total - 1 - last_seen[n]) / expected_gap
            scores[n] = 1.0 - np.exp(-0.3 * overdue_ratio)
        else:
            # Never appeared
            scores[n] = 1.0
    return scores


def predict(training, as_of_round=None, recent_window=DEFAULT_RECENT_WINDOW,
            weights=None, universe_size=UNIVERSE_SIZE, outcome_size=OUTCOME_SIZE,
            verbose=False):
    """
    Score all numbers from the training draws.

    Parameters
    ----------
    training : sequence of DrawRecord
        Historical draws, oldest first. Nothing after ``as_of_round``.
    as_of_round : int
        Round of the last training draw; only used for reporting.
    recent_window : int
        Number of trailing draws for the recent-frequency factor.
    weights : dict, optional
        Overrides for ``WEIGHTS``.

    Returns
    -------
    RankedCandidates with probabilities in [0, 100].
    """
    w = dict(WEIGHTS)
    if weights:
        w.update(weights)

    if verbose:
        print("\n" + "=" * 60)
        print("WEIGHTED SCORING MODEL")
        print("=" * 60)
        print(f"  Training draws: {len(training)} (as of round {as_of_round})")

    training = tuple(training)
    raw_scores = {
        "overall_freq": _overall_frequency(training, universe_size),
        "recent_freq": _recent_frequency(training, universe_size, recent_window),
        "recency_overdue": _recency_overdue(training, universe_size, outcome_size),
    }
    normalized = {key: _normalize_scores(scores) for key, scores in raw_scores.items()}

    final_scores = {}
    for n in range(1, universe_size + 1):
        final_scores[n] = sum(
            w.get(component, 0.0) * normalized[component][n] for component in normalized
        )

    total = sum(final_scores.values())
    if total > 0:
        probabilities = {
            n: min(100.0, 100.0 * outcome_size * s / total) for n, s in final_scores.items()
        }
    else:
        uniform = 100.0 * outcome_size / universe_size
        probabilities = {n: uniform for n in final_scores}

    candidates = RankedCandidates(final_scores, probabilities)

    if verbose:
        print("  Top 10 rankings:")
        for i, num in enumerate(candidates.top(10)):
            print(f"    {i+1:2d}. Number {num:2d} -> score {final_scores[num]:.4f}")
        print("=" * 60)

    return candidates


def make_strategy(recent_window=DEFAULT_RECENT_WINDOW, weights=None,
                  universe_size=UNIVERSE_SIZE, outcome_size=OUTCOME_SIZE):
    """Strategy callable with the model parameters bound, for grid search."""
    if recent_window <= 0:
        raise ValueError(f"recent_window must be positive, got {recent_window}")

    def strategy(training, as_of_round):
        return predict(
            training, as_of_round, recent_window=recent_window, weights=weights,
            universe_size=universe_size, outcome_size=outcome_size,
        )

    return strategy


def make_ticket_strategy(n_tickets=5, pool_size=8, recent_window=DEFAULT_RECENT_WINDOW,
                         weights=None, universe_size=UNIVERSE_SIZE, outcome_size=OUTCOME_SIZE):
    """
    Ticket strategy: the first ``n_tickets`` combinations of the top
    ``pool_size`` numbers, in ranking order.
    """
    if pool_size < outcome_size:
        raise ValueError(f"pool_size must be at least {outcome_size}, got {pool_size}")

    def strategy(training, as_of_round):
        candidates = predict(
            training, as_of_round, recent_window=recent_window, weights=weights,
            universe_size=universe_size, outcome_size=outcome_size,
        )
        pool = candidates.top(pool_size)
        tickets = []
        for combo in combinations(pool, outcome_size):
            tickets.append({"numbers": sorted(combo)})
            if len(tickets) >= n_tickets:
                break
        return tickets

    return strategy
