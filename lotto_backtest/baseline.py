"""
Random baseline for hit rates.

If ``sample`` numbers are picked uniformly at random from a universe of
``universe`` numbers, of which ``successes`` are winners, the number of
winners picked is hypergeometric. The probability of at least ``k``
winners is the baseline that lift is measured against.
"""


def comb(n, r):
    """
    Binomial coefficient C(n, r), multiplicative form.

    Returns 0 when ``r < 0`` or ``r > n``. Works in floats, so very large
    arguments lose precision instead of overflowing.
    """
    if r < 0 or r > n:
        return 0
    if r == 0 or r == n:
        return 1
    r = min(r, n - r)
    result = 1.0
    for i in range(r):
        result = result * (n - i) / (i + 1)
    return result


def hypergeometric_pmf(j, universe, successes, sample):
    """P(exactly ``j`` winners) in a random sample."""
    total = comb(universe, sample)
    if total == 0:
        return 0.0
    return comb(successes, j) * comb(universe - successes, sample - j) / total


def hypergeometric_at_least(k, universe, successes, sample):
    """
    P(at least ``k`` winners) when drawing ``sample`` of ``universe``
    without replacement and ``successes`` of them are winners.

    Sums the pmf from ``k`` to ``min(successes, sample)``; the result is
    clipped to [0, 1] to absorb float rounding.
    """
    upper = min(successes, sample)
    prob = 0.0
    for j in range(max(k, 0), upper + 1):
        prob += hypergeometric_pmf(j, universe, successes, sample)
    return min(max(prob, 0.0), 1.0)


def random_baselines(ks, universe, successes, sample):
    """{k: P(at least k winners)} for each k."""
    return {k: hypergeometric_at_least(k, universe, successes, sample) for k in ks}


def expected_hits(universe, successes, sample):
    """Mean number of winners in a random sample: successes * sample / universe."""
    return successes * sample / universe
