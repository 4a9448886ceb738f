"""
Aggregate statistics over evaluation records.

Turns the per-round records produced by the backtester into comparable
numbers: hit-count distribution, hit rate and lift over the random
baseline at each k, rank quality (average rank, MRR), stability
(Sharpe-like ratio, drawdown) and, when the strategy supplied
probabilities, calibration (reliability bins, ECE, Brier score).

Records are read through their attributes only (``round``,
``hit_count``, ``actual``, ``actual_ranks``, ``bonus_hit``,
``predicted``, ``probabilities``), so anything shaped like a
backtester.EvaluationRecord can be aggregated.
"""
import math
import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd
from scipy import stats

from lotto_backtest.baseline import (
    expected_hits,
    hypergeometric_at_least,
    random_baselines,
)
from lotto_backtest.config import DEFAULT_DRAWDOWN_THRESHOLD, MetricsConfig
from lotto_backtest.errors import InsufficientData, InvalidConfig


SIMPLE_METRICS = {
    "average_hits": "average_hits",
    "max_hits": "max_hits",
    "std_hits": "std_hits",
    "average_rank": "average_rank",
    "mrr": "mrr",
    "sharpe_ratio": "sharpe_like_ratio",
    "drawdown": "drawdown",
    "bonus_hit_rate": "bonus_hit_rate",
    "top6_accuracy": "top6_accuracy",
}
CALIBRATION_METRICS = ("ece", "brier_score")
_K_METRIC = re.compile(r"^(hit_rate|lift)_(\d+)$")


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CalibrationBin:
    """One reliability bin. ``avg_confidence`` and ``accuracy`` are in percent."""

    lower: float
    upper: float
    count: int
    hits: int
    avg_confidence: float
    accuracy: float


@dataclass(frozen=True)
class CalibrationReport:
    bins: Tuple[CalibrationBin, ...]
    ece: float
    brier_score: float
    total_predictions: int


@dataclass(frozen=True)
class Statistics:
    """Aggregate performance of one strategy over a set of test rounds."""

    total_rounds: int
    hit_distribution: Dict[int, int]
    hit_rates: Dict[int, float]
    lifts: Dict[int, Optional[float]]
    random_baselines: Dict[int, float]
    average_hits: float
    max_hits: int
    std_hits: float
    average_rank: Optional[float]
    mrr: Optional[float]
    sharpe_like_ratio: float
    drawdown: int
    bonus_hit_rate: float
    best_round: int
    worst_round: int
    calibration: Optional[CalibrationReport] = None
    top6_accuracy: Optional[float] = None

    def metric(self, name):
        """
        Look up a scalar by objective name.

        ``hit_rate_<k>`` and ``lift_<k>`` index the per-k tables; ``ece``
        and ``brier_score`` come from the calibration report (None when
        there is none). Unknown names raise InvalidConfig.
        """
        match = _K_METRIC.match(name)
        if match:
            table = self.hit_rates if match.group(1) == "hit_rate" else self.lifts
            k = int(match.group(2))
            if k not in table:
                raise InvalidConfig(
                    f"Metric {name!r} needs k={k} in hit_ks {sorted(self.hit_rates)}"
                )
            return table[k]
        if name in SIMPLE_METRICS:
            return getattr(self, SIMPLE_METRICS[name])
        if name in CALIBRATION_METRICS:
            if self.calibration is None:
                return None
            return getattr(self.calibration, name)
        raise InvalidConfig(f"Unknown metric {name!r}")

    def as_dict(self):
        """Flat {metric_name: value} view, handy for DataFrames."""
        out = {"total_rounds": self.total_rounds}
        for k, rate in self.hit_rates.items():
            out[f"hit_rate_{k}"] = rate
        for k, lift in self.lifts.items():
            out[f"lift_{k}"] = lift
        for name in SIMPLE_METRICS:
            out[name] = self.metric(name)
        for name in CALIBRATION_METRICS:
            out[name] = self.metric(name)
        return out


def is_known_metric(name):
    return bool(_K_METRIC.match(name)) or name in SIMPLE_METRICS or name in CALIBRATION_METRICS


# ---------------------------------------------------------------------------
# Core aggregation
# ---------------------------------------------------------------------------

def compute_lift(hit_rate, baseline):
    """Observed rate over random baseline; None when the baseline is 0."""
    if baseline <= 0:
        return None
    return hit_rate / baseline


def longest_run_below(values, threshold=DEFAULT_DRAWDOWN_THRESHOLD):
    """Length of the longest run of consecutive values below ``threshold``."""
    longest = 0
    current = 0
    for v in values:
        if v < threshold:
            current += 1
            longest = max(longest, current)
        else:
            current = 0
    return longest


def aggregate(records, config=None):
    """
    Reduce evaluation records to Statistics.

    Parameters
    ----------
    records : iterable of EvaluationRecord
        In test-round order (drawdown depends on order).
    config : MetricsConfig, optional
        Universe/outcome sizes, prediction size ``top_n`` used for the
        random baseline, the k values, and the drawdown threshold.

    Raises
    ------
    InsufficientData
        If ``records`` is empty.
    """
    records = list(records)
    if not records:
        raise InsufficientData("No evaluation records to aggregate")
    if config is None:
        config = MetricsConfig()

    total = len(records)
    hits = np.array([r.hit_count for r in records], dtype=float)

    distribution = {h: int(np.sum(hits == h)) for h in range(config.outcome_size + 1)}
    hit_rates = {k: float(np.sum(hits >= k)) / total for k in config.hit_ks}
    baselines = random_baselines(
        config.hit_ks, config.universe_size, config.outcome_size, config.top_n
    )
    lifts = {k: compute_lift(hit_rates[k], baselines[k]) for k in config.hit_ks}

    average_hits = float(hits.mean())
    std_hits = float(hits.std())
    sharpe = average_hits / std_hits if std_hits > 0 else 0.0

    ranked = [r for r in records if r.actual_ranks]
    if ranked:
        average_rank = float(np.mean([np.mean(r.actual_ranks) for r in ranked]))
        mrr = float(np.mean([1.0 / min(r.actual_ranks) for r in ranked]))
        # Share of drawn numbers ranked in the first six
        top6 = sum(sum(1 for rank in r.actual_ranks if rank <= 6) for r in ranked)
        top6_accuracy = top6 / sum(len(r.actual_ranks) for r in ranked)
    else:
        average_rank = None
        mrr = None
        top6_accuracy = None

    best = max(records, key=lambda r: r.hit_count)
    worst = min(records, key=lambda r: r.hit_count)

    return Statistics(
        total_rounds=total,
        hit_distribution=distribution,
        hit_rates=hit_rates,
        lifts=lifts,
        random_baselines=baselines,
        average_hits=average_hits,
        max_hits=int(hits.max()),
        std_hits=std_hits,
        average_rank=average_rank,
        mrr=mrr,
        sharpe_like_ratio=sharpe,
        drawdown=longest_run_below(hits, config.drawdown_threshold),
        bonus_hit_rate=sum(1 for r in records if r.bonus_hit) / total,
        best_round=best.round,
        worst_round=worst.round,
        calibration=calibration_report(records, config.calibration_bins),
        top6_accuracy=top6_accuracy,
    )


def calibration_report(records, n_bins=10):
    """
    Reliability of the strategy's stated probabilities.

    Every (candidate, round) pair of every record that carries
    probabilities is placed in one of ``n_bins`` equal-width bins over
    [0, 100] (the last bin includes 100). Per bin, ``avg_confidence`` is
    the mean stated probability and ``accuracy`` the percentage of those
    candidates that were drawn. ECE weights |confidence - accuracy| by bin
    size, so it lies in [0, 100]. The Brier score is the mean of
    (p / 100 - drawn)^2 over all pairs and lies in [0, 1].

    Returns None when no record has probabilities.
    """
    probs = []
    drawn = []
    for r in records:
        if r.probabilities is None:
            continue
        actual = set(r.actual)
        for number, p in r.probabilities.items():
            probs.append(p)
            drawn.append(1.0 if number in actual else 0.0)

    if not probs:
        return None

    probs = np.asarray(probs, dtype=float)
    drawn = np.asarray(drawn, dtype=float)
    total = len(probs)
    width = 100.0 / n_bins

    idx = np.minimum((probs // width).astype(int), n_bins - 1)
    counts = np.bincount(idx, minlength=n_bins)
    conf_sums = np.bincount(idx, weights=probs, minlength=n_bins)
    hit_sums = np.bincount(idx, weights=drawn, minlength=n_bins)

    bins = []
    ece = 0.0
    for b in range(n_bins):
        count = int(counts[b])
        if count:
            avg_conf = conf_sums[b] / count
            accuracy = 100.0 * hit_sums[b] / count
            ece += (count / total) * abs(avg_conf - accuracy)
        else:
            avg_conf = 0.0
            accuracy = 0.0
        bins.append(CalibrationBin(
            lower=b * width,
            upper=(b + 1) * width,
            count=count,
            hits=int(hit_sums[b]),
            avg_confidence=float(avg_conf),
            accuracy=float(accuracy),
        ))

    brier = float(np.mean((probs / 100.0 - drawn) ** 2))
    return CalibrationReport(
        bins=tuple(bins),
        ece=float(ece),
        brier_score=brier,
        total_predictions=total,
    )


# ---------------------------------------------------------------------------
# Ticket (combination) backtests
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CombinationStatistics:
    """Statistics over rounds where the strategy played whole tickets."""

    k: int
    total_rounds: int
    total_tickets: int
    ticket_hit_rate: float
    round_hit_rate: float
    average_hits: float
    max_hits: int
    average_max_hits: float
    sharpe_like_ratio: float
    drawdown: int
    lift: Optional[float]
    average_tickets_per_round: float


def combination_metrics(rounds, k=3, config=None):
    """
    Aggregate ticket-based rounds.

    ``ticket_hit_rate`` is the share of all tickets with at least ``k``
    hits; ``round_hit_rate`` the share of rounds where at least one ticket
    did. Drawdown runs over the best ticket of each round. Lift compares
    ``ticket_hit_rate`` with one random ticket of ``outcome_size`` numbers.
    """
    rounds = list(rounds)
    if not rounds:
        raise InsufficientData("No combination rounds to aggregate")
    if config is None:
        config = MetricsConfig()

    all_hits = [h for r in rounds for h in r.ticket_hits]
    best_per_round = [max(r.ticket_hits) if r.ticket_hits else 0 for r in rounds]
    if not all_hits:
        raise InsufficientData("No tickets were played")

    hits = np.array(all_hits, dtype=float)
    ticket_rate = float(np.sum(hits >= k)) / len(hits)
    round_rate = sum(1 for h in best_per_round if h >= k) / len(rounds)
    mean = float(hits.mean())
    std = float(hits.std())
    baseline = hypergeometric_at_least(
        k, config.universe_size, config.outcome_size, config.outcome_size
    )

    return CombinationStatistics(
        k=k,
        total_rounds=len(rounds),
        total_tickets=len(all_hits),
        ticket_hit_rate=ticket_rate,
        round_hit_rate=round_rate,
        average_hits=mean,
        max_hits=int(hits.max()),
        average_max_hits=float(np.mean(best_per_round)),
        sharpe_like_ratio=mean / std if std > 0 else 0.0,
        drawdown=longest_run_below(best_per_round, config.drawdown_threshold),
        lift=compute_lift(ticket_rate, baseline),
        average_tickets_per_round=len(all_hits) / len(rounds),
    )


# ---------------------------------------------------------------------------
# Comparison and reporting
# ---------------------------------------------------------------------------

COMPARED_METRICS = ("hit_rate_3", "average_hits", "lift_3", "sharpe_ratio")


def compare_metrics(first, second, names=COMPARED_METRICS):
    """
    Side-by-side comparison of two Statistics.

    Returns {name: {"metric1", "metric2", "diff", "improvement"}} where
    improvement is the % change of ``first`` over ``second`` (None when
    ``second`` is not positive or either side is undefined).
    """
    if first is None or second is None:
        return None
    comparison = {}
    for name in names:
        a = first.metric(name)
        b = second.metric(name)
        if a is None or b is None:
            diff = None
            improvement = None
        else:
            diff = a - b
            improvement = (diff / b) * 100 if b > 0 else None
        comparison[name] = {"metric1": a, "metric2": b, "diff": diff, "improvement": improvement}
    return comparison


def format_metrics(stats):
    """Readable multi-line summary of a Statistics."""
    if stats is None:
        return "No metrics available"

    lines = [f"Total rounds: {stats.total_rounds}", "", "Hit performance:"]
    for k, rate in stats.hit_rates.items():
        line = f"  {k}+ hit rate: {rate * 100:.2f}%"
        lift = stats.lifts.get(k)
        if lift is not None:
            line += f" (lift: {lift:.2f}x vs random {stats.random_baselines[k] * 100:.4f}%)"
        lines.append(line)

    lines.append("")
    lines.append(f"Average hits: {stats.average_hits:.3f}")
    lines.append(f"Max hits: {stats.max_hits}")
    if stats.average_rank is not None:
        lines.append(f"Average rank: {stats.average_rank:.2f}")
    if stats.mrr is not None:
        lines.append(f"MRR: {stats.mrr:.4f}")
    if stats.top6_accuracy is not None:
        lines.append(f"Top-6 accuracy: {stats.top6_accuracy * 100:.2f}%")
    lines.append(f"Bonus hit rate: {stats.bonus_hit_rate * 100:.2f}%")

    lines.append("")
    lines.append("Stability:")
    lines.append(f"  Sharpe-like ratio: {stats.sharpe_like_ratio:.3f}")
    lines.append(f"  Max drawdown: {stats.drawdown} rounds")

    lines.append("")
    lines.append("Hit distribution:")
    for h, count in stats.hit_distribution.items():
        pct = 100 * count / stats.total_rounds
        lines.append(f"  {h} hits: {count} ({pct:.1f}%)")

    cal = stats.calibration
    if cal is not None:
        lines.append("")
        lines.append("Calibration:")
        lines.append(f"  ECE: {cal.ece:.3f}")
        lines.append(f"  Brier score: {cal.brier_score:.4f}")
    return "\n".join(lines)


def performance_trend(records, window=10):
    """
    Rolling averages over consecutive test rounds.

    Returns a DataFrame with columns round, avg_hits, avg_rank and
    hit_rate_3, one row per round once ``window`` rounds are available.
    """
    columns = ["round", "avg_hits", "avg_rank", "hit_rate_3"]
    records = list(records)
    if len(records) < window:
        return pd.DataFrame(columns=columns)

    df = pd.DataFrame({
        "round": [r.round for r in records],
        "hits": [r.hit_count for r in records],
        "rank": [float(np.mean(r.actual_ranks)) if r.actual_ranks else np.nan for r in records],
    })
    df["hit3"] = (df["hits"] >= 3).astype(float)
    rolled = df[["hits", "rank", "hit3"]].rolling(window).mean()
    trend = pd.DataFrame({
        "round": df["round"],
        "avg_hits": rolled["hits"],
        "avg_rank": rolled["rank"],
        "hit_rate_3": rolled["hit3"],
    })
    return trend.iloc[window - 1:].reset_index(drop=True)


def number_accuracy(records, universe_size=None):
    """
    Per-number precision and recall of the top-N predictions.

    precision = rounds predicted and drawn / rounds predicted,
    recall = rounds predicted and drawn / rounds drawn.
    """
    if universe_size is None:
        universe_size = MetricsConfig().universe_size
    predicted = np.zeros(universe_size + 1, dtype=int)
    hit = np.zeros(universe_size + 1, dtype=int)
    appeared = np.zeros(universe_size + 1, dtype=int)

    for r in records:
        actual = set(r.actual)
        for n in r.predicted:
            predicted[n] += 1
            if n in actual:
                hit[n] += 1
        for n in actual:
            appeared[n] += 1

    numbers = np.arange(1, universe_size + 1)
    df = pd.DataFrame({
        "number": numbers,
        "predicted": predicted[1:],
        "hit": hit[1:],
        "appeared": appeared[1:],
    })
    df["precision"] = np.where(df["predicted"] > 0, df["hit"] / df["predicted"].clip(lower=1), 0.0)
    df["recall"] = np.where(df["appeared"] > 0, df["hit"] / df["appeared"].clip(lower=1), 0.0)
    return df.set_index("number")


def top_n_comparison(records, ns=(6, 8, 10, 12, 15), outcome_size=None):
    """
    Average hits had only the first n ranked numbers been played.

    Uses the recorded ranks of the drawn numbers, so n may exceed the
    prediction size used during the run.
    """
    records = list(records)
    if not records:
        raise InsufficientData("No evaluation records to compare")
    if outcome_size is None:
        outcome_size = MetricsConfig().outcome_size

    comparison = {}
    for n in ns:
        total_hits = sum(sum(1 for rank in r.actual_ranks if rank <= n) for r in records)
        comparison[f"top{n}"] = {
            "avg_hits": total_hits / len(records),
            "accuracy": total_hits / (len(records) * outcome_size),
        }
    return comparison


SCORE_BANDS = ((80, 100), (60, 80), (40, 60), (20, 40), (0, 20))


def score_bands(records, config=None):
    """
    Hit accuracy of candidates grouped by stated probability.

    Bands are half-open except the top one, which includes 100. Lift is
    the band accuracy over the chance that a single number is drawn
    (outcome_size / universe_size).
    """
    if config is None:
        config = MetricsConfig()
    chance = config.outcome_size / config.universe_size
    bands = []
    for lo, hi in SCORE_BANDS:
        bands.append({"range": f"{lo}-{hi}", "min": lo, "max": hi, "predicted": 0, "hits": 0})

    for r in records:
        if r.probabilities is None:
            continue
        actual = set(r.actual)
        for number, p in r.probabilities.items():
            for band in bands:
                if band["min"] <= p < band["max"] or (band["max"] == 100 and p == 100):
                    band["predicted"] += 1
                    if number in actual:
                        band["hits"] += 1
                    break

    for band in bands:
        band["accuracy"] = 100 * band["hits"] / band["predicted"] if band["predicted"] else 0.0
        band["expected_hits"] = band["predicted"] * chance
        band["lift"] = band["accuracy"] / (chance * 100)
    return bands


def significance_vs_random(records, config=None):
    """
    One-sample t-test of hit counts against the random expectation.

    The expectation is outcome_size * top_n / universe_size hits per round.
    Returns None with fewer than two records.
    """
    if config is None:
        config = MetricsConfig()
    hits = np.array([r.hit_count for r in records], dtype=float)
    if len(hits) < 2:
        return None

    expected = expected_hits(config.universe_size, config.outcome_size, config.top_n)
    diff = float(hits.mean() - expected)
    se = float(hits.std(ddof=1) / math.sqrt(len(hits)))

    if se == 0:
        t_stat = math.inf if diff > 0 else (-math.inf if diff < 0 else 0.0)
        p_value = 0.0 if diff != 0 else 1.0
    else:
        t_stat, p_value = stats.ttest_1samp(hits, expected)
        t_stat = float(t_stat)
        p_value = float(p_value)

    return {
        "expected_hits": round(expected, 4),
        "mean_hits": round(float(hits.mean()), 4),
        "t_statistic": round(t_stat, 4) if math.isfinite(t_stat) else t_stat,
        "p_value": round(p_value, 6),
        "mean_diff": round(diff, 4),
        "ci_95": (round(diff - 1.96 * se, 4), round(diff + 1.96 * se, 4)),
        "significant_at_005": p_value < 0.05,
        "significant_at_010": p_value < 0.10,
    }
