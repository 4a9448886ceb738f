#!/usr/bin/env python3
"""
Standalone backtest script.
Walk-forward run of the weighted scoring model against the random
baseline, then a small grid search over window and model parameters.

Usage: run_backtest.py draws.csv
"""
import os
import sys

import pandas as pd

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from lotto_backtest.backtester import print_summary, run_walk_forward
from lotto_backtest.config import FoldConfig
from lotto_backtest.draws import DrawSequence
from lotto_backtest.metrics import compare_metrics, significance_vs_random
from lotto_backtest.models import random_pick, weighted_scoring
from lotto_backtest.optimizer import make_walk_forward_pipeline, optimize


def main():
    if len(sys.argv) != 2:
        print(__doc__.strip().splitlines()[-1])
        sys.exit(2)

    print("Loading data...")
    draws = DrawSequence.from_dataframe(pd.read_csv(sys.argv[1]))
    print(f"Loaded {len(draws)} draws (rounds {draws.rounds[0]}-{draws.rounds[-1]})")

    config = FoldConfig(train_size=100, test_size=20, step_size=20, window_type="rolling")

    # ================================================================
    # WEIGHTED SCORING vs RANDOM
    # ================================================================
    ws = run_walk_forward(draws, weighted_scoring.make_strategy(), config, verbose=True)
    print_summary(ws)

    rnd = run_walk_forward(draws, random_pick.make_strategy(seed=7), config)
    print(f"\n{'='*60}")
    print("WEIGHTED SCORING vs RANDOM")
    print(f"{'='*60}")
    comparison = compare_metrics(ws.statistics, rnd.statistics)
    if comparison is None:
        print("  Not enough data to compare.")
    else:
        for name, row in comparison.items():
            a = "n/a" if row["metric1"] is None else f"{row['metric1']:.4f}"
            b = "n/a" if row["metric2"] is None else f"{row['metric2']:.4f}"
            print(f"  {name:14s} {a:>10s} vs {b:>10s}")

    sig = significance_vs_random(ws.records, ws.metrics_config)
    if sig is not None:
        print(f"\n  Mean hits {sig['mean_hits']} vs expected {sig['expected_hits']} "
              f"(t={sig['t_statistic']}, p={sig['p_value']})")

    # ================================================================
    # GRID SEARCH
    # ================================================================
    pipeline = make_walk_forward_pipeline(draws, weighted_scoring.make_strategy, base_config=config)
    grid = {
        "train_size": [50, 100, 200],
        "recent_window": [20, 50],
    }

    def report(percent, current, total, detail):
        print(f"  [{percent:5.1f}%] {detail}")

    result = optimize(grid, "hit_rate_3", pipeline, progress=report)

    print(f"\n{'='*60}")
    print("GRID SEARCH RESULTS")
    print(f"{'='*60}")
    print(f"Best hit_rate_3: {result.best_score:.4f} with {result.best_params}")
    for name, sens in result.sensitivity.items():
        print(f"\n  {name}: best={sens.best_value}, worst={sens.worst_value}, "
              f"range={sens.range:.4f}")
        for value, vs in sens.value_scores.items():
            print(f"    {value!s:>6}: mean={vs.mean:.4f} std={vs.std:.4f} (n={vs.count})")
    for r in result.failed:
        print(f"  FAILED {r.params}: {r.error}")


if __name__ == "__main__":
    main()
