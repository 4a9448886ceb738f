"""
Historical draw records.

A DrawSequence is built once, validated, and then only read: it is backed
by a tuple of frozen DrawRecords so neither the evaluator nor a strategy
can reorder or edit history during a run.

Data schema accepted by DrawSequence.from_dataframe:
    round (or draw_number), date, num1-num6, bonus (or additional_number)
"""
import datetime
from dataclasses import dataclass

import numpy as np
import pandas as pd

from lotto_backtest.config import OUTCOME_SIZE, UNIVERSE_SIZE
from lotto_backtest.errors import InvalidDrawData


ROUND_COLUMNS = ("round", "draw_number")
BONUS_COLUMNS = ("bonus", "additional_number")


@dataclass(frozen=True)
class DrawRecord:
    """One historical draw: six primary numbers plus a bonus number."""

    round: int
    date: datetime.date
    numbers: tuple
    bonus: int

    def __post_init__(self):
        object.__setattr__(self, "numbers", tuple(sorted(int(n) for n in self.numbers)))

    def contains(self, number):
        return number in self.numbers


def validate_draw(record, universe_size=UNIVERSE_SIZE, outcome_size=OUTCOME_SIZE):
    """Raise InvalidDrawData if ``record`` is not a legal draw."""
    nums = record.numbers
    if len(nums) != outcome_size:
        raise InvalidDrawData(
            f"Round {record.round}: expected {outcome_size} numbers, got {len(nums)}"
        )
    if len(set(nums)) != outcome_size:
        raise InvalidDrawData(f"Round {record.round}: duplicate numbers {list(nums)}")
    for n in nums:
        if not 1 <= n <= universe_size:
            raise InvalidDrawData(
                f"Round {record.round}: number {n} outside 1..{universe_size}"
            )
    if not 1 <= record.bonus <= universe_size:
        raise InvalidDrawData(
            f"Round {record.round}: bonus {record.bonus} outside 1..{universe_size}"
        )
    if record.bonus in nums:
        raise InvalidDrawData(
            f"Round {record.round}: bonus {record.bonus} repeats a primary number"
        )


class DrawSequence:
    """
    Ordered, validated, read-only list of draws.

    Rounds must be strictly increasing. Indexing is positional (0-based),
    which is what fold ranges refer to; use ``index_of`` to go from a
    round number to a position.
    """

    def __init__(self, records, universe_size=UNIVERSE_SIZE, outcome_size=OUTCOME_SIZE):
        self.universe_size = universe_size
        self.outcome_size = outcome_size
        records = tuple(records)

        previous = None
        for record in records:
            validate_draw(record, universe_size, outcome_size)
            if previous is not None and record.round <= previous:
                if record.round == previous:
                    raise InvalidDrawData(f"Duplicate round {record.round}")
                raise InvalidDrawData(
                    f"Rounds out of order: {record.round} follows {previous}"
                )
            previous = record.round

        self._records = records
        self._positions = {r.round: i for i, r in enumerate(records)}

    def __len__(self):
        return len(self._records)

    def __iter__(self):
        return iter(self._records)

    def __getitem__(self, index):
        return self._records[index]

    def __repr__(self):
        if not self._records:
            return "DrawSequence([])"
        return (f"DrawSequence({len(self)} draws, rounds "
                f"{self._records[0].round}-{self._records[-1].round})")

    @property
    def records(self):
        return self._records

    @property
    def rounds(self):
        return [r.round for r in self._records]

    def slice(self, start, stop):
        """Draws at positions ``start`` .. ``stop - 1`` as a tuple."""
        if start < 0 or stop > len(self._records) or start > stop:
            raise IndexError(f"Slice [{start}:{stop}] outside 0..{len(self._records)}")
        return self._records[start:stop]

    def index_of(self, round_number):
        try:
            return self._positions[round_number]
        except KeyError:
            raise KeyError(f"Round {round_number} not in sequence") from None

    def head(self, n):
        """A new sequence holding only the first ``n`` draws."""
        return DrawSequence(self._records[:n], self.universe_size, self.outcome_size)

    # ── pandas bridge ────────────────────────────────────────────────────

    @classmethod
    def from_dataframe(cls, df, universe_size=UNIVERSE_SIZE, outcome_size=OUTCOME_SIZE):
        """
        Build a sequence from a draw table.

        Parameters
        ----------
        df : pd.DataFrame
            One row per draw. Needs a round column (``round`` or
            ``draw_number``), ``num1`` .. ``num6`` and a bonus column
            (``bonus`` or ``additional_number``). ``date`` is optional.

        Returns
        -------
        DrawSequence sorted ascending by round.
        """
        num_cols = [f"num{i}" for i in range(1, outcome_size + 1)]
        round_col = _first_present(df, ROUND_COLUMNS)
        bonus_col = _first_present(df, BONUS_COLUMNS)
        missing = [c for c in num_cols if c not in df.columns]
        if round_col is None or bonus_col is None or missing:
            raise InvalidDrawData(
                f"Draw table needs {ROUND_COLUMNS[0]}, {', '.join(num_cols)} and "
                f"{BONUS_COLUMNS[0]} columns; got {list(df.columns)}"
            )

        df = df.sort_values(round_col, kind="mergesort").reset_index(drop=True)
        if df[num_cols + [round_col, bonus_col]].isna().any().any():
            raise InvalidDrawData("Draw table contains missing values")

        dates = None
        if "date" in df.columns:
            dates = pd.to_datetime(df["date"]).dt.date.tolist()

        try:
            values = df[[round_col] + num_cols + [bonus_col]].to_numpy(dtype=float)
        except (TypeError, ValueError):
            raise InvalidDrawData("Draw table contains non-numeric values") from None
        fractional = np.mod(values, 1) != 0
        if fractional.any():
            row = int(np.argmax(fractional.any(axis=1)))
            raise InvalidDrawData(
                f"Draw table contains non-integer values in row {row}: {values[row].tolist()}"
            )

        values = values.astype(np.int64)
        records = []
        for i, row in enumerate(values):
            records.append(DrawRecord(
                round=int(row[0]),
                date=dates[i] if dates is not None else None,
                numbers=tuple(int(n) for n in row[1:-1]),
                bonus=int(row[-1]),
            ))
        return cls(records, universe_size, outcome_size)

    def to_frame(self):
        """Inverse of ``from_dataframe``."""
        rows = []
        for r in self._records:
            row = {"round": r.round, "date": r.date}
            for i, n in enumerate(r.numbers, 1):
                row[f"num{i}"] = n
            row["bonus"] = r.bonus
            rows.append(row)
        columns = ["round", "date"] + [f"num{i}" for i in range(1, self.outcome_size + 1)] + ["bonus"]
        return pd.DataFrame(rows, columns=columns)


def _first_present(df, candidates):
    for c in candidates:
        if c in df.columns:
            return c
    return None
