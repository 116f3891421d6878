from __future__ import annotations

import math
from itertools import groupby
from typing import Any, Callable, Literal, Sequence

import numpy as np
import pandas as pd

Align = Literal["right", "center"]

# `None` marks an explicit gap in the data (e.g. a placeholder for a missing day);
# `pd.NA` marks a reading that is absent altogether. Both come out unchanged at
# their own position and neither contributes to a neighbour's window.
MaybeNumber = Any


def _is_placeholder(value: Any) -> bool:
    return value is None or value is pd.NA


def _is_reading(value: Any) -> bool:
    if _is_placeholder(value):
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    return True


def compute_rolling_average(
    values: Sequence[MaybeNumber],
    window: int,
    align: Align = "right",
) -> list[MaybeNumber]:
    """Fixed-window mean that skips gaps without compacting the sequence.

    ``align="right"`` averages the current value and the ``window - 1`` before it.
    ``align="center"`` splits the window around the current value, giving the
    extra element to the past side when the split is uneven.
    """
    if window < 1:
        raise ValueError("window must be >= 1")
    if align not in ("right", "center"):
        raise ValueError(f"Unsupported rolling average alignment: {align}")

    n = len(values)
    if n == 0:
        return []

    readings = np.array(
        [float(value) if _is_reading(value) else np.nan for value in values],
        dtype=float,
    )
    valid = ~np.isnan(readings)
    cumulative_sum = np.concatenate(([0.0], np.cumsum(np.where(valid, readings, 0.0))))
    cumulative_count = np.concatenate(([0], np.cumsum(valid)))

    expand = window - 1
    expand_left = math.ceil(expand / 2) if align == "center" else expand
    expand_right = math.floor(expand / 2) if align == "center" else 0

    positions = np.arange(n)
    start = np.maximum(positions - expand_left, 0)
    stop = np.minimum(positions + expand_right, n - 1) + 1
    sums = cumulative_sum[stop] - cumulative_sum[start]
    counts = cumulative_count[stop] - cumulative_count[start]
    with np.errstate(invalid="ignore", divide="ignore"):
        means = sums / counts

    return [
        value if _is_placeholder(value) else float(means[index])
        for index, value in enumerate(values)
    ]


def insert_missing_value_placeholders(
    values: Sequence[MaybeNumber],
    times: Sequence[int],
) -> list[MaybeNumber]:
    """Expand sparse observations to one slot per integer time step.

    ``times`` must be ascending; every skipped step becomes ``None``.
    """
    if len(values) != len(times):
        raise ValueError("values and times must have the same length")
    if not times:
        return []

    by_time = dict(zip((int(time) for time in times), values))
    start, end = int(times[0]), int(times[-1])
    return [by_time.get(time) for time in range(start, end + 1)]


def compute_rolling_averages_for_each_group(
    rows: Sequence[dict[str, Any]],
    value_accessor: Callable[[dict[str, Any]], MaybeNumber],
    group_slug: str,
    time_slug: str,
    window: int,
    align: Align = "right",
) -> list[MaybeNumber]:
    """Rolling average per contiguous group, aligned one-to-one with ``rows``.

    Rows are expected to be sorted by ``group_slug`` and then by time. A group
    boundary resets the window, so values never blend across entities. Rows
    with no ``time_slug`` value get ``None`` and stay out of every window.
    """
    averages: list[MaybeNumber] = []
    for _, group in groupby(rows, key=lambda row: row.get(group_slug)):
        group_rows = list(group)
        timed = [row for row in group_rows if row.get(time_slug) is not None]
        if not timed:
            averages.extend(None for _ in group_rows)
            continue
        times = [int(row[time_slug]) for row in timed]
        dense = insert_missing_value_placeholders(
            [value_accessor(row) for row in timed],
            times,
        )
        smoothed = compute_rolling_average(dense, window, align)
        first_time = times[0]
        for row in group_rows:
            time = row.get(time_slug)
            averages.append(None if time is None else smoothed[int(time) - first_time])
    return averages
