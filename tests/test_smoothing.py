from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from grapher_engine.smoothing import (
    compute_rolling_average,
    compute_rolling_averages_for_each_group,
    insert_missing_value_placeholders,
)


def test_window_of_one_is_identity() -> None:
    assert compute_rolling_average([2, 4, 6, 8], 1) == [2, 4, 6, 8]


def test_right_aligned_average_uses_trailing_values() -> None:
    assert compute_rolling_average([1, -1, 1, -1], 2) == [1, 0, 0, 0]
    np.testing.assert_allclose(compute_rolling_average([1, 3, 5, 1], 3, "right"), [1, 2, 3, 3])


def test_center_aligned_average_splits_window() -> None:
    np.testing.assert_allclose(compute_rolling_average([0, 2, 4, 0], 3, "center"), [1, 2, 2, 2])
    # Even windows lean towards the past.
    np.testing.assert_allclose(compute_rolling_average([0, 2, 4, 0], 2, "center"), [0, 1, 3, 2])


def test_gaps_pass_through_and_are_skipped_by_neighbours() -> None:
    result = compute_rolling_average([1, pd.NA, None, -1, 1], 2)

    assert result[0] == 1
    assert result[1] is pd.NA
    assert result[2] is None
    assert result[3] == -1
    assert result[4] == 0


def test_window_of_only_gaps_never_yields_nan() -> None:
    assert compute_rolling_average([None, None], 3) == [None, None]
    result = compute_rolling_average([pd.NA, pd.NA], 2)
    assert result[0] is pd.NA
    assert result[1] is pd.NA


def test_nan_readings_are_excluded_from_sums() -> None:
    np.testing.assert_allclose(compute_rolling_average([2.0, float("nan"), 4.0], 3), [2, 2, 3])


def test_invalid_window_or_alignment_raises() -> None:
    with pytest.raises(ValueError):
        compute_rolling_average([1, 2], 0)
    with pytest.raises(ValueError):
        compute_rolling_average([1, 2], 2, "left")  # type: ignore[arg-type]


def test_insert_missing_value_placeholders_fills_each_skipped_step() -> None:
    assert insert_missing_value_placeholders([2, -3, 10], [0, 2, 3]) == [2, None, -3, 10]
    assert insert_missing_value_placeholders([], []) == []

    with pytest.raises(ValueError):
        insert_missing_value_placeholders([1], [0, 1])


def test_placeholders_keep_window_positional() -> None:
    dense = insert_missing_value_placeholders([0, 2, 3], [0, 2, 3])

    assert compute_rolling_average(dense, 2) == [0, None, 2, 2.5]


def test_grouped_average_resets_at_group_boundaries() -> None:
    rows = [
        {"entityName": "France", "day": 0, "cases": 1},
        {"entityName": "France", "day": 1, "cases": 3},
        {"entityName": "Peru", "day": 0, "cases": 10},
        {"entityName": "Peru", "day": 2, "cases": 20},
    ]

    averages = compute_rolling_averages_for_each_group(
        rows,
        lambda row: row["cases"],
        group_slug="entityName",
        time_slug="day",
        window=2,
    )

    assert averages == [1, 2, 10, 20]


def test_grouped_average_gives_rows_without_time_none() -> None:
    rows = [
        {"entityName": "France", "year": 2000, "gdp": 9},
        {"entityName": "France", "day": 0, "cases": 2},
        {"entityName": "France", "day": 2, "cases": 6},
        {"entityName": "Peru", "year": 2000, "gdp": 3},
    ]

    averages = compute_rolling_averages_for_each_group(
        rows,
        lambda row: row.get("cases"),
        group_slug="entityName",
        time_slug="day",
        window=3,
    )

    assert averages == [None, 2, 4, None]
