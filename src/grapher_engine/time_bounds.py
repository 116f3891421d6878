from __future__ import annotations

import math
from typing import Union

# JSON has no infinity, so unbounded time limits travel as these strings.
EARLIEST = "earliest"
LATEST = "latest"

UNBOUNDED_LEFT = -math.inf
UNBOUNDED_RIGHT = math.inf

TimeBound = Union[int, float]
TimeBoundJSON = Union[int, float, str, None]


def _from_json(value: TimeBoundJSON) -> TimeBound | None:
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip().lower()
        if text == EARLIEST:
            return UNBOUNDED_LEFT
        if text == LATEST:
            return UNBOUNDED_RIGHT
        try:
            return int(text)
        except ValueError:
            return None
    return value


def _to_json(value: TimeBound | None) -> TimeBoundJSON:
    if value is None:
        return None
    if value == UNBOUNDED_LEFT:
        return EARLIEST
    if value == UNBOUNDED_RIGHT:
        return LATEST
    return value


def min_time_from_json(value: TimeBoundJSON) -> TimeBound:
    parsed = _from_json(value)
    return UNBOUNDED_LEFT if parsed is None else parsed


def max_time_from_json(value: TimeBoundJSON) -> TimeBound:
    parsed = _from_json(value)
    return UNBOUNDED_RIGHT if parsed is None else parsed


def min_time_to_json(value: TimeBound | None) -> TimeBoundJSON:
    return _to_json(value)


def max_time_to_json(value: TimeBound | None) -> TimeBoundJSON:
    return _to_json(value)
