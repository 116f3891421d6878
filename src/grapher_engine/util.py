from __future__ import annotations

import math
import re
from datetime import date, timedelta
from typing import Any, Callable, Hashable, Iterable, TypeVar

T = TypeVar("T")

_ANNOTATED_SUFFIX = re.compile(r"\s*\*.+\*")
_NON_SLUG_CHARS = re.compile(r"[^\w\- ]+")
_SPACES = re.compile(r" +")


def slugify(text: str) -> str:
    """Lowercase, drop `*annotations*` and punctuation, join words with dashes."""
    lowered = _ANNOTATED_SUFFIX.sub("", text.lower())
    lowered = _NON_SLUG_CHARS.sub("", lowered)
    return _SPACES.sub("-", lowered.strip())


def parse_iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value.strip()[:10])
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"invalid ISO date: {value!r}") from exc


def days_between(start: str, end: str) -> int:
    """Whole days from `end` to `start` (positive when `start` is later)."""
    return (parse_iso_date(start) - parse_iso_date(end)).days


def format_day(day: int, epoch: str) -> str:
    moment = parse_iso_date(epoch) + timedelta(days=int(day))
    return f"{moment:%b} {moment.day}, {moment.year}"


def format_year(year: int) -> str:
    if year < 0:
        return f"{abs(int(year))} BCE"
    return str(int(year))


def format_value(value: float, unit: str = "", num_decimal_places: int = 2) -> str:
    if isinstance(value, float) and math.isnan(value):
        return ""
    rendered = f"{value:,.{max(0, int(num_decimal_places))}f}"
    if not unit:
        return rendered
    if unit[0] in "$£€":
        return f"{unit}{rendered}"
    if unit == "%":
        return f"{rendered}%"
    return f"{rendered} {unit}"


def group_by(items: Iterable[T], key: Callable[[T], Hashable]) -> dict[Hashable, list[T]]:
    """Group items by key, preserving first-seen key order."""
    groups: dict[Hashable, list[T]] = {}
    for item in items:
        groups.setdefault(key(item), []).append(item)
    return groups


def uniq(items: Iterable[T]) -> list[T]:
    seen: set[Any] = set()
    out: list[T] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        out.append(item)
    return out


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
