from __future__ import annotations

import math
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from grapher_engine.config import DEFAULT_EPOCH_DATE
from grapher_engine.reactive import computed
from grapher_engine.table.columns import Column
from grapher_engine.table.variables import OwidVariableDisplaySettings
from grapher_engine.util import format_day, format_value, format_year, is_number

DimensionProperty = Literal["x", "y", "size", "color", "filter"]

COMMON_SHORT_UNITS = ("$", "£", "€", "%")


class ChartDimension(BaseModel):
    """Persisted binding of a chart role to one variable."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    property: DimensionProperty
    variable_id: int
    display: OwidVariableDisplaySettings = Field(default_factory=OwidVariableDisplaySettings)
    target_year: int | None = None

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def _first_set(*candidates: Any) -> Any:
    for candidate in candidates:
        if candidate is not None:
            return candidate
    return None


class DimensionWithColumn:
    """A dimension resolved against the table column holding its variable."""

    def __init__(
        self,
        index: int,
        props: ChartDimension,
        column: Column,
        epoch_date: str = DEFAULT_EPOCH_DATE,
    ) -> None:
        self.index = index
        self.props = props
        self.column = column
        self.epoch_date = epoch_date

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DimensionWithColumn):
            return NotImplemented
        return (
            self.index == other.index
            and self.props == other.props
            and self.column is other.column
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return (
            f"DimensionWithColumn(index={self.index}, property={self.property!r}, "
            f"variable_id={self.variable_id})"
        )

    @property
    def variable_id(self) -> int:
        return self.props.variable_id

    @property
    def target_year(self) -> int | None:
        return self.props.target_year

    @property
    def display_name(self) -> str:
        return _first_set(self.props.display.name, self.column.display.name, self.column.name)

    @property
    def include_in_table(self) -> bool:
        if self.property == "color":
            return False
        include = self.column.display.include_in_table
        return True if include is None else include

    @property
    def unit(self) -> str:
        return _first_set(self.props.display.unit, self.column.display.unit, self.column.unit) or ""

    @property
    def full_name_with_unit(self) -> str:
        return self.display_name + (f" ({self.unit})" if self.unit else "")

    @property
    def unit_conversion_factor(self) -> float:
        return _first_set(
            self.props.display.conversion_factor,
            self.column.display.conversion_factor,
            1,
        )

    @property
    def is_projection(self) -> bool:
        return bool(_first_set(self.props.display.is_projection, self.column.display.is_projection))

    @property
    def tolerance(self) -> float:
        return _first_set(
            self.props.display.tolerance,
            self.column.display.tolerance,
            math.inf if self.property == "color" else 0,
        )

    @property
    def num_decimal_places(self) -> int:
        return _first_set(
            self.props.display.num_decimal_places,
            self.column.display.num_decimal_places,
            2,
        )

    @property
    def short_unit(self) -> str:
        short_unit = _first_set(
            self.props.display.short_unit,
            self.column.display.short_unit,
            self.column.short_unit or None,
        )
        if short_unit is not None:
            return short_unit
        unit = self.unit
        if not unit:
            return ""
        if len(unit) < 3:
            return unit
        return unit[0] if unit[0] in COMMON_SHORT_UNITS else ""

    def format_value_short(self, value: Any) -> str:
        if isinstance(value, str):
            return value
        return format_value(value, self.short_unit, self.num_decimal_places)

    def format_value_long(self, value: Any) -> str:
        if isinstance(value, str):
            return value
        return format_value(value, self.unit, self.num_decimal_places)

    def format_year(self, time: int) -> str:
        if self.column.is_daily_measurement:
            return format_day(time, self.epoch_date)
        return format_year(time)

    @computed
    def values(self) -> list[Any]:
        factor = self.unit_conversion_factor
        if factor != 1:
            # Non-numeric cells pass through unscaled.
            return [value * factor if is_number(value) else value for value in self.column.values]
        return self.column.values

    @computed
    def sorted_numeric_values(self) -> list[float]:
        return sorted(value for value in self.values if is_number(value))

    @computed
    def categorical_values(self) -> list[str]:
        return sorted({value for value in self.values if isinstance(value, str)})

    @property
    def years(self) -> list[int]:
        return self.column.years

    @property
    def years_uniq(self) -> list[int]:
        return sorted(set(self.years))

    @property
    def entity_names(self) -> list[str]:
        return self.column.entity_names

    @property
    def entity_names_uniq(self) -> list[str]:
        return self.column.entity_names_uniq

    @computed
    def value_by_entity_and_year(self) -> dict[str, dict[int, Any]]:
        out: dict[str, dict[int, Any]] = {}
        for entity, year, value in zip(self.entity_names, self.years, self.values):
            out.setdefault(entity, {})[year] = value
        return out

    def year_and_value_of_latest_value_for_entity(self, entity: str) -> tuple[int, Any] | None:
        by_year = self.value_by_entity_and_year.get(entity)
        if not by_year:
            return None
        return list(by_year.items())[-1]

    # Kept last: this name shadows the builtin for the rest of the class body.
    @property
    def property(self) -> str:
        return self.props.property
