from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from grapher_engine.reactive import computed
from grapher_engine.table.variables import OwidSource, OwidVariableDisplaySettings
from grapher_engine.util import uniq

if TYPE_CHECKING:
    from grapher_engine.table.table import Table

Row = dict[str, Any]
RowToValueMapper = Callable[[Row, int], Any]

_TRUE_STRINGS = frozenset({"true", "1", "yes", "y", "t"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "n", "f"})


class ColumnKind(str, Enum):
    ANY = "any"
    BOOLEAN = "boolean"
    NUMERIC = "numeric"
    STRING = "string"
    YEAR = "year"
    DAY = "day"
    ENTITY = "entity"

    def parse(self, value: Any) -> Any:
        """Coerce a raw cell (usually CSV text) to this kind; blanks become ``None``."""
        if value is None or (isinstance(value, float) and math.isnan(value)):
            return None
        if isinstance(value, str) and not value.strip() and self is not ColumnKind.STRING:
            return None
        if self is ColumnKind.BOOLEAN:
            if isinstance(value, str):
                lowered = value.strip().lower()
                if lowered in _TRUE_STRINGS:
                    return True
                if lowered in _FALSE_STRINGS:
                    return False
                raise ValueError(f"Cannot parse boolean value: {value!r}")
            return bool(value)
        if self is ColumnKind.NUMERIC:
            number = float(value)
            return int(number) if number.is_integer() and not isinstance(value, float) else number
        if self in (ColumnKind.YEAR, ColumnKind.DAY):
            return int(float(value))
        if self in (ColumnKind.STRING, ColumnKind.ENTITY):
            return str(value)
        return value

    def format(self, value: Any) -> str:
        """Render a cell for delimited export; missing values render as ``""``."""
        if value is None or (isinstance(value, float) and math.isnan(value)):
            return ""
        if self is ColumnKind.BOOLEAN or isinstance(value, bool):
            return "true" if value else "false"
        if self is not ColumnKind.STRING and isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)


@dataclass
class ColumnSpec:
    slug: str
    name: str | None = None
    owid_variable_id: int | None = None
    unit: str | None = None
    short_unit: str | None = None
    is_daily_measurement: bool = False
    description: str | None = None
    coverage: str | None = None
    dataset_id: int | str | None = None
    dataset_name: str | None = None
    source: OwidSource | None = None
    display: OwidVariableDisplaySettings | None = None
    is_filter_column: bool = False
    annotations_column_slug: str | None = None
    kind: ColumnKind = ColumnKind.ANY

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for spec_field in fields(ColumnSpec):
            value = getattr(self, spec_field.name)
            if value is None or value is False:
                continue
            if isinstance(value, (OwidSource, OwidVariableDisplaySettings)):
                value = value.model_dump(by_alias=True, exclude_none=True)
            elif isinstance(value, ColumnKind):
                value = value.value
            out[spec_field.name] = value
        return out


@dataclass
class ComputedColumnSpec(ColumnSpec):
    fn: RowToValueMapper | None = field(default=None, repr=False, compare=False)


class Column:
    """Read-only view of one slug across the table's visible rows."""

    def __init__(self, table: Table, spec: ColumnSpec) -> None:
        self.table = table
        self.spec = spec

    def __repr__(self) -> str:
        return f"Column(slug={self.slug!r}, kind={self.kind.value})"

    @property
    def slug(self) -> str:
        return self.spec.slug

    @property
    def name(self) -> str:
        return self.spec.name if self.spec.name is not None else self.spec.slug

    @property
    def kind(self) -> ColumnKind:
        return self.spec.kind

    @property
    def is_daily_measurement(self) -> bool:
        return bool(self.spec.is_daily_measurement)

    @property
    def unit(self) -> str:
        return self.spec.unit or ""

    @property
    def short_unit(self) -> str:
        return self.spec.short_unit or ""

    @property
    def display(self) -> OwidVariableDisplaySettings:
        return self.spec.display or OwidVariableDisplaySettings()

    @property
    def owid_variable_id(self) -> int | None:
        return self.spec.owid_variable_id

    @property
    def description(self) -> str | None:
        return self.spec.description

    @property
    def coverage(self) -> str | None:
        return self.spec.coverage

    @property
    def dataset_id(self) -> int | str | None:
        return self.spec.dataset_id

    @property
    def dataset_name(self) -> str | None:
        return self.spec.dataset_name

    @property
    def source(self) -> OwidSource | None:
        return self.spec.source

    @computed
    def rows(self) -> list[Row]:
        slug = self.slug
        return [row for row in self.table.unfiltered_rows if slug in row]

    @computed
    def values(self) -> list[Any]:
        slug = self.slug
        return [row[slug] for row in self.rows]

    @computed
    def entity_names(self) -> list[str]:
        return [row.get("entityName") for row in self.rows]

    @computed
    def entity_names_uniq(self) -> list[str]:
        return uniq(self.entity_names)

    @computed
    def entity_name_set(self) -> frozenset[str]:
        return frozenset(self.entity_names)

    @computed
    def years(self) -> list[int]:
        return [row["year"] if row.get("year") is not None else row.get("day") for row in self.rows]

    @computed
    def values_uniq(self) -> list[Any]:
        return uniq(self.values)

    @computed
    def entity_map(self) -> dict[str, Any]:
        slug = self.slug
        return {row.get("entityName"): row[slug] for row in self.rows}

    @computed
    def _annotations_map(self) -> dict[str, Any] | None:
        target = self.spec.annotations_column_slug
        if not target:
            return None
        column = self.table.columns_by_slug.get(target)
        return column.entity_map if column is not None else None

    def annotations_for(self, entity_name: str) -> Any:
        annotations = self._annotations_map
        return annotations.get(entity_name) if annotations else None
