"""Persisted chart configuration as a set of observable fields."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from grapher_engine.chart.dimension import ChartDimension
from grapher_engine.reactive import observable
from grapher_engine.table.variables import OwidVariablesAndEntityKey


class ChartType:
    LINE_CHART = "LineChart"
    SCATTER_PLOT = "ScatterPlot"
    TIME_SCATTER = "TimeScatter"
    STACKED_AREA = "StackedArea"
    DISCRETE_BAR = "DiscreteBar"
    SLOPE_CHART = "SlopeChart"
    STACKED_BAR = "StackedBar"


class EntitySelection(BaseModel):
    """One selected series: an entity within the primary dimension at ``index``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    entity_id: int
    index: int
    color: str | None = None


def _selection(entries: Any) -> list[EntitySelection]:
    return [
        entry if isinstance(entry, EntitySelection) else EntitySelection.model_validate(entry)
        for entry in entries or []
    ]


def _dimensions(entries: Any) -> list[ChartDimension]:
    return [
        entry if isinstance(entry, ChartDimension) else ChartDimension.model_validate(entry)
        for entry in entries or []
    ]


def _dataset(value: Any) -> OwidVariablesAndEntityKey | None:
    if value is None or isinstance(value, OwidVariablesAndEntityKey):
        return value
    return OwidVariablesAndEntityKey.model_validate(value)


class ChartConfigProps:
    type = observable(ChartType.LINE_CHART)
    is_explorable = observable(False)
    id = observable(None)
    version = observable(1)

    slug = observable(None)
    title = observable(None)
    subtitle = observable(None)
    source_desc = observable(None)
    note = observable(None)
    hide_title_annotation = observable(None)

    x_axis = observable(default_factory=dict)
    y_axis = observable(default_factory=dict)

    external_data_url = observable(None)
    owid_dataset = observable(None)
    entities_are_countries = observable(None)

    selected_data = observable(default_factory=list)
    min_time = observable(None)
    max_time = observable(None)

    dimensions = observable(default_factory=list)
    add_country_mode = observable(None)

    stack_mode = observable("absolute")
    hide_legend = observable(None)
    entity_type = observable(None)
    entity_type_plural = observable(None)
    hide_timeline = observable(None)
    min_population_filter = observable(None)

    has_chart_tab = observable(True)
    has_map_tab = observable(False)
    tab = observable("chart")
    overlay = observable(None)

    internal_notes = observable(None)
    variant_name = observable(None)
    origin_url = observable(None)
    is_published = observable(None)

    # Field name to coercion applied when a value arrives from JSON.
    _COERCE = {
        "selected_data": _selection,
        "dimensions": _dimensions,
        "owid_dataset": _dataset,
    }

    @classmethod
    def field_names(cls) -> list[str]:
        return [name for name, value in vars(cls).items() if isinstance(value, observable)]

    @classmethod
    def json_keys(cls) -> dict[str, str]:
        """camelCase JSON key to attribute name."""
        return {to_camel(name): name for name in cls.field_names()}

    def assign(self, name: str, value: Any) -> None:
        coerce = self._COERCE.get(name)
        setattr(self, name, coerce(value) if coerce else value)

    def to_dict(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.field_names()}

    def to_json(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for key, name in self.json_keys().items():
            value = getattr(self, name)
            if name == "dimensions":
                value = [dimension.to_json() for dimension in value]
            elif name == "selected_data":
                value = [entry.model_dump(by_alias=True, exclude_none=True) for entry in value]
            elif name == "owid_dataset" and value is not None:
                value = value.model_dump(by_alias=True)
            elif name in ("x_axis", "y_axis"):
                value = dict(value)
            out[key] = value
        return out
