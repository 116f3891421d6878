"""Top-level chart state: persisted props plus everything derived from them."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from typing import Any, Mapping

from grapher_engine.chart.data import ChartData
from grapher_engine.chart.dimension import ChartDimension, DimensionWithColumn
from grapher_engine.chart.loader import DataLoader, Fetcher, fetch_json
from grapher_engine.chart.props import ChartConfigProps, ChartType
from grapher_engine.config import EngineConfig
from grapher_engine.population import load_population_map
from grapher_engine.reactive import action, computed, observable, reaction, structural_equals
from grapher_engine.table.table import OwidTable
from grapher_engine.table.variables import OwidVariablesAndEntityKey
from grapher_engine.time_bounds import (
    TimeBound,
    max_time_from_json,
    max_time_to_json,
    min_time_from_json,
    min_time_to_json,
)
from grapher_engine.util import format_day, format_year, slugify, uniq

LOGGER = logging.getLogger(__name__)

POPULATION_FILTER_SLUG = "pop_filter"

MAJOR_SOURCES = ("World Bank – WDI", "World Bank", "ILOSTAT")

DIMENSION_SLOT_NAMES = {
    "x": "X axis",
    "size": "Size",
    "color": "Color",
    "filter": "Filter",
}


@dataclass(frozen=True)
class ChartOptions:
    """How the chart is being run.

    ``is_editor``: inside the authoring tool, where the current props always
    count as the stored ones and data URLs skip the cache tag.
    ``is_exporting``: rendering offline; nothing is fetched.
    """

    is_editor: bool = False
    is_exporting: bool = False
    is_embed: bool = False


class DimensionSlot:
    def __init__(self, chart: ChartConfig, dimension_property: str) -> None:
        self.chart = chart
        self.property = dimension_property

    def __repr__(self) -> str:
        return f"DimensionSlot({self.property!r})"

    @property
    def name(self) -> str:
        if self.property == "y":
            return "X axis" if self.chart.is_discrete_bar else "Y axis"
        return DIMENSION_SLOT_NAMES.get(self.property, "")

    @property
    def allow_multiple(self) -> bool:
        chart = self.chart
        return self.property == "y" and not (
            chart.is_scatter or chart.is_time_scatter or chart.is_slope_chart
        )

    @property
    def is_optional(self) -> bool:
        return self.allow_multiple

    @property
    def dimensions(self) -> list[ChartDimension]:
        return [dimension for dimension in self.chart.dimensions if dimension.property == self.property]

    @property
    def dimensions_with_data(self) -> list[DimensionWithColumn]:
        return [
            dimension
            for dimension in self.chart.data.filled_dimensions
            if dimension.property == self.property
        ]

    def create_dimension(self, variable_id: int) -> ChartDimension:
        return ChartDimension(property=self.property, variable_id=variable_id)


class ChartConfig:
    """Chart session: owns the props, the table and the reactions between them.

    Two reactions are started on construction. One fetches data whenever the set
    of referenced variables changes (and once right away); the other keeps the
    population filter column in line with ``min_population_filter``.
    """

    table = observable(default_factory=lambda: OwidTable([]))

    def __init__(
        self,
        props: Mapping[str, Any] | None = None,
        options: ChartOptions | None = None,
        *,
        settings: EngineConfig | None = None,
        fetcher: Fetcher | None = None,
        population_map: Mapping[str, float] | None = None,
    ) -> None:
        self.options = options or ChartOptions()
        self.settings = settings or EngineConfig()
        self.props = ChartConfigProps()
        self.population_map = (
            dict(population_map)
            if population_map is not None
            else load_population_map(self.settings.population)
        )
        self.loader = DataLoader(
            fetcher or partial(fetch_json, timeout=self.settings.data.fetch_timeout_seconds)
        )

        self.update(props if props is not None else {"yAxis": {"min": 0}})
        self._orig_props = self.props.to_dict()

        self._disposers = [
            reaction(
                lambda: self.variable_ids,
                lambda ids, _previous: self.download_data(),
                fire_immediately=True,
                name="ChartConfig.variable_ids",
            ),
            reaction(
                lambda: self.props.min_population_filter,
                lambda _value, _previous: self.update_population_filter(),
                name="ChartConfig.min_population_filter",
            ),
        ]

        self.data = ChartData(self)
        self._initial_props = self.props.to_dict()

        if not self.options.is_exporting:
            self.ensure_valid_config()

    def dispose(self) -> None:
        for dispose in self._disposers:
            dispose()
        self._disposers = []
        self.loader.cancel()

    @action
    def update(self, json: Mapping[str, Any]) -> None:
        """Apply a persisted chart JSON object (camelCase keys) to the props."""
        props = self.props
        for key, name in ChartConfigProps.json_keys().items():
            if key in json and key not in ("xAxis", "yAxis", "dimensions"):
                props.assign(name, json[key])

        if json.get("isAutoTitle"):
            props.title = None

        # Published slugs stick around; only editor drafts get an automatic one.
        if json.get("isAutoSlug") and self.options.is_editor and not json.get("isPublished"):
            props.slug = None

        props.min_time = min_time_from_json(json.get("minTime"))
        props.max_time = max_time_from_json(json.get("maxTime"))

        props.x_axis = {**props.x_axis, **(json.get("xAxis") or {})}
        props.y_axis = {**props.y_axis, **(json.get("yAxis") or {})}

        props.assign("dimensions", json.get("dimensions") or [])

    def ensure_valid_config(self) -> None:
        def fix_dimensions(valid: list[ChartDimension], _previous: Any) -> None:
            if self.props.dimensions != valid:
                LOGGER.info("Dropping dimensions without a slot for %s charts", self.props.type)
                self.props.dimensions = valid

        self._disposers.append(
            reaction(
                lambda: self.valid_dimensions,
                fix_dimensions,
                fire_immediately=True,
                equals=structural_equals,
                name="ChartConfig.valid_dimensions",
            )
        )

    def download_data(self) -> None:
        props = self.props
        if props.external_data_url:
            self.loader.request(props.external_data_url, self.receive_data)
            return
        if props.owid_dataset is not None:
            self.loader.cancel()
            self.receive_data(props.owid_dataset)
            return
        if not self.variable_ids or self.options.is_exporting:
            self.loader.cancel()
            return
        self.loader.request(self.data_url, self.receive_data)

    @action
    def receive_data(self, json: OwidVariablesAndEntityKey | Mapping[str, Any]) -> None:
        self.table = OwidTable.from_legacy(json, epoch_date=self.settings.data.epoch_date)
        LOGGER.info(
            "Received data: %d rows, %d columns",
            len(self.table.rows),
            len(self.table.columns_as_list),
        )
        self.update_population_filter()

    def update_population_filter(self) -> None:
        min_pop = self.props.min_population_filter
        if not min_pop:
            self.table.delete_column_by_slug(POPULATION_FILTER_SLUG)
            return
        populations = self.population_map

        def has_min_population(row: Mapping[str, Any]) -> bool:
            pop = populations.get(row.get("entityName"))
            return not pop or pop >= min_pop

        self.table.add_filter_column(POPULATION_FILTER_SLUG, has_min_population)

    @computed
    def dimensions(self) -> list[ChartDimension]:
        return self.props.dimensions

    @computed(struct=True)
    def variable_ids(self) -> list[int]:
        return uniq(dimension.variable_id for dimension in self.dimensions)

    @computed
    def cache_tag(self) -> str:
        return str(self.props.version)

    @computed
    def data_file_name(self) -> str:
        name = "+".join(str(variable_id) for variable_id in self.variable_ids) + ".json"
        if self.options.is_editor:
            return name
        return f"{name}?v={self.cache_tag}"

    @computed
    def data_url(self) -> str:
        return f"{self.settings.data.base_url.rstrip('/')}/data/variables/{self.data_file_name}"

    @computed
    def is_line_chart(self) -> bool:
        return self.props.type == ChartType.LINE_CHART

    @computed
    def is_scatter(self) -> bool:
        return self.props.type == ChartType.SCATTER_PLOT

    @computed
    def is_time_scatter(self) -> bool:
        return self.props.type == ChartType.TIME_SCATTER

    @computed
    def is_stacked_area(self) -> bool:
        return self.props.type == ChartType.STACKED_AREA

    @computed
    def is_slope_chart(self) -> bool:
        return self.props.type == ChartType.SLOPE_CHART

    @computed
    def is_discrete_bar(self) -> bool:
        return self.props.type == ChartType.DISCRETE_BAR

    @computed
    def is_stacked_bar(self) -> bool:
        return self.props.type == ChartType.STACKED_BAR

    @computed
    def dimension_slots(self) -> list[DimensionSlot]:
        y_axis = DimensionSlot(self, "y")
        x_axis = DimensionSlot(self, "x")
        size = DimensionSlot(self, "size")
        color = DimensionSlot(self, "color")
        if self.is_scatter:
            return [y_axis, x_axis, size, color]
        if self.is_time_scatter:
            return [y_axis, x_axis]
        if self.is_slope_chart:
            return [y_axis, size, color]
        return [y_axis]

    @computed(struct=True)
    def valid_dimensions(self) -> list[ChartDimension]:
        slots = self.dimension_slots
        properties = {slot.property for slot in slots}
        single = {slot.property for slot in slots if not slot.allow_multiple}
        seen: set[str] = set()
        valid: list[ChartDimension] = []
        for dimension in self.props.dimensions:
            if dimension.property not in properties:
                continue
            if dimension.property in single:
                if dimension.property in seen:
                    continue
                seen.add(dimension.property)
            valid.append(dimension)
        return valid

    @computed
    def time_domain(self) -> tuple[TimeBound, TimeBound]:
        return min_time_from_json(self.props.min_time), max_time_from_json(self.props.max_time)

    @time_domain.setter
    @action
    def time_domain(self, value: tuple[TimeBound, TimeBound]) -> None:
        self.props.min_time, self.props.max_time = value

    @computed
    def add_country_mode(self) -> str:
        return self.props.add_country_mode or "add-country"

    @computed
    def entity_type(self) -> str:
        return self.props.entity_type if self.props.entity_type is not None else "country"

    @computed
    def entity_type_plural(self) -> str:
        plural = self.props.entity_type_plural
        return plural if plural is not None else "countries"

    @computed
    def subtitle(self) -> str:
        return self.props.subtitle or ""

    @computed
    def note(self) -> str:
        return self.props.note or ""

    @computed
    def is_published(self) -> bool:
        return bool(self.props.is_published)

    @computed
    def is_single_entity(self) -> bool:
        return (
            len(self.table.available_entities) == 1
            or self.add_country_mode == "change-country"
        )

    @computed
    def is_single_variable(self) -> bool:
        return len(self.data.primary_dimensions) == 1

    @computed
    def default_title(self) -> str:
        primary = self.data.primary_dimensions
        if self.is_scatter:
            return " vs. ".join(dimension.display_name for dimension in self.data.axis_dimensions)
        if len(primary) > 1 and len({dimension.column.dataset_name for dimension in primary}) == 1:
            return primary[0].column.dataset_name or ""
        if len(primary) == 2:
            return " and ".join(dimension.display_name for dimension in primary)
        return ", ".join(dimension.display_name for dimension in primary)

    @computed
    def title(self) -> str:
        return self.props.title if self.props.title is not None else self.default_title

    @computed
    def slug(self) -> str:
        return self.props.slug if self.props.slug is not None else slugify(self.title)

    @computed
    def default_sources_line(self) -> str:
        names = []
        for item in self.data.sources_with_dimension:
            name = item.source.name if item.source is not None else ""
            names.append(next((major for major in MAJOR_SOURCES if name.startswith(major)), name))
        return ", ".join(uniq(names))

    @computed
    def sources_line(self) -> str:
        source_desc = self.props.source_desc
        return source_desc if source_desc is not None else self.default_sources_line

    @computed
    def can_add_data(self) -> bool:
        return self.add_country_mode == "add-country" and len(self.data.available_keys) > 1

    @computed
    def can_change_entity(self) -> bool:
        return (
            not self.is_scatter
            and self.add_country_mode == "change-country"
            and len(self.data.available_entities) > 1
        )

    def format_time(self, time: int) -> str:
        if self.table.has_day_column:
            return format_day(time, self.settings.data.epoch_date)
        return format_year(time)

    @computed
    def time_span(self) -> tuple[int, int] | None:
        """First and last time in the table that fall inside ``time_domain``."""
        low, high = self.time_domain
        times = [time for time in self.table.all_times if low <= time <= high]
        if not times:
            return None
        return min(times), max(times)

    @computed
    def current_title(self) -> str:
        text = self.title
        selected_entities = self.data.selected_entities
        if (
            self.props.tab == "chart"
            and self.add_country_mode != "add-country"
            and len(selected_entities) == 1
            and (not self.props.hide_title_annotation or self.can_change_entity)
        ):
            text = f"{text}, {selected_entities[0]}"

        span = self.time_span
        if not self.props.hide_title_annotation and span is not None:
            time_from, time_to = (self.format_time(time) for time in span)
            text = f"{text}, {time_from if time_from == time_to else f'{time_from} to {time_to}'}"
        return text.strip()

    @computed
    def sorted_unique_entities_across_dimensions(self) -> list[str]:
        return sorted(
            {
                entity
                for dimension in self.data.filled_dimensions
                for entity in dimension.entity_names_uniq
            }
        )

    @computed
    def orig_props(self) -> dict[str, Any]:
        """Props as stored; in the editor the current props are the stored ones."""
        if self.options.is_editor:
            return self.props.to_dict()
        return self._orig_props

    @computed
    def initial_props(self) -> dict[str, Any]:
        if self.options.is_editor:
            return self.props.to_dict()
        return self._initial_props

    @computed(struct=True)
    def json(self) -> dict[str, Any]:
        """Persisted form of the chart, including values derived from the data."""
        out = self.props.to_json()
        if not self.props.title:
            out["title"] = self.title
            out["isAutoTitle"] = True
        if not self.props.slug:
            out["slug"] = self.slug
            out["isAutoSlug"] = True
        out["overlay"] = None
        out["data"] = {"availableEntities": self.data.available_entities}
        out["minTime"] = min_time_to_json(self.props.min_time)
        out["maxTime"] = max_time_to_json(self.props.max_time)
        return out
