"""Series key index and selection state derived from chart config plus table."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

from grapher_engine.chart.dimension import DimensionWithColumn
from grapher_engine.chart.props import EntitySelection
from grapher_engine.reactive import action, computed
from grapher_engine.table.variables import OwidSource
from grapher_engine.util import uniq

if TYPE_CHECKING:
    from grapher_engine.chart.config import ChartConfig

LOGGER = logging.getLogger(__name__)

EntityDimensionKey = str

# Colour sources attached to scatter plots by default; not cited as data sources.
IGNORED_SOURCE_COLUMNS = frozenset({"Countries Continents", "Total population (Gapminder)"})


@dataclass(frozen=True)
class EntityDimensionInfo:
    entity: str
    entity_id: int
    dimension: DimensionWithColumn
    index: int
    entity_dimension_key: EntityDimensionKey
    full_label: str
    label: str
    short_code: str


@dataclass(frozen=True)
class SourceWithDimension:
    source: OwidSource | None
    dimension: DimensionWithColumn


@dataclass(frozen=True)
class _SelectedKey:
    entity_dimension_key: EntityDimensionKey
    color: str | None


def make_entity_dimension_key(entity_name: str, dimension_index: int) -> EntityDimensionKey:
    return f"{entity_name}_{dimension_index}"


class ChartData:
    """Combines the chart configuration with loaded data.

    Every list here is empty until each configured variable has a column in the
    chart's table.
    """

    def __init__(self, chart: ChartConfig) -> None:
        self.chart = chart

    @computed
    def loading_var_ids(self) -> list[int]:
        columns = self.chart.table.columns_by_owid_var_id
        return [
            dimension.variable_id
            for dimension in self.chart.dimensions
            if dimension.variable_id not in columns
        ]

    @computed
    def is_ready(self) -> bool:
        return not self.loading_var_ids

    @computed(struct=True)
    def filled_dimensions(self) -> list[DimensionWithColumn]:
        if not self.is_ready:
            return []
        columns = self.chart.table.columns_by_owid_var_id
        epoch_date = self.chart.settings.data.epoch_date
        return [
            DimensionWithColumn(index, dimension, columns[dimension.variable_id], epoch_date)
            for index, dimension in enumerate(self.chart.dimensions)
        ]

    @computed
    def primary_dimensions(self) -> list[DimensionWithColumn]:
        return [dimension for dimension in self.filled_dimensions if dimension.property == "y"]

    @computed
    def axis_dimensions(self) -> list[DimensionWithColumn]:
        return [
            dimension for dimension in self.filled_dimensions if dimension.property in ("x", "y")
        ]

    @computed
    def dimensions_by_field(self) -> dict[str, DimensionWithColumn]:
        return {dimension.property: dimension for dimension in self.filled_dimensions}

    def axis_domain(self, dimension_property: str) -> tuple[float, float] | None:
        """Min and max converted numeric values of the dimension on ``dimension_property``."""
        dimension = self.dimensions_by_field.get(dimension_property)
        if dimension is None or not dimension.sorted_numeric_values:
            return None
        values = dimension.sorted_numeric_values
        return values[0], values[-1]

    @computed
    def has_selection(self) -> bool:
        return len(self.chart.props.selected_data) > 0

    @computed
    def _selection_data(self) -> list[_SelectedKey]:
        chart = self.chart
        primary_dimensions = self.primary_dimensions
        id_to_name = chart.table.entity_id_to_name_map
        selected_data: list[EntitySelection] = chart.props.selected_data
        change_country = chart.add_country_mode == "change-country"
        last_entity_id = selected_data[-1].entity_id if selected_data else None

        seen: set[tuple[int, int]] = set()
        out: list[_SelectedKey] = []
        for entry in selected_data:
            if not 0 <= entry.index < len(primary_dimensions):
                continue
            entity_name = id_to_name.get(entry.entity_id)
            dimension = primary_dimensions[entry.index]
            if not entity_name or entity_name not in dimension.column.entity_name_set:
                continue
            if change_country and entry.entity_id != last_entity_id:
                continue
            if (entry.entity_id, entry.index) in seen:
                continue
            seen.add((entry.entity_id, entry.index))
            out.append(
                _SelectedKey(make_entity_dimension_key(entity_name, entry.index), entry.color)
            )
        return out

    @computed
    def selected_keys(self) -> list[EntityDimensionKey]:
        return [selected.entity_dimension_key for selected in self._selection_data]

    @selected_keys.setter
    @action
    def selected_keys(self, keys: Iterable[EntityDimensionKey]) -> None:
        if not self.is_ready:
            LOGGER.debug("Ignoring selection change while data is loading")
            return
        name_to_id = self.chart.table.entity_name_to_id_map
        key_colors = self.key_colors
        selection = []
        for key in keys:
            info = self.lookup_key(key)
            selection.append(
                EntitySelection(
                    entity_id=name_to_id[info.entity],
                    index=info.index,
                    color=key_colors.get(key),
                )
            )
        self.chart.props.selected_data = selection

    @computed(struct=True)
    def key_colors(self) -> dict[EntityDimensionKey, str]:
        return {
            selected.entity_dimension_key: selected.color
            for selected in self._selection_data
            if selected.color
        }

    @computed
    def selected_keys_by_key(self) -> dict[EntityDimensionKey, EntityDimensionKey]:
        return {key: key for key in self.selected_keys}

    def select_entity_dimension_key(self, key: EntityDimensionKey) -> None:
        self.selected_keys = [*self.selected_keys, key]

    def toggle_key(self, key: EntityDimensionKey) -> None:
        if key in self.selected_keys:
            self.selected_keys = [selected for selected in self.selected_keys if selected != key]
        else:
            self.selected_keys = [*self.selected_keys, key]

    @action
    def set_key_color(self, key: EntityDimensionKey, color: str | None) -> None:
        info = self.lookup_key(key)
        self.chart.props.selected_data = [
            entry.model_copy(update={"color": color})
            if entry.entity_id == info.entity_id and entry.index == info.index
            else entry
            for entry in self.chart.props.selected_data
        ]

    @action
    def set_selected_entity(self, entity_id: int) -> None:
        self.chart.props.selected_data = [
            entry.model_copy(update={"entity_id": entity_id})
            for entry in self.chart.props.selected_data
        ]

    @action
    def set_selected_entities_by_code(self, entity_codes: list[str]) -> dict[str, bool]:
        """Select entities by code, name or short code; reports which codes matched."""
        matched = {code: False for code in entity_codes}
        table = self.chart.table
        if self.chart.can_change_entity:
            if not entity_codes:
                return matched
            wanted = entity_codes[0]
            for entity_name in self.available_entities:
                entity_code = table.entity_name_to_code_map.get(entity_name)
                if wanted in (entity_code, entity_name):
                    matched[wanted] = True
                    self.set_selected_entity(table.entity_name_to_id_map[entity_name])
            return matched

        keys = []
        for key in self.available_keys:
            info = self.lookup_key(key)
            candidates = (info.short_code, table.entity_name_to_code_map.get(info.entity), info.entity)
            hits = [candidate for candidate in candidates if candidate in matched]
            for hit in hits:
                matched[hit] = True
            if hits:
                keys.append(key)
        self.selected_keys = keys
        return matched

    @action
    def reset_selected_entities(self) -> None:
        self.chart.props.selected_data = list(self.chart.initial_props["selected_data"])

    @computed
    def selected_entities(self) -> list[str]:
        return uniq(self.lookup_key(key).entity for key in self.selected_keys)

    @computed
    def selected_entity_codes(self) -> list[str]:
        return uniq(self.lookup_key(key).short_code for key in self.selected_keys)

    @computed
    def entity_dimension_map(self) -> dict[EntityDimensionKey, EntityDimensionInfo]:
        if not self.is_ready:
            return {}
        chart = self.chart
        table = chart.table
        primary_dimensions = self.primary_dimensions
        is_single_entity = chart.is_single_entity
        is_single_variable = chart.is_single_variable
        disambiguate = len(primary_dimensions) > 1 and chart.add_country_mode != "change-country"

        key_data: dict[EntityDimensionKey, EntityDimensionInfo] = {}
        for dimension_index, dimension in enumerate(primary_dimensions):
            for entity_name in dimension.entity_names_uniq:
                entity_code = table.entity_name_to_code_map.get(entity_name)
                key = make_entity_dimension_key(entity_name, dimension_index)
                full_label = f"{entity_name} - {dimension.display_name}"
                if is_single_variable:
                    label = entity_name
                elif is_single_entity:
                    label = dimension.display_name
                else:
                    label = full_label
                short_code = entity_code or entity_name
                if disambiguate:
                    short_code = f"{short_code}-{dimension.index}"
                key_data[key] = EntityDimensionInfo(
                    entity=entity_name,
                    entity_id=table.entity_name_to_id_map.get(entity_name),
                    dimension=dimension,
                    index=dimension_index,
                    entity_dimension_key=key,
                    full_label=full_label,
                    label=label,
                    short_code=short_code,
                )
        return key_data

    @computed(struct=True)
    def available_keys(self) -> list[EntityDimensionKey]:
        return sorted(self.entity_dimension_map)

    @computed(struct=True)
    def remaining_keys(self) -> list[EntityDimensionKey]:
        selected = set(self.selected_keys)
        return [key for key in self.available_keys if key not in selected]

    @computed
    def available_keys_by_entity(self) -> dict[str, list[EntityDimensionKey]]:
        keys_by_entity: dict[str, list[EntityDimensionKey]] = {}
        for key, info in self.entity_dimension_map.items():
            keys_by_entity.setdefault(info.entity, []).append(key)
        return keys_by_entity

    def lookup_key(self, key: EntityDimensionKey) -> EntityDimensionInfo:
        info = self.entity_dimension_map.get(key)
        if info is None:
            raise KeyError(f"Unknown data key: {key}")
        return info

    def get_label_for_key(self, key: EntityDimensionKey) -> str:
        return self.lookup_key(key).label

    @computed
    def available_entities(self) -> list[str]:
        infos = [self.lookup_key(key) for key in self.available_keys]
        entities: list[str] = []
        for dimension in self.axis_dimensions:
            entities.extend(
                info.entity for info in infos if info.dimension.variable_id == dimension.variable_id
            )
        return uniq(entities)

    @computed
    def available_entities_to_reader(self) -> list[str]:
        if self.chart.props.add_country_mode == "disabled":
            return []
        return self.available_entities

    @computed
    def primary_variable_id(self) -> int | None:
        for dimension in self.chart.dimensions:
            if dimension.property == "y":
                return dimension.variable_id
        return None

    @computed
    def sources_with_dimension(self) -> list[SourceWithDimension]:
        return [
            SourceWithDimension(source=dimension.column.source, dimension=dimension)
            for dimension in self.filled_dimensions
            if dimension.column.name not in IGNORED_SOURCE_COLUMNS
        ]

