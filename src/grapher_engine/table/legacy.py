"""Join the legacy per-variable payload into one row per entity and time."""

from __future__ import annotations

import logging
from typing import Any

from grapher_engine.config import DEFAULT_EPOCH_DATE
from grapher_engine.table.columns import ColumnKind, ColumnSpec, Row
from grapher_engine.table.variables import OwidVariable, OwidVariablesAndEntityKey
from grapher_engine.util import days_between, group_by, is_number, slugify

LOGGER = logging.getLogger(__name__)

IDENTITY_COLUMN_SPECS: dict[str, ColumnSpec] = {
    "entityName": ColumnSpec(slug="entityName", name="Entity", kind=ColumnKind.ENTITY),
    "entityId": ColumnSpec(slug="entityId", name="EntityId", kind=ColumnKind.NUMERIC),
    "entityCode": ColumnSpec(slug="entityCode", name="Code", kind=ColumnKind.STRING),
}

TIME_COLUMN_SPECS: dict[str, ColumnSpec] = {
    "day": ColumnSpec(slug="day", name="Date", kind=ColumnKind.DAY),
    "year": ColumnSpec(slug="year", name="Year", kind=ColumnKind.YEAR),
}


def annotations_to_map(annotations: str) -> dict[str, str]:
    """Parse ``entity: note`` lines into ``{entity: note}``.

    Every colon-separated piece is trimmed and the pieces after the first are
    joined back with ``:``. A line with no colon maps its text to ``""``.
    """
    out: dict[str, str] = {}
    for line in annotations.split("\n"):
        key, *rest = (piece.strip() for piece in line.split(":"))
        out[key] = ":".join(rest)
    return out


def make_annotation_column_slug(column_slug: str) -> str:
    return f"{column_slug}-annotations"


def _value_kind(values: list[Any]) -> ColumnKind:
    present = [value for value in values if value is not None]
    if present and all(is_number(value) for value in present):
        return ColumnKind.NUMERIC
    if present and all(isinstance(value, str) for value in present):
        return ColumnKind.STRING
    return ColumnKind.ANY


def column_spec_from_legacy_variable(variable: OwidVariable) -> ColumnSpec:
    slug = f"{variable.id}-{slugify(variable.name)}"
    return ColumnSpec(
        slug=slug,
        name=variable.name,
        owid_variable_id=variable.id,
        unit=variable.unit,
        short_unit=variable.short_unit,
        is_daily_measurement=variable.display.year_is_day,
        description=variable.description,
        coverage=variable.coverage,
        dataset_id=variable.dataset_id,
        dataset_name=variable.dataset_name,
        source=variable.source,
        display=variable.display,
        annotations_column_slug=(
            make_annotation_column_slug(slug) if variable.display.entity_annotations_map else None
        ),
        kind=_value_kind(variable.values),
    )


def convert_legacy_days(days: list[int], zero_day: str | None, epoch_date: str) -> list[int]:
    """Re-express day offsets counted from ``zero_day`` as offsets from ``epoch_date``."""
    if not zero_day or zero_day == epoch_date:
        return list(days)
    shift = days_between(zero_day, epoch_date)
    return [day + shift for day in days]


def join_legacy_variables(
    payload: OwidVariablesAndEntityKey | dict[str, Any],
    epoch_date: str | None = None,
) -> tuple[list[Row], dict[str, ColumnSpec]]:
    """Merge every variable's (entity, time, value) triples into shared rows.

    Returns the merged rows plus the column specs in registration order. Rows
    sharing a time and an entity are merged, later variables winning on
    colliding fields.
    """
    data = (
        payload
        if isinstance(payload, OwidVariablesAndEntityKey)
        else OwidVariablesAndEntityKey.model_validate(payload)
    )
    epoch = epoch_date or DEFAULT_EPOCH_DATE
    specs: dict[str, ColumnSpec] = dict(IDENTITY_COLUMN_SPECS)
    rows: list[Row] = []

    for variable in data.variables.values():
        spec = column_spec_from_legacy_variable(variable)
        display = variable.display
        time_slug = "day" if display.year_is_day else "year"
        times = (
            convert_legacy_days(variable.years, display.zero_day, epoch)
            if display.year_is_day
            else list(variable.years)
        )
        annotations = (
            annotations_to_map(display.entity_annotations_map)
            if display.entity_annotations_map
            else None
        )

        specs.setdefault(time_slug, TIME_COLUMN_SPECS[time_slug])
        specs[spec.slug] = spec
        if spec.annotations_column_slug:
            specs[spec.annotations_column_slug] = ColumnSpec(
                slug=spec.annotations_column_slug,
                name=f"{spec.name} annotations",
                kind=ColumnKind.STRING,
            )

        for value, entity_id, time in zip(variable.values, variable.entities, times):
            entity = data.entity_key.get(str(entity_id))
            if entity is None:
                raise ValueError(f"Variable {variable.id} references unknown entity id {entity_id}")
            row: Row = {
                time_slug: time,
                spec.slug: value,
                "entityName": entity.name,
                "entityId": entity_id,
                "entityCode": entity.code,
            }
            if annotations is not None and entity.name in annotations:
                row[spec.annotations_column_slug] = annotations[entity.name]
            rows.append(row)

    grouped = group_by(
        rows,
        lambda row: (f"day:{row['day']}" if "day" in row else f"year:{row['year']}")
        + f" {row['entityName']}",
    )
    merged: list[Row] = []
    for group in grouped.values():
        joined: Row = {}
        for row in group:
            joined.update(row)
        merged.append(joined)

    LOGGER.debug(
        "Joined %d variables into %d rows (%d columns)",
        len(data.variables),
        len(merged),
        len(specs),
    )
    return merged, specs
