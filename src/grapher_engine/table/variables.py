"""Pydantic models for the legacy per-variable JSON payload."""

from __future__ import annotations

from typing import Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Value = Union[int, float, str, None]


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class OwidSource(_WireModel):
    id: int | None = None
    name: str = ""
    data_published_by: str = ""
    data_publisher_source: str = ""
    link: str = ""
    retrieved_date: str = ""
    additional_info: str = ""


class OwidVariableDisplaySettings(_WireModel):
    name: str | None = None
    unit: str | None = None
    short_unit: str | None = None
    is_projection: bool | None = None
    conversion_factor: float | None = None
    num_decimal_places: int | None = None
    tolerance: float | None = None
    year_is_day: bool = False
    zero_day: str | None = None
    entity_annotations_map: str | None = None
    include_in_table: bool | None = None


class OwidVariable(_WireModel):
    id: int
    name: str = ""
    unit: str = ""
    short_unit: str | None = None
    description: str = ""
    coverage: str = ""
    dataset_id: int | str | None = None
    dataset_name: str = ""
    source: OwidSource | None = None
    display: OwidVariableDisplaySettings = Field(default_factory=OwidVariableDisplaySettings)
    entities: list[int] = Field(default_factory=list)
    years: list[int] = Field(default_factory=list)
    values: list[Value] = Field(default_factory=list)


class EntityMeta(_WireModel):
    id: int | None = None
    name: str
    code: str | None = None


class OwidVariablesAndEntityKey(_WireModel):
    variables: dict[str, OwidVariable] = Field(default_factory=dict)
    entity_key: dict[str, EntityMeta] = Field(default_factory=dict)
