from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from grapher_engine.util import parse_iso_date

DEFAULT_EPOCH_DATE = "2020-01-21"


class DataConfig(BaseModel):
    epoch_date: str = DEFAULT_EPOCH_DATE
    base_url: str = "http://localhost:3030/grapher"
    fetch_timeout_seconds: float = Field(default=30.0, gt=0.0)

    @field_validator("epoch_date")
    @classmethod
    def _validate_epoch_date(cls, value: str) -> str:
        parse_iso_date(value)
        return value


class SmoothingConfig(BaseModel):
    default_window: int = Field(default=7, ge=1)
    align: Literal["right", "center"] = "right"


class PopulationConfig(BaseModel):
    path: str | None = None
    entity_column: str = "entity"
    population_column: str = "population"


class ExportConfig(BaseModel):
    delimiter: str = Field(default=",", min_length=1)
    tables_format: Literal["csv", "parquet"] = "csv"


class EngineConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    data: DataConfig = Field(default_factory=DataConfig)
    smoothing: SmoothingConfig = Field(default_factory=SmoothingConfig)
    population: PopulationConfig = Field(default_factory=PopulationConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)


DEFAULT_CONFIG_PATH = Path("configs/default.yaml")


def _resolve_optional_path(path_value: str | None, base_dir: Path) -> str | None:
    if not path_value:
        return None
    candidate = Path(path_value)
    if candidate.is_absolute():
        return str(candidate)
    return str((base_dir / candidate).resolve())


def load_config(path: Path | None = None) -> EngineConfig:
    """Load engine settings from YAML; a missing path yields the defaults."""
    if path is None:
        config = EngineConfig()
        base_dir = Path.cwd()
    else:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        config = EngineConfig.model_validate(data)
        base_dir = path.resolve().parent

    config.population.path = _resolve_optional_path(config.population.path, base_dir)
    config.data.base_url = os.getenv("GRAPHER_ENGINE_BASE_URL") or config.data.base_url
    return config
