from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

from grapher_engine.config import PopulationConfig

LOGGER = logging.getLogger(__name__)


def load_population_map(config: PopulationConfig) -> dict[str, float]:
    """Entity name to population from the configured CSV; empty when unset."""
    if not config.path:
        return {}
    path = Path(config.path)
    df = pd.read_csv(path, encoding="utf-8-sig")
    for column in (config.entity_column, config.population_column):
        if column not in df.columns:
            raise ValueError(f"Population file {path} missing column: {column}")
    df = df.dropna(subset=[config.entity_column, config.population_column])
    populations = dict(
        zip(
            df[config.entity_column].astype(str),
            pd.to_numeric(df[config.population_column], errors="coerce"),
        )
    )
    LOGGER.info("Loaded population for %d entities from %s", len(populations), path)
    return {entity: float(value) for entity, value in populations.items() if pd.notna(value)}
