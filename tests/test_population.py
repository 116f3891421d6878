from __future__ import annotations

from pathlib import Path

import pytest

from grapher_engine.config import PopulationConfig
from grapher_engine.population import load_population_map


def test_load_population_map_without_path_is_empty() -> None:
    assert load_population_map(PopulationConfig()) == {}


def test_load_population_map_reads_configured_columns(tmp_path: Path) -> None:
    path = tmp_path / "population.csv"
    path.write_text(
        "country,pop\nFrance,67000000\nPeru,33000000\nAtlantis,\nChad,unknown\n",
        encoding="utf-8-sig",
    )

    populations = load_population_map(
        PopulationConfig(path=str(path), entity_column="country", population_column="pop")
    )

    assert populations == {"France": 67_000_000.0, "Peru": 33_000_000.0}


def test_load_population_map_requires_columns(tmp_path: Path) -> None:
    path = tmp_path / "population.csv"
    path.write_text("entity,count\nFrance,1\n", encoding="utf-8")

    with pytest.raises(ValueError, match="missing column: population"):
        load_population_map(PopulationConfig(path=str(path)))
