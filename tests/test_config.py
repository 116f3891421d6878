from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from grapher_engine.config import DEFAULT_EPOCH_DATE, EngineConfig, load_config


def test_load_config_defaults_without_path(monkeypatch) -> None:
    monkeypatch.delenv("GRAPHER_ENGINE_BASE_URL", raising=False)

    cfg = load_config()

    assert cfg.data.epoch_date == DEFAULT_EPOCH_DATE
    assert cfg.data.base_url == "http://localhost:3030/grapher"
    assert cfg.smoothing.default_window == 7
    assert cfg.smoothing.align == "right"
    assert cfg.population.path is None
    assert cfg.export.tables_format == "csv"


def test_default_yaml_matches_model_defaults(monkeypatch) -> None:
    monkeypatch.delenv("GRAPHER_ENGINE_BASE_URL", raising=False)
    path = Path(__file__).resolve().parents[1] / "configs" / "default.yaml"

    assert load_config(path) == EngineConfig()


def test_load_config_resolves_relative_population_path(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        yaml.safe_dump({"population": {"path": "population.csv"}}),
        encoding="utf-8",
    )

    cfg = load_config(config_path)

    assert Path(cfg.population.path or "").is_absolute()
    assert cfg.population.path == str((tmp_path / "population.csv").resolve())


def test_load_config_uses_env_base_url(monkeypatch, tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        yaml.safe_dump({"data": {"base_url": "https://example.org/grapher"}}),
        encoding="utf-8",
    )

    monkeypatch.setenv("GRAPHER_ENGINE_BASE_URL", "https://env.example.org/grapher")
    cfg = load_config(config_path)
    assert cfg.data.base_url == "https://env.example.org/grapher"

    monkeypatch.delenv("GRAPHER_ENGINE_BASE_URL")
    assert load_config(config_path).data.base_url == "https://example.org/grapher"


def test_load_config_rejects_unknown_sections(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.safe_dump({"charts": {}}), encoding="utf-8")

    with pytest.raises(ValidationError):
        load_config(config_path)


@pytest.mark.parametrize(
    "data",
    [
        {"smoothing": {"default_window": 0}},
        {"smoothing": {"align": "left"}},
        {"data": {"epoch_date": "not-a-date"}},
        {"export": {"tables_format": "xlsx"}},
    ],
)
def test_load_config_rejects_invalid_values(tmp_path: Path, data: dict) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.safe_dump(data), encoding="utf-8")

    with pytest.raises(ValidationError):
        load_config(config_path)
