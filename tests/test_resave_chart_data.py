from __future__ import annotations

import importlib.util
import json
import sys
from pathlib import Path

from grapher_engine.config import EngineConfig

SCRIPT_PATH = Path(__file__).resolve().parents[1] / "scripts" / "resave_chart_data.py"


def _load_script_module():
    spec = importlib.util.spec_from_file_location("resave_chart_data", SCRIPT_PATH)
    assert spec is not None
    assert spec.loader is not None
    module = importlib.util.module_from_spec(spec)
    sys.modules[spec.name] = module
    spec.loader.exec_module(module)
    return module


def _write_json(path: Path, data: dict) -> Path:
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_parse_args_reads_directories() -> None:
    module = _load_script_module()
    args = module.parse_args(["charts", "variables", "--config", "engine.yaml"])

    assert args.charts_dir == Path("charts")
    assert args.variables_dir == Path("variables")
    assert args.config == Path("engine.yaml")


def test_resave_chart_writes_available_entities(tmp_path: Path) -> None:
    module = _load_script_module()
    variables_dir = tmp_path / "variables"
    variables_dir.mkdir()
    _write_json(
        variables_dir / "10+11.json",
        {
            "variables": {
                "10": {"id": 10, "name": "GDP", "entities": [2, 1], "years": [2000, 2000], "values": [1, 2]},
                "11": {"id": 11, "name": "Population", "entities": [1], "years": [2000], "values": [60]},
            },
            "entityKey": {
                "1": {"name": "France", "code": "FRA"},
                "2": {"name": "Peru", "code": "PER"},
            },
        },
    )
    chart_path = _write_json(
        tmp_path / "chart.json",
        {
            "title": "GDP",
            "dimensions": [
                {"property": "y", "variableId": 10},
                {"property": "y", "variableId": 11},
            ],
        },
    )

    entities = module.resave_chart(chart_path, variables_dir, EngineConfig())

    assert entities == ["France", "Peru"]
    saved = json.loads(chart_path.read_text(encoding="utf-8"))
    assert saved["title"] == "GDP"
    assert saved["data"] == {"availableEntities": ["France", "Peru"]}


def test_resave_chart_skips_charts_without_data(tmp_path: Path) -> None:
    module = _load_script_module()
    no_dimensions = _write_json(tmp_path / "empty.json", {"title": "Empty"})
    missing = _write_json(
        tmp_path / "missing.json",
        {"dimensions": [{"property": "y", "variableId": 42}]},
    )

    assert module.resave_chart(no_dimensions, tmp_path, EngineConfig()) is None
    assert module.resave_chart(missing, tmp_path, EngineConfig()) is None
    assert json.loads(no_dimensions.read_text(encoding="utf-8")) == {"title": "Empty"}
