from __future__ import annotations

import json
from pathlib import Path

import pandas as pd
import pytest

from grapher_engine.chart.props import EntitySelection
from grapher_engine.io.read import load_chart_config, load_variables_json
from grapher_engine.io.write import write_delimited, write_summary, write_table
from grapher_engine.table.columns import ColumnKind, ColumnSpec
from grapher_engine.table.table import Table


def test_load_variables_json_parses_camel_case_payload(tmp_path: Path) -> None:
    path = tmp_path / "variables.json"
    path.write_text(
        json.dumps(
            {
                "variables": {
                    "7": {
                        "id": 7,
                        "name": "Cases",
                        "shortUnit": "cases",
                        "display": {"yearIsDay": True, "zeroDay": "2020-01-21"},
                        "entities": [1],
                        "years": [0],
                        "values": [3],
                    }
                },
                "entityKey": {"1": {"name": "France", "code": "FRA"}},
            }
        ),
        encoding="utf-8",
    )

    payload = load_variables_json(path)

    variable = payload.variables["7"]
    assert variable.short_unit == "cases"
    assert variable.display.year_is_day
    assert payload.entity_key["1"].code == "FRA"


def test_load_chart_config_accepts_json_and_yaml(tmp_path: Path) -> None:
    json_path = tmp_path / "chart.json"
    json_path.write_text('{"title": "Cases", "dimensions": []}', encoding="utf-8")
    yaml_path = tmp_path / "chart.yaml"
    yaml_path.write_text("title: Cases\ndimensions: []\n", encoding="utf-8")

    assert load_chart_config(json_path) == {"title": "Cases", "dimensions": []}
    assert load_chart_config(yaml_path) == {"title": "Cases", "dimensions": []}


def test_load_chart_config_rejects_non_objects(tmp_path: Path) -> None:
    path = tmp_path / "chart.json"
    path.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(ValueError, match="must be an object"):
        load_chart_config(path)


def test_write_table_supports_csv_and_rejects_unknown_formats(tmp_path: Path) -> None:
    df = pd.DataFrame({"entityName": ["France"], "value": [1.5]})

    path = write_table(df, tmp_path / "nested" / "table.csv")
    assert path.read_text(encoding="utf-8") == "entityName,value\nFrance,1.5\n"

    with pytest.raises(ValueError, match="Unsupported table format"):
        write_table(df, tmp_path / "table.xlsx", fmt="xlsx")


def test_write_delimited_uses_column_names(tmp_path: Path) -> None:
    table = Table(
        [{"entityName": "France", "value": 2.0}],
        {
            "entityName": ColumnSpec(slug="entityName", name="Entity", kind=ColumnKind.ENTITY),
            "value": ColumnSpec(slug="value", name="Value", kind=ColumnKind.NUMERIC),
        },
    )

    path = write_delimited(table, tmp_path / "out" / "table.tsv", delimiter="\t")

    assert path.read_text(encoding="utf-8") == "Entity\tValue\nFrance\t2\n"


def test_write_summary_serializes_models(tmp_path: Path) -> None:
    path = write_summary(
        {"selection": [EntitySelection(entity_id=1, index=0)], "title": "Cases"},
        tmp_path / "summary.json",
    )

    assert json.loads(path.read_text(encoding="utf-8")) == {
        "selection": [{"entityId": 1, "index": 0}],
        "title": "Cases",
    }
