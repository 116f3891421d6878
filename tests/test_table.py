from __future__ import annotations

import logging

import pytest

from grapher_engine.table.columns import ColumnKind, ColumnSpec, ComputedColumnSpec
from grapher_engine.table.table import BasicTable, Table


def _rows() -> list[dict[str, object]]:
    return [
        {"entityName": "France", "year": 2000, "value": 1},
        {"entityName": "Peru", "year": 2000, "value": 3},
        {"entityName": "Chad", "year": 2000, "value": 5},
        {"entityName": "France", "year": 2001, "value": 7},
    ]


def test_filter_columns_compose_as_intersection() -> None:
    table = Table(_rows())

    def is_big(row: dict[str, object]) -> bool:
        return row["value"] > 2

    def not_peru(row: dict[str, object]) -> bool:
        return row["entityName"] != "Peru"

    big = {id(row) for row in table.rows if is_big(row)}
    no_peru = {id(row) for row in table.rows if not_peru(row)}

    table.add_filter_column("is_big", is_big)
    table.add_filter_column("not_peru", not_peru)

    visible = table.unfiltered_rows
    assert {id(row) for row in visible} == big & no_peru
    assert [row["value"] for row in visible] == [5, 7]
    assert table.filter_column_slugs == ["is_big", "not_peru"]


def test_filter_results_are_cached_on_rows() -> None:
    table = Table(_rows())
    calls: list[object] = []

    def predicate(row: dict[str, object]) -> bool:
        calls.append(row["entityName"])
        return row["entityName"] != "Chad"

    table.add_filter_column("no_chad", predicate)
    assert calls == []

    assert len(table.unfiltered_rows) == 3
    assert len(calls) == 4
    assert all("no_chad" in row for row in table.rows)

    assert len(table.unfiltered_rows) == 3
    assert len(calls) == 4

    table.add_rows_and_detect_columns([{"entityName": "Chad", "year": 2001, "value": 9}])
    assert len(table.unfiltered_rows) == 3
    assert len(calls) == 5


def test_re_adding_a_filter_applies_the_new_predicate() -> None:
    table = Table(_rows())
    table.add_filter_column("keep", lambda row: row["value"] > 4)
    assert len(table.unfiltered_rows) == 2

    table.add_filter_column("keep", lambda row: row["value"] < 4)
    assert [row["value"] for row in table.unfiltered_rows] == [1, 3]


def test_delete_column_strips_field_and_restores_rows() -> None:
    table = Table(_rows())
    table.add_filter_column("only_france", lambda row: row["entityName"] == "France")
    assert len(table.unfiltered_rows) == 2

    table.delete_column_by_slug("only_france")

    assert len(table.unfiltered_rows) == 4
    assert "only_france" not in table.columns_by_slug
    assert all("only_france" not in row for row in table.rows)

    table.delete_column_by_slug("missing")
    assert len(table.columns_as_list) == 3


def test_column_views_follow_filters_and_new_rows() -> None:
    table = Table(_rows())
    column = table.columns_by_slug["value"]
    assert column.values == [1, 3, 5, 7]
    assert column.entity_names_uniq == ["France", "Peru", "Chad"]

    table.add_filter_column("small", lambda row: row["value"] < 6)
    assert column.values == [1, 3, 5]
    assert column.entity_map == {"France": 1, "Peru": 3, "Chad": 5}

    table.add_rows_and_detect_columns([{"entityName": "Mali", "year": 2001, "value": 2}])
    assert column.values == [1, 3, 5, 2]
    assert column.years == [2000, 2000, 2000, 2001]


def test_computed_column_is_a_snapshot() -> None:
    table = Table(_rows())
    table.add_computed_column(
        ComputedColumnSpec(slug="double", kind=ColumnKind.NUMERIC, fn=lambda row, index: row["value"] * 2)
    )
    assert table.columns_by_slug["double"].values == [2, 6, 10, 14]

    table.add_rows_and_detect_columns([{"entityName": "Mali", "year": 2001, "value": 2}])
    assert table.columns_by_slug["double"].values == [2, 6, 10, 14]
    assert "double" not in table.rows[-1]


def test_computed_column_requires_a_function() -> None:
    with pytest.raises(ValueError):
        Table(_rows()).add_computed_column(ComputedColumnSpec(slug="broken"))


def test_detected_columns_never_overwrite_registered_specs(caplog: pytest.LogCaptureFixture) -> None:
    table = Table(_rows())
    assert table.columns_by_slug["value"].kind is ColumnKind.ANY

    table.add_column_spec(ColumnSpec(slug="value", name="Value", kind=ColumnKind.NUMERIC))
    assert table.columns_by_slug["value"].kind is ColumnKind.NUMERIC
    assert table.column_slugs == ["entityName", "year", "value"]

    with caplog.at_level(logging.WARNING, logger="grapher_engine.table.table"):
        table.add_column_spec(ColumnSpec(slug="value", kind=ColumnKind.STRING))
    assert table.columns_by_slug["value"].kind is ColumnKind.NUMERIC
    assert "already registered" in caplog.text

    table.add_rows_and_detect_columns([{"entityName": "Mali", "value": 1, "note": "x"}])
    assert table.columns_by_slug["value"].name == "Value"
    assert table.column_slugs == ["entityName", "year", "value", "note"]


def test_to_delimited_renders_missing_values_as_empty() -> None:
    table = Table(
        [
            {"entityName": "France", "year": 2000, "value": 1.5},
            {"entityName": "Peru", "year": 2001},
        ],
        {
            "entityName": ColumnSpec(slug="entityName", name="Entity", kind=ColumnKind.ENTITY),
            "year": ColumnSpec(slug="year", name="Year", kind=ColumnKind.YEAR),
            "value": ColumnSpec(slug="value", name="Value", kind=ColumnKind.NUMERIC),
        },
    )

    assert table.to_delimited() == "Entity,Year,Value\nFrance,2000,1.5\nPeru,2001,"
    assert table.to_delimited("\t", row_limit=1) == "Entity\tYear\tValue\nFrance\t2000\t1.5"
    assert table.column_names == ["Entity", "Year", "Value"]


def test_to_frame_keeps_registration_order() -> None:
    frame = Table(_rows()).to_frame()

    assert list(frame.columns) == ["entityName", "year", "value"]
    assert frame["value"].tolist() == [1, 3, 5, 7]


def test_rows_with_matches_rendered_cells() -> None:
    table = Table(_rows())

    assert table.rows_with("value 3") == [_rows()[1]]
    assert table.rows_with("nothing") == []


def test_basic_table_from_csv_parses_with_specs() -> None:
    csv = "entityName,value\nFrance,1\nPeru,\n"

    detected = BasicTable.from_csv(csv)
    assert detected.rows == [{"entityName": "France", "value": "1"}, {"entityName": "Peru"}]
    assert detected.column_slugs == ["entityName", "value"]

    typed = BasicTable.from_csv(
        csv,
        {
            "entityName": ColumnSpec(slug="entityName", kind=ColumnKind.ENTITY),
            "value": ColumnSpec(slug="value", kind=ColumnKind.NUMERIC),
        },
    )
    assert typed.rows == [{"entityName": "France", "value": 1}, {"entityName": "Peru"}]


def test_rolling_average_column_is_grouped_by_entity() -> None:
    table = Table(
        [
            {"entityName": "France", "day": 0, "cases": 1},
            {"entityName": "France", "day": 1, "cases": 3},
            {"entityName": "Peru", "day": 0, "cases": 10},
            {"entityName": "Peru", "day": 2, "cases": 20},
        ]
    )

    table.add_rolling_average_column(
        ColumnSpec(slug="cases-avg", name="Cases (2-day average)"),
        window=2,
        value_accessor=lambda row: row["cases"],
        time_slug="day",
        group_slug="entityName",
    )

    column = table.columns_by_slug["cases-avg"]
    assert column.values == [1, 2, 10, 20]
    assert column.kind is ColumnKind.NUMERIC
