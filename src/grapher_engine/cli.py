from __future__ import annotations

from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError

from grapher_engine.chart.config import ChartConfig, ChartOptions
from grapher_engine.config import DEFAULT_CONFIG_PATH, EngineConfig, load_config
from grapher_engine.io.read import load_chart_config, load_variables_json
from grapher_engine.io.write import write_delimited, write_summary, write_table
from grapher_engine.logging import configure_logging
from grapher_engine.population import load_population_map
from grapher_engine.table.columns import ColumnKind, ColumnSpec
from grapher_engine.table.table import OwidTable
from grapher_engine.table.variables import OwidVariablesAndEntityKey
from grapher_engine.time_bounds import max_time_to_json, min_time_to_json

app = typer.Typer(no_args_is_help=True, add_completion=False)

TABLE_FORMATS = ("csv", "parquet")
ALIGNMENTS = ("right", "center")


def _load_engine_config(config_path: Path | None) -> EngineConfig:
    if config_path is None and DEFAULT_CONFIG_PATH.exists():
        config_path = DEFAULT_CONFIG_PATH
    return load_config(config_path)


def _load_variables(path: Path) -> OwidVariablesAndEntityKey:
    try:
        return load_variables_json(path)
    except (ValueError, ValidationError) as exc:
        raise typer.BadParameter(f"Invalid variables file {path}: {exc}") from exc


def _require_choice(value: str, choices: tuple[str, ...], option: str) -> str:
    if value not in choices:
        raise typer.BadParameter(f"{option} must be one of: {', '.join(choices)}")
    return value


def _write_output(table: OwidTable, out: Path, fmt: str, delimiter: str) -> Path:
    if fmt == "parquet":
        return write_table(table.to_frame(), out, fmt="parquet")
    return write_delimited(table, out, delimiter=delimiter)


def _sorted_for_grouping(table: OwidTable, time_slug: str) -> OwidTable:
    # Rows on the other time axis have nothing to average against.
    rows = sorted(
        (row for row in table.rows if row.get(time_slug) is not None),
        key=lambda row: (str(row.get("entityName")), row[time_slug]),
    )
    return OwidTable(rows, {column.slug: column.spec for column in table.columns_as_list})


def _chart_summary(chart: ChartConfig) -> dict[str, Any]:
    data = chart.data
    min_time, max_time = chart.time_domain
    return {
        "title": chart.title,
        "current_title": chart.current_title,
        "slug": chart.slug,
        "sources_line": chart.sources_line,
        "is_ready": data.is_ready,
        "loading_var_ids": data.loading_var_ids,
        "time_domain": [min_time_to_json(min_time), max_time_to_json(max_time)],
        "available_entities": data.available_entities,
        "available_entities_to_reader": data.available_entities_to_reader,
        "selected_keys": data.selected_keys,
        "selected_entities": data.selected_entities,
        "selected_entity_codes": data.selected_entity_codes,
        "filled_dimensions": [
            {
                "index": dimension.index,
                "property": dimension.property,
                "variable_id": dimension.variable_id,
                "display_name": dimension.display_name,
                "unit": dimension.unit,
                "short_unit": dimension.short_unit,
                "axis_domain": data.axis_domain(dimension.property),
            }
            for dimension in data.filled_dimensions
        ],
        "row_count": len(chart.table.rows),
        "visible_row_count": len(chart.table.unfiltered_rows),
    }


@app.command()
def ingest(
    variables: Path = typer.Option(..., exists=True, readable=True, resolve_path=True),
    out: Path = typer.Option(Path("out/table.csv"), resolve_path=True),
    config: Path | None = typer.Option(None, exists=True, readable=True, resolve_path=True),
    delimiter: str | None = typer.Option(None, help="Override export.delimiter."),
    fmt: str | None = typer.Option(
        None,
        "--format",
        help="Override export.tables_format.",
    ),
) -> None:
    """Join a legacy variables JSON file into one table."""
    configure_logging()
    cfg = _load_engine_config(config)
    table = OwidTable.from_legacy(_load_variables(variables), epoch_date=cfg.data.epoch_date)
    path = _write_output(
        table,
        out,
        _require_choice(fmt or cfg.export.tables_format, TABLE_FORMATS, "--format"),
        delimiter or cfg.export.delimiter,
    )
    typer.echo(f"Wrote {len(table.rows)} rows to: {path}")


@app.command()
def smooth(
    variables: Path = typer.Option(..., exists=True, readable=True, resolve_path=True),
    variable_id: int = typer.Option(..., help="Variable to average."),
    out: Path = typer.Option(Path("out/smoothed.csv"), resolve_path=True),
    config: Path | None = typer.Option(None, exists=True, readable=True, resolve_path=True),
    window: int | None = typer.Option(None, help="Override smoothing.default_window."),
    align: str | None = typer.Option(
        None,
        help="Override smoothing.align.",
    ),
    delimiter: str | None = typer.Option(None, help="Override export.delimiter."),
) -> None:
    """Add a per-entity rolling average column for one variable."""
    configure_logging()
    cfg = _load_engine_config(config)
    window = window if window is not None else cfg.smoothing.default_window
    if window < 1:
        raise typer.BadParameter("--window must be >= 1")

    table = OwidTable.from_legacy(_load_variables(variables), epoch_date=cfg.data.epoch_date)
    column = table.columns_by_owid_var_id.get(variable_id)
    if column is None:
        raise typer.BadParameter(f"Variable {variable_id} not found in {variables}")

    time_slug = "day" if column.is_daily_measurement else "year"
    table = _sorted_for_grouping(table, time_slug)
    slug = column.slug
    table.add_rolling_average_column(
        ColumnSpec(
            slug=f"{slug}-rolling-{window}",
            name=f"{column.name} ({window}-{time_slug} rolling average)",
            unit=column.unit,
            kind=ColumnKind.NUMERIC,
        ),
        window=window,
        value_accessor=lambda row: row.get(slug),
        time_slug=time_slug,
        group_slug="entityName",
        align=_require_choice(align or cfg.smoothing.align, ALIGNMENTS, "--align"),
    )
    path = write_delimited(table, out, delimiter=delimiter or cfg.export.delimiter)
    typer.echo(f"Smoothed {column.name} over {window} {time_slug}s. Output: {path}")


@app.command()
def derive(
    chart: Path = typer.Option(..., exists=True, readable=True, resolve_path=True),
    variables: Path = typer.Option(..., exists=True, readable=True, resolve_path=True),
    out: Path | None = typer.Option(None, resolve_path=True),
    config: Path | None = typer.Option(None, exists=True, readable=True, resolve_path=True),
) -> None:
    """Derive chart state from a chart config and its variables."""
    configure_logging()
    cfg = _load_engine_config(config)
    try:
        chart_json = load_chart_config(chart)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    session = ChartConfig(
        chart_json,
        ChartOptions(is_exporting=True),
        settings=cfg,
        population_map=load_population_map(cfg.population),
    )
    try:
        session.receive_data(_load_variables(variables))
        summary = _chart_summary(session)
    finally:
        session.dispose()

    if out is None:
        typer.echo(f"{summary['current_title']} (ready={summary['is_ready']})")
        for key in summary["selected_keys"]:
            typer.echo(f"  {key}")
        return
    path = write_summary(summary, out)
    typer.echo(f"Summary written to: {path}")
