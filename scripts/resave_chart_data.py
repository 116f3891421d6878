#!/usr/bin/env python3
"""Refresh the cached ``data.availableEntities`` list stored in chart JSON files.

Variables are looked up as ``<variables-dir>/<id>+<id>.json``, the same file
name the chart would request from the data server.
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from grapher_engine.chart.config import ChartConfig, ChartOptions
from grapher_engine.config import EngineConfig, load_config
from grapher_engine.io.read import load_chart_config, load_variables_json
from grapher_engine.logging import configure_logging

LOGGER = logging.getLogger("resave_chart_data")


def variables_path(chart: ChartConfig, variables_dir: Path) -> Path:
    return variables_dir / ("+".join(str(variable_id) for variable_id in chart.variable_ids) + ".json")


def resave_chart(chart_path: Path, variables_dir: Path, settings: EngineConfig) -> list[str] | None:
    config = load_chart_config(chart_path)
    chart = ChartConfig(
        config,
        ChartOptions(is_exporting=True),
        settings=settings,
    )
    try:
        if not chart.variable_ids:
            LOGGER.info("Skipping %s: no dimensions", chart_path.name)
            return None
        source = variables_path(chart, variables_dir)
        if not source.exists():
            LOGGER.warning("Skipping %s: %s not found", chart_path.name, source.name)
            return None
        chart.receive_data(load_variables_json(source))
        entities = chart.data.available_entities_to_reader
    finally:
        chart.dispose()

    config["data"] = {"availableEntities": entities}
    chart_path.write_text(json.dumps(config, indent=2), encoding="utf-8")
    return entities


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Re-derive available entities for chart JSON files.")
    parser.add_argument("charts_dir", type=Path, help="Directory of chart JSON files")
    parser.add_argument("variables_dir", type=Path, help="Directory of variables JSON files")
    parser.add_argument("--config", type=Path, default=None, help="Engine config YAML")
    return parser.parse_args(argv)


def main() -> None:
    args = parse_args()
    configure_logging()
    cfg = load_config(args.config)
    resaved = 0
    for chart_path in sorted(args.charts_dir.glob("*.json")):
        entities = resave_chart(chart_path, args.variables_dir, cfg)
        if entities is None:
            continue
        resaved += 1
        print(f"{chart_path.name}: {len(entities)} entities")
    print(f"Resaved {resaved} charts")


if __name__ == "__main__":
    main()
