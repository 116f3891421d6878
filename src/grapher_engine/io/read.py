from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from grapher_engine.table.variables import OwidVariablesAndEntityKey


def load_variables_json(path: Path) -> OwidVariablesAndEntityKey:
    """Load a legacy ``{variables, entityKey}`` payload from disk."""
    with path.open("r", encoding="utf-8") as handle:
        return OwidVariablesAndEntityKey.model_validate(json.load(handle))


def load_chart_config(path: Path) -> dict[str, Any]:
    """Load persisted chart JSON; ``.yaml``/``.yml`` files are accepted too."""
    with path.open("r", encoding="utf-8") as handle:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(handle) or {}
        else:
            data = json.load(handle)
    if not isinstance(data, dict):
        raise ValueError(f"Chart config must be an object: {path}")
    return data

