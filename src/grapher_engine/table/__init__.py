from grapher_engine.table.columns import Column, ColumnKind, ColumnSpec, ComputedColumnSpec
from grapher_engine.table.table import BasicTable, OwidTable, Table

__all__ = [
    "BasicTable",
    "Column",
    "ColumnKind",
    "ColumnSpec",
    "ComputedColumnSpec",
    "OwidTable",
    "Table",
]
