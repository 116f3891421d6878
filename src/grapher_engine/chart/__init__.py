from grapher_engine.chart.config import ChartConfig, ChartOptions
from grapher_engine.chart.data import ChartData, make_entity_dimension_key
from grapher_engine.chart.dimension import ChartDimension, DimensionWithColumn
from grapher_engine.chart.props import ChartConfigProps, EntitySelection

__all__ = [
    "ChartConfig",
    "ChartConfigProps",
    "ChartData",
    "ChartDimension",
    "ChartOptions",
    "DimensionWithColumn",
    "EntitySelection",
    "make_entity_dimension_key",
]
