from __future__ import annotations

import io
import logging
from typing import Any, Callable, Iterable, Mapping

import pandas as pd

from grapher_engine.reactive import Observable, computed, transaction
from grapher_engine.smoothing import Align, compute_rolling_averages_for_each_group
from grapher_engine.table.columns import (
    Column,
    ColumnKind,
    ColumnSpec,
    ComputedColumnSpec,
    Row,
)

LOGGER = logging.getLogger(__name__)

ColumnSpecs = Mapping[str, ColumnSpec]


class Table:
    """Row store plus column registry.

    Rows are plain dicts keyed by column slug. They are only ever appended to
    or written through the column operations below, each of which notifies
    the derived views that depend on them.
    """

    def __init__(
        self,
        rows: Iterable[Row] | None = None,
        column_specs: ColumnSpecs | None = None,
    ) -> None:
        initial_rows = list(rows or [])
        specs = self.make_specs_from_rows(initial_rows) if column_specs is None else column_specs
        self._rows: Observable[list[Row]] = Observable(initial_rows, name="Table.rows")
        self._columns: Observable[dict[str, Column]] = Observable(
            {slug: Column(self, spec) for slug, spec in specs.items()},
            name="Table.columns",
        )
        self._detected_slugs: set[str] = set(specs) if column_specs is None else set()

    @staticmethod
    def make_specs_from_rows(rows: Iterable[Row]) -> dict[str, ColumnSpec]:
        specs: dict[str, ColumnSpec] = {}
        for row in rows:
            for key in row:
                if key not in specs:
                    specs[key] = ColumnSpec(slug=key)
        return specs

    @property
    def rows(self) -> list[Row]:
        return self._rows.get()

    def detect_and_add_columns_from_rows(self, rows: Iterable[Row]) -> Table:
        current = self._columns.peek()
        detected = {
            slug: Column(self, spec)
            for slug, spec in self.make_specs_from_rows(rows).items()
            if slug not in current
        }
        if detected:
            self._detected_slugs.update(detected)
            self._columns.set({**current, **detected})
        return self

    def add_column_spec(self, spec: ColumnSpec) -> Table:
        if spec.slug in self._columns.peek() and spec.slug not in self._detected_slugs:
            LOGGER.warning("Column %s is already registered; ignoring new spec", spec.slug)
            return self
        self._register_column(spec)
        return self

    def _register_column(self, spec: ColumnSpec) -> None:
        current = dict(self._columns.peek())
        current[spec.slug] = Column(self, spec)
        self._detected_slugs.discard(spec.slug)
        self._columns.set(current)

    def add_computed_column(self, spec: ComputedColumnSpec) -> Table:
        """Write ``spec.fn(row, index)`` into every current row under ``spec.slug``.

        The result is a snapshot: rows appended later are not filled in.
        """
        if spec.fn is None:
            raise ValueError(f"Computed column {spec.slug} needs a row function")
        fn = spec.fn
        with transaction():
            self._register_column(spec)
            rows = self._rows.peek()
            for index, row in enumerate(rows):
                row[spec.slug] = fn(row, index)
            self._rows.touch()
        return self

    def add_filter_column(self, slug: str, predicate: Callable[[Row], Any]) -> Table:
        """Register a boolean column that hides rows for which ``predicate`` is falsy.

        Predicates run lazily on the next ``unfiltered_rows`` read and their result
        is cached on each row. Re-registering a slug drops the cached results.
        """
        spec = ComputedColumnSpec(
            slug=slug,
            is_filter_column=True,
            kind=ColumnKind.BOOLEAN,
            fn=lambda row, index=0: bool(predicate(row)),
        )
        with transaction():
            self._register_column(spec)
            for row in self._rows.peek():
                row.pop(slug, None)
            self._rows.touch()
        return self

    def add_rolling_average_column(
        self,
        spec: ColumnSpec,
        window: int,
        value_accessor: Callable[[Row], Any],
        time_slug: str,
        group_slug: str,
        align: Align = "right",
    ) -> Table:
        """Materialize per-group rolling averages of ``value_accessor`` as a new column.

        Rows must already be ordered by ``group_slug`` and then by ``time_slug``.
        """
        averages = compute_rolling_averages_for_each_group(
            self._rows.peek(),
            value_accessor,
            group_slug=group_slug,
            time_slug=time_slug,
            window=window,
            align=align,
        )
        computed_spec = ComputedColumnSpec(
            **{name: value for name, value in vars(spec).items() if name != "fn"},
            fn=lambda row, index: averages[index],
        )
        if computed_spec.kind is ColumnKind.ANY:
            computed_spec.kind = ColumnKind.NUMERIC
        return self.add_computed_column(computed_spec)

    def delete_column_by_slug(self, slug: str) -> Table:
        current = self._columns.peek()
        if slug not in current:
            return self
        with transaction():
            for row in self._rows.peek():
                row.pop(slug, None)
            self._columns.set({key: column for key, column in current.items() if key != slug})
            self._detected_slugs.discard(slug)
            self._rows.touch()
        return self

    def add_rows_and_detect_columns(self, rows: Iterable[Row]) -> Table:
        batch = list(rows)
        with transaction():
            self._rows.set(self._rows.peek() + batch)
            self.detect_and_add_columns_from_rows(batch)
        return self

    @computed
    def columns_by_slug(self) -> dict[str, Column]:
        return self._columns.get()

    @computed
    def columns_as_list(self) -> list[Column]:
        return list(self.columns_by_slug.values())

    @computed
    def columns_by_name(self) -> dict[str, Column]:
        return {column.name: column for column in self.columns_as_list}

    @computed
    def column_names(self) -> list[str]:
        return [column.name for column in self.columns_as_list]

    @computed
    def column_slugs(self) -> list[str]:
        return list(self.columns_by_slug)

    @computed
    def filter_column_slugs(self) -> list[str]:
        return [column.slug for column in self.columns_as_list if column.spec.is_filter_column]

    @computed
    def unfiltered_rows(self) -> list[Row]:
        """Rows for which every filter column is truthy."""
        rows = self.rows
        columns = self.columns_by_slug
        filters = [
            (slug, columns[slug].spec.fn)  # type: ignore[attr-defined]
            for slug in self.filter_column_slugs
        ]
        if not filters:
            return rows

        def is_visible(row: Row) -> bool:
            for slug, predicate in filters:
                if slug not in row:
                    row[slug] = predicate(row, 0)
                if not row[slug]:
                    return False
            return True

        return [row for row in rows if is_visible(row)]

    def rows_with(self, query: str) -> list[Row]:
        """Rows whose ``slug value`` rendering contains ``query``; a debugging aid."""
        slugs = self.column_slugs
        return [
            row
            for row in self.rows
            if query
            in " ".join(f"{slug} {'' if row.get(slug) is None else row.get(slug)}" for slug in slugs)
        ]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame.from_records(self.rows, columns=self.column_slugs)

    def to_delimited(self, delimiter: str = ",", row_limit: int | None = None) -> str:
        columns = self.columns_as_list
        rows = self.rows[:row_limit] if row_limit else self.rows
        frame = pd.DataFrame(
            [[column.kind.format(row.get(column.slug)) for column in columns] for row in rows],
            columns=[column.name for column in columns],
            dtype=object,
        )
        return frame.to_csv(sep=delimiter, index=False, lineterminator="\n").rstrip("\n")


class BasicTable(Table):
    @classmethod
    def from_csv(cls, csv: str, column_specs: ColumnSpecs | None = None) -> BasicTable:
        frame = pd.read_csv(io.StringIO(csv), dtype=object, keep_default_na=False)
        kinds = {slug: spec.kind for slug, spec in (column_specs or {}).items()}
        rows: list[Row] = []
        for record in frame.to_dict("records"):
            row: Row = {}
            for key, raw in record.items():
                value = kinds.get(key, ColumnKind.ANY).parse(raw)
                if value is None or value == "":
                    continue
                row[key] = value
            rows.append(row)
        return cls(rows, column_specs)


class OwidTable(Table):
    """Table whose rows carry entity identity and a year or day time column."""

    @classmethod
    def from_legacy(cls, payload: Any, epoch_date: str | None = None) -> OwidTable:
        from grapher_engine.table.legacy import join_legacy_variables

        rows, specs = join_legacy_variables(payload, epoch_date=epoch_date)
        return cls(rows, specs)

    @computed
    def columns_by_owid_var_id(self) -> dict[int, Column]:
        return {
            column.spec.owid_variable_id
            if column.spec.owid_variable_id is not None
            else index: column
            for index, column in enumerate(self.columns_as_list)
        }

    @computed
    def available_entities(self) -> list[str]:
        return list(dict.fromkeys(row.get("entityName") for row in self.rows))

    @computed
    def entity_id_to_name_map(self) -> dict[int, str]:
        return {row.get("entityId"): row.get("entityName") for row in self.rows}

    @computed
    def entity_name_to_id_map(self) -> dict[str, int]:
        return {row.get("entityName"): row.get("entityId") for row in self.rows}

    @computed
    def entity_name_to_code_map(self) -> dict[str, str | None]:
        return {row.get("entityName"): row.get("entityCode") for row in self.rows}

    @computed
    def all_years(self) -> list[int]:
        return [row["year"] for row in self.rows if row.get("year")]

    @computed
    def min_year(self) -> int | None:
        return min(self.all_years, default=None)

    @computed
    def max_year(self) -> int | None:
        return max(self.all_years, default=None)

    @computed
    def all_times(self) -> list[int]:
        return [
            row["year"] if row.get("year") is not None else row["day"]
            for row in self.rows
            if row.get("year") is not None or row.get("day") is not None
        ]

    @computed
    def has_day_column(self) -> bool:
        return "day" in self.columns_by_slug

    @computed
    def day_column(self) -> Column | None:
        return self.columns_by_slug.get("day")

    def spec_to_object(self) -> dict[str, dict[str, Any]]:
        return {column.slug: column.spec.to_dict() for column in self.columns_as_list}

    def to_js(self) -> dict[str, Any]:
        return {"columns": self.spec_to_object(), "rows": self.rows}
