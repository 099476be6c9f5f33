"""Materialization of boxplot pipelines.

Forces the backend-resident pipeline to run once and returns the small
per-group summary as a local :class:`BoxplotResult`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterator

import polars as pl
from rich.console import Console
from rich.table import Table

from boxstats.base import BOUND_COLUMNS, RENDER_COLUMNS, SUMMARY_COLUMNS, BoxplotRow

if TYPE_CHECKING:
    from boxstats.dialects import BoxplotDialect
    from boxstats.pipeline import BoxplotPipeline

logger = logging.getLogger(__name__)


@dataclass
class BoxplotResult:
    """Materialized boxplot statistics, one row per group."""

    frame: pl.DataFrame
    group_columns: tuple[str, ...] = ()
    dialect: "BoxplotDialect | None" = None
    strategy: str | None = None
    exact: bool = True

    def __len__(self) -> int:
        return self.frame.height

    def __iter__(self) -> Iterator[BoxplotRow]:
        return iter(self.rows())

    def rows(self) -> list[BoxplotRow]:
        return [
            BoxplotRow.from_dict(record, self.group_columns)
            for record in self.frame.iter_rows(named=True)
        ]

    def to_polars(self) -> pl.DataFrame:
        return self.frame

    def to_dicts(self) -> list[dict[str, Any]]:
        return self.frame.to_dicts()

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dicts(), indent=indent, default=str)

    def get(self, **group_values: Any) -> BoxplotRow:
        """Return the row whose grouping columns equal ``group_values``.

        Raises:
            KeyError: If no row matches.
        """
        for row in self.rows():
            if all(row.group.get(k) == v for k, v in group_values.items()):
                return row
        raise KeyError(f"No boxplot row for {group_values}")

    def to_render_frame(self) -> pl.DataFrame:
        """Frame in the column layout the boxplot renderer expects.

        The last grouping column becomes ``x``; other grouping columns
        (facets) follow the statistic columns. Without grouping ``x`` is null.
        """
        if self.group_columns:
            x_column = self.group_columns[-1]
            facets = list(self.group_columns[:-1])
            df = self.frame.rename({x_column: "x"})
        else:
            facets = []
            df = self.frame.with_columns(pl.lit(None).alias("x"))
        return df.select(list(RENDER_COLUMNS) + facets)

    # -------------------------------------------------------------------------
    # Console Output
    # -------------------------------------------------------------------------

    def __str__(self) -> str:
        """Return a formatted string representation using Rich."""
        console = Console(force_terminal=True, width=120)
        with console.capture() as capture:
            self._print_to_console(console)
        return capture.get()

    def print(self) -> None:
        """Print the statistics to the console."""
        self._print_to_console(Console())

    def _print_to_console(self, console: Console) -> None:
        title = "Boxplot statistics"
        if not self.exact:
            title += " [yellow](approximate quantiles)[/yellow]"
        console.print()
        console.print(f"[bold]{title}[/bold]")

        table = Table(show_header=True, header_style="bold")
        for name in self.group_columns:
            table.add_column(name, style="cyan")
        for name in SUMMARY_COLUMNS + BOUND_COLUMNS:
            table.add_column(name, justify="right")

        for record in self.frame.iter_rows(named=True):
            table.add_row(
                *[str(record[c]) for c in self.group_columns],
                *[_format_number(record.get(c)) for c in SUMMARY_COLUMNS + BOUND_COLUMNS],
            )

        console.print(table)
        strategy = self.strategy or "unknown"
        console.print(f"{len(self)} group(s), strategy: {strategy}")
        console.print()


def _format_number(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, float):
        return f"{value:,.4g}"
    if isinstance(value, int):
        return f"{value:,}"
    return str(value)


def materialize(pipeline: "BoxplotPipeline") -> BoxplotResult:
    """Run a pipeline once and return the local summary.

    Grouping columns come back as ordinary columns. Row order is whatever
    the backend produced unless ``config.sort_groups`` is set. Backend
    errors propagate unchanged.
    """
    frame = pipeline.execute()
    groups = pipeline.group_columns

    ordered = [c for c in (*groups, *SUMMARY_COLUMNS, *BOUND_COLUMNS) if c in frame.columns]
    frame = frame.select(ordered)
    if pipeline.config.sort_groups and groups:
        frame = frame.sort(list(groups), nulls_last=True)

    logger.debug("Materialized %d group(s) for %s", frame.height, list(groups))
    return BoxplotResult(
        frame=frame,
        group_columns=groups,
        dialect=pipeline.dialect,
        strategy=pipeline.strategy,
        exact=pipeline.exact,
    )
