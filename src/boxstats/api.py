"""Main API functions for boxstats."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from boxstats.base import BoxplotConfig
from boxstats.dialects import BoxplotDialect, SQLDialect, detect_dialect
from boxstats.fences import add_outlier_bounds, validate_coef
from boxstats.handles import DataHandle, GroupKey, normalize_group_columns
from boxstats.materialize import BoxplotResult, materialize
from boxstats.pipeline import BoxplotPipeline
from boxstats.strategies import get_strategy

logger = logging.getLogger(__name__)


def as_handle(
    data: Any,
    config: BoxplotConfig | None = None,
    sql_dialect: SQLDialect | str | None = None,
) -> DataHandle:
    """Wrap native data in a :class:`DataHandle`.

    A given ``config`` replaces the configuration of an existing handle.
    ``sql_dialect`` overrides the dialect of a SQL handle.

    Raises:
        ValueError: If ``sql_dialect`` is given for data that is not SQL.
    """
    handle = DataHandle.from_data(data, config)
    if config is not None and handle.backend.config is not config:
        handle = replace(handle, backend=handle.backend.with_config(config))

    if sql_dialect is None:
        return handle
    if handle.backend_name != "sql":
        raise ValueError(
            f"sql_dialect only applies to SQL handles, got a {handle.backend_name} handle"
        )
    source = handle.data
    return DataHandle.from_sql(
        source.connection,
        table=source.table,
        query=source.query,
        dialect=sql_dialect,
        config=handle.backend.config,
        group_columns=handle.group_columns,
    )


def aggregate_boxplot(
    handle: DataHandle,
    group_columns: GroupKey,
    measure_column: str,
    dialect: BoxplotDialect | str | None = None,
) -> BoxplotPipeline:
    """Build the grouped quantile aggregation without running it.

    Args:
        handle: Data to summarise.
        group_columns: Requested grouping, merged with the handle's own.
        measure_column: Numeric column to summarise.
        dialect: Force a strategy instead of detecting it from the handle.

    Returns:
        Pipeline producing one row per group with
        ``n, lower, middle, upper, max_raw, min_raw``.
    """
    if not isinstance(measure_column, str) or not measure_column:
        raise TypeError(f"measure_column must be a column name, got {measure_column!r}")

    grouped = handle.group_by(*normalize_group_columns(group_columns))
    chosen = detect_dialect(grouped) if dialect is None else BoxplotDialect(dialect)
    strategy = get_strategy(chosen)

    logger.debug(
        "Aggregating %r by %s with %s",
        measure_column,
        list(grouped.group_columns),
        strategy.describe(),
    )
    pipeline = BoxplotPipeline(grouped).group_by(*grouped.group_columns)
    return strategy.apply(pipeline, measure_column)


def build_boxplot_pipeline(
    data: Any,
    group_columns: GroupKey,
    measure_column: str,
    coef: float | None = None,
    *,
    dialect: BoxplotDialect | str | None = None,
    sql_dialect: SQLDialect | str | None = None,
    config: BoxplotConfig | None = None,
) -> BoxplotPipeline:
    """Build the full boxplot pipeline (aggregation and bounds) lazily.

    See :func:`compute_boxplot_stats` for the arguments.
    """
    handle = as_handle(data, config, sql_dialect)
    default_coef = handle.backend.config.default_coef
    coef = validate_coef(default_coef if coef is None else coef)

    pipeline = aggregate_boxplot(handle, group_columns, measure_column, dialect)
    return add_outlier_bounds(pipeline, coef)


def compute_boxplot_stats(
    data: Any,
    group_columns: GroupKey,
    measure_column: str,
    coef: float | None = None,
    *,
    dialect: BoxplotDialect | str | None = None,
    sql_dialect: SQLDialect | str | None = None,
    config: BoxplotConfig | None = None,
) -> BoxplotResult:
    """Compute boxplot statistics inside the data's own backend.

    The aggregation runs where the data lives (Polars, Spark, or the
    database behind a SQL handle); only one row per group is pulled back.

    Args:
        data: A :class:`DataHandle`, Polars/pandas DataFrame, pandas
            ``DataFrameGroupBy`` or PySpark DataFrame.
        group_columns: Grouping column(s), added to any grouping the data
            already carries. ``None`` or ``[]`` summarises the whole table.
        measure_column: Numeric column to summarise.
        coef: Whisker length as a multiple of the IQR (default
            ``config.default_coef``, 1.5).
        dialect: Force a quantile strategy instead of detecting it.
        sql_dialect: Override the SQL dialect of a SQL handle.
        config: Optional configuration. Replaces the configuration of a
            :class:`DataHandle` passed as ``data``.

    Returns:
        BoxplotResult with one row per group.

    Raises:
        InvalidCoefficientError: If coef is negative or not finite. Raised
            before any backend work.
        UnsupportedOperationError: If the backend cannot express the chosen
            strategy.

    Example:
        >>> import polars as pl
        >>> import boxstats as bs
        >>>
        >>> df = pl.DataFrame({"am": [0, 0, 1, 1], "mpg": [21.0, 22.8, 18.7, 30.4]})
        >>> result = bs.compute_boxplot_stats(df, "am", "mpg")
        >>> result.print()
    """
    pipeline = build_boxplot_pipeline(
        data,
        group_columns,
        measure_column,
        coef,
        dialect=dialect,
        sql_dialect=sql_dialect,
        config=config,
    )
    return materialize(pipeline)
