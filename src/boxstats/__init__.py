"""boxstats - Boxplot statistics pushed down to the data's own backend.

The quartiles, fences and whiskers of a boxplot are computed where the data
lives (Polars, Spark or a SQL database) and only the per-group summary is
pulled back, so tables far larger than memory can be plotted.

Example:
    >>> import boxstats as bs
    >>> result = bs.compute_boxplot_stats(df, "cyl", "mpg")
    >>> result.to_render_frame()

    >>> # Run inside a database
    >>> handle = bs.DataHandle.from_sql(conn, table="mtcars", dialect="duckdb")
    >>> bs.compute_boxplot_stats(handle, ["am", "cyl"], "mpg", coef=3)
"""

from boxstats.api import (
    aggregate_boxplot,
    as_handle,
    build_boxplot_pipeline,
    compute_boxplot_stats,
)
from boxstats.base import (
    BoxplotConfig,
    BoxplotError,
    BoxplotRow,
    InvalidCoefficientError,
    UnsupportedDataError,
    UnsupportedOperationError,
)
from boxstats.dialects import BoxplotDialect, SQLDialect, detect_dialect
from boxstats.fences import add_outlier_bounds, validate_coef
from boxstats.handles import DataHandle
from boxstats.materialize import BoxplotResult, materialize
from boxstats.pipeline import BoxplotPipeline
from boxstats.strategies import (
    STRATEGY_TABLE,
    ApproximateQuantileStrategy,
    ExactQuantileStrategy,
    QuantileStrategy,
    WindowedQuantileStrategy,
    get_strategy,
)

# Version: Single source of truth from pyproject.toml
try:
    from importlib.metadata import version, PackageNotFoundError

    __version__ = version("boxstats")
except PackageNotFoundError:
    # Package not installed (development mode)
    __version__ = "0.0.0.dev"

__all__ = [
    # Core API
    "compute_boxplot_stats",
    "build_boxplot_pipeline",
    "aggregate_boxplot",
    "add_outlier_bounds",
    "materialize",
    "as_handle",
    "validate_coef",
    # Types
    "DataHandle",
    "BoxplotPipeline",
    "BoxplotResult",
    "BoxplotRow",
    "BoxplotConfig",
    # Dialects & strategies
    "BoxplotDialect",
    "SQLDialect",
    "detect_dialect",
    "QuantileStrategy",
    "ExactQuantileStrategy",
    "ApproximateQuantileStrategy",
    "WindowedQuantileStrategy",
    "STRATEGY_TABLE",
    "get_strategy",
    # Exceptions
    "BoxplotError",
    "InvalidCoefficientError",
    "UnsupportedOperationError",
    "UnsupportedDataError",
]
