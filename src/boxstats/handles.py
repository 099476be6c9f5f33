"""Data handles.

A :class:`DataHandle` is an immutable reference to tabular data, local or
remote, together with the backend that knows how to query it and any
grouping already attached to it.

Example:
    >>> import polars as pl
    >>> handle = DataHandle.from_data(pl.DataFrame({"cyl": [4, 6], "mpg": [30.0, 20.0]}))
    >>> handle.backend_name
    'polars'
    >>> handle.group_by("cyl").group_columns
    ('cyl',)

    >>> # SQL table through a DB-API connection
    >>> handle = DataHandle.from_sql(conn, table="mtcars", dialect="duckdb")
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Iterable, Sequence, Union

from boxstats.backends import BaseBackend, PolarsBackend, SparkBackend, SQLBackend, SQLSource
from boxstats.backends.polars_backend import to_lazyframe
from boxstats.base import BoxplotConfig, UnsupportedDataError
from boxstats.dialects import SQLDialect, coerce_sql_dialect, sniff_sql_dialect

GroupKey = Union[str, Sequence[str], None]


def normalize_group_columns(columns: GroupKey) -> tuple[str, ...]:
    """Normalize ``None``, a single name or a sequence of names to a tuple."""
    if columns is None:
        return ()
    if isinstance(columns, str):
        return (columns,)
    return tuple(columns)


def merge_group_columns(existing: Iterable[str], requested: Iterable[str]) -> tuple[str, ...]:
    """Union of two groupings; first occurrence wins, order preserved."""
    return tuple(dict.fromkeys([*existing, *requested]))


def _module_root(data: Any) -> str:
    return type(data).__module__.split(".")[0]


@dataclass(frozen=True, eq=False)
class DataHandle:
    """Reference to data plus the backend that can aggregate it.

    Attributes:
        data: Native data (LazyFrame, Spark DataFrame, :class:`SQLSource`).
        backend: Backend bound to the data.
        group_columns: Grouping already attached to the data.
    """

    data: Any
    backend: BaseBackend
    group_columns: tuple[str, ...] = ()

    @property
    def backend_name(self) -> str:
        """Declared backend identity."""
        return self.backend.name

    @property
    def sql_dialect(self) -> SQLDialect | None:
        """SQL dialect for SQL handles, ``None`` otherwise."""
        if isinstance(self.backend, SQLBackend):
            return self.backend.dialect
        return None

    @property
    def schema(self) -> dict[str, str]:
        """Column name -> semantic type (``"numeric"``, ``"string"``, ...)."""
        return self.backend.schema(self.data)

    def group_by(self, *columns: str) -> "DataHandle":
        """Add grouping columns to those already present."""
        return replace(
            self,
            group_columns=merge_group_columns(self.group_columns, columns),
        )

    def ungroup(self) -> "DataHandle":
        return replace(self, group_columns=())

    # -------------------------------------------------------------------------
    # Factories
    # -------------------------------------------------------------------------

    @classmethod
    def from_data(
        cls,
        data: Any,
        config: BoxplotConfig | None = None,
    ) -> "DataHandle":
        """Wrap in-memory or Spark data.

        Accepts Polars ``DataFrame``/``LazyFrame``, pandas ``DataFrame``,
        pandas ``DataFrameGroupBy`` (its keys become the existing grouping)
        and PySpark ``DataFrame``.

        Raises:
            UnsupportedDataError: If no backend handles the data type.
        """
        if isinstance(data, DataHandle):
            return data

        root = _module_root(data)
        type_name = type(data).__name__

        if root == "polars" and type_name in ("DataFrame", "LazyFrame"):
            return cls(to_lazyframe(data), PolarsBackend(config))

        if root == "pandas":
            if type_name == "DataFrameGroupBy":
                keys = normalize_group_columns(data.keys)
                return cls(to_lazyframe(data.obj), PolarsBackend(config), keys)
            if type_name == "DataFrame":
                return cls(to_lazyframe(data), PolarsBackend(config))

        if root == "pyspark" and hasattr(data, "groupBy"):
            return cls(data, SparkBackend(config))

        raise UnsupportedDataError(data)

    @classmethod
    def from_sql(
        cls,
        connection: Any,
        table: str | None = None,
        query: str | None = None,
        dialect: SQLDialect | str | None = None,
        config: BoxplotConfig | None = None,
        group_columns: str | Sequence[str] | None = None,
    ) -> "DataHandle":
        """Wrap a table or query behind a DB-API connection.

        Args:
            connection: Open DB-API connection, owned by the caller.
            table: Table name. Mutually exclusive with query.
            query: Custom SQL query. Mutually exclusive with table.
            dialect: SQL dialect; inferred from the connection when omitted.
            config: Optional configuration.
            group_columns: Grouping already attached to the data.
        """
        if dialect is None:
            sql_dialect = sniff_sql_dialect(connection)
        else:
            sql_dialect = coerce_sql_dialect(dialect)

        return cls(
            SQLSource(connection, table=table, query=query),
            SQLBackend(sql_dialect, config),
            normalize_group_columns(group_columns),
        )

    def __repr__(self) -> str:
        return (
            f"DataHandle(backend={self.backend_name!r}, "
            f"group_columns={list(self.group_columns)})"
        )
