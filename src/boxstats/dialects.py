"""Backend capability detection.

Every :class:`~boxstats.handles.DataHandle` maps to exactly one
:class:`BoxplotDialect`. The dialect decides which quantile strategy is
used; detection looks only at the handle's declared backend, never at the
data itself.

SQL handles additionally carry a :class:`SQLDialect`, whose
:class:`DialectConfig` holds identifier quoting and the spelling of the
quantile functions for that database.

Supported SQL Dialects:
    - DuckDB (exact and approximate quantiles)
    - PostgreSQL, Snowflake, Oracle, Redshift (``PERCENTILE_CONT``)
    - SQL Server, BigQuery (quantiles only as window functions)
    - Databricks, Hive, Spark SQL (distributed, ``percentile_approx``)
    - SQLite, MySQL, generic (standard syntax, may be rejected at runtime)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from boxstats.handles import DataHandle

logger = logging.getLogger(__name__)


# =============================================================================
# Dialect Enums
# =============================================================================


class BoxplotDialect(Enum):
    """Aggregation dialect of a backend.

    - GENERIC: exact aggregate quantile function available
    - DISTRIBUTED_COMPUTE: approximate aggregate quantile function
    - RESTRICTED_SQL_DIALECT: quantiles only as window functions
    """

    GENERIC = "generic"
    DISTRIBUTED_COMPUTE = "distributed_compute"
    RESTRICTED_SQL_DIALECT = "restricted_sql_dialect"


class SQLDialect(Enum):
    """Supported SQL dialects."""

    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    SQLITE = "sqlite"
    BIGQUERY = "bigquery"
    SNOWFLAKE = "snowflake"
    REDSHIFT = "redshift"
    DATABRICKS = "databricks"
    ORACLE = "oracle"
    SQLSERVER = "sqlserver"
    DUCKDB = "duckdb"
    HIVE = "hive"
    SPARK = "spark"
    GENERIC = "generic"


# =============================================================================
# Dialect Configuration
# =============================================================================


_PERCENTILE_CONT = "PERCENTILE_CONT({q}) WITHIN GROUP (ORDER BY {column})"


@dataclass(frozen=True)
class DialectConfig:
    """Configuration for a SQL dialect.

    Quantile templates are formatted with ``column`` (already quoted) and
    ``q``. A ``None`` template means the dialect has no such function.

    Attributes:
        identifier_quote: Character(s) to quote identifiers.
        exact_quantile: Aggregate exact quantile template.
        approx_quantile: Aggregate approximate quantile template.
        window_quantile: Quantile template used under ``OVER (...)``.
        supports_aggregate_quantile: Whether quantiles work as plain aggregates.
        distributed: Whether the engine is a distributed compute engine.
        table_alias_keyword: Keyword between a derived table and its alias.
    """

    identifier_quote: str = '"'
    exact_quantile: str | None = _PERCENTILE_CONT
    approx_quantile: str | None = None
    window_quantile: str | None = _PERCENTILE_CONT
    supports_aggregate_quantile: bool = True
    distributed: bool = False
    table_alias_keyword: str = "AS "


DIALECT_CONFIGS: dict[SQLDialect, DialectConfig] = {
    SQLDialect.POSTGRESQL: DialectConfig(),
    SQLDialect.MYSQL: DialectConfig(identifier_quote="`"),
    SQLDialect.SQLITE: DialectConfig(),
    SQLDialect.BIGQUERY: DialectConfig(
        identifier_quote="`",
        exact_quantile=None,
        approx_quantile="APPROX_QUANTILES({column}, 100)[OFFSET(CAST({q} * 100 AS INT64))]",
        window_quantile="PERCENTILE_CONT({column}, {q})",
        supports_aggregate_quantile=False,
    ),
    SQLDialect.SNOWFLAKE: DialectConfig(
        approx_quantile="APPROX_PERCENTILE({column}, {q})",
    ),
    SQLDialect.REDSHIFT: DialectConfig(
        approx_quantile="APPROXIMATE PERCENTILE_DISC({q}) WITHIN GROUP (ORDER BY {column})",
    ),
    SQLDialect.DATABRICKS: DialectConfig(
        identifier_quote="`",
        exact_quantile="percentile({column}, {q})",
        approx_quantile="percentile_approx({column}, {q})",
        window_quantile="percentile({column}, {q})",
        distributed=True,
    ),
    SQLDialect.HIVE: DialectConfig(
        identifier_quote="`",
        exact_quantile="percentile({column}, {q})",
        approx_quantile="percentile_approx({column}, {q})",
        window_quantile="percentile({column}, {q})",
        distributed=True,
    ),
    SQLDialect.SPARK: DialectConfig(
        identifier_quote="`",
        exact_quantile="percentile({column}, {q})",
        approx_quantile="percentile_approx({column}, {q})",
        window_quantile="percentile({column}, {q})",
        distributed=True,
    ),
    SQLDialect.ORACLE: DialectConfig(
        approx_quantile="APPROX_PERCENTILE({q}) WITHIN GROUP (ORDER BY {column})",
        table_alias_keyword="",
    ),
    SQLDialect.SQLSERVER: DialectConfig(
        identifier_quote="[",
        supports_aggregate_quantile=False,
    ),
    SQLDialect.DUCKDB: DialectConfig(
        exact_quantile="quantile_cont({column}, {q})",
        approx_quantile="approx_quantile({column}, {q})",
        window_quantile="quantile_cont({column}, {q})",
    ),
    SQLDialect.GENERIC: DialectConfig(),
}


def get_dialect_config(dialect: SQLDialect) -> DialectConfig:
    """Get the configuration of a SQL dialect."""
    return DIALECT_CONFIGS.get(dialect, DIALECT_CONFIGS[SQLDialect.GENERIC])


def coerce_sql_dialect(dialect: SQLDialect | str | None) -> SQLDialect:
    """Convert a dialect name to :class:`SQLDialect`.

    Unknown names map to ``SQLDialect.GENERIC``.
    """
    if dialect is None:
        return SQLDialect.GENERIC
    if isinstance(dialect, SQLDialect):
        return dialect
    try:
        return SQLDialect(dialect.lower())
    except ValueError:
        logger.warning("Unknown SQL dialect %r, using generic SQL", dialect)
        return SQLDialect.GENERIC


# Root module of a DB-API connection class -> dialect
_CONNECTION_MODULES: dict[str, SQLDialect] = {
    "duckdb": SQLDialect.DUCKDB,
    "_duckdb": SQLDialect.DUCKDB,
    "sqlite3": SQLDialect.SQLITE,
    "_sqlite3": SQLDialect.SQLITE,
    "psycopg": SQLDialect.POSTGRESQL,
    "psycopg2": SQLDialect.POSTGRESQL,
    "pg8000": SQLDialect.POSTGRESQL,
    "pyodbc": SQLDialect.SQLSERVER,
    "pymssql": SQLDialect.SQLSERVER,
    "_mssql": SQLDialect.SQLSERVER,
    "mysql": SQLDialect.MYSQL,
    "pymysql": SQLDialect.MYSQL,
    "MySQLdb": SQLDialect.MYSQL,
    "snowflake": SQLDialect.SNOWFLAKE,
    "redshift_connector": SQLDialect.REDSHIFT,
    "databricks": SQLDialect.DATABRICKS,
    "pyhive": SQLDialect.HIVE,
    "oracledb": SQLDialect.ORACLE,
    "cx_Oracle": SQLDialect.ORACLE,
}


def sniff_sql_dialect(connection: Any) -> SQLDialect:
    """Infer the SQL dialect of a DB-API connection from its module.

    Returns ``SQLDialect.GENERIC`` for unrecognized drivers.
    """
    root = type(connection).__module__.split(".")[0]
    dialect = _CONNECTION_MODULES.get(root, SQLDialect.GENERIC)
    logger.debug("Connection module %r -> SQL dialect %s", root, dialect.value)
    return dialect


# =============================================================================
# Detector
# =============================================================================


def dialect_for_sql(dialect: SQLDialect) -> BoxplotDialect:
    """Map a SQL dialect to its boxplot aggregation dialect."""
    config = get_dialect_config(dialect)
    if not config.supports_aggregate_quantile:
        return BoxplotDialect.RESTRICTED_SQL_DIALECT
    if config.distributed:
        return BoxplotDialect.DISTRIBUTED_COMPUTE
    return BoxplotDialect.GENERIC


def detect_dialect(handle: "DataHandle") -> BoxplotDialect:
    """Determine the aggregation dialect of a data handle.

    Total over all handles: backends without a specific mapping use
    ``GENERIC``, which may later be rejected by the store at execution time.
    """
    backend = handle.backend_name
    if backend == "spark":
        result = BoxplotDialect.DISTRIBUTED_COMPUTE
    elif backend == "sql":
        result = dialect_for_sql(coerce_sql_dialect(handle.sql_dialect))
    else:
        result = BoxplotDialect.GENERIC

    logger.debug("Detected dialect %s for %s handle", result.value, backend)
    return result
