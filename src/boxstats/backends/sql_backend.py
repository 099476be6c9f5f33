"""SQL backend.

Compiles a pipeline into a single nested ``SELECT`` statement and runs it
on a DB-API connection. Each pipeline step wraps the previous statement as
a derived table, so the database does all the work and only the summary
rows cross the wire.

Supports two modes, like the data sources it reads from:
- **Table mode**: aggregate an existing table (optionally schema-qualified)
- **Query mode**: aggregate the result of a custom SQL query

Example:
    >>> import duckdb
    >>> conn = duckdb.connect()
    >>> source = SQLSource(conn, table="mtcars")
    >>> backend = SQLBackend(SQLDialect.DUCKDB)
    >>> compiled = backend.compile(source, steps)
    >>> df = backend.collect(compiled)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Sequence

import polars as pl

from boxstats.backends.base import BaseBackend
from boxstats.base import BoxplotConfig, UnsupportedOperationError
from boxstats.dialects import DialectConfig, SQLDialect, get_dialect_config
from boxstats.expressions import (
    AggregateFunction,
    AggregateKind,
    Alias,
    BinaryExpression,
    CaseExpression,
    Column,
    Expression,
    ExpressionVisitor,
    Literal,
    WindowFunction,
)
from boxstats.pipeline import (
    DistinctStep,
    GroupByStep,
    MutateStep,
    PipelineStep,
    SummariseStep,
    WindowStep,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Source
# =============================================================================


@dataclass(frozen=True, eq=False)
class SQLSource:
    """A table or query reachable through a DB-API connection.

    Attributes:
        connection: Open DB-API connection (owned by the caller).
        table: Table name, optionally ``schema.table``.
        query: Custom query. Mutually exclusive with ``table``.
    """

    connection: Any
    table: str | None = None
    query: str | None = None

    def __post_init__(self) -> None:
        if (self.table is None) == (self.query is None):
            raise ValueError("Exactly one of 'table' or 'query' must be provided")

    @property
    def is_query_mode(self) -> bool:
        return self.query is not None


@dataclass(frozen=True, eq=False)
class CompiledQuery:
    """A SQL statement bound to the connection that will run it."""

    connection: Any
    sql: str

    def __str__(self) -> str:
        return self.sql


# =============================================================================
# SQL Generator
# =============================================================================


class SQLExpressionGenerator(ExpressionVisitor):
    """Generates SQL fragments for one dialect."""

    def __init__(self, dialect: SQLDialect, config: DialectConfig | None = None) -> None:
        self.dialect = dialect
        self.config = config or get_dialect_config(dialect)

    def generate(self, expr: Expression) -> str:
        return expr.accept(self)

    def quote_identifier(self, name: str) -> str:
        quote = self.config.identifier_quote
        if quote == "[":
            return f"[{name.replace(']', ']]')}]"
        escaped = name.replace(quote, quote + quote)
        return f"{quote}{escaped}{quote}"

    def quote_table(self, name: str) -> str:
        return ".".join(self.quote_identifier(part) for part in name.split("."))

    def _format_literal(self, value: Any) -> str:
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, (int, float)):
            return repr(value)
        escaped = str(value).replace("'", "''")
        return f"'{escaped}'"

    def visit_column(self, node: Column) -> str:
        return self.quote_identifier(node.name)

    def visit_literal(self, node: Literal) -> str:
        return self._format_literal(node.value)

    def visit_binary_expression(self, node: BinaryExpression) -> str:
        left = node.left.accept(self)
        right = node.right.accept(self)
        return f"({left} {node.operator.value} {right})"

    def visit_case_expression(self, node: CaseExpression) -> str:
        condition = node.condition.accept(self)
        then = node.then.accept(self)
        otherwise = node.otherwise.accept(self)
        return f"CASE WHEN {condition} THEN {then} ELSE {otherwise} END"

    def visit_aggregate_function(self, node: AggregateFunction) -> str:
        return self._aggregate(node, windowed=False)

    def visit_window_function(self, node: WindowFunction) -> str:
        func = self._aggregate(node.function, windowed=True)
        if node.partition_by:
            partition = ", ".join(c.accept(self) for c in node.partition_by)
            return f"{func} OVER (PARTITION BY {partition})"
        return f"{func} OVER ()"

    def visit_alias(self, node: Alias) -> str:
        return f"{node.expression.accept(self)} AS {self.quote_identifier(node.name)}"

    def _aggregate(self, node: AggregateFunction, windowed: bool) -> str:
        if node.kind == AggregateKind.COUNT:
            return "COUNT(*)"
        if node.argument is None:
            raise ValueError(f"{node.kind.value} requires a column")

        column = node.argument.accept(self)
        if node.kind == AggregateKind.MIN:
            return f"MIN({column})"
        if node.kind == AggregateKind.MAX:
            return f"MAX({column})"

        if node.kind == AggregateKind.APPROX_QUANTILE:
            template = self.config.approx_quantile
        elif windowed:
            template = self.config.window_quantile
        else:
            template = self.config.exact_quantile

        if template is None:
            raise UnsupportedOperationError(
                f"sql ({self.dialect.value})",
                node.kind.value,
                "windowed" if windowed else "aggregate",
            )
        return template.format(column=column, q=self._format_literal(node.quantile))


# =============================================================================
# SQL Backend
# =============================================================================


_TYPE_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("BOOL", "boolean"),
    ("INTERVAL", "temporal"),
    ("INT", "numeric"),
    ("NUM", "numeric"),
    ("DEC", "numeric"),
    ("FLOAT", "numeric"),
    ("DOUBLE", "numeric"),
    ("REAL", "numeric"),
    ("DATE", "temporal"),
    ("TIME", "temporal"),
    ("CHAR", "string"),
    ("STR", "string"),
    ("TEXT", "string"),
)


def _semantic_type(type_code: Any) -> str:
    if type_code is None:
        return "unknown"
    name = str(type_code).upper()
    for keyword, semantic in _TYPE_KEYWORDS:
        if keyword in name:
            return semantic
    return "unknown"


class SQLBackend(BaseBackend):
    """Backend for relational databases reached over DB-API.

    The generated statement follows the dialect's quoting and quantile
    spelling. Unsupported syntax is left for the database to reject; its
    error propagates unchanged.
    """

    name = "sql"

    def __init__(
        self,
        dialect: SQLDialect = SQLDialect.GENERIC,
        config: BoxplotConfig | None = None,
        dialect_config: DialectConfig | None = None,
    ) -> None:
        super().__init__(config)
        self.dialect = dialect
        self.dialect_config = dialect_config or get_dialect_config(dialect)

    def generator(self) -> SQLExpressionGenerator:
        return SQLExpressionGenerator(self.dialect, self.dialect_config)

    def _relation(self, source: SQLSource, gen: SQLExpressionGenerator) -> str:
        alias_kw = self.dialect_config.table_alias_keyword
        if source.is_query_mode:
            return f"({source.query}) {alias_kw}src"
        return f"{gen.quote_table(source.table)} {alias_kw}src"  # type: ignore[arg-type]

    def to_sql(self, source: SQLSource, steps: Sequence[PipelineStep]) -> str:
        """Build the SQL statement for the steps."""
        gen = self.generator()
        alias_kw = self.dialect_config.table_alias_keyword
        relation = self._relation(source, gen)
        statement: str | None = None
        groups: tuple[str, ...] = ()
        depth = 0

        def wrap(select_list: str, suffix: str = "", distinct: bool = False) -> str:
            nonlocal depth
            if statement is None:
                from_sql = relation
            else:
                depth += 1
                from_sql = f"({statement}) {alias_kw}q{depth}"
            keyword = "SELECT DISTINCT" if distinct else "SELECT"
            return f"{keyword} {select_list} FROM {from_sql}{suffix}"

        def source_alias() -> str:
            return "src" if statement is None else f"q{depth + 1}"

        for step in steps:
            if isinstance(step, GroupByStep):
                groups = step.columns
            elif isinstance(step, SummariseStep):
                group_sql = [gen.quote_identifier(g) for g in groups]
                items = group_sql + [gen.generate(e) for e in step.expressions]
                suffix = f" GROUP BY {', '.join(group_sql)}" if groups else ""
                statement = wrap(", ".join(items), suffix)
            elif isinstance(step, (WindowStep, MutateStep)):
                # Oracle rejects a bare * next to other select items
                items = [f"{source_alias()}.*"] + [gen.generate(e) for e in step.expressions]
                statement = wrap(", ".join(items))
            elif isinstance(step, DistinctStep):
                items = [gen.quote_identifier(c) for c in step.columns]
                statement = wrap(", ".join(items), distinct=True)
            else:
                raise UnsupportedOperationError(self.name, type(step).__name__)

        if statement is None:
            statement = wrap("*")
        return statement

    def compile(self, source: SQLSource, steps: Sequence[PipelineStep]) -> CompiledQuery:
        return CompiledQuery(source.connection, self.to_sql(source, steps))

    def collect(self, compiled: CompiledQuery) -> pl.DataFrame:
        cursor = compiled.connection.cursor()
        try:
            cursor.execute(compiled.sql)
            columns = [desc[0] for desc in cursor.description]
            rows = [tuple(row) for row in cursor.fetchall()]
        finally:
            cursor.close()
        return pl.DataFrame(rows, schema=columns, orient="row")

    def schema(self, source: SQLSource) -> dict[str, str]:
        """Column types from a zero-row query.

        Drivers that report no type codes (e.g. sqlite3) yield ``"unknown"``.
        """
        gen = self.generator()
        sql = f"SELECT * FROM {self._relation(source, gen)} WHERE 1 = 0"
        cursor = source.connection.cursor()
        try:
            cursor.execute(sql)
            description = cursor.description or []
            cursor.fetchall()
        finally:
            cursor.close()
        return {desc[0]: _semantic_type(desc[1]) for desc in description}

    def __repr__(self) -> str:
        return f"SQLBackend(dialect={self.dialect.value!r})"
