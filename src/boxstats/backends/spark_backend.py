"""Spark backend.

Runs pipelines natively on a PySpark ``DataFrame``; only the per-group
summary is collected to the driver.

Quantiles:
    - ``APPROX_QUANTILE`` maps to ``percentile_approx`` with the configured
      accuracy. Results are observed values within ``1 / accuracy`` relative
      rank error, not interpolated.
    - ``QUANTILE`` maps to Spark SQL's exact ``percentile`` (linear
      interpolation), which is expensive on large partitions.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Sequence

import polars as pl

from boxstats.backends.base import BaseBackend
from boxstats.base import UnsupportedOperationError
from boxstats.expressions import (
    AggregateFunction,
    AggregateKind,
    Alias,
    ArithmeticOp,
    BinaryExpression,
    CaseExpression,
    Column,
    ComparisonOp,
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

if TYPE_CHECKING:
    from pyspark.sql import Column as SparkColumn
    from pyspark.sql import DataFrame as SparkDataFrame

logger = logging.getLogger(__name__)


def _check_pyspark_available() -> None:
    """Check if PySpark is available."""
    try:
        import pyspark  # noqa: F401
    except ImportError:
        raise ImportError(
            "pyspark is required for SparkBackend. "
            "Install with: pip install boxstats[spark]"
        )


_BINARY_OPS = {
    ArithmeticOp.ADD: lambda l, r: l + r,
    ArithmeticOp.SUB: lambda l, r: l - r,
    ArithmeticOp.MUL: lambda l, r: l * r,
    ComparisonOp.GT: lambda l, r: l > r,
    ComparisonOp.LT: lambda l, r: l < r,
    ComparisonOp.GE: lambda l, r: l >= r,
    ComparisonOp.LE: lambda l, r: l <= r,
}


class SparkExpressionCompiler(ExpressionVisitor):
    """Translates expression trees into PySpark columns."""

    def __init__(self, accuracy: int = 10_000) -> None:
        from pyspark.sql import Window
        from pyspark.sql import functions as F

        self.accuracy = accuracy
        self._F = F
        self._Window = Window

    def translate(self, expr: Expression) -> "SparkColumn":
        return expr.accept(self)

    def visit_column(self, node: Column) -> "SparkColumn":
        return self._F.col(node.name)

    def visit_literal(self, node: Literal) -> "SparkColumn":
        return self._F.lit(node.value)

    def visit_binary_expression(self, node: BinaryExpression) -> "SparkColumn":
        return _BINARY_OPS[node.operator](node.left.accept(self), node.right.accept(self))

    def visit_case_expression(self, node: CaseExpression) -> "SparkColumn":
        return self._F.when(
            node.condition.accept(self), node.then.accept(self)
        ).otherwise(node.otherwise.accept(self))

    def visit_aggregate_function(self, node: AggregateFunction) -> "SparkColumn":
        F = self._F
        if node.kind == AggregateKind.COUNT:
            return F.count(F.lit(1))
        if node.argument is None:
            raise ValueError(f"{node.kind.value} requires a column")

        name = node.argument.name
        if node.kind == AggregateKind.MIN:
            return F.min(F.col(name))
        if node.kind == AggregateKind.MAX:
            return F.max(F.col(name))
        if node.kind == AggregateKind.APPROX_QUANTILE:
            return F.percentile_approx(F.col(name), node.quantile, self.accuracy)
        escaped = name.replace("`", "``")
        return F.expr(f"percentile(`{escaped}`, {node.quantile!r})")

    def visit_window_function(self, node: WindowFunction) -> "SparkColumn":
        window = self._Window.partitionBy(*[c.name for c in node.partition_by])
        return node.function.accept(self).over(window)

    def visit_alias(self, node: Alias) -> "SparkColumn":
        return node.expression.accept(self).alias(node.name)


_SPARK_TYPES: tuple[tuple[str, str], ...] = (
    ("boolean", "boolean"),
    ("int", "numeric"),
    ("long", "numeric"),
    ("short", "numeric"),
    ("byte", "numeric"),
    ("float", "numeric"),
    ("double", "numeric"),
    ("decimal", "numeric"),
    ("date", "temporal"),
    ("timestamp", "temporal"),
    ("string", "string"),
    ("char", "string"),
)


class SparkBackend(BaseBackend):
    """Backend for PySpark DataFrames.

    Example:
        >>> df = spark.read.parquet("large_data.parquet")
        >>> backend = SparkBackend()
        >>> plan = backend.compile(df, steps)   # lazy Spark DataFrame
        >>> summary = backend.collect(plan)     # one Spark job
    """

    name = "spark"

    def compile(
        self,
        source: "SparkDataFrame",
        steps: Sequence[PipelineStep],
    ) -> "SparkDataFrame":
        _check_pyspark_available()
        compiler = SparkExpressionCompiler(self.config.approx_accuracy)
        df = source
        groups: tuple[str, ...] = ()

        for step in steps:
            if isinstance(step, GroupByStep):
                groups = step.columns
            elif isinstance(step, SummariseStep):
                exprs = [compiler.translate(e) for e in step.expressions]
                if groups:
                    df = df.groupBy(*groups).agg(*exprs)
                else:
                    df = df.agg(*exprs)
            elif isinstance(step, (WindowStep, MutateStep)):
                df = df.select("*", *[compiler.translate(e) for e in step.expressions])
            elif isinstance(step, DistinctStep):
                df = df.select(*step.columns).distinct()
            else:
                raise UnsupportedOperationError(self.name, type(step).__name__)

        return df

    def collect(self, compiled: "SparkDataFrame") -> pl.DataFrame:
        columns = list(compiled.columns)
        rows = [tuple(row) for row in compiled.collect()]
        return pl.DataFrame(rows, schema=columns, orient="row")

    def explain(self, compiled: Any) -> str:
        plan = getattr(compiled, "_jdf", None)
        if plan is not None:
            return plan.queryExecution().simpleString()
        return repr(compiled)

    def schema(self, source: "SparkDataFrame") -> dict[str, str]:
        result: dict[str, str] = {}
        for name, type_name in source.dtypes:
            base = type_name.split("<")[0].split("(")[0]
            result[name] = "other"
            for keyword, semantic in _SPARK_TYPES:
                if keyword in base:
                    result[name] = semantic
                    break
        return result
