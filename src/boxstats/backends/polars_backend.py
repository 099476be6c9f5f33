"""Polars backend.

Runs pipelines on a Polars ``LazyFrame``. pandas inputs are converted to
Polars when the handle is created, so this backend covers all in-memory data.
Quantiles are exact, using the configured interpolation (``"linear"`` by
default, the same definition as ``numpy.quantile``).
"""

from __future__ import annotations

from typing import Any, Sequence

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

_BINARY_OPS = {
    ArithmeticOp.ADD: lambda l, r: l + r,
    ArithmeticOp.SUB: lambda l, r: l - r,
    ArithmeticOp.MUL: lambda l, r: l * r,
    ComparisonOp.GT: lambda l, r: l > r,
    ComparisonOp.LT: lambda l, r: l < r,
    ComparisonOp.GE: lambda l, r: l >= r,
    ComparisonOp.LE: lambda l, r: l <= r,
}


class PolarsExpressionCompiler(ExpressionVisitor):
    """Translates expression trees into Polars expressions."""

    def __init__(self, interpolation: str = "linear") -> None:
        self.interpolation = interpolation

    def translate(self, expr: Expression) -> pl.Expr:
        return expr.accept(self)

    def visit_column(self, node: Column) -> pl.Expr:
        return pl.col(node.name)

    def visit_literal(self, node: Literal) -> pl.Expr:
        return pl.lit(node.value)

    def visit_binary_expression(self, node: BinaryExpression) -> pl.Expr:
        return _BINARY_OPS[node.operator](node.left.accept(self), node.right.accept(self))

    def visit_case_expression(self, node: CaseExpression) -> pl.Expr:
        return (
            pl.when(node.condition.accept(self))
            .then(node.then.accept(self))
            .otherwise(node.otherwise.accept(self))
        )

    def visit_aggregate_function(self, node: AggregateFunction) -> pl.Expr:
        if node.kind == AggregateKind.COUNT:
            return pl.len()
        if node.argument is None:
            raise ValueError(f"{node.kind.value} requires a column")

        column = pl.col(node.argument.name)
        if node.kind == AggregateKind.MIN:
            return column.min()
        if node.kind == AggregateKind.MAX:
            return column.max()
        if node.kind == AggregateKind.QUANTILE:
            return column.quantile(node.quantile, interpolation=self.interpolation)
        raise UnsupportedOperationError(
            "polars",
            node.kind.value,
            "Polars has no approximate quantile; use exact quantiles",
        )

    def visit_window_function(self, node: WindowFunction) -> pl.Expr:
        expr = node.function.accept(self)
        if node.partition_by:
            return expr.over([c.name for c in node.partition_by])
        return expr

    def visit_alias(self, node: Alias) -> pl.Expr:
        return node.expression.accept(self).alias(node.name)


def _semantic_type(dtype: pl.DataType) -> str:
    if dtype.is_numeric():
        return "numeric"
    if dtype.is_temporal():
        return "temporal"
    if dtype == pl.Boolean:
        return "boolean"
    if dtype in (pl.String, pl.Categorical, pl.Enum):
        return "string"
    return "other"


class PolarsBackend(BaseBackend):
    """Backend for Polars (and converted pandas) data.

    Example:
        >>> backend = PolarsBackend()
        >>> lf = backend.compile(pl.LazyFrame({"g": ["a"], "v": [1.0]}), steps)
        >>> df = backend.collect(lf)
    """

    name = "polars"

    def compile(self, source: pl.LazyFrame, steps: Sequence[PipelineStep]) -> pl.LazyFrame:
        compiler = PolarsExpressionCompiler(self.config.interpolation)
        maintain_order = self.config.maintain_order
        lf = source
        groups: tuple[str, ...] = ()

        for step in steps:
            if isinstance(step, GroupByStep):
                groups = step.columns
            elif isinstance(step, SummariseStep):
                exprs = [compiler.translate(e) for e in step.expressions]
                if groups:
                    lf = lf.group_by(list(groups), maintain_order=maintain_order).agg(exprs)
                else:
                    lf = lf.select(exprs)
            elif isinstance(step, (WindowStep, MutateStep)):
                lf = lf.with_columns([compiler.translate(e) for e in step.expressions])
            elif isinstance(step, DistinctStep):
                lf = lf.select(list(step.columns)).unique(maintain_order=maintain_order)
            else:
                raise UnsupportedOperationError(self.name, type(step).__name__)

        return lf

    def collect(self, compiled: pl.LazyFrame) -> pl.DataFrame:
        return compiled.collect()

    def explain(self, compiled: pl.LazyFrame) -> str:
        return compiled.explain()

    def schema(self, source: pl.LazyFrame) -> dict[str, str]:
        return {
            name: _semantic_type(dtype)
            for name, dtype in source.collect_schema().items()
        }


def to_lazyframe(data: Any) -> pl.LazyFrame:
    """Convert Polars or pandas data to a LazyFrame."""
    if isinstance(data, pl.LazyFrame):
        return data
    if isinstance(data, pl.DataFrame):
        return data.lazy()
    # pandas.DataFrame
    return pl.from_pandas(data).lazy()
