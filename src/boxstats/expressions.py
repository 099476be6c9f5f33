"""Backend-neutral expression tree.

The aggregation strategies and the outlier-bound post-processor describe
their work with these nodes. Each backend implements an
:class:`ExpressionVisitor` that turns the tree into its own native form
(a Polars expression, a SQL fragment, a Spark column).

Example:
    >>> from boxstats.expressions import col, func, when
    >>>
    >>> # (upper - lower) * 1.5 AS iqr
    >>> iqr = ((col("upper") - col("lower")) * 1.5).alias("iqr")
    >>>
    >>> # CASE WHEN max_raw > max_iqr THEN max_iqr ELSE max_raw END
    >>> ymax = when(col("max_raw") > col("max_iqr"), col("max_iqr"), col("max_raw"))
    >>>
    >>> # PERCENTILE_CONT(0.25) ... OVER (PARTITION BY am)
    >>> q25 = func.quantile("mpg", 0.25).over(["am"])
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Sequence, Union


# =============================================================================
# Base Classes
# =============================================================================


class Expression(ABC):
    """Base class for expression nodes.

    Supports operator overloading so trees read like arithmetic.
    """

    @abstractmethod
    def accept(self, visitor: "ExpressionVisitor") -> Any:
        """Accept a visitor for translation."""
        pass

    def __add__(self, other: Any) -> "BinaryExpression":
        return BinaryExpression(self, ArithmeticOp.ADD, _to_expression(other))

    def __sub__(self, other: Any) -> "BinaryExpression":
        return BinaryExpression(self, ArithmeticOp.SUB, _to_expression(other))

    def __mul__(self, other: Any) -> "BinaryExpression":
        return BinaryExpression(self, ArithmeticOp.MUL, _to_expression(other))

    def __gt__(self, other: Any) -> "BinaryExpression":
        return BinaryExpression(self, ComparisonOp.GT, _to_expression(other))

    def __lt__(self, other: Any) -> "BinaryExpression":
        return BinaryExpression(self, ComparisonOp.LT, _to_expression(other))

    def __ge__(self, other: Any) -> "BinaryExpression":
        return BinaryExpression(self, ComparisonOp.GE, _to_expression(other))

    def __le__(self, other: Any) -> "BinaryExpression":
        return BinaryExpression(self, ComparisonOp.LE, _to_expression(other))

    def alias(self, name: str) -> "Alias":
        """Name the output of this expression."""
        return Alias(self, name)


# =============================================================================
# Enums
# =============================================================================


class ArithmeticOp(Enum):
    """Arithmetic operators."""

    ADD = "+"
    SUB = "-"
    MUL = "*"


class ComparisonOp(Enum):
    """Comparison operators."""

    GT = ">"
    LT = "<"
    GE = ">="
    LE = "<="


class AggregateKind(Enum):
    """Aggregates needed for boxplot summaries."""

    COUNT = "count"
    MIN = "min"
    MAX = "max"
    QUANTILE = "quantile"
    APPROX_QUANTILE = "approx_quantile"


# =============================================================================
# Leaves
# =============================================================================


@dataclass(frozen=True, eq=False)
class Column(Expression):
    """A column reference."""

    name: str

    def accept(self, visitor: "ExpressionVisitor") -> Any:
        return visitor.visit_column(self)

    def __repr__(self) -> str:
        return f"Column({self.name})"


@dataclass(frozen=True, eq=False)
class Literal(Expression):
    """A numeric or string literal."""

    value: Any

    def accept(self, visitor: "ExpressionVisitor") -> Any:
        return visitor.visit_literal(self)

    def __repr__(self) -> str:
        return f"Literal({self.value!r})"


# =============================================================================
# Composite Expressions
# =============================================================================


@dataclass(frozen=True, eq=False)
class BinaryExpression(Expression):
    """A binary expression (left op right)."""

    left: Expression
    operator: ArithmeticOp | ComparisonOp
    right: Expression

    def accept(self, visitor: "ExpressionVisitor") -> Any:
        return visitor.visit_binary_expression(self)

    def __repr__(self) -> str:
        return f"({self.left!r} {self.operator.value} {self.right!r})"


@dataclass(frozen=True, eq=False)
class CaseExpression(Expression):
    """Two-way conditional: ``CASE WHEN condition THEN then ELSE otherwise END``."""

    condition: Expression
    then: Expression
    otherwise: Expression

    def accept(self, visitor: "ExpressionVisitor") -> Any:
        return visitor.visit_case_expression(self)

    def __repr__(self) -> str:
        return f"CASE WHEN {self.condition!r} THEN {self.then!r} ELSE {self.otherwise!r} END"


@dataclass(frozen=True, eq=False)
class AggregateFunction(Expression):
    """An aggregate over a column.

    Attributes:
        kind: Which aggregate to compute.
        argument: Aggregated column, ``None`` for a row count.
        quantile: Probability for quantile aggregates.
    """

    kind: AggregateKind
    argument: Column | None = None
    quantile: float | None = None

    def accept(self, visitor: "ExpressionVisitor") -> Any:
        return visitor.visit_aggregate_function(self)

    def over(self, partition_by: Sequence[str | Column] = ()) -> "WindowFunction":
        """Evaluate this aggregate per row within a partition."""
        return WindowFunction(
            self, tuple(_to_column(c) for c in partition_by)
        )

    def __repr__(self) -> str:
        arg = repr(self.argument) if self.argument is not None else "*"
        if self.quantile is not None:
            return f"{self.kind.value}({arg}, {self.quantile})"
        return f"{self.kind.value}({arg})"


@dataclass(frozen=True, eq=False)
class WindowFunction(Expression):
    """An aggregate evaluated over a partition without collapsing rows."""

    function: AggregateFunction
    partition_by: tuple[Column, ...] = ()

    def accept(self, visitor: "ExpressionVisitor") -> Any:
        return visitor.visit_window_function(self)

    def __repr__(self) -> str:
        if not self.partition_by:
            return f"{self.function!r} OVER ()"
        partition = ", ".join(c.name for c in self.partition_by)
        return f"{self.function!r} OVER (PARTITION BY {partition})"


@dataclass(frozen=True, eq=False)
class Alias(Expression):
    """An expression with an output name."""

    expression: Expression
    name: str

    def accept(self, visitor: "ExpressionVisitor") -> Any:
        return visitor.visit_alias(self)

    def __repr__(self) -> str:
        return f"{self.expression!r} AS {self.name}"


# =============================================================================
# Visitor
# =============================================================================


class ExpressionVisitor(ABC):
    """Translates expression trees into a backend's native form."""

    @abstractmethod
    def visit_column(self, node: Column) -> Any:
        pass

    @abstractmethod
    def visit_literal(self, node: Literal) -> Any:
        pass

    @abstractmethod
    def visit_binary_expression(self, node: BinaryExpression) -> Any:
        pass

    @abstractmethod
    def visit_case_expression(self, node: CaseExpression) -> Any:
        pass

    @abstractmethod
    def visit_aggregate_function(self, node: AggregateFunction) -> Any:
        pass

    @abstractmethod
    def visit_window_function(self, node: WindowFunction) -> Any:
        pass

    @abstractmethod
    def visit_alias(self, node: Alias) -> Any:
        pass


# =============================================================================
# Builders
# =============================================================================


ExprLike = Union[Expression, str, int, float]


def _to_expression(value: Any) -> Expression:
    if isinstance(value, Expression):
        return value
    return Literal(value)


def _to_column(value: str | Column) -> Column:
    if isinstance(value, Column):
        return value
    return Column(value)


def col(name: str) -> Column:
    """Reference a column by name."""
    return Column(name)


def lit(value: Any) -> Literal:
    """Create a literal."""
    return Literal(value)


def when(condition: Expression, then: ExprLike, otherwise: ExprLike) -> CaseExpression:
    """Two-way conditional expression."""
    return CaseExpression(condition, _to_expression(then), _to_expression(otherwise))


class FunctionBuilder:
    """Shorthand constructors for the supported aggregates."""

    def count(self) -> AggregateFunction:
        """Row count."""
        return AggregateFunction(AggregateKind.COUNT)

    def min(self, column: str | Column) -> AggregateFunction:
        return AggregateFunction(AggregateKind.MIN, _to_column(column))

    def max(self, column: str | Column) -> AggregateFunction:
        return AggregateFunction(AggregateKind.MAX, _to_column(column))

    def quantile(self, column: str | Column, q: float) -> AggregateFunction:
        """Exact quantile."""
        return AggregateFunction(AggregateKind.QUANTILE, _to_column(column), q)

    def approx_quantile(self, column: str | Column, q: float) -> AggregateFunction:
        """Approximate quantile."""
        return AggregateFunction(AggregateKind.APPROX_QUANTILE, _to_column(column), q)


func = FunctionBuilder()
