"""Quantile strategy table.

Maps each :class:`~boxstats.dialects.BoxplotDialect` to the strategy that
computes the six summary fields ``n, lower, middle, upper, max_raw, min_raw``.
Every strategy yields the same columns, so nothing downstream branches on
the dialect again.

Strategies:
    - ExactQuantileStrategy (GENERIC): one grouped aggregation with an exact
      quantile function.
    - ApproximateQuantileStrategy (DISTRIBUTED_COMPUTE): one grouped
      aggregation with an approximate quantile function. Results can differ
      slightly from exact quantiles; fine for plotting, not for reporting.
    - WindowedQuantileStrategy (RESTRICTED_SQL_DIALECT): for stores whose
      quantile function only exists as a window function. Phase 1 attaches
      every field per row within its partition; phase 2 keeps the grouping
      and summary columns and removes the duplicated rows.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable

from boxstats.base import SUMMARY_COLUMNS
from boxstats.dialects import BoxplotDialect
from boxstats.expressions import AggregateFunction, func

if TYPE_CHECKING:
    from boxstats.pipeline import BoxplotPipeline

logger = logging.getLogger(__name__)

QUANTILES: dict[str, float] = {
    "lower": 0.25,
    "middle": 0.5,
    "upper": 0.75,
}


def summary_aggregates(
    measure: str,
    quantile: Callable[[str, float], AggregateFunction],
) -> list[tuple[str, AggregateFunction]]:
    """Aggregates for the summary fields, in output order."""
    return [
        ("n", func.count()),
        ("lower", quantile(measure, QUANTILES["lower"])),
        ("middle", quantile(measure, QUANTILES["middle"])),
        ("upper", quantile(measure, QUANTILES["upper"])),
        ("max_raw", func.max(measure)),
        ("min_raw", func.min(measure)),
    ]


class QuantileStrategy(ABC):
    """Base class for quantile strategies."""

    name: str = "base"
    dialect: BoxplotDialect = BoxplotDialect.GENERIC
    exact: bool = True

    @abstractmethod
    def apply(self, pipeline: "BoxplotPipeline", measure: str) -> "BoxplotPipeline":
        """Append the steps producing the summary fields."""
        pass

    def describe(self) -> str:
        kind = "exact" if self.exact else "approximate"
        return f"{self.name} ({kind} quantiles, {self.dialect.value})"

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class ExactQuantileStrategy(QuantileStrategy):
    """One grouped aggregation using an exact quantile aggregate."""

    name = "exact"
    dialect = BoxplotDialect.GENERIC
    exact = True

    def _quantile(self, measure: str, q: float) -> AggregateFunction:
        return func.quantile(measure, q)

    def apply(self, pipeline: "BoxplotPipeline", measure: str) -> "BoxplotPipeline":
        aggregates = summary_aggregates(measure, self._quantile)
        return pipeline.summarise(
            *[agg.alias(name) for name, agg in aggregates]
        ).with_strategy(self.dialect, self.name, self.exact)


class ApproximateQuantileStrategy(ExactQuantileStrategy):
    """One grouped aggregation using an approximate quantile aggregate."""

    name = "approximate"
    dialect = BoxplotDialect.DISTRIBUTED_COMPUTE
    exact = False

    def _quantile(self, measure: str, q: float) -> AggregateFunction:
        return func.approx_quantile(measure, q)


class WindowedQuantileStrategy(QuantileStrategy):
    """Window functions per partition, then one distinct row per group."""

    name = "windowed"
    dialect = BoxplotDialect.RESTRICTED_SQL_DIALECT
    exact = True

    def apply(self, pipeline: "BoxplotPipeline", measure: str) -> "BoxplotPipeline":
        groups = pipeline.group_columns
        aggregates = summary_aggregates(measure, func.quantile)
        windowed = [agg.over(groups).alias(name) for name, agg in aggregates]
        return (
            pipeline.window(*windowed)
            .distinct(*groups, *SUMMARY_COLUMNS)
            .with_strategy(self.dialect, self.name, self.exact)
        )


STRATEGY_TABLE: dict[BoxplotDialect, QuantileStrategy] = {
    BoxplotDialect.GENERIC: ExactQuantileStrategy(),
    BoxplotDialect.DISTRIBUTED_COMPUTE: ApproximateQuantileStrategy(),
    BoxplotDialect.RESTRICTED_SQL_DIALECT: WindowedQuantileStrategy(),
}


def get_strategy(dialect: BoxplotDialect | str) -> QuantileStrategy:
    """Look up the strategy for a dialect.

    Raises:
        ValueError: If ``dialect`` is not a known dialect name.
    """
    dialect = BoxplotDialect(dialect)
    strategy = STRATEGY_TABLE[dialect]
    logger.debug("Using %s", strategy.describe())
    return strategy
