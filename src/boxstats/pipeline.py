"""Deferred boxplot pipeline.

A :class:`BoxplotPipeline` accumulates declarative steps against a
:class:`~boxstats.handles.DataHandle`. Nothing runs until
:meth:`BoxplotPipeline.execute`, which compiles every step into one
backend request.

Example:
    >>> from boxstats.expressions import col, func
    >>>
    >>> pipeline = (
    ...     BoxplotPipeline(handle)
    ...     .group_by("am")
    ...     .summarise(func.count().alias("n"), func.max("mpg").alias("max_raw"))
    ...     .mutate((col("max_raw") * 2).alias("double_max"))
    ... )
    >>> print(pipeline.explain())   # no data touched
    >>> df = pipeline.execute()     # single backend request
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Union

from boxstats.base import BoxplotConfig
from boxstats.expressions import Expression

if TYPE_CHECKING:
    import polars as pl

    from boxstats.dialects import BoxplotDialect
    from boxstats.handles import DataHandle

logger = logging.getLogger(__name__)


# =============================================================================
# Steps
# =============================================================================


@dataclass(frozen=True)
class GroupByStep:
    """Set the grouping columns for following steps."""

    columns: tuple[str, ...]


@dataclass(frozen=True)
class SummariseStep:
    """Collapse to one row per group. Output: grouping columns + expressions."""

    expressions: tuple[Expression, ...]


@dataclass(frozen=True)
class WindowStep:
    """Attach window-function columns without collapsing rows."""

    expressions: tuple[Expression, ...]


@dataclass(frozen=True)
class DistinctStep:
    """Keep only ``columns`` and drop duplicate rows."""

    columns: tuple[str, ...]


@dataclass(frozen=True)
class MutateStep:
    """Add row-wise computed columns."""

    expressions: tuple[Expression, ...]


PipelineStep = Union[GroupByStep, SummariseStep, WindowStep, DistinctStep, MutateStep]


# =============================================================================
# Pipeline
# =============================================================================


@dataclass(frozen=True, eq=False)
class BoxplotPipeline:
    """Immutable builder of backend-resident operations.

    Attributes:
        handle: Data the pipeline reads.
        steps: Accumulated steps, in order.
        dialect: Aggregation dialect chosen for the pipeline, if any.
        strategy: Name of the quantile strategy that built the steps.
        exact: Whether the quantiles are exact.
    """

    handle: "DataHandle"
    steps: tuple[PipelineStep, ...] = ()
    dialect: "BoxplotDialect | None" = None
    strategy: str | None = None
    exact: bool = True

    @property
    def config(self) -> BoxplotConfig:
        return self.handle.backend.config

    @property
    def group_columns(self) -> tuple[str, ...]:
        """Grouping in effect at the end of the pipeline."""
        for step in reversed(self.steps):
            if isinstance(step, GroupByStep):
                return step.columns
        return self.handle.group_columns

    def _append(self, step: PipelineStep) -> "BoxplotPipeline":
        return replace(self, steps=self.steps + (step,))

    # -------------------------------------------------------------------------
    # Builder Methods
    # -------------------------------------------------------------------------

    def group_by(self, *columns: str) -> "BoxplotPipeline":
        return self._append(GroupByStep(tuple(columns)))

    def summarise(self, *expressions: Expression) -> "BoxplotPipeline":
        return self._append(SummariseStep(tuple(expressions)))

    def window(self, *expressions: Expression) -> "BoxplotPipeline":
        return self._append(WindowStep(tuple(expressions)))

    def distinct(self, *columns: str) -> "BoxplotPipeline":
        return self._append(DistinctStep(tuple(columns)))

    def mutate(self, *expressions: Expression) -> "BoxplotPipeline":
        return self._append(MutateStep(tuple(expressions)))

    def with_strategy(
        self,
        dialect: "BoxplotDialect",
        strategy: str,
        exact: bool,
    ) -> "BoxplotPipeline":
        return replace(self, dialect=dialect, strategy=strategy, exact=exact)

    # -------------------------------------------------------------------------
    # Compilation & Execution
    # -------------------------------------------------------------------------

    def compile(self) -> Any:
        """Build the backend artefact without executing it."""
        return self.handle.backend.compile(self.handle.data, self.steps)

    def explain(self) -> str:
        """Readable form of the compiled plan."""
        return self.handle.backend.explain(self.compile())

    def execute(self) -> "pl.DataFrame":
        """Run the pipeline with exactly one backend request."""
        logger.debug(
            "Executing %d step(s) on %s (strategy=%s)",
            len(self.steps),
            self.handle.backend_name,
            self.strategy,
        )
        return self.handle.backend.execute(self.handle.data, self.steps)

    def __repr__(self) -> str:
        names = ", ".join(type(s).__name__ for s in self.steps)
        return f"BoxplotPipeline(backend={self.handle.backend_name!r}, steps=[{names}])"
