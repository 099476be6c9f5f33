"""Tests for the quantile strategy table."""

from __future__ import annotations

import polars as pl
import pytest

from boxstats.base import SUMMARY_COLUMNS
from boxstats.dialects import BoxplotDialect
from boxstats.expressions import AggregateKind, WindowFunction
from boxstats.handles import DataHandle
from boxstats.pipeline import BoxplotPipeline, DistinctStep, SummariseStep, WindowStep
from boxstats.strategies import (
    QUANTILES,
    STRATEGY_TABLE,
    ApproximateQuantileStrategy,
    ExactQuantileStrategy,
    WindowedQuantileStrategy,
    get_strategy,
)


@pytest.fixture
def pipeline() -> BoxplotPipeline:
    handle = DataHandle.from_data(pl.DataFrame({"g": ["a"], "v": [1.0]}))
    return BoxplotPipeline(handle).group_by("g")


class TestStrategyTable:
    """Tests for dialect -> strategy lookup."""

    def test_table_is_total(self):
        assert set(STRATEGY_TABLE) == set(BoxplotDialect)

    def test_lookup(self):
        assert isinstance(get_strategy(BoxplotDialect.GENERIC), ExactQuantileStrategy)
        assert isinstance(get_strategy("distributed_compute"), ApproximateQuantileStrategy)
        assert isinstance(get_strategy("restricted_sql_dialect"), WindowedQuantileStrategy)

    def test_unknown_dialect(self):
        with pytest.raises(ValueError):
            get_strategy("oracle")

    def test_quantile_probabilities(self):
        assert QUANTILES == {"lower": 0.25, "middle": 0.5, "upper": 0.75}


class TestExactQuantileStrategy:
    def test_single_summarise(self, pipeline):
        result = ExactQuantileStrategy().apply(pipeline, "v")
        step = result.steps[-1]
        assert isinstance(step, SummariseStep)
        assert tuple(e.name for e in step.expressions) == SUMMARY_COLUMNS
        kinds = [e.expression.kind for e in step.expressions]
        assert kinds.count(AggregateKind.QUANTILE) == 3
        assert result.exact is True
        assert result.dialect is BoxplotDialect.GENERIC
        assert result.strategy == "exact"


class TestApproximateQuantileStrategy:
    def test_uses_approximate_quantiles(self, pipeline):
        result = ApproximateQuantileStrategy().apply(pipeline, "v")
        kinds = [e.expression.kind for e in result.steps[-1].expressions]
        assert kinds.count(AggregateKind.APPROX_QUANTILE) == 3
        assert AggregateKind.QUANTILE not in kinds
        assert result.exact is False
        assert "approximate" in ApproximateQuantileStrategy().describe()


class TestWindowedQuantileStrategy:
    def test_two_phases(self, pipeline):
        result = WindowedQuantileStrategy().apply(pipeline, "v")
        window, distinct = result.steps[-2:]
        assert isinstance(window, WindowStep)
        assert isinstance(distinct, DistinctStep)

        for expr in window.expressions:
            assert isinstance(expr.expression, WindowFunction)
            assert [c.name for c in expr.expression.partition_by] == ["g"]
        assert distinct.columns == ("g",) + SUMMARY_COLUMNS
        assert result.group_columns == ("g",)
        assert result.strategy == "windowed"

    def test_ungrouped(self):
        handle = DataHandle.from_data(pl.DataFrame({"v": [1.0]}))
        result = WindowedQuantileStrategy().apply(BoxplotPipeline(handle), "v")
        assert result.steps[-1].columns == SUMMARY_COLUMNS
        assert all(not e.expression.partition_by for e in result.steps[0].expressions)
