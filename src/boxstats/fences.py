"""Outlier bounds.

Adds the IQR, the fences and the clipped whiskers to a summary pipeline.
Only arithmetic and two conditional clamps are used, so the same steps
compile on every backend and stay backend-resident.

    iqr     = (upper - lower) * coef
    min_iqr = lower - iqr
    max_iqr = upper + iqr
    ymax    = max_iqr if max_raw > max_iqr else max_raw
    ymin    = min_iqr if min_raw < min_iqr else min_raw
"""

from __future__ import annotations

import math
from numbers import Real
from typing import TYPE_CHECKING, Any

from boxstats.base import InvalidCoefficientError
from boxstats.expressions import Expression, col, when

if TYPE_CHECKING:
    from boxstats.pipeline import BoxplotPipeline

DEFAULT_COEF = 1.5


def validate_coef(coef: Any) -> float:
    """Check the whisker coefficient and return it as a float.

    Raises:
        InvalidCoefficientError: If coef is not a finite, non-negative number.
    """
    if isinstance(coef, bool) or not isinstance(coef, Real):
        raise InvalidCoefficientError(coef)
    value = float(coef)
    if not math.isfinite(value) or value < 0:
        raise InvalidCoefficientError(coef)
    return value


def outlier_bound_stages(coef: float) -> list[list[Expression]]:
    """Expressions for each dependent stage of the bound computation."""
    lower, upper = col("lower"), col("upper")
    iqr = col("iqr")
    min_iqr, max_iqr = col("min_iqr"), col("max_iqr")
    max_raw, min_raw = col("max_raw"), col("min_raw")

    return [
        [((upper - lower) * coef).alias("iqr")],
        [(lower - iqr).alias("min_iqr"), (upper + iqr).alias("max_iqr")],
        [
            when(max_raw > max_iqr, max_iqr, max_raw).alias("ymax"),
            when(min_raw < min_iqr, min_iqr, min_raw).alias("ymin"),
        ],
    ]


def add_outlier_bounds(
    pipeline: "BoxplotPipeline",
    coef: float = DEFAULT_COEF,
) -> "BoxplotPipeline":
    """Append IQR, fence and whisker columns to a summary pipeline."""
    value = validate_coef(coef)
    for stage in outlier_bound_stages(value):
        pipeline = pipeline.mutate(*stage)
    return pipeline
