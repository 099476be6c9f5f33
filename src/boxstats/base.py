"""Core types shared across boxstats.

This module provides the exceptions, the configuration dataclass and the
row type returned to callers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Mapping


# =============================================================================
# Exceptions
# =============================================================================


class BoxplotError(Exception):
    """Base exception for boxstats errors."""

    pass


class InvalidCoefficientError(BoxplotError, ValueError):
    """Raised when the whisker coefficient is negative or not finite."""

    def __init__(self, coef: Any) -> None:
        self.coef = coef
        super().__init__(
            f"coef must be a finite, non-negative number, got {coef!r}"
        )


class UnsupportedOperationError(BoxplotError):
    """Raised when a backend cannot express a requested aggregate."""

    def __init__(self, backend: str, operation: str, detail: str = "") -> None:
        self.backend = backend
        self.operation = operation
        message = f"Operation '{operation}' not supported by {backend} backend"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class UnsupportedDataError(BoxplotError, TypeError):
    """Raised when no backend can wrap the given data object."""

    def __init__(self, data: Any) -> None:
        self.data_type = type(data)
        super().__init__(
            f"Unsupported data type: {type(data).__module__}.{type(data).__name__}"
        )


# =============================================================================
# Configuration
# =============================================================================


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class BoxplotConfig:
    """Configuration for boxplot computations.

    Attributes:
        default_coef: Whisker length as a multiple of the IQR.
        interpolation: Quantile interpolation used by the Polars backend.
        approx_accuracy: Accuracy passed to Spark's percentile_approx.
        sort_groups: Sort materialized rows by the grouping columns.
        maintain_order: Keep first-seen group order where the backend allows it.
    """

    default_coef: float = 1.5
    interpolation: str = "linear"
    approx_accuracy: int = 10_000
    sort_groups: bool = False
    maintain_order: bool = True

    @classmethod
    def from_environment(cls) -> "BoxplotConfig":
        """Load configuration from environment variables."""
        return cls(
            default_coef=float(os.getenv("BOXSTATS_COEF", "1.5")),
            interpolation=os.getenv("BOXSTATS_INTERPOLATION", "linear"),
            approx_accuracy=int(os.getenv("BOXSTATS_APPROX_ACCURACY", "10000")),
            sort_groups=_env_bool("BOXSTATS_SORT_GROUPS", False),
        )


# =============================================================================
# Result Rows
# =============================================================================


SUMMARY_COLUMNS: tuple[str, ...] = (
    "n",
    "lower",
    "middle",
    "upper",
    "max_raw",
    "min_raw",
)

BOUND_COLUMNS: tuple[str, ...] = (
    "iqr",
    "min_iqr",
    "max_iqr",
    "ymax",
    "ymin",
)

RENDER_COLUMNS: tuple[str, ...] = ("x",) + SUMMARY_COLUMNS + BOUND_COLUMNS


@dataclass(frozen=True)
class BoxplotRow:
    """Boxplot statistics for one group.

    Field names follow the renderer contract: ``lower``/``middle``/``upper``
    are the quartiles, ``min_iqr``/``max_iqr`` the fences and
    ``ymin``/``ymax`` the clipped whiskers.
    """

    group: Mapping[str, Any]
    n: int
    lower: float
    middle: float
    upper: float
    max_raw: float
    min_raw: float
    iqr: float | None = None
    min_iqr: float | None = None
    max_iqr: float | None = None
    ymax: float | None = None
    ymin: float | None = None

    @property
    def q25(self) -> float:
        return self.lower

    @property
    def median(self) -> float:
        return self.middle

    @property
    def q75(self) -> float:
        return self.upper

    @property
    def lower_fence(self) -> float | None:
        return self.min_iqr

    @property
    def upper_fence(self) -> float | None:
        return self.max_iqr

    @property
    def whisker_min(self) -> float | None:
        return self.ymin

    @property
    def whisker_max(self) -> float | None:
        return self.ymax

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        group_columns: tuple[str, ...] = (),
    ) -> "BoxplotRow":
        """Build a row from a materialized record."""
        values = {name: data.get(name) for name in SUMMARY_COLUMNS + BOUND_COLUMNS}
        return cls(group={c: data[c] for c in group_columns}, **values)

    def to_dict(self) -> dict[str, Any]:
        """Flatten the row, grouping values first."""
        result: dict[str, Any] = dict(self.group)
        for name in SUMMARY_COLUMNS + BOUND_COLUMNS:
            result[name] = getattr(self, name)
        return result
