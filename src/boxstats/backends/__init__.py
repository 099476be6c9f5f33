"""Backends that compile and run boxplot pipelines.

Available backends:
- PolarsBackend: in-memory Polars and pandas data
- SQLBackend: relational databases over DB-API
- SparkBackend: PySpark DataFrames (requires pyspark)
"""

from boxstats.backends.base import BaseBackend
from boxstats.backends.polars_backend import PolarsBackend, PolarsExpressionCompiler
from boxstats.backends.sql_backend import (
    CompiledQuery,
    SQLBackend,
    SQLExpressionGenerator,
    SQLSource,
)
from boxstats.backends.spark_backend import SparkBackend

__all__ = [
    "BaseBackend",
    "PolarsBackend",
    "PolarsExpressionCompiler",
    "SQLBackend",
    "SQLExpressionGenerator",
    "SQLSource",
    "CompiledQuery",
    "SparkBackend",
]
