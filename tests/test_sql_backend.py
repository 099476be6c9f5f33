"""Tests for the SQL backend: generated statements and DB-API execution."""

from __future__ import annotations

import sqlite3

import polars as pl
import pytest
from polars.testing import assert_frame_equal

import boxstats as bs
from boxstats.backends import SQLBackend, SQLSource
from boxstats.base import SUMMARY_COLUMNS
from boxstats.dialects import SQLDialect


class RecordingCursor:
    """DB-API cursor returning canned rows and recording statements."""

    def __init__(self, owner: "RecordingConnection") -> None:
        self.owner = owner
        self.description = None

    def execute(self, sql):
        self.owner.statements.append(sql)
        self.description = [(name, None) for name in self.owner.columns]

    def fetchall(self):
        return list(self.owner.rows)

    def close(self):
        self.owner.closed_cursors += 1


class RecordingConnection:
    """DB-API connection stand-in."""

    def __init__(self, columns=(), rows=()) -> None:
        self.columns = list(columns)
        self.rows = list(rows)
        self.statements: list[str] = []
        self.closed_cursors = 0

    def cursor(self):
        return RecordingCursor(self)


def _sql(dialect: str, table: str = "measurements", **kwargs) -> str:
    handle = bs.DataHandle.from_sql(RecordingConnection(), table=table, dialect=dialect)
    return bs.build_boxplot_pipeline(handle, "grp", "val", **kwargs).compile().sql


# =============================================================================
# Generated SQL
# =============================================================================


class TestGeneratedSQL:
    """Tests for statement generation per dialect."""

    def test_postgres_exact(self):
        sql = _sql("postgresql")
        assert sql.count("SELECT") == 4
        assert 'PERCENTILE_CONT(0.25) WITHIN GROUP (ORDER BY "val") AS "lower"' in sql
        assert 'PERCENTILE_CONT(0.5) WITHIN GROUP (ORDER BY "val") AS "middle"' in sql
        assert 'COUNT(*) AS "n"' in sql
        assert 'FROM "measurements" AS src GROUP BY "grp"' in sql
        assert '(("upper" - "lower") * 1.5) AS "iqr"' in sql
        assert 'SELECT q1.*, (("upper" - "lower") * 1.5) AS "iqr"' in sql
        assert 'CASE WHEN ("max_raw" > "max_iqr") THEN "max_iqr" ELSE "max_raw" END AS "ymax"' in sql
        assert 'CASE WHEN ("min_raw" < "min_iqr") THEN "min_iqr" ELSE "min_raw" END AS "ymin"' in sql
        assert sql.endswith(") AS q3")

    def test_coef_in_statement(self):
        assert '* 3.0) AS "iqr"' in _sql("postgresql", coef=3)

    def test_sqlserver_windowed(self):
        sql = _sql("sqlserver")
        assert "GROUP BY" not in sql
        assert "PERCENTILE_CONT(0.75) WITHIN GROUP (ORDER BY [val]) OVER (PARTITION BY [grp]) AS [upper]" in sql
        assert "COUNT(*) OVER (PARTITION BY [grp]) AS [n]" in sql
        assert "SELECT DISTINCT [grp], [n], [lower], [middle], [upper], [max_raw], [min_raw]" in sql

    def test_databricks_approximate(self):
        sql = _sql("databricks")
        assert "percentile_approx(`val`, 0.25) AS `lower`" in sql
        assert "GROUP BY `grp`" in sql

    def test_duckdb_exact(self):
        assert 'quantile_cont("val", 0.5) AS "middle"' in _sql("duckdb")

    def test_oracle_derived_tables_have_no_as(self):
        sql = _sql("oracle")
        assert 'FROM "measurements" src GROUP BY' in sql
        assert ") q1" in sql
        assert " AS q" not in sql
        assert " AS src" not in sql

    def test_star_is_always_qualified(self):
        for dialect in ("oracle", "postgresql", "sqlserver", "duckdb"):
            sql = _sql(dialect)
            assert "SELECT *," not in sql
            assert ", *" not in sql

    def test_windowed_star_uses_base_alias(self):
        sql = _sql("sqlserver")
        assert "SELECT src.*, COUNT(*) OVER (PARTITION BY [grp]) AS [n]" in sql
        assert "FROM [measurements] AS src" in sql

    def test_schema_qualified_table(self):
        assert 'FROM "analytics"."events"' in _sql("postgresql", table="analytics.events")

    def test_query_mode(self):
        handle = bs.DataHandle.from_sql(
            RecordingConnection(),
            query="SELECT * FROM raw WHERE val > 0",
            dialect="postgresql",
        )
        sql = bs.build_boxplot_pipeline(handle, "grp", "val").compile().sql
        assert "FROM (SELECT * FROM raw WHERE val > 0) AS src GROUP BY" in sql

    def test_ungrouped(self):
        handle = bs.DataHandle.from_sql(RecordingConnection(), table="t", dialect="postgresql")
        sql = bs.build_boxplot_pipeline(handle, None, "val").compile().sql
        assert "GROUP BY" not in sql

    def test_unsupported_strategy(self):
        handle = bs.DataHandle.from_sql(RecordingConnection(), table="t", dialect="postgresql")
        pipeline = bs.build_boxplot_pipeline(
            handle, "grp", "val", dialect="distributed_compute"
        )
        with pytest.raises(bs.UnsupportedOperationError):
            pipeline.compile()

    def test_sql_dialect_override(self):
        handle = bs.DataHandle.from_sql(RecordingConnection(), table="t", dialect="postgresql")
        pipeline = bs.build_boxplot_pipeline(handle, "grp", "val", sql_dialect="sqlserver")
        assert pipeline.strategy == "windowed"
        assert "[grp]" in pipeline.compile().sql


# =============================================================================
# Execution through a DB-API connection
# =============================================================================


class TestSQLExecution:
    """Tests for the request/response cycle."""

    COLUMNS = ["grp", *SUMMARY_COLUMNS, "iqr", "min_iqr", "max_iqr", "ymax", "ymin"]

    def test_single_request(self):
        conn = RecordingConnection(
            self.COLUMNS,
            [("A", 6, 2.25, 3.5, 4.75, 100, 1, 3.75, -1.5, 8.5, 8.5, 1)],
        )
        handle = bs.DataHandle.from_sql(conn, table="measurements", dialect="sqlserver")
        result = bs.compute_boxplot_stats(handle, "grp", "val")

        assert len(conn.statements) == 1
        assert conn.closed_cursors == 1
        assert result.get(grp="A").ymax == 8.5
        assert result.exact is True
        assert result.strategy == "windowed"

    def test_config_applies_to_existing_handle(self):
        conn = RecordingConnection(
            self.COLUMNS,
            [
                ("B", 3, 10.0, 10.0, 10.0, 10.0, 10.0, 0.0, 10.0, 10.0, 10.0, 10.0),
                ("A", 6, 2.25, 3.5, 4.75, 100.0, 1.0, 3.75, -1.5, 8.5, 8.5, 1.0),
            ],
        )
        handle = bs.DataHandle.from_sql(conn, table="measurements", dialect="postgresql")
        config = bs.BoxplotConfig(sort_groups=True, default_coef=3.0)

        result = bs.compute_boxplot_stats(handle, "grp", "val", config=config)
        assert result.to_polars()["grp"].to_list() == ["A", "B"]
        assert '* 3.0) AS "iqr"' in conn.statements[0]

        overridden = bs.build_boxplot_pipeline(
            handle, "grp", "val", sql_dialect="sqlserver", config=config
        )
        assert overridden.config is config
        assert overridden.handle.sql_dialect is SQLDialect.SQLSERVER

    def test_invalid_coef_never_reaches_database(self):
        conn = RecordingConnection()
        handle = bs.DataHandle.from_sql(conn, table="measurements", dialect="postgresql")
        with pytest.raises(bs.InvalidCoefficientError):
            bs.compute_boxplot_stats(handle, "grp", "val", coef=-0.5)
        assert conn.statements == []

    def test_building_does_not_query(self):
        conn = RecordingConnection()
        handle = bs.DataHandle.from_sql(conn, table="measurements", dialect="postgresql")
        pipeline = bs.build_boxplot_pipeline(handle, "grp", "val")
        pipeline.explain()
        assert conn.statements == []

    def test_sqlite_error_propagates(self):
        conn = sqlite3.connect(":memory:")
        try:
            handle = bs.DataHandle.from_sql(conn, table="missing_table")
            with pytest.raises(sqlite3.OperationalError):
                bs.compute_boxplot_stats(handle, "grp", "val")
        finally:
            conn.close()

    def test_sqlite_schema(self):
        conn = sqlite3.connect(":memory:")
        try:
            conn.execute("CREATE TABLE t (grp TEXT, val REAL)")
            schema = SQLBackend(SQLDialect.SQLITE).schema(SQLSource(conn, table="t"))
            assert list(schema) == ["grp", "val"]
        finally:
            conn.close()


# =============================================================================
# DuckDB
# =============================================================================


class TestDuckDB:
    """Tests against a real in-memory DuckDB database."""

    @pytest.fixture
    def conn(self):
        duckdb = pytest.importorskip("duckdb")
        conn = duckdb.connect()
        conn.execute("CREATE TABLE measurements (grp VARCHAR, val DOUBLE)")
        conn.execute(
            "INSERT INTO measurements VALUES "
            "('A', 1), ('A', 2), ('A', 3), ('A', 4), ('A', 5), ('A', 100), "
            "('B', 10), ('B', 10), ('B', 10)"
        )
        conn.execute(
            "CREATE TABLE uniform AS "
            "SELECT CASE WHEN i % 2 = 0 THEN 'even' ELSE 'odd' END AS grp, "
            "CAST(i AS DOUBLE) AS val FROM range(0, 4001) t(i)"
        )
        yield conn
        conn.close()

    @pytest.fixture
    def config(self) -> bs.BoxplotConfig:
        return bs.BoxplotConfig(sort_groups=True)

    def test_detected_dialect(self, conn):
        handle = bs.DataHandle.from_sql(conn, table="measurements")
        assert handle.sql_dialect is SQLDialect.DUCKDB
        assert bs.detect_dialect(handle) is bs.BoxplotDialect.GENERIC

    def test_outliers_are_clipped(self, conn, config):
        handle = bs.DataHandle.from_sql(conn, table="measurements", config=config)
        result = bs.compute_boxplot_stats(handle, "grp", "val")

        a = result.get(grp="A")
        assert a.n == 6
        assert (a.lower, a.middle, a.upper) == pytest.approx((2.25, 3.5, 4.75))
        assert a.ymax == pytest.approx(8.5)
        assert a.ymin == pytest.approx(1.0)

        b = result.get(grp="B")
        assert b.n == 3
        assert b.ymin == b.ymax == pytest.approx(10.0)

    def test_matches_polars(self, conn, config):
        handle = bs.DataHandle.from_sql(conn, table="uniform", config=config)
        in_db = bs.compute_boxplot_stats(handle, "grp", "val")

        rows = conn.execute("SELECT grp, val FROM uniform").fetchall()
        local = pl.DataFrame(rows, schema=["grp", "val"], orient="row")
        in_memory = bs.compute_boxplot_stats(local, "grp", "val", config=config)
        assert_frame_equal(in_db.to_polars(), in_memory.to_polars(), check_dtypes=False)

    def test_windowed_matches_exact(self, conn, config):
        handle = bs.DataHandle.from_sql(conn, table="uniform", config=config)
        exact = bs.compute_boxplot_stats(handle, "grp", "val")
        windowed = bs.compute_boxplot_stats(
            handle, "grp", "val", dialect="restricted_sql_dialect"
        )
        assert_frame_equal(exact.to_polars(), windowed.to_polars(), check_dtypes=False)

    def test_approximate_within_tolerance(self, conn, config):
        handle = bs.DataHandle.from_sql(conn, table="uniform", config=config)
        exact = bs.compute_boxplot_stats(handle, "grp", "val")
        approx = bs.compute_boxplot_stats(handle, "grp", "val", dialect="distributed_compute")

        assert approx.exact is False
        tolerance = 0.02 * 4000
        for e, a in zip(exact, approx):
            assert a.group == e.group
            assert a.n == e.n
            assert a.max_raw == e.max_raw
            assert a.min_raw == e.min_raw
            for name in ("lower", "middle", "upper"):
                assert abs(getattr(a, name) - getattr(e, name)) <= tolerance

    def test_query_mode(self, conn, config):
        handle = bs.DataHandle.from_sql(
            conn,
            query="SELECT * FROM measurements WHERE grp = 'A'",
            config=config,
        )
        result = bs.compute_boxplot_stats(handle, None, "val")
        assert len(result) == 1
        assert result.rows()[0].n == 6

    def test_grouping_attached_to_handle(self, conn, config):
        handle = bs.DataHandle.from_sql(
            conn, table="measurements", group_columns="grp", config=config
        )
        result = bs.compute_boxplot_stats(handle, None, "val")
        assert result.group_columns == ("grp",)
        assert len(result) == 2

    def test_schema(self, conn):
        handle = bs.DataHandle.from_sql(conn, table="measurements")
        assert handle.schema == {"grp": "string", "val": "numeric"}

    def test_type_mismatch_propagates(self, conn):
        duckdb = pytest.importorskip("duckdb")
        handle = bs.DataHandle.from_sql(conn, table="measurements")
        with pytest.raises(duckdb.Error):
            bs.compute_boxplot_stats(handle, "val", "grp")
