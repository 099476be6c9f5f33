"""Tests for BoxplotResult, BoxplotRow and configuration."""

from __future__ import annotations

import json

import polars as pl
import pytest

import boxstats as bs
from boxstats.base import RENDER_COLUMNS, BoxplotConfig, BoxplotRow


@pytest.fixture
def df() -> pl.DataFrame:
    return pl.DataFrame(
        {
            "am": [0, 0, 0, 1, 1, 1],
            "cyl": [4, 4, 6, 4, 6, 6],
            "mpg": [22.8, 24.4, 21.4, 30.4, 21.0, 19.7],
        }
    )


@pytest.fixture
def config() -> BoxplotConfig:
    return BoxplotConfig(sort_groups=True)


class TestBoxplotResult:
    """Tests for result accessors."""

    def test_rows(self, df, config):
        result = bs.compute_boxplot_stats(df, "am", "mpg", config=config)
        rows = result.rows()
        assert [r.group for r in rows] == [{"am": 0}, {"am": 1}]
        assert rows[0].median == rows[0].middle
        assert rows[0].q25 == rows[0].lower
        assert rows[0].q75 == rows[0].upper
        assert rows[0].lower_fence == rows[0].min_iqr
        assert rows[0].upper_fence == rows[0].max_iqr
        assert rows[0].whisker_max == rows[0].ymax
        assert rows[0].whisker_min == rows[0].ymin

    def test_get_missing(self, df):
        result = bs.compute_boxplot_stats(df, "am", "mpg")
        with pytest.raises(KeyError):
            result.get(am=5)

    def test_to_dicts_and_json(self, df, config):
        result = bs.compute_boxplot_stats(df, "am", "mpg", config=config)
        records = json.loads(result.to_json())
        assert records == result.to_dicts()
        assert records[0]["am"] == 0
        assert records[0]["n"] == 3

    def test_row_to_dict(self):
        row = BoxplotRow(
            group={"g": "a"}, n=3, lower=1.0, middle=2.0, upper=3.0,
            max_raw=4.0, min_raw=0.5,
        )
        flat = row.to_dict()
        assert list(flat)[:2] == ["g", "n"]
        assert flat["ymax"] is None
        assert BoxplotRow.from_dict(flat, ("g",)) == row


class TestRenderFrame:
    """Tests for the renderer column layout."""

    def test_single_group(self, df, config):
        frame = bs.compute_boxplot_stats(df, "cyl", "mpg", config=config).to_render_frame()
        assert frame.columns == list(RENDER_COLUMNS)
        assert frame["x"].to_list() == [4, 6]

    def test_facets_follow(self, df, config):
        frame = bs.compute_boxplot_stats(
            df, ["am", "cyl"], "mpg", config=config
        ).to_render_frame()
        assert frame.columns == [*RENDER_COLUMNS, "am"]
        assert frame.select("am", "x").rows() == [(0, 4), (0, 6), (1, 4), (1, 6)]

    def test_ungrouped(self, df):
        frame = bs.compute_boxplot_stats(df, None, "mpg").to_render_frame()
        assert frame.columns == list(RENDER_COLUMNS)
        assert frame["x"].to_list() == [None]


class TestConsoleOutput:
    """Tests for the rich rendering."""

    def test_str(self, df):
        text = str(bs.compute_boxplot_stats(df, "am", "mpg"))
        assert "Boxplot statistics" in text
        assert "middle" in text
        assert "strategy: exact" in text

    def test_print(self, df, capsys):
        bs.compute_boxplot_stats(df, "am", "mpg").print()
        assert "2 group(s)" in capsys.readouterr().out

    def test_approximate_is_flagged(self):
        result = bs.BoxplotResult(
            frame=pl.DataFrame({"n": [1]}), exact=False, strategy="approximate"
        )
        assert "approximate quantiles" in str(result)


class TestBoxplotConfig:
    """Tests for configuration loading."""

    def test_defaults(self):
        config = BoxplotConfig()
        assert config.default_coef == 1.5
        assert config.interpolation == "linear"
        assert config.sort_groups is False

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("BOXSTATS_COEF", "2.5")
        monkeypatch.setenv("BOXSTATS_INTERPOLATION", "midpoint")
        monkeypatch.setenv("BOXSTATS_APPROX_ACCURACY", "500")
        monkeypatch.setenv("BOXSTATS_SORT_GROUPS", "yes")
        config = BoxplotConfig.from_environment()
        assert config.default_coef == 2.5
        assert config.interpolation == "midpoint"
        assert config.approx_accuracy == 500
        assert config.sort_groups is True

    def test_interpolation_reaches_polars(self, df):
        lower = bs.compute_boxplot_stats(
            df, None, "mpg", config=BoxplotConfig(interpolation="lower")
        )
        higher = bs.compute_boxplot_stats(
            df, None, "mpg", config=BoxplotConfig(interpolation="higher")
        )
        assert lower.rows()[0].lower <= higher.rows()[0].lower
        assert lower.rows()[0].middle == pytest.approx(21.4)
        assert higher.rows()[0].middle == pytest.approx(22.8)
