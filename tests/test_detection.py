# tests/test_detection.py
"""
Tests for SQL dialect detection.
"""

import pytest

from querydeck.detection import (
    DetectionPattern,
    EngineDetectorRegistry,
    bigquery_detector,
    default_registry,
    detect_query_engine,
    duckdb_detector,
    make_plugin,
)


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------


class TestDetectionPattern:
    def test_weight_bounds(self):
        """Weights outside 1..10 are rejected."""
        with pytest.raises(ValueError):
            DetectionPattern.of(r"foo", "foo", 0)
        with pytest.raises(ValueError):
            DetectionPattern.of(r"foo", "foo", 11)

    def test_case_insensitive_by_default(self):
        p = DetectionPattern.of(r"\bSAFE_CAST\s*\(", "SAFE_CAST", 10)
        assert p.matches("select safe_cast(x as int64)")

    def test_plugin_score_sums_matching_weights(self):
        plugin = make_plugin("x", [(r"\bfoo\b", "foo", 4), (r"\bbar\b", "bar", 5), (r"\bbaz\b", "baz", 7)])
        score, signals = plugin.score("foo and bar")
        assert score == 9
        assert signals == ["foo", "bar"]


# ---------------------------------------------------------------------------
# Built-in detection
# ---------------------------------------------------------------------------


class TestDetect:
    def test_backtick_three_part_name_is_medium_bigquery(self):
        """A single weight-10 signal wins with medium confidence."""
        d = detect_query_engine("SELECT * FROM `my-proj.sales.orders` WHERE amount > 10")
        assert d.engine == "bigquery"
        assert d.confidence == "medium"
        assert d.scores["bigquery"] == 10
        assert "backtick project.dataset.table" in d.signals

    def test_two_strong_signals_are_high_confidence(self):
        d = detect_query_engine("SELECT SAFE_DIVIDE(a, b), GENERATE_ARRAY(1, 3) FROM t")
        assert d.engine == "bigquery"
        assert d.scores["bigquery"] == 19
        assert d.confidence == "high"

    def test_plain_sql_is_unknown(self):
        d = detect_query_engine("SELECT id, name FROM users WHERE id = 1")
        assert d.engine == "unknown"
        assert d.confidence == "low"
        assert d.signals == []
        assert d.scores == {"bigquery": 0, "duckdb": 0}

    @pytest.mark.parametrize("sql", ["", "   ", "\n\t"])
    def test_empty_input_scores_every_engine_zero(self, sql):
        d = detect_query_engine(sql)
        assert d.is_unknown
        assert d.confidence == "low"
        assert d.scores == {"bigquery": 0, "duckdb": 0}

    def test_single_weak_signal_is_low_confidence_winner(self):
        """DATE_TRUNC alone (weight 6) wins, but only with low confidence."""
        d = detect_query_engine("SELECT DATE_TRUNC(created_at, MONTH) FROM t")
        assert d.engine == "bigquery"
        assert d.confidence == "low"

    def test_duckdb_file_reference(self):
        d = detect_query_engine("SELECT * FROM read_parquet('data/*.parquet') QUALIFY row_number() OVER () = 1")
        assert d.engine == "duckdb"
        assert d.confidence == "high"
        assert "read_parquet() function" in d.signals

    def test_close_scores_are_unknown_with_both_signal_sets(self):
        """A margin below 3 refuses to pick and reports both engines' signals."""
        d = detect_query_engine("SELECT SAFE_CAST(x AS INT64) FROM read_csv('a.csv')")
        assert d.scores["bigquery"] == 10
        assert d.scores["duckdb"] == 10
        assert d.is_unknown
        assert "SAFE_CAST function" in d.signals
        assert "read_csv() function" in d.signals

    def test_deterministic(self):
        sql = "SELECT * FROM `p.d.t` FOR SYSTEM_TIME AS OF TIMESTAMP '2024-01-01'"
        first = detect_query_engine(sql)
        for _ in range(5):
            assert detect_query_engine(sql) == first

    def test_has_engine_signals(self):
        reg = default_registry()
        assert reg.has_engine_signals("SELECT DATE_TRUNC(d, DAY) FROM t")
        assert not reg.has_engine_signals("SELECT 1")

    def test_to_dict(self):
        d = detect_query_engine("SELECT * FROM `a.b.c`")
        out = d.to_dict()
        assert out["engine"] == "bigquery"
        assert set(out) == {"engine", "confidence", "signals", "scores"}


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestRegistry:
    def test_registries_are_independent(self):
        a = default_registry()
        b = default_registry()
        a.unregister("duckdb")
        assert "duckdb" not in a
        assert "duckdb" in b

    def test_register_replaces_by_id(self):
        reg = EngineDetectorRegistry([bigquery_detector, duckdb_detector])
        reg.register(make_plugin("duckdb", [(r"\bquack\b", "quack", 10)]))
        assert reg.registered_engines() == ["bigquery", "duckdb"]
        assert len(reg) == 2
        d = reg.detect("SELECT quack FROM read_csv('x.csv')")
        assert d.engine == "duckdb"
        assert d.signals == ["quack"]

    def test_custom_thresholds(self):
        reg = EngineDetectorRegistry([bigquery_detector], high_confidence_score=10)
        assert reg.detect("SELECT * FROM `a.b.c`").confidence == "high"

    def test_no_plugins(self):
        d = EngineDetectorRegistry().detect("SELECT 1")
        assert d.is_unknown
        assert d.scores == {}

    def test_single_plugin_needs_margin_over_zero(self):
        reg = EngineDetectorRegistry([make_plugin("x", [(r"\bfoo\b", "foo", 2)])])
        assert reg.detect("foo").is_unknown
        reg.register(make_plugin("x", [(r"\bfoo\b", "foo", 3)]))
        assert reg.detect("foo").engine == "x"
