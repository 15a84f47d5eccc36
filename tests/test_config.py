# tests/test_config.py
"""
Tests for settings models and the YAML/environment loader.
"""

import pytest

from conftest import run
from querydeck import router as build_router
from querydeck.config import QueryDeckSettings, load_settings
from querydeck.connectors.duckdb import DuckDBConnector
from querydeck.engine.router import ExecutionRouter

_ENV = (
    "QUERYDECK_CONFIG",
    "QUERYDECK_DETECTION_MODE",
    "QUERYDECK_DEFAULT_ENGINE",
    "QUERYDECK_CHUNK_SIZE",
    "QUERYDECK_CACHE_PATH",
    "QUERYDECK_CACHE_ENABLED",
    "QUERYDECK_ACTIVE_CONNECTOR",
    "QUERYDECK_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    for name in _ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


def write(path, text):
    path.write_text(text, encoding="utf-8")
    return str(path)


class TestDefaults:
    def test_no_file_gives_defaults(self):
        s = load_settings()
        assert s == QueryDeckSettings()
        assert s.detection.mode == "auto"
        assert s.detection.default_engine == "duckdb"
        assert s.detection.min_switch_confidence == "medium"
        assert s.execution.virtual_table_threshold == 100
        assert s.execution.large_limit_threshold == 10_000
        assert s.execution.chunk_size == 1000
        assert s.execution.count_cache_ttl_seconds == 120
        assert s.cache.enabled is True
        assert s.cache.path is None
        assert s.active_connector == "duckdb"

    def test_validation(self):
        with pytest.raises(ValueError):
            QueryDeckSettings.model_validate({"execution": {"chunk_size": 0}})
        with pytest.raises(ValueError):
            QueryDeckSettings.model_validate({"detection": {"mode": "sometimes"}})


class TestLoader:
    def test_local_file_is_discovered(self, isolated):
        write(isolated / "querydeck.yml", "detection:\n  mode: suggest\n")
        assert load_settings().detection.mode == "suggest"

    def test_explicit_path(self, isolated):
        path = write(
            isolated / "custom.yml",
            """
execution:
  chunk_size: 250
connectors:
  local:
    type: duckdb
    params:
      database: ":memory:"
active_connector: local
""",
        )
        s = load_settings(path)
        assert s.execution.chunk_size == 250
        assert s.connectors["local"].type == "duckdb"
        assert s.connectors["local"].params == {"database": ":memory:"}
        assert s.active_connector == "local"

    def test_bare_yaml_off(self, isolated):
        write(isolated / "querydeck.yml", "detection:\n  mode: off\n")
        assert load_settings().detection.mode == "off"

    def test_config_env_var(self, isolated, monkeypatch):
        path = write(isolated / "env.yml", "log_level: DEBUG\n")
        monkeypatch.setenv("QUERYDECK_CONFIG", path)
        assert load_settings().log_level == "DEBUG"

    def test_missing_explicit_file(self):
        with pytest.raises(FileNotFoundError):
            load_settings("nope.yml")

    def test_missing_env_file(self, monkeypatch):
        monkeypatch.setenv("QUERYDECK_CONFIG", "gone.yml")
        with pytest.raises(FileNotFoundError, match="QUERYDECK_CONFIG"):
            load_settings()

    def test_empty_file(self, isolated):
        path = write(isolated / "empty.yml", "")
        assert load_settings(path) == QueryDeckSettings()

    def test_non_mapping(self, isolated):
        path = write(isolated / "list.yml", "- a\n- b\n")
        with pytest.raises(ValueError, match="mapping"):
            load_settings(path)

    def test_malformed_yaml(self, isolated):
        path = write(isolated / "broken.yml", "detection: [unclosed\n")
        with pytest.raises(ValueError, match="not valid YAML"):
            load_settings(path)

    def test_empty_section_means_defaults(self, isolated):
        path = write(isolated / "sparse.yml", "detection:\nexecution:\n  chunk_size: 20\n")
        s = load_settings(path)
        assert s.detection.mode == "auto"
        assert s.execution.chunk_size == 20

    def test_env_override_into_empty_section(self, isolated, monkeypatch):
        path = write(isolated / "sparse.yml", "detection:\n")
        monkeypatch.setenv("QUERYDECK_DETECTION_MODE", "suggest")
        assert load_settings(path).detection.mode == "suggest"

    def test_invalid_values_name_the_source(self, isolated):
        path = write(isolated / "bad.yml", "execution:\n  chunk_size: -5\n")
        with pytest.raises(ValueError, match="bad.yml"):
            load_settings(path)


class TestEnvOverrides:
    def test_env_beats_file(self, isolated, monkeypatch):
        path = write(isolated / "q.yml", "detection:\n  mode: suggest\nexecution:\n  chunk_size: 10\n")
        monkeypatch.setenv("QUERYDECK_DETECTION_MODE", "off")
        monkeypatch.setenv("QUERYDECK_CHUNK_SIZE", "500")
        s = load_settings(path)
        assert s.detection.mode == "off"
        assert s.execution.chunk_size == 500

    def test_top_level_and_bool(self, monkeypatch):
        monkeypatch.setenv("QUERYDECK_ACTIVE_CONNECTOR", "postgres")
        monkeypatch.setenv("QUERYDECK_CACHE_ENABLED", "false")
        s = load_settings()
        assert s.active_connector == "postgres"
        assert s.cache.enabled is False

    def test_empty_env_value_ignored(self, monkeypatch):
        monkeypatch.setenv("QUERYDECK_DETECTION_MODE", "")
        assert load_settings().detection.mode == "auto"

    def test_invalid_env_value(self, monkeypatch):
        monkeypatch.setenv("QUERYDECK_DETECTION_MODE", "maybe")
        with pytest.raises(ValueError, match="environment"):
            load_settings()


class TestRouterFromSettings:
    def test_declared_connectors_are_registered(self, isolated):
        path = write(
            isolated / "q.yml",
            "connectors:\n  warehouse:\n    type: duckdb\nactive_connector: warehouse\ncache:\n  enabled: false\n",
        )
        r = ExecutionRouter.from_settings(load_settings(path))
        assert r.connectors == ["warehouse"]
        assert isinstance(r.get_connector(), DuckDBConnector)
        assert r.result_cache is None

    def test_package_router_adds_default_connector(self):
        r = build_router()
        assert r.connectors == ["duckdb"]
        assert r.active_connector_id == "duckdb"
        assert r.result_cache is not None
        run(r.close())
