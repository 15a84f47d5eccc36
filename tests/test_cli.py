# tests/test_cli.py
"""
CLI tests through typer's CliRunner against in-memory and file DuckDB databases.
"""

import json

import duckdb
import pytest
from typer.testing import CliRunner

from querydeck.cli.constants import EXIT_CONFIG_ERROR, EXIT_ROUTING_BLOCKED, EXIT_RUNTIME_ERROR
from querydeck.cli.main import app

runner = CliRunner()

BIGQUERY_SQL = "SELECT SAFE_DIVIDE(a, b) FROM `proj.ds.events`"


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    for name in ("QUERYDECK_CONFIG", "QUERYDECK_DETECTION_MODE", "QUERYDECK_ACTIVE_CONNECTOR"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def db_file(tmp_path):
    path = tmp_path / "shop.duckdb"
    con = duckdb.connect(str(path))
    con.execute("CREATE TABLE orders (id INTEGER, amount DOUBLE)")
    con.execute("INSERT INTO orders SELECT i, i * 1.5 FROM range(1, 301) t(i)")
    con.close()
    return str(path)


def invoke(*args):
    return runner.invoke(app, list(args))


class TestGlobal:
    def test_version(self):
        result = invoke("--version")
        assert result.exit_code == 0
        assert "querydeck 0.3.0" in result.stdout

    def test_no_command_prints_help(self):
        result = invoke()
        assert result.exit_code == 0
        assert "detect" in result.stdout


class TestDetect:
    def test_json(self):
        result = invoke("detect", BIGQUERY_SQL, "-o", "json")
        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["engine"] == "bigquery"
        assert payload["confidence"] == "high"
        assert "SAFE_DIVIDE function" in payload["signals"]

    def test_rich(self):
        result = invoke("detect", "SELECT * FROM read_parquet('x.parquet')")
        assert result.exit_code == 0
        assert "Engine: duckdb" in result.stdout


class TestRun:
    def test_json_output(self):
        result = invoke("run", "SELECT 42 AS answer", "-o", "json")
        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert payload["rows"] == [{"answer": 42}]
        assert payload["connector"] == "duckdb"
        assert payload["columns"][0]["name"] == "answer"

    def test_max_rows_limits_output(self):
        result = invoke("run", "SELECT i FROM range(500) t(i)", "-n", "10", "-o", "json")
        assert result.exit_code == 0, result.output
        assert len(json.loads(result.stdout)["rows"]) == 10

    def test_database_file(self, db_file):
        result = invoke("run", "SELECT count(*) AS n FROM orders", "-d", db_file, "-o", "json")
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["rows"] == [{"n": 300}]

    def test_rich_table(self, db_file):
        result = invoke("run", "SELECT id, amount FROM orders ORDER BY id LIMIT 3", "-d", db_file)
        assert result.exit_code == 0, result.output
        assert "amount" in result.stdout
        assert "connector=duckdb" in result.stdout

    def test_routing_blocked(self):
        result = invoke("run", BIGQUERY_SQL, "--detect", "suggest")
        assert result.exit_code == EXIT_ROUTING_BLOCKED

    def test_query_error(self):
        result = invoke("run", "SELECT * FROM missing_table")
        assert result.exit_code == EXIT_RUNTIME_ERROR

    def test_unknown_connector(self):
        result = invoke("run", "SELECT 1", "--connector", "oracle")
        assert result.exit_code == EXIT_CONFIG_ERROR

    def test_missing_config_file(self):
        result = invoke("run", "SELECT 1", "--config", "missing.yml")
        assert result.exit_code == EXIT_CONFIG_ERROR

    def test_malformed_config_file(self, isolated):
        (isolated / "querydeck.yml").write_text("detection: [unclosed\n", encoding="utf-8")
        result = invoke("run", "SELECT 1")
        assert result.exit_code == EXIT_CONFIG_ERROR

    def test_config_file_detection_off(self, isolated):
        (isolated / "querydeck.yml").write_text("detection:\n  mode: \"off\"\n", encoding="utf-8")
        result = invoke("run", "SELECT 1 AS x", "-o", "json")
        assert result.exit_code == 0, result.output


class TestCountAndSchema:
    def test_count(self, db_file):
        result = invoke("count", "SELECT * FROM orders", "-d", db_file)
        assert result.exit_code == 0, result.output
        assert "rows (estimated)" in result.stdout or "Row count unknown" in result.stdout

    def test_schema_json(self, db_file):
        result = invoke("schema", "-d", db_file, "-o", "json")
        assert result.exit_code == 0, result.output
        tables = json.loads(result.stdout)["tables"]
        orders = next(t for t in tables if t["name"] == "orders")
        assert [c["name"] for c in orders["columns"]] == ["id", "amount"]

    def test_schema_empty_database(self):
        result = invoke("schema")
        assert result.exit_code == 0
        assert "No tables found." in result.stdout
