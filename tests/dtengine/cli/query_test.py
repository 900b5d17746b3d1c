"""Tests for the dtengine.cli query commands (list, run, warm)."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import click
import pytest
import yaml
from click.testing import CliRunner

from dtengine.cli import cli
from dtengine.cli.query import parse_month_range, parse_variables_option
from dtengine.errors import ExecutionError, ResolutionError
from dtengine.query import QueryDefinition
from dtengine.values import MonthRange, SortConfig, SortDirection


def _write_definition(data_dir: Path, name: str, data: dict) -> None:
    path = data_dir / "queries" / f"{name}.yaml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.dump(data))


def _mock_engine(engine_cls: MagicMock) -> MagicMock:
    engine = MagicMock()
    engine_cls.return_value.__enter__.return_value = engine
    return engine


class TestParseOptions:
    """Tests for parse_month_range and parse_variables_option."""

    def test_month_range(self):
        assert parse_month_range(None, None) is None
        assert parse_month_range("2024-03", None) == MonthRange.of("2024-03", "2024-03")
        assert parse_month_range("2024-05", "2024-01") == MonthRange.of("2024-01", "2024-05")

    def test_invalid_month(self):
        with pytest.raises(click.BadParameter, match="expected YYYY-MM"):
            parse_month_range("2024-1", None)

    def test_variables(self):
        assert parse_variables_option(("limit=10", "name=acme", "ids=[1, 2]", "flag=true")) == {
            "limit": 10,
            "name": "acme",
            "ids": [1, 2],
            "flag": True,
        }

    def test_invalid_variable(self):
        with pytest.raises(click.BadParameter, match="expected NAME=VALUE"):
            parse_variables_option(("limit",))


class TestQueryList:
    """Tests for dtengine query list."""

    def test_no_definitions(self, tmp_path: Path):
        runner = CliRunner()
        result = runner.invoke(cli, ["query", "list", "-d", str(tmp_path)])
        assert result.exit_code == 0
        assert "No query definitions found." in result.output

    def test_lists_definitions(self, tmp_path: Path):
        _write_definition(tmp_path, "sales", {"body": "SALES", "month": True, "clientSave": True})
        _write_definition(tmp_path, "leads", {"body": "LEADS", "urlKey": "crm"})
        runner = CliRunner()
        result = runner.invoke(cli, ["query", "list", "-d", str(tmp_path)])
        assert result.exit_code == 0
        assert "sales" in result.output
        assert "leads" in result.output
        assert "crm" in result.output


class TestQueryRun:
    """Tests for dtengine query run."""

    @patch("dtengine.cli.query_run.DataEngine")
    def test_success(self, engine_cls: MagicMock, tmp_path: Path):
        engine = _mock_engine(engine_cls)
        engine.orchestrator.load_from_cache.return_value = {"deals": [{"id": 1}, {"id": 2}], "total": 2}
        runner = CliRunner()
        result = runner.invoke(
            cli,
            [
                "query",
                "run",
                "sales",
                "-d",
                str(tmp_path),
                "--start",
                "2024-01",
                "--end",
                "2024-02",
                "--var",
                "limit=10",
                "--sort",
                "amount:desc",
            ],
        )
        assert result.exit_code == 0, result.output
        assert "deals" in result.output
        engine.orchestrator.set_variables.assert_called_once_with({"limit": 10})
        engine.orchestrator.set_sort_config.assert_called_once_with(
            SortConfig(field="amount", direction=SortDirection.DESC)
        )
        engine.orchestrator.load_from_cache.assert_called_once_with(
            "sales", month_range=MonthRange.of("2024-01", "2024-02")
        )

    @patch("dtengine.cli.query_run.DataEngine")
    def test_failure(self, engine_cls: MagicMock, tmp_path: Path):
        engine = _mock_engine(engine_cls)
        engine.orchestrator.load_from_cache.side_effect = ExecutionError("boom")
        runner = CliRunner()
        result = runner.invoke(cli, ["query", "run", "sales", "-d", str(tmp_path)])
        assert result.exit_code == 1

    @patch("dtengine.cli.query_run.DataEngine")
    def test_superseded(self, engine_cls: MagicMock, tmp_path: Path):
        engine = _mock_engine(engine_cls)
        engine.orchestrator.load_from_cache.return_value = None
        runner = CliRunner()
        result = runner.invoke(cli, ["query", "run", "sales", "-d", str(tmp_path)])
        assert result.exit_code == 1

    @patch("dtengine.cli.query_run.DataEngine")
    def test_invalid_sort(self, engine_cls: MagicMock, tmp_path: Path):
        runner = CliRunner()
        result = runner.invoke(cli, ["query", "run", "sales", "--sort", "amount:up"])
        assert result.exit_code == 2
        assert "invalid sort direction" in result.output
        engine_cls.assert_not_called()


class TestQueryWarm:
    """Tests for dtengine query warm."""

    @patch("dtengine.cli.query_warm.DataEngine")
    def test_all_months(self, engine_cls: MagicMock, tmp_path: Path):
        engine = _mock_engine(engine_cls)
        engine.orchestrator.definition.return_value = QueryDefinition(id="sales", body="S", month=True)
        engine.orchestrator.warm_months.return_value.result.return_value = []
        runner = CliRunner()
        result = runner.invoke(
            cli,
            ["query", "warm", "sales", "-d", str(tmp_path), "--start", "2024-01", "--end", "2024-03"],
        )
        assert result.exit_code == 0, result.output
        assert "Warmed 3/3 month(s)." in result.output

    @patch("dtengine.cli.query_warm.DataEngine")
    def test_partial_failure(self, engine_cls: MagicMock, tmp_path: Path):
        engine = _mock_engine(engine_cls)
        engine.orchestrator.definition.return_value = QueryDefinition(id="sales", body="S", month=True)
        engine.orchestrator.warm_months.return_value.result.return_value = ["2024-02"]
        runner = CliRunner()
        result = runner.invoke(
            cli,
            ["query", "warm", "sales", "-d", str(tmp_path), "--start", "2024-01", "--end", "2024-03"],
        )
        assert result.exit_code == 1
        assert "Warmed 2/3 month(s)." in result.output
        assert "2024-02" in result.output

    @patch("dtengine.cli.query_warm.DataEngine")
    def test_not_monthly(self, engine_cls: MagicMock, tmp_path: Path):
        engine = _mock_engine(engine_cls)
        engine.orchestrator.definition.return_value = QueryDefinition(id="sales", body="S")
        runner = CliRunner()
        result = runner.invoke(
            cli,
            ["query", "warm", "sales", "-d", str(tmp_path), "--start", "2024-01", "--end", "2024-01"],
        )
        assert result.exit_code == 1
        assert "not partitioned by month" in result.output
        engine.orchestrator.warm_months.assert_not_called()

    @patch("dtengine.cli.query_warm.DataEngine")
    def test_unknown_query(self, engine_cls: MagicMock, tmp_path: Path):
        engine = _mock_engine(engine_cls)
        engine.orchestrator.definition.side_effect = ResolutionError("Query not found: sales")
        runner = CliRunner()
        result = runner.invoke(
            cli,
            ["query", "warm", "sales", "-d", str(tmp_path), "--start", "2024-01", "--end", "2024-01"],
        )
        assert result.exit_code == 1
        assert "Query not found: sales" in result.output
