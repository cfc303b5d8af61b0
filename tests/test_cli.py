"""CLI tests using click's CliRunner."""

from __future__ import annotations

import json

import pytest
import yaml
from click.testing import CliRunner

from binship.main import cli


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "binship.yml"
    path.write_text(
        yaml.safe_dump(
            {
                "project": {"name": "api", "path": "."},
                "deploy": {"host": "10.0.0.5", "user": "deploy", "password": "secret"},
                "monitor": {"health_endpoint": "http://10.0.0.5:8080/health"},
            }
        )
    )
    return path


class TestInitAndValidate:
    def test_init_creates_loadable_config(self, runner, tmp_path) -> None:
        target = tmp_path / "binship.yml"

        result = runner.invoke(cli, ["--config", str(target), "init", "--name", "api", "--host", "10.0.0.5"])

        assert result.exit_code == 0, result.output
        assert "project:" in target.read_text()

        result = runner.invoke(cli, ["--config", str(target), "validate"])
        assert result.exit_code == 0, result.output
        assert "Configuration is valid" in result.output

    def test_init_refuses_to_overwrite(self, runner, config_file) -> None:
        result = runner.invoke(cli, ["--config", str(config_file), "init"])

        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_validate_json_reports_errors(self, runner, tmp_path) -> None:
        target = tmp_path / "binship.yml"
        target.write_text(yaml.safe_dump({"project": {"name": "api"}}))

        result = runner.invoke(cli, ["--config", str(target), "validate", "--json"])

        assert result.exit_code == 1
        payload = json.loads(result.output)
        assert payload["valid"] is False
        assert "Missing required field: 'deploy.host'" in payload["errors"]

    def test_missing_config_exits_1(self, runner, tmp_path) -> None:
        result = runner.invoke(cli, ["--config", str(tmp_path / "nope.yml"), "validate"])

        assert result.exit_code == 1
        assert "Config file not found" in result.output


class TestDryRun:
    def test_dry_run_deploy_succeeds_without_remote(self, runner, config_file) -> None:
        result = runner.invoke(cli, ["--config", str(config_file), "--dry-run", "deploy"])

        assert result.exit_code == 0, result.output
        assert "would upload api" in result.output
        assert "would be deployed" in result.output
        assert list((config_file.parent / ".binship" / "logs").rglob("*_deploy.log"))

    def test_dry_run_build(self, runner, config_file) -> None:
        result = runner.invoke(cli, ["--config", str(config_file), "build", "--dry-run"])

        assert result.exit_code == 0, result.output
        assert "Dry run complete" in result.output

    def test_check_rebuild_json(self, runner, config_file) -> None:
        result = runner.invoke(cli, ["--config", str(config_file), "check-rebuild", "--json"])

        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["needs_rebuild"] is True
        assert payload["exists"] is False


def test_version(runner) -> None:
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "1.0.0" in result.output
