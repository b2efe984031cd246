"""CLI tests for relationship commands (relate, unrelate)."""

from __future__ import annotations

import json
from pathlib import Path

from click.testing import CliRunner

from kite.cli import cli
from tests.cli.conftest import report_json


def _two_issues(runner: CliRunner) -> tuple[str, str]:
    a = report_json(runner, "Build failed")
    b = report_json(runner, "Tests failed", "--resource-name", "build-2")
    return a["id"], b["id"]


class TestRelate:
    def test_relate(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        a, b = _two_issues(runner)
        result = runner.invoke(cli, ["relate", a, b])
        assert result.exit_code == 0
        assert f"Related: {a} <-> {b}" in result.output

    def test_relate_json_and_show(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        a, b = _two_issues(runner)
        edge = json.loads(runner.invoke(cli, ["relate", a, b, "--json"]).output)
        assert edge["source_id"] == a
        assert edge["target_id"] == b
        shown = runner.invoke(cli, ["show", b])
        assert "--- Related ---" in shown.output
        assert a in shown.output

    def test_reverse_duplicate_rejected(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        a, b = _two_issues(runner)
        runner.invoke(cli, ["relate", a, b])
        result = runner.invoke(cli, ["relate", b, a, "--json"])
        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["code"] == "conflict"
        assert "already exists" in data["error"]

    def test_self_relation_rejected(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        a, _ = _two_issues(runner)
        result = runner.invoke(cli, ["relate", a, a, "--json"])
        assert result.exit_code == 1
        assert json.loads(result.output)["code"] == "validation_error"

    def test_missing_issue(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        a, _ = _two_issues(runner)
        result = runner.invoke(cli, ["relate", a, "nope"])
        assert result.exit_code == 1
        assert "not found" in result.output


class TestUnrelate:
    def test_unrelate_either_direction(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        a, b = _two_issues(runner)
        runner.invoke(cli, ["relate", a, b])
        result = runner.invoke(cli, ["unrelate", b, a, "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output)["status"] == "removed"
        shown = json.loads(runner.invoke(cli, ["show", a, "--json"]).output)
        assert shown["related_from"] == []
        assert shown["related_to"] == []

    def test_unrelate_missing(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        a, b = _two_issues(runner)
        result = runner.invoke(cli, ["unrelate", a, b])
        assert result.exit_code == 1
        assert "relationship not found" in result.output
