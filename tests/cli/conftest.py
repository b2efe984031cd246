"""Fixtures for CLI interface tests."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from kite.cli import cli


@pytest.fixture(autouse=True)
def _reset_kite_logger() -> Generator[None, None, None]:
    """get_db() attaches a file handler per project; drop it after each test."""
    yield
    logger = logging.getLogger("kite")
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def cli_in_project(tmp_path: Path, cli_runner: CliRunner) -> Generator[tuple[CliRunner, Path], None, None]:
    """Initialize a kite project in tmp_path and return (runner, project_root)."""
    original_cwd = os.getcwd()
    os.chdir(str(tmp_path))
    result = cli_runner.invoke(cli, ["init", "--instance", "ci"])
    assert result.exit_code == 0
    yield cli_runner, tmp_path
    os.chdir(original_cwd)


REPORT_ARGS = ["--type", "pipeline", "-n", "team-a", "--resource-type", "pipelinerun", "--resource-name", "build-1"]


def report_json(runner: CliRunner, title: str = "Build failed", *extra: str) -> dict[str, Any]:
    """Run ``kite report --json`` and return the parsed issue."""
    result = runner.invoke(cli, ["report", title, *REPORT_ARGS, *extra, "--json"])
    assert result.exit_code == 0, result.output
    data: dict[str, Any] = json.loads(result.output)
    return data
