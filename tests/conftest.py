"""Shared pytest fixtures for kite tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from kite.core import DB_FILENAME, KITE_DIR_NAME, KiteDB, write_config
from tests._factories import link, make_report


@pytest.fixture
def db(tmp_path: Path) -> Generator[KiteDB, None, None]:
    """Fresh KiteDB for each test."""
    d = KiteDB(tmp_path / "kite.db", instance="test")
    d.initialize()
    yield d
    d.close()


@pytest.fixture
def populated_db(db: KiteDB) -> KiteDB:
    """KiteDB pre-populated with a representative issue set.

    Creates:
    - A: team-a pipelinerun/build-1, critical, ACTIVE, two links
    - B: team-a pipelinerun/build-2, minor, ACTIVE
    - C: team-b release/rel-1, major, RESOLVED
    - Relationship: A -> B
    """
    a = db.create_or_update_issue(
        make_report(
            "Build pipeline failed",
            severity="critical",
            description="Step compile exited 2",
            links=[link("logs"), link("run", "https://ci.example.com/runs/1")],
        )
    )
    b = db.create_or_update_issue(make_report("Flaky unit tests", severity="minor", issue_type="test", resource_name="build-2"))
    c = db.create_or_update_issue(
        make_report(
            "Release blocked",
            namespace="team-b",
            issue_type="release",
            resource_type="release",
            resource_name="rel-1",
            state="RESOLVED",
        )
    )
    db.add_related_issue(a.id, b.id)
    # Store IDs for easy access in tests
    db._test_ids: dict[str, str] = {"a": a.id, "b": b.id, "c": c.id}  # type: ignore[attr-defined]
    return db


@pytest.fixture
def kite_project(tmp_path: Path) -> Path:
    """A tmp directory set up as a kite project (.kite/ with config + db).

    Returns the project root (parent of .kite/).
    """
    kite_dir = tmp_path / KITE_DIR_NAME
    kite_dir.mkdir()
    write_config(kite_dir, {"instance": "proj", "log_level": "info", "version": 1})

    d = KiteDB(kite_dir / DB_FILENAME, instance="proj")
    d.initialize()
    d.close()
    return tmp_path


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()
