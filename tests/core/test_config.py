# tests/core/test_config.py
"""Tests for kite.core — config discovery, read/write, schema stamping, connections."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from pathlib import Path

import pytest

from kite.core import (
    CONFIG_FILENAME,
    DB_FILENAME,
    DEFAULT_BUSY_TIMEOUT_MS,
    KITE_DIR_NAME,
    KiteDB,
    find_kite_root,
    read_config,
    write_config,
)
from kite.db_schema import CURRENT_SCHEMA_VERSION
from kite.errors import StorageError
from tests._factories import make_report


class TestFindKiteRoot:
    def test_finds_in_cwd(self, kite_project: Path) -> None:
        assert find_kite_root(kite_project) == (kite_project / KITE_DIR_NAME).resolve()

    def test_finds_in_parent(self, kite_project: Path) -> None:
        nested = kite_project / "a" / "b"
        nested.mkdir(parents=True)
        assert find_kite_root(nested) == (kite_project / KITE_DIR_NAME).resolve()

    def test_missing_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match=r"No \.kite/ directory"):
            find_kite_root(tmp_path)


class TestReadConfig:
    def test_defaults_when_missing(self, tmp_path: Path) -> None:
        config = read_config(tmp_path)
        assert config["instance"] == ""
        assert config["log_level"] == "info"
        assert config["issue_types"] == []
        assert config["busy_timeout_ms"] == DEFAULT_BUSY_TIMEOUT_MS

    def test_round_trip(self, tmp_path: Path) -> None:
        write_config(tmp_path, {"instance": "prod-1", "log_level": "debug", "issue_types": ["security"], "busy_timeout_ms": 250})
        config = read_config(tmp_path)
        assert config["instance"] == "prod-1"
        assert config["log_level"] == "debug"
        assert config["issue_types"] == ["security"]
        assert config["busy_timeout_ms"] == 250

    def test_corrupt_json_falls_back(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("{not json")
        with caplog.at_level(logging.WARNING, logger="kite.core"):
            config = read_config(tmp_path)
        assert config["log_level"] == "info"
        assert "using defaults" in caplog.text

    def test_non_object_falls_back(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("[1, 2]")
        assert read_config(tmp_path)["instance"] == ""

    def test_invalid_values_fall_back_individually(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        (tmp_path / CONFIG_FILENAME).write_text(
            json.dumps({"instance": "ok", "log_level": "verbose", "issue_types": "security", "busy_timeout_ms": -5})
        )
        with caplog.at_level(logging.WARNING, logger="kite.core"):
            config = read_config(tmp_path)
        assert config["instance"] == "ok"
        assert config["log_level"] == "info"
        assert config["issue_types"] == []
        assert config["busy_timeout_ms"] == DEFAULT_BUSY_TIMEOUT_MS
        assert "verbose" in caplog.text

    def test_log_level_case_insensitive(self, tmp_path: Path) -> None:
        write_config(tmp_path, {"log_level": "WARNING"})
        assert read_config(tmp_path)["log_level"] == "warning"


class TestFromProject:
    def test_uses_config(self, kite_project: Path) -> None:
        kite_dir = kite_project / KITE_DIR_NAME
        write_config(kite_dir, {"instance": "east-1", "issue_types": ["security"], "version": 1})
        with KiteDB.from_project(kite_project) as db:
            assert db.db_path.resolve() == (kite_dir / DB_FILENAME).resolve()
            issue = db.create_or_update_issue(make_report(issue_type="security"))
            assert issue.instance == "east-1"

    def test_discovers_from_subdirectory(self, kite_project: Path) -> None:
        sub = kite_project / "src"
        sub.mkdir()
        with KiteDB.from_project(sub) as db:
            assert db.instance == "proj"


class TestSchema:
    def test_version_stamped(self, db: KiteDB) -> None:
        assert db.get_schema_version() == CURRENT_SCHEMA_VERSION

    def test_initialize_is_idempotent(self, db: KiteDB) -> None:
        issue = db.create_or_update_issue(make_report())
        db.initialize()
        assert db.get_issue(issue.id).id == issue.id

    def test_newer_schema_refused(self, tmp_path: Path) -> None:
        path = tmp_path / "future.db"
        conn = sqlite3.connect(str(path))
        conn.execute(f"PRAGMA user_version = {CURRENT_SCHEMA_VERSION + 1}")
        conn.close()
        with KiteDB(path) as db, pytest.raises(StorageError, match="schema"):
            db.initialize()

    def test_pragmas(self, db: KiteDB) -> None:
        assert db.conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"
        assert db.conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1
        assert db.conn.execute("PRAGMA busy_timeout").fetchone()[0] == DEFAULT_BUSY_TIMEOUT_MS

    def test_tables(self, db: KiteDB) -> None:
        names = {r[0] for r in db.conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()}
        assert {"issues", "issue_scopes", "links", "related_issues"} <= names


class TestConnections:
    def test_one_connection_per_thread(self, db: KiteDB) -> None:
        main = db.conn
        assert db.conn is main
        seen: list[sqlite3.Connection] = []
        t = threading.Thread(target=lambda: seen.append(db.conn))
        t.start()
        t.join()
        assert seen[0] is not main

    def test_close_then_reuse_opens_fresh_connection(self, db: KiteDB) -> None:
        first = db.conn
        db.close()
        assert db.conn is not first
        assert db.count_rows()["issues"] == 0

    def test_finished_threads_do_not_accumulate_connections(self, db: KiteDB) -> None:
        db.count_rows()
        for _ in range(20):
            t = threading.Thread(target=db.find_all)
            t.start()
            t.join()
        # Main thread plus at most the last finished worker, reaped on the next open.
        assert len(db._connections) <= 2
        assert db.count_rows()["issues"] == 0

    def test_live_thread_connection_kept(self, db: KiteDB) -> None:
        opened = threading.Event()
        release = threading.Event()
        results: list[int] = []

        def hold() -> None:
            conn = db.conn
            opened.set()
            release.wait(5)
            results.append(conn.execute("SELECT 1").fetchone()[0])

        worker = threading.Thread(target=hold)
        worker.start()
        assert opened.wait(5)
        for _ in range(2):
            churn = threading.Thread(target=db.find_all)
            churn.start()
            churn.join()
        assert worker in db._connections
        release.set()
        worker.join()
        assert results == [1]
