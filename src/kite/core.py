"""Core database operations for the kite issue store.

Single source of truth for all SQLite operations. The CLI and any service
front-end import from this module. No daemon — just direct SQLite with WAL
mode and one connection per calling thread.

Covers the record dataclasses, convention-based project discovery, connection
and transaction management, and the ``KiteDB`` composition of the dedup,
lifecycle, relationship and query mixins.

Convention-based discovery: each project has a `.kite/` directory containing
`kite.db` (SQLite) and `config.json` (instance tag, log level, extra types).
"""

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from kite.context import PROGRESS_INTERVAL, OperationContext
from kite.db_base import storage_step
from kite.db_dedup import DedupMixin
from kite.db_issues import IssuesMixin
from kite.db_query import QueryMixin
from kite.db_relations import RelationsMixin
from kite.db_schema import CURRENT_SCHEMA_VERSION, SCHEMA_SQL
from kite.errors import KiteError, OperationAbortedError, StorageError
from kite.types.core import (
    BUILTIN_ISSUE_TYPES,
    IssueDict,
    IssueState,
    LinkDict,
    ProjectConfig,
    RelatedIssueDict,
    RelatedSummaryDict,
    ScopeDict,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Convention-based discovery
# ---------------------------------------------------------------------------

KITE_DIR_NAME = ".kite"
DB_FILENAME = "kite.db"
CONFIG_FILENAME = "config.json"

VALID_LOG_LEVELS: frozenset[str] = frozenset({"debug", "info", "warning", "error"})
DEFAULT_BUSY_TIMEOUT_MS = 5000


def find_kite_root(start: Path | None = None) -> Path:
    """Walk up from start (default cwd) looking for .kite/ directory.

    Returns the .kite/ directory path (not the project root).
    """
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / KITE_DIR_NAME
        if candidate.is_dir():
            return candidate
    msg = f"No {KITE_DIR_NAME}/ directory found in {current} or any parent"
    raise FileNotFoundError(msg)


def _default_config() -> ProjectConfig:
    return ProjectConfig(instance="", log_level="info", issue_types=[], busy_timeout_ms=DEFAULT_BUSY_TIMEOUT_MS, version=1)


def read_config(kite_dir: Path) -> ProjectConfig:
    """Read .kite/config.json. Returns defaults if missing or corrupt.

    Individually invalid values fall back to their defaults with a warning so
    one bad key never disables the rest of the file.
    """
    config = _default_config()
    config_path = kite_dir / CONFIG_FILENAME
    if not config_path.exists():
        return config
    try:
        raw = json.loads(config_path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return config
    if not isinstance(raw, dict):
        logger.warning("Ignoring %s: expected a JSON object", config_path)
        return config

    instance = raw.get("instance", "")
    if isinstance(instance, str):
        config["instance"] = instance
    else:
        logger.warning("Ignoring non-string 'instance' in %s", config_path)

    log_level = str(raw.get("log_level", "info")).lower()
    if log_level in VALID_LOG_LEVELS:
        config["log_level"] = log_level
    else:
        logger.warning("Unknown log_level '%s' in config, falling back to 'info'", log_level)

    issue_types = raw.get("issue_types", [])
    if isinstance(issue_types, list) and all(isinstance(t, str) and t.strip() for t in issue_types):
        config["issue_types"] = issue_types
    else:
        logger.warning("Ignoring malformed 'issue_types' in %s", config_path)

    busy_timeout = raw.get("busy_timeout_ms", DEFAULT_BUSY_TIMEOUT_MS)
    if isinstance(busy_timeout, int) and not isinstance(busy_timeout, bool) and busy_timeout >= 0:
        config["busy_timeout_ms"] = busy_timeout
    else:
        logger.warning("Ignoring invalid 'busy_timeout_ms' in %s", config_path)

    if isinstance(raw.get("version"), int):
        config["version"] = raw["version"]
    return config


def write_config(kite_dir: Path, config: dict[str, Any] | ProjectConfig) -> None:
    """Write .kite/config.json."""
    config_path = kite_dir / CONFIG_FILENAME
    config_path.write_text(json.dumps(config, indent=2) + "\n")


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass
class IssueScope:
    id: str
    resource_type: str
    resource_name: str
    resource_namespace: str

    def to_dict(self) -> ScopeDict:
        return {
            "id": self.id,
            "resource_type": self.resource_type,
            "resource_name": self.resource_name,
            "resource_namespace": self.resource_namespace,
        }


@dataclass
class Link:
    id: str
    title: str
    url: str
    issue_id: str

    def to_dict(self) -> LinkDict:
        return {"id": self.id, "title": self.title, "url": self.url, "issue_id": self.issue_id}


@dataclass
class RelatedSummary:
    """The counterpart of a relationship edge, with its own scope."""

    id: str
    title: str
    severity: str
    issue_type: str
    state: str
    namespace: str
    scope: IssueScope

    def to_dict(self) -> RelatedSummaryDict:
        return {
            "id": self.id,
            "title": self.title,
            "severity": self.severity,
            "issue_type": self.issue_type,
            "state": self.state,
            "namespace": self.namespace,
            "scope": self.scope.to_dict(),
        }


@dataclass
class RelatedIssue:
    id: str
    source_id: str
    target_id: str
    created_at: str = ""
    # Target when listed under related_from, source when listed under related_to.
    issue: RelatedSummary | None = None

    def to_dict(self) -> RelatedIssueDict:
        return {
            "id": self.id,
            "source_id": self.source_id,
            "target_id": self.target_id,
            "created_at": self.created_at,
            "issue": self.issue.to_dict() if self.issue is not None else None,
        }


@dataclass
class Issue:
    id: str
    title: str
    severity: str
    issue_type: str
    namespace: str
    scope: IssueScope
    description: str = ""
    state: IssueState = "ACTIVE"
    instance: str = ""
    detected_at: str = ""
    resolved_at: str | None = None
    created_at: str = ""
    updated_at: str = ""
    links: list[Link] = field(default_factory=list)
    related_from: list[RelatedIssue] = field(default_factory=list)
    related_to: list[RelatedIssue] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.state == "ACTIVE"

    def to_dict(self) -> IssueDict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "severity": self.severity,
            "issue_type": self.issue_type,
            "state": self.state,
            "instance": self.instance,
            "namespace": self.namespace,
            "detected_at": self.detected_at,
            "resolved_at": self.resolved_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "scope_id": self.scope.id,
            "scope": self.scope.to_dict(),
            "links": [link.to_dict() for link in self.links],
            "related_from": [rel.to_dict() for rel in self.related_from],
            "related_to": [rel.to_dict() for rel in self.related_to],
        }


def _casefold(value: str | None) -> str | None:
    """SQL ``casefold()``: Unicode-aware case folding; SQLite's own LOWER() only folds ASCII."""
    return value.casefold() if value is not None else None


# ---------------------------------------------------------------------------
# KiteDB — the core
# ---------------------------------------------------------------------------


class KiteDB(DedupMixin, IssuesMixin, RelationsMixin, QueryMixin):
    """Direct SQLite operations. Safe to share across threads; each thread gets its own connection.

    A connection belongs to the thread that opened it. Connections of threads
    that have since exited are closed the next time any thread opens one, and
    ``close()`` closes all of them.
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        instance: str = "",
        issue_types: list[str] | None = None,
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
    ) -> None:
        self.db_path = Path(db_path)
        self.instance = instance
        self.issue_types = BUILTIN_ISSUE_TYPES | frozenset(issue_types or ())
        self.busy_timeout_ms = busy_timeout_ms
        self._local = threading.local()
        # Owning thread -> its connection; entries of finished threads are closed lazily.
        self._connections: dict[threading.Thread, sqlite3.Connection] = {}
        self._connections_lock = threading.Lock()

    @classmethod
    def from_project(cls, project_path: Path | None = None) -> KiteDB:
        """Create a KiteDB by discovering .kite/ from project_path (or cwd)."""
        kite_dir = find_kite_root(project_path)
        config = read_config(kite_dir)
        db = cls(
            kite_dir / DB_FILENAME,
            instance=config.get("instance", ""),
            issue_types=config.get("issue_types"),
            busy_timeout_ms=config.get("busy_timeout_ms", DEFAULT_BUSY_TIMEOUT_MS),
        )
        db.initialize()
        return db

    def __enter__(self) -> KiteDB:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        conn: sqlite3.Connection | None = getattr(self._local, "conn", None)
        if conn is None:
            # Autocommit mode: write paths open their own BEGIN IMMEDIATE.
            # check_same_thread=False only so close() can reach every thread's connection.
            conn = sqlite3.connect(str(self.db_path), isolation_level=None, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
            conn.create_function("casefold", 1, _casefold, deterministic=True)
            self._local.conn = conn
            with self._connections_lock:
                self._reap_finished_threads()
                self._connections[threading.current_thread()] = conn
        return conn

    def _reap_finished_threads(self) -> None:
        """Close the connections of threads that have exited. Caller holds ``_connections_lock``."""
        for thread in [t for t in self._connections if not t.is_alive()]:
            self._connections.pop(thread).close()

    def initialize(self) -> None:
        """Create tables on a fresh database and stamp the schema version."""
        current_version = self.get_schema_version()
        if current_version > CURRENT_SCHEMA_VERSION:
            msg = f"Database {self.db_path} has schema v{current_version}; this kite supports up to v{CURRENT_SCHEMA_VERSION}"
            raise StorageError(msg)
        with storage_step("initialize schema"):
            self.conn.executescript(SCHEMA_SQL)
            self.conn.execute(f"PRAGMA user_version = {CURRENT_SCHEMA_VERSION}")

    def get_schema_version(self) -> int:
        """Return the current schema version from PRAGMA user_version."""
        result: int = self.conn.execute("PRAGMA user_version").fetchone()[0]
        return result

    def close(self) -> None:
        with self._connections_lock:
            connections = list(self._connections.values())
            self._connections = {}
        for conn in connections:
            conn.close()
        self._local = threading.local()

    # -- Execution bounds & transactions -------------------------------------

    @contextlib.contextmanager
    def _bounded(self, operation: str, ctx: OperationContext | None = None) -> Iterator[sqlite3.Connection]:
        """Run a block on this thread's connection, aborted when *ctx* expires or is cancelled."""
        conn = self.conn
        if ctx is None:
            yield conn
            return
        ctx.check(operation)
        conn.set_progress_handler(lambda: 1 if ctx.should_abort() else 0, PROGRESS_INTERVAL)
        remaining = ctx.remaining()
        if remaining is not None:
            conn.execute(f"PRAGMA busy_timeout={int(min(remaining * 1000, self.busy_timeout_ms))}")
        try:
            yield conn
        except (sqlite3.Error, StorageError) as exc:
            if isinstance(exc, OperationAbortedError) or not ctx.should_abort():
                raise
            msg = f"{operation}: aborted by execution context"
            raise OperationAbortedError(msg) from exc
        finally:
            conn.set_progress_handler(None, 0)
            if remaining is not None:
                conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")

    @contextlib.contextmanager
    def _transaction(self, operation: str, ctx: OperationContext | None = None) -> Iterator[sqlite3.Connection]:
        """One BEGIN IMMEDIATE ... COMMIT unit; any exception rolls everything back.

        IMMEDIATE takes SQLite's RESERVED lock up front, so rows read inside
        the block cannot be changed by another writer before this commits.
        """
        try:
            with self._bounded(operation, ctx) as conn:
                with storage_step(f"begin transaction for {operation}"):
                    conn.execute("BEGIN IMMEDIATE")
                try:
                    yield conn
                    with storage_step(f"commit {operation}"):
                        conn.execute("COMMIT")
                except BaseException:
                    conn.set_progress_handler(None, 0)
                    if conn.in_transaction:
                        conn.execute("ROLLBACK")
                    raise
        except StorageError:
            logger.error("%s failed", operation, exc_info=True, extra={"operation": operation})
            raise
        except KiteError as exc:
            logger.info("%s rejected: %s", operation, exc, extra={"operation": operation, "error": exc.code})
            raise

    def count_rows(self) -> dict[str, int]:
        """Row counts per relation, for diagnostics."""
        counts: dict[str, int] = {}
        for name, table in (("issues", "issues"), ("scopes", "issue_scopes"), ("links", "links"), ("related", "related_issues")):
            counts[name] = self.conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        return counts
