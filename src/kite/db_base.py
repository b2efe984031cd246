"""Shared utilities, types, and Protocol for DB mixins."""

from __future__ import annotations

import contextlib
import sqlite3
import uuid
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from kite.errors import StorageError

if TYPE_CHECKING:
    from kite.context import OperationContext
    from kite.core import Issue


def _to_iso(value: datetime) -> str:
    """Render a timestamp as UTC ISO-8601 with fixed microsecond precision.

    Fixed precision keeps lexical order equal to chronological order, which
    ``ORDER BY detected_at`` relies on. Naive datetimes are taken as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _now_iso() -> str:
    return _to_iso(datetime.now(UTC))


def _new_id() -> str:
    return str(uuid.uuid4())


@contextlib.contextmanager
def storage_step(description: str) -> Iterator[None]:
    """Wrap sqlite3 errors raised by one step as StorageError naming the step."""
    try:
        yield
    except sqlite3.Error as exc:
        msg = f"failed to {description}: {exc}"
        raise StorageError(msg) from exc


class DBMixinProtocol(Protocol):
    """Shared attributes and methods that DB mixins access via self.

    Mixins inherit this Protocol so mypy can type-check self.conn,
    self._transaction(), etc. without ``type: ignore`` on every call.
    Actual implementations are provided by KiteDB at composition time.
    """

    db_path: Path
    instance: str
    issue_types: frozenset[str]

    @property
    def conn(self) -> sqlite3.Connection: ...

    def _transaction(
        self, operation: str, ctx: OperationContext | None = None
    ) -> contextlib.AbstractContextManager[sqlite3.Connection]: ...

    def _bounded(
        self, operation: str, ctx: OperationContext | None = None
    ) -> contextlib.AbstractContextManager[sqlite3.Connection]: ...

    def _build_issues_batch(self, issue_ids: list[str]) -> list[Issue]: ...
