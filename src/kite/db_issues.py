"""IssuesMixin — the issue lifecycle: create-or-update, update, delete, bulk resolve.

All methods access ``self.conn``, ``self._transaction()`` etc. via Python's
MRO when composed into ``KiteDB``. Every public mutation is exactly one
``BEGIN IMMEDIATE ... COMMIT`` unit; any failure inside rolls the whole
unit back.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import TYPE_CHECKING, Any

from kite.db_base import DBMixinProtocol, _new_id, _now_iso, _to_iso, storage_step
from kite.db_dedup import dedup_key, report_dedup_key
from kite.errors import ConflictError, IssueNotFoundError, StorageError, ValidationError
from kite.types.inputs import UNSET, IssueUpdate
from kite.validation import validate_issue_id, validate_report, validate_scope_selector, validate_update

if TYPE_CHECKING:
    from kite.context import OperationContext
    from kite.core import Issue
    from kite.types.inputs import IssueReport, LinkInput

logger = logging.getLogger(__name__)

# Plain columns an IssueUpdate may set directly.
_SIMPLE_FIELDS = ("title", "description", "severity", "issue_type", "namespace")


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class IssuesMixin(DBMixinProtocol):
    """Issue lifecycle operations.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    Actual implementations provided by ``KiteDB`` at composition time via MRO.
    """

    if TYPE_CHECKING:
        # From DedupMixin
        def _find_duplicate_in_tx(self, report: IssueReport) -> str | None: ...

    # -- Create ---------------------------------------------------------------

    def create_or_update_issue(self, report: IssueReport, ctx: OperationContext | None = None) -> Issue:
        """Record *report*, merging it into the existing issue for the same problem.

        Concurrent callers reporting the same problem all converge on one row.
        A duplicate takes the report's links when the report carries any.
        """
        return self._upsert(report, operation="create_or_update_issue", carry_links=True, ctx=ctx)

    def create_issue(self, report: IssueReport, ctx: OperationContext | None = None) -> Issue:
        """Like ``create_or_update_issue`` but a duplicate keeps its existing links."""
        return self._upsert(report, operation="create_issue", carry_links=False, ctx=ctx)

    def _upsert(self, report: IssueReport, *, operation: str, carry_links: bool, ctx: OperationContext | None) -> Issue:
        validate_report(report, self.issue_types)
        start = time.monotonic()
        now = _now_iso()
        created = False
        changed: list[str] = []
        with self._transaction(operation, ctx):
            issue_id = self._find_duplicate_in_tx(report)
            if issue_id is None:
                issue_id = self._insert_issue_in_tx(report, now)
                if issue_id is not None:
                    created = True
                else:
                    # Another writer committed the same key first.
                    issue_id = self._find_duplicate_in_tx(report)
                    if issue_id is None:
                        msg = f"issue for key {report_dedup_key(report)} vanished after insert conflict"
                        raise StorageError(msg)
            if not created:
                changes = IssueUpdate.from_report(report, include_links=carry_links)
                changed = self._apply_update_in_tx(issue_id, changes, now)
            issue = self._load_in_tx(issue_id)

        if created:
            logger.info(
                "Created issue %s",
                issue_id,
                extra={"operation": operation, "issue_id": issue_id, "duration_ms": _elapsed_ms(start)},
            )
        else:
            logger.info(
                "Updated duplicate issue %s",
                issue_id,
                extra={"operation": operation, "issue_id": issue_id, "fields": changed, "duration_ms": _elapsed_ms(start)},
            )
        return issue

    def _insert_issue_in_tx(self, report: IssueReport, now: str) -> str | None:
        """Insert scope, issue and links. Returns None if the dedup key is already taken."""
        conn = self.conn
        issue_id = _new_id()
        scope_id = _new_id()
        with storage_step("insert scope"):
            conn.execute(
                "INSERT INTO issue_scopes (id, resource_type, resource_name, resource_namespace) VALUES (?, ?, ?, ?)",
                (scope_id, report.scope.resource_type, report.scope.resource_name, report.resource_namespace),
            )

        state = report.state or "ACTIVE"
        resolved_at: str | None = None
        if state == "RESOLVED":
            resolved_at = _to_iso(report.resolved_at) if report.resolved_at is not None else now

        with storage_step("insert issue"):
            cursor = conn.execute(
                "INSERT INTO issues (id, title, description, severity, issue_type, state, instance, "
                "detected_at, resolved_at, namespace, scope_id, dedup_key, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(dedup_key) DO NOTHING",
                (
                    issue_id,
                    report.title,
                    report.description,
                    report.severity,
                    report.issue_type,
                    state,
                    self.instance,
                    now,
                    resolved_at,
                    report.namespace,
                    scope_id,
                    report_dedup_key(report),
                    now,
                    now,
                ),
            )
        if cursor.rowcount == 0:
            with storage_step("discard unused scope"):
                conn.execute("DELETE FROM issue_scopes WHERE id = ?", (scope_id,))
            return None

        self._insert_links_in_tx(issue_id, report.links or [])
        return issue_id

    def _insert_links_in_tx(self, issue_id: str, links: list[LinkInput]) -> None:
        if not links:
            return
        with storage_step("insert links"):
            self.conn.executemany(
                "INSERT INTO links (id, title, url, issue_id) VALUES (?, ?, ?, ?)",
                [(_new_id(), link.title, link.url, issue_id) for link in links],
            )

    def _load_in_tx(self, issue_id: str) -> Issue:
        with storage_step("load issue"):
            issues = self._build_issues_batch([issue_id])
        if not issues:
            raise IssueNotFoundError(issue_id)
        return issues[0]

    # -- Update ---------------------------------------------------------------

    def _apply_update_in_tx(self, issue_id: str, changes: IssueUpdate, now: str) -> list[str]:
        """Apply a sparse change set to one issue. Returns the names of fields whose value changed.

        Validates everything that depends on stored state before the first
        write, so a rejected change leaves nothing to roll back.
        """
        conn = self.conn
        with storage_step("load issue for update"):
            row = conn.execute(
                "SELECT i.*, s.resource_type, s.resource_name, s.resource_namespace "
                "FROM issues i JOIN issue_scopes s ON s.id = i.scope_id WHERE i.id = ?",
                (issue_id,),
            ).fetchone()
        if row is None:
            raise IssueNotFoundError(issue_id)

        updates: list[str] = ["updated_at = ?"]
        params: list[Any] = [now]
        changed: list[str] = []

        for name in _SIMPLE_FIELDS:
            value = getattr(changes, name)
            if value is UNSET:
                continue
            updates.append(f"{name} = ?")
            params.append(value)
            if value != row[name]:
                changed.append(name)

        # --- State and resolution time ---
        explicit_resolved = changes.resolved_at if isinstance(changes.resolved_at, datetime) else None
        if changes.state is not UNSET:
            updates.append("state = ?")
            params.append(changes.state)
            if changes.state != row["state"]:
                changed.append("state")
        if changes.state == "RESOLVED" and row["state"] != "RESOLVED":
            new_resolved: str | None = _to_iso(explicit_resolved) if explicit_resolved is not None else now
        elif explicit_resolved is not None:
            if row["resolved_at"] is None and changes.state != "RESOLVED":
                msg = f"Cannot set resolved_at on issue {issue_id}: it has never been resolved"
                raise ValidationError(msg)
            new_resolved = _to_iso(explicit_resolved)
        else:
            new_resolved = None
        if new_resolved is not None:
            updates.append("resolved_at = ?")
            params.append(new_resolved)
            if new_resolved != row["resolved_at"]:
                changed.append("resolved_at")

        # --- Identity: recompute the dedup key and refuse collisions ---
        scope_changes = changes.scope.present()
        new_key = dedup_key(
            changes.namespace if changes.namespace is not UNSET else row["namespace"],
            changes.issue_type if changes.issue_type is not UNSET else row["issue_type"],
            scope_changes.get("resource_type", row["resource_type"]),
            scope_changes.get("resource_name", row["resource_name"]),
            scope_changes.get("resource_namespace", row["resource_namespace"]),
        )
        if new_key != row["dedup_key"]:
            with storage_step("check identity collision"):
                clash = conn.execute("SELECT id FROM issues WHERE dedup_key = ? AND id <> ?", (new_key, issue_id)).fetchone()
            if clash is not None:
                msg = f"Issue {issue_id} would duplicate existing issue {clash['id']}"
                raise ConflictError(msg)
            updates.append("dedup_key = ?")
            params.append(new_key)

        # --- All checks passed — now write ---
        if scope_changes:
            assignments = ", ".join(f"{name} = ?" for name in scope_changes)
            with storage_step("update scope"):
                conn.execute(f"UPDATE issue_scopes SET {assignments} WHERE id = ?", [*scope_changes.values(), row["scope_id"]])
            changed.extend(f"scope.{name}" for name, value in scope_changes.items() if value != row[name])

        params.append(issue_id)
        with storage_step("update issue"):
            conn.execute(f"UPDATE issues SET {', '.join(updates)} WHERE id = ?", params)

        if changes.links is not UNSET:
            with storage_step("delete links"):
                conn.execute("DELETE FROM links WHERE issue_id = ?", (issue_id,))
            self._insert_links_in_tx(issue_id, changes.links)
            changed.append("links")
        return changed

    def update_issue(self, issue_id: str, changes: IssueUpdate, ctx: OperationContext | None = None) -> Issue:
        """Apply *changes* to an existing issue; only present fields are touched."""
        issue_id = validate_issue_id(issue_id)
        validate_update(changes, self.issue_types)
        start = time.monotonic()
        with self._transaction("update_issue", ctx):
            changed = self._apply_update_in_tx(issue_id, changes, _now_iso())
            issue = self._load_in_tx(issue_id)
        logger.info(
            "Updated issue %s",
            issue_id,
            extra={"operation": "update_issue", "issue_id": issue_id, "fields": changed, "duration_ms": _elapsed_ms(start)},
        )
        return issue

    # -- Delete ---------------------------------------------------------------

    def delete_issue(self, issue_id: str, ctx: OperationContext | None = None) -> None:
        """Remove an issue with its relationships, links and scope."""
        issue_id = validate_issue_id(issue_id)
        with self._transaction("delete_issue", ctx) as conn:
            with storage_step("look up issue"):
                row = conn.execute("SELECT scope_id FROM issues WHERE id = ?", (issue_id,)).fetchone()
            if row is None:
                raise IssueNotFoundError(issue_id)
            with storage_step("delete relationships"):
                edges = conn.execute("DELETE FROM related_issues WHERE source_id = ? OR target_id = ?", (issue_id, issue_id)).rowcount
            with storage_step("delete links"):
                links = conn.execute("DELETE FROM links WHERE issue_id = ?", (issue_id,)).rowcount
            with storage_step("delete issue"):
                conn.execute("DELETE FROM issues WHERE id = ?", (issue_id,))
            with storage_step("delete scope"):
                conn.execute("DELETE FROM issue_scopes WHERE id = ?", (row["scope_id"],))
        logger.info(
            "Deleted issue %s (%d links, %d relationships)",
            issue_id,
            links,
            edges,
            extra={"operation": "delete_issue", "issue_id": issue_id},
        )

    # -- Bulk resolve ---------------------------------------------------------

    def resolve_by_scope(
        self,
        resource_type: str,
        resource_name: str,
        namespace: str,
        ctx: OperationContext | None = None,
    ) -> int:
        """Resolve every ACTIVE issue in *namespace* whose scope matches. Returns how many changed.

        Zero is a normal outcome: the resource may simply have had no open issues.
        """
        resource_type, resource_name, namespace = validate_scope_selector(resource_type, resource_name, namespace)
        now = _now_iso()
        with self._transaction("resolve_by_scope", ctx) as conn:
            with storage_step("resolve issues"):
                count = conn.execute(
                    "UPDATE issues SET state = 'RESOLVED', resolved_at = ?, updated_at = ? "
                    "WHERE state = 'ACTIVE' AND namespace = ? AND scope_id IN "
                    "(SELECT id FROM issue_scopes WHERE resource_type = ? AND resource_name = ?)",
                    (now, now, namespace, resource_type, resource_name),
                ).rowcount
        if count:
            logger.info(
                "Resolved %d issue(s) for %s/%s in %s",
                count,
                resource_type,
                resource_name,
                namespace,
                extra={"operation": "resolve_by_scope"},
            )
        return count
