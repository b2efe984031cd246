"""QueryMixin — loading fully-associated issues and filtered listing."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING, Any

from kite.db_base import DBMixinProtocol, storage_step
from kite.errors import IssueNotFoundError
from kite.types.inputs import IssueFilters
from kite.validation import validate_filters, validate_issue_id

if TYPE_CHECKING:
    from kite.context import OperationContext
    from kite.core import Issue, RelatedIssue

# Columns selected for the counterpart of an edge; ``o`` is the other issue, ``s`` its scope.
_COUNTERPART_COLUMNS = (
    "r.id AS edge_id, r.source_id, r.target_id, r.created_at AS edge_created_at, "
    "o.id AS other_id, o.title, o.severity, o.issue_type, o.state, o.namespace, "
    "s.id AS other_scope_id, s.resource_type, s.resource_name, s.resource_namespace"
)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class QueryMixin(DBMixinProtocol):
    """Read paths. Composed into ``KiteDB``."""

    def _build_issues_batch(self, issue_ids: list[str]) -> list[Issue]:
        """Build multiple Issues with their scope, links and both edge directions (batched, no N+1)."""
        from kite.core import Issue, IssueScope, Link

        if not issue_ids:
            return []

        placeholders = ",".join("?" * len(issue_ids))

        # 1. Issue rows joined with their scope
        rows_by_id: dict[str, sqlite3.Row] = {}
        for r in self.conn.execute(
            "SELECT i.*, s.resource_type, s.resource_name, s.resource_namespace "
            f"FROM issues i JOIN issue_scopes s ON s.id = i.scope_id WHERE i.id IN ({placeholders})",
            issue_ids,
        ).fetchall():
            rows_by_id[r["id"]] = r

        # 2. Links, in insertion order
        links_by_id: dict[str, list[Link]] = {iid: [] for iid in issue_ids}
        for r in self.conn.execute(
            f"SELECT id, title, url, issue_id FROM links WHERE issue_id IN ({placeholders}) ORDER BY rowid",
            issue_ids,
        ).fetchall():
            links_by_id[r["issue_id"]].append(Link(id=r["id"], title=r["title"], url=r["url"], issue_id=r["issue_id"]))

        # 3. Edges where these issues are the source; counterpart is the target
        related_from: dict[str, list[RelatedIssue]] = {iid: [] for iid in issue_ids}
        for r in self.conn.execute(
            f"SELECT {_COUNTERPART_COLUMNS} FROM related_issues r "
            "JOIN issues o ON o.id = r.target_id JOIN issue_scopes s ON s.id = o.scope_id "
            f"WHERE r.source_id IN ({placeholders}) ORDER BY r.created_at, r.rowid",
            issue_ids,
        ).fetchall():
            related_from[r["source_id"]].append(self._edge_from_row(r))

        # 4. Edges where these issues are the target; counterpart is the source
        related_to: dict[str, list[RelatedIssue]] = {iid: [] for iid in issue_ids}
        for r in self.conn.execute(
            f"SELECT {_COUNTERPART_COLUMNS} FROM related_issues r "
            "JOIN issues o ON o.id = r.source_id JOIN issue_scopes s ON s.id = o.scope_id "
            f"WHERE r.target_id IN ({placeholders}) ORDER BY r.created_at, r.rowid",
            issue_ids,
        ).fetchall():
            related_to[r["target_id"]].append(self._edge_from_row(r))

        # Build Issue objects preserving input order
        result: list[Issue] = []
        for iid in issue_ids:
            row = rows_by_id.get(iid)
            if row is None:
                continue
            result.append(
                Issue(
                    id=row["id"],
                    title=row["title"],
                    description=row["description"],
                    severity=row["severity"],
                    issue_type=row["issue_type"],
                    state=row["state"],
                    instance=row["instance"],
                    namespace=row["namespace"],
                    detected_at=row["detected_at"],
                    resolved_at=row["resolved_at"],
                    created_at=row["created_at"],
                    updated_at=row["updated_at"],
                    scope=IssueScope(
                        id=row["scope_id"],
                        resource_type=row["resource_type"],
                        resource_name=row["resource_name"],
                        resource_namespace=row["resource_namespace"],
                    ),
                    links=links_by_id.get(iid, []),
                    related_from=related_from.get(iid, []),
                    related_to=related_to.get(iid, []),
                )
            )
        return result

    @staticmethod
    def _edge_from_row(r: sqlite3.Row) -> RelatedIssue:
        from kite.core import IssueScope, RelatedIssue, RelatedSummary

        scope = IssueScope(
            id=r["other_scope_id"],
            resource_type=r["resource_type"],
            resource_name=r["resource_name"],
            resource_namespace=r["resource_namespace"],
        )
        return RelatedIssue(
            id=r["edge_id"],
            source_id=r["source_id"],
            target_id=r["target_id"],
            created_at=r["edge_created_at"],
            issue=RelatedSummary(
                id=r["other_id"],
                title=r["title"],
                severity=r["severity"],
                issue_type=r["issue_type"],
                state=r["state"],
                namespace=r["namespace"],
                scope=scope,
            ),
        )

    def find_by_id(self, issue_id: str, ctx: OperationContext | None = None) -> Issue | None:
        """Return the issue with its scope, links and relationships, or None if unknown."""
        issue_id = validate_issue_id(issue_id)
        with self._bounded("find_by_id", ctx), storage_step("load issue"):
            issues = self._build_issues_batch([issue_id])
        return issues[0] if issues else None

    def get_issue(self, issue_id: str, ctx: OperationContext | None = None) -> Issue:
        issue = self.find_by_id(issue_id, ctx)
        if issue is None:
            raise IssueNotFoundError(issue_id)
        return issue

    def find_all(self, filters: IssueFilters | None = None, ctx: OperationContext | None = None) -> tuple[list[Issue], int]:
        """List issues matching every given filter, newest detection first.

        Returns ``(page, total)`` where *total* counts all matches regardless
        of ``limit``/``offset``.
        """
        filters = validate_filters(filters or IssueFilters(), self.issue_types)
        conditions: list[str] = []
        params: list[Any] = []

        if filters.namespace is not None:
            conditions.append("i.namespace = ?")
            params.append(filters.namespace)
        if filters.severity is not None:
            conditions.append("i.severity = ?")
            params.append(filters.severity)
        if filters.issue_type is not None:
            conditions.append("i.issue_type = ?")
            params.append(filters.issue_type)
        if filters.state is not None:
            conditions.append("i.state = ?")
            params.append(filters.state)
        if filters.resource_type is not None:
            conditions.append("s.resource_type = ?")
            params.append(filters.resource_type)
        if filters.resource_name is not None:
            conditions.append("s.resource_name = ?")
            params.append(filters.resource_name)
        if filters.search is not None:
            pattern = f"%{_escape_like(filters.search.casefold())}%"
            conditions.append("(casefold(i.title) LIKE ? ESCAPE '\\' OR casefold(i.description) LIKE ? ESCAPE '\\')")
            params.extend([pattern, pattern])

        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
        base = f"FROM issues i JOIN issue_scopes s ON s.id = i.scope_id{where}"

        with self._bounded("find_all", ctx) as conn:
            with storage_step("count issues"):
                total: int = conn.execute(f"SELECT COUNT(*) {base}", params).fetchone()[0]
            with storage_step("list issues"):
                rows = conn.execute(
                    f"SELECT i.id {base} ORDER BY i.detected_at DESC, i.rowid DESC LIMIT ? OFFSET ?",
                    [*params, filters.limit, filters.offset],
                ).fetchall()
                issues = self._build_issues_batch([r["id"] for r in rows])
        return issues, total
