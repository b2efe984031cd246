"""RelationsMixin — the undirected relationship graph between issues.

Edges are stored directed (``source_id`` → ``target_id``) but are unique
irrespective of direction: relating A to B and then B to A is a conflict.
The expression index ``idx_related_pair`` enforces the same rule in the
schema.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from kite.db_base import DBMixinProtocol, _new_id, _now_iso, storage_step
from kite.errors import ConflictError, ValidationError
from kite.validation import validate_issue_id

if TYPE_CHECKING:
    from kite.context import OperationContext
    from kite.core import RelatedIssue

logger = logging.getLogger(__name__)

_EDGE_WHERE = "(source_id = ? AND target_id = ?) OR (source_id = ? AND target_id = ?)"


class RelationsMixin(DBMixinProtocol):
    """Relationship graph operations. Composed into ``KiteDB``."""

    def add_related_issue(self, source_id: str, target_id: str, ctx: OperationContext | None = None) -> RelatedIssue:
        from kite.core import RelatedIssue

        source_id = validate_issue_id(source_id, "source_id")
        target_id = validate_issue_id(target_id, "target_id")
        if source_id == target_id:
            msg = f"Cannot relate an issue to itself: {source_id}"
            raise ValidationError(msg)

        with self._transaction("add_related_issue", ctx) as conn:
            with storage_step("look up related issues"):
                found = conn.execute("SELECT COUNT(*) FROM issues WHERE id IN (?, ?)", (source_id, target_id)).fetchone()[0]
            if found != 2:
                msg = f"one or both issues not found: {source_id}, {target_id}"
                raise ConflictError(msg)
            with storage_step("look up relationship"):
                existing = conn.execute(
                    f"SELECT id FROM related_issues WHERE {_EDGE_WHERE}", (source_id, target_id, target_id, source_id)
                ).fetchone()
            if existing is not None:
                msg = f"relationship already exists between {source_id} and {target_id}"
                raise ConflictError(msg)
            edge = RelatedIssue(id=_new_id(), source_id=source_id, target_id=target_id, created_at=_now_iso())
            with storage_step("insert relationship"):
                conn.execute(
                    "INSERT INTO related_issues (id, source_id, target_id, created_at) VALUES (?, ?, ?, ?)",
                    (edge.id, edge.source_id, edge.target_id, edge.created_at),
                )
        logger.info(
            "Related issue %s to %s",
            source_id,
            target_id,
            extra={"operation": "add_related_issue", "issue_id": source_id},
        )
        return edge

    def remove_related_issue(self, source_id: str, target_id: str, ctx: OperationContext | None = None) -> None:
        """Delete the edge between the two issues, whichever direction it was stored in."""
        source_id = validate_issue_id(source_id, "source_id")
        target_id = validate_issue_id(target_id, "target_id")
        with self._transaction("remove_related_issue", ctx) as conn:
            with storage_step("delete relationship"):
                removed = conn.execute(
                    f"DELETE FROM related_issues WHERE {_EDGE_WHERE}", (source_id, target_id, target_id, source_id)
                ).rowcount
            if removed == 0:
                msg = f"relationship not found between {source_id} and {target_id}"
                raise ConflictError(msg)
        logger.info(
            "Removed relationship between %s and %s",
            source_id,
            target_id,
            extra={"operation": "remove_related_issue", "issue_id": source_id},
        )
