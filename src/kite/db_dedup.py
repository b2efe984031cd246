"""DedupMixin — deciding whether a report names an already-known problem.

Two reports describe the same problem when they agree on namespace, issue
type and the scope triple. That tuple is stored denormalized on every issue
row as ``dedup_key`` under a UNIQUE index, so the lookup is a single index
probe and the database itself refuses a second row for the same key.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from kite.db_base import DBMixinProtocol, storage_step
from kite.validation import validate_report

if TYPE_CHECKING:
    from kite.context import OperationContext
    from kite.core import Issue
    from kite.types.inputs import IssueReport

logger = logging.getLogger(__name__)


def dedup_key(namespace: str, issue_type: str, resource_type: str, resource_name: str, resource_namespace: str) -> str:
    """Canonical text form of the identity tuple, as stored in ``issues.dedup_key``."""
    return json.dumps([namespace, issue_type, resource_type, resource_name, resource_namespace], separators=(",", ":"))


def report_dedup_key(report: IssueReport) -> str:
    return dedup_key(
        report.namespace,
        report.issue_type,
        report.scope.resource_type,
        report.scope.resource_name,
        report.resource_namespace,
    )


class DedupMixin(DBMixinProtocol):
    """Duplicate detection. Composed into ``KiteDB``."""

    def _find_duplicate_in_tx(self, report: IssueReport) -> str | None:
        """Return the id of the issue sharing *report*'s identity, or None.

        Must run inside a ``_transaction`` block: the RESERVED lock taken by
        BEGIN IMMEDIATE keeps the answer valid until commit.
        """
        with storage_step("look up duplicate issue"):
            row = self.conn.execute(
                "SELECT id FROM issues WHERE dedup_key = ? AND state IN ('ACTIVE', 'RESOLVED')",
                (report_dedup_key(report),),
            ).fetchone()
        return row["id"] if row is not None else None

    def find_duplicate(self, report: IssueReport, ctx: OperationContext | None = None) -> Issue | None:
        validate_report(report, self.issue_types)
        with self._transaction("find_duplicate", ctx):
            issue_id = self._find_duplicate_in_tx(report)
            if issue_id is None:
                return None
            with storage_step("load duplicate issue"):
                issues = self._build_issues_batch([issue_id])
        logger.debug(
            "Found duplicate issue %s",
            issue_id,
            extra={"operation": "find_duplicate", "issue_id": issue_id},
        )
        return issues[0] if issues else None
