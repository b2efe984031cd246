#!/usr/bin/env python3
"""Tracking CI pipeline failures with kite.

This example follows one PipelineRun through the life of a failure:
it breaks, breaks again, recovers, and then breaks once more. A second
failure in a downstream release is linked to the first.

Key concepts shown:
  - create_or_update_issue() merging repeated reports into one issue
  - resolve_by_scope() clearing every active issue for a resource
  - a new report reopening a resolved issue instead of creating one
  - relating two issues and reading the relationship from either side
  - find_all() with filters and pagination

How to run:
    python docs/examples/pipeline_failures.py
"""

from __future__ import annotations

import tempfile
from pathlib import Path

from kite.core import KiteDB
from kite.types.inputs import IssueFilters, IssueReport, LinkInput, ScopeInput


def build_report(severity: str, run_url: str) -> IssueReport:
    return IssueReport(
        title="PipelineRun build-42 failed",
        severity=severity,
        issue_type="pipeline",
        namespace="payments",
        scope=ScopeInput(resource_type="pipelinerun", resource_name="build-42"),
        description="Task 'unit-tests' exited with status 1",
        links=[LinkInput(title="run", url=run_url)],
    )


def main() -> None:
    with tempfile.TemporaryDirectory(prefix="kite_demo_") as tmpdir:
        db = KiteDB(Path(tmpdir) / "demo.db", instance="demo-cluster")
        db.initialize()

        print("=== Pipeline Failure Demo ===\n")

        # The watcher sees the failure twice; both reports land on one issue.
        first = db.create_or_update_issue(build_report("major", "https://ci.example.com/runs/1"))
        print(f"Reported:  [{first.id}] {first.state} {first.severity}")
        second = db.create_or_update_issue(build_report("critical", "https://ci.example.com/runs/2"))
        print(f"Re-report: [{second.id}] {second.state} {second.severity} (same id: {second.id == first.id})")

        # The next run succeeds.
        count = db.resolve_by_scope("pipelinerun", "build-42", "payments")
        resolved = db.get_issue(first.id)
        print(f"Resolved {count} issue(s); resolved_at={resolved.resolved_at}")

        # And fails again: the same issue is reopened.
        reopened = db.create_or_update_issue(build_report("major", "https://ci.example.com/runs/3"))
        print(f"Reopened:  [{reopened.id}] {reopened.state} (last resolved {reopened.resolved_at})")

        # A release blocked by the broken build.
        release = db.create_or_update_issue(
            IssueReport(
                title="Release 2.4.0 blocked",
                severity="critical",
                issue_type="release",
                namespace="payments",
                scope=ScopeInput(resource_type="release", resource_name="2.4.0"),
            )
        )
        db.add_related_issue(release.id, first.id)
        build = db.get_issue(first.id)
        blockers = [rel.issue.title for rel in build.related_to if rel.issue is not None]
        print(f"\n[{build.id}] is related to: {blockers}")

        print("\n--- Active issues in payments ---")
        issues, total = db.find_all(IssueFilters(namespace="payments", state="ACTIVE", limit=10))
        for issue in issues:
            print(f"  [{issue.id}] {issue.severity:<8} {issue.scope.resource_type}/{issue.scope.resource_name}  {issue.title}")
        print(f"  ({len(issues)} of {total})")

        db.delete_issue(release.id)
        print(f"\nRows after deleting the release issue: {db.count_rows()}")
        db.close()

    print("\nDemo complete. Temp database cleaned up.")


if __name__ == "__main__":
    main()
