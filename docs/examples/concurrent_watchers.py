#!/usr/bin/env python3
"""Several watchers reporting the same failure at once.

Each watcher thread uses the same KiteDB handle (one SQLite connection per
thread) and reports the same broken TaskRun. Deduplication happens inside
a write transaction, so however the threads interleave exactly one issue
exists at the end.

How to run:
    python docs/examples/concurrent_watchers.py
"""

from __future__ import annotations

import tempfile
import threading
from pathlib import Path

from kite.core import KiteDB
from kite.types.inputs import IssueFilters, IssueReport, ScopeInput


def watcher(db: KiteDB, name: str, barrier: threading.Barrier) -> None:
    report = IssueReport(
        title=f"TaskRun lint-7 failed (seen by {name})",
        severity="minor",
        issue_type="build",
        namespace="web",
        scope=ScopeInput(resource_type="taskrun", resource_name="lint-7"),
    )
    barrier.wait()
    issue = db.create_or_update_issue(report)
    print(f"  [{name}] -> {issue.id}")


def main() -> None:
    with tempfile.TemporaryDirectory(prefix="kite_demo_") as tmpdir:
        db = KiteDB(Path(tmpdir) / "demo.db")
        db.initialize()

        names = [f"watcher-{n}" for n in range(4)]
        barrier = threading.Barrier(len(names))
        threads = [threading.Thread(target=watcher, args=(db, name, barrier)) for name in names]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        issues, total = db.find_all(IssueFilters(namespace="web"))
        print(f"\nIssues recorded: {total}")
        print(f"Final title: {issues[0].title}")
        db.close()


if __name__ == "__main__":
    main()
