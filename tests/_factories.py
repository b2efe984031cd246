"""Shared input factories for kite tests.

Importable by any conftest.py or test file in the test suite.
"""

from __future__ import annotations

from typing import Any

from kite.types.inputs import IssueReport, LinkInput, ScopeInput


def make_report(
    title: str = "PipelineRun failed",
    *,
    namespace: str = "team-a",
    issue_type: str = "pipeline",
    severity: str = "major",
    resource_type: str = "pipelinerun",
    resource_name: str = "build-1",
    resource_namespace: str = "",
    **kwargs: Any,
) -> IssueReport:
    """IssueReport with sensible defaults; override only what a test cares about."""
    return IssueReport(
        title=title,
        severity=severity,
        issue_type=issue_type,
        namespace=namespace,
        scope=ScopeInput(resource_type=resource_type, resource_name=resource_name, resource_namespace=resource_namespace),
        **kwargs,
    )


def link(title: str = "logs", url: str = "https://ci.example.com/logs/1") -> LinkInput:
    return LinkInput(title=title, url=url)
