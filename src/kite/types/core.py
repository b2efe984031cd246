"""Foundational Literal types and TypedDicts for dataclass to_dict() returns."""

from __future__ import annotations

from typing import Literal, TypedDict


Severity = Literal["info", "minor", "major", "critical"]
IssueState = Literal["ACTIVE", "RESOLVED"]
# Built-in issue types; config.json may extend the set, so plain str is accepted at runtime.
IssueType = Literal["build", "test", "release", "dependency", "pipeline"]

# Ascending order of seriousness.
SEVERITY_ORDER: tuple[str, ...] = ("info", "minor", "major", "critical")
SEVERITY_RANK: dict[str, int] = {name: rank for rank, name in enumerate(SEVERITY_ORDER)}
BUILTIN_ISSUE_TYPES: frozenset[str] = frozenset({"build", "test", "release", "dependency", "pipeline"})
ISSUE_STATES: frozenset[str] = frozenset({"ACTIVE", "RESOLVED"})


class ProjectConfig(TypedDict, total=False):
    """Shape of .kite/config.json."""

    instance: str
    log_level: str
    issue_types: list[str]
    busy_timeout_ms: int
    version: int


class ScopeDict(TypedDict):
    id: str
    resource_type: str
    resource_name: str
    resource_namespace: str


class LinkDict(TypedDict):
    id: str
    title: str
    url: str
    issue_id: str


class RelatedSummaryDict(TypedDict):
    id: str
    title: str
    severity: str
    issue_type: str
    state: str
    namespace: str
    scope: ScopeDict


class RelatedIssueDict(TypedDict):
    id: str
    source_id: str
    target_id: str
    created_at: str
    issue: RelatedSummaryDict | None


class IssueDict(TypedDict):
    id: str
    title: str
    description: str
    severity: str
    issue_type: str
    state: str
    instance: str
    namespace: str
    detected_at: str
    resolved_at: str | None
    created_at: str
    updated_at: str
    scope_id: str
    scope: ScopeDict
    links: list[LinkDict]
    related_from: list[RelatedIssueDict]
    related_to: list[RelatedIssueDict]
