# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
"""Input structures accepted by the engine.

``IssueReport`` is what a watcher or webhook translator submits.
``IssueUpdate`` is a sparse change set: every field defaults to ``UNSET`` so
"not mentioned" is distinguishable from "set to an empty value".
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Final

from kite.types.core import IssueState


class Unset(enum.Enum):
    """Presence marker for optional update fields."""

    UNSET = "UNSET"

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Final = Unset.UNSET

DEFAULT_PAGE_SIZE = 50


@dataclass(frozen=True)
class ScopeInput:
    resource_type: str
    resource_name: str
    # Empty means "same as the report's namespace".
    resource_namespace: str = ""


@dataclass(frozen=True)
class LinkInput:
    title: str
    url: str


@dataclass
class IssueReport:
    """A report of a detected problem."""

    title: str
    severity: str
    issue_type: str
    namespace: str
    scope: ScopeInput
    description: str = ""
    links: list[LinkInput] | None = None
    state: IssueState | None = None
    resolved_at: datetime | None = None

    @property
    def resource_namespace(self) -> str:
        return self.scope.resource_namespace or self.namespace


@dataclass
class ScopeUpdate:
    resource_type: str | Unset = UNSET
    resource_name: str | Unset = UNSET
    resource_namespace: str | Unset = UNSET

    def present(self) -> dict[str, str]:
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        return {name: value for name, value in values.items() if value is not UNSET}


@dataclass
class IssueUpdate:
    """Sparse change set for an existing issue.

    ``links`` replaces the whole link set when present (an empty list clears
    it). ``resolved_at`` set to ``None`` is treated the same as ``UNSET``.
    """

    title: str | Unset = UNSET
    description: str | Unset = UNSET
    severity: str | Unset = UNSET
    issue_type: str | Unset = UNSET
    namespace: str | Unset = UNSET
    state: IssueState | Unset = UNSET
    resolved_at: datetime | None | Unset = UNSET
    links: list[LinkInput] | Unset = UNSET
    scope: ScopeUpdate = field(default_factory=ScopeUpdate)

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is UNSET for f in fields(self) if f.name != "scope") and not self.scope.present()

    @classmethod
    def from_report(cls, report: IssueReport, *, include_links: bool = True) -> IssueUpdate:
        """Translate a duplicate report into the change set applied to the matched issue.

        Reports carry no explicit "leave alone" marker, so empty strings and an
        empty link list mean "not supplied". A report without a state reopens
        the issue: anything reported again is active again.
        """
        return cls(
            title=report.title or UNSET,
            description=report.description or UNSET,
            severity=report.severity or UNSET,
            issue_type=report.issue_type or UNSET,
            namespace=report.namespace or UNSET,
            state=report.state or "ACTIVE",
            resolved_at=report.resolved_at if report.resolved_at is not None else UNSET,
            links=list(report.links) if include_links and report.links else UNSET,
            scope=ScopeUpdate(
                resource_type=report.scope.resource_type or UNSET,
                resource_name=report.scope.resource_name or UNSET,
                resource_namespace=report.resource_namespace or UNSET,
            ),
        )


@dataclass
class IssueFilters:
    """Conjunctive filters for ``find_all``; ``None`` means "don't filter"."""

    namespace: str | None = None
    severity: str | None = None
    issue_type: str | None = None
    state: str | None = None
    resource_type: str | None = None
    resource_name: str | None = None
    search: str | None = None
    limit: int = DEFAULT_PAGE_SIZE
    offset: int = 0
