# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from core.py, db_base.py, or any mixin — this prevents circular imports.
"""Typed contracts shared by the engine, CLI and tests."""

from __future__ import annotations

from kite.types.core import (
    IssueDict,
    IssueState,
    IssueType,
    LinkDict,
    ProjectConfig,
    RelatedIssueDict,
    ScopeDict,
    Severity,
)
from kite.types.inputs import (
    UNSET,
    IssueFilters,
    IssueReport,
    IssueUpdate,
    LinkInput,
    ScopeInput,
    ScopeUpdate,
    Unset,
)

__all__ = [
    "IssueDict",
    "IssueFilters",
    "IssueReport",
    "IssueState",
    "IssueType",
    "IssueUpdate",
    "LinkDict",
    "LinkInput",
    "ProjectConfig",
    "RelatedIssueDict",
    "ScopeDict",
    "ScopeInput",
    "ScopeUpdate",
    "Severity",
    "UNSET",
    "Unset",
]
