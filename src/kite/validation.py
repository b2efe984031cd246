"""Shared validation functions for all entry points.

Pure functions — no SQLite or Click dependencies. Everything here runs before
a transaction is opened, so a rejected input never touches the store.
"""

from __future__ import annotations

import unicodedata
from collections.abc import Collection
from datetime import datetime
from typing import Any
from urllib.parse import urlparse

from kite.errors import ValidationError
from kite.types.core import ISSUE_STATES, SEVERITY_ORDER
from kite.types.inputs import DEFAULT_PAGE_SIZE, UNSET, IssueFilters, IssueReport, IssueUpdate, LinkInput, ScopeInput

_MAX_NAME_LENGTH = 253  # longest DNS-1123 subdomain, the widest cluster resource name
_MAX_TITLE_LENGTH = 512


def sanitize_name(value: Any, name: str, *, max_length: int = _MAX_NAME_LENGTH) -> tuple[str, str | None]:
    """Validate and clean an identifier-like value (namespace, resource name, ...).

    Returns (cleaned_value, None) on success or ("", error_message) on failure.
    Strips whitespace, then checks: non-empty, max length, no control/format chars.
    """
    if not isinstance(value, str):
        return ("", f"{name} must be a string")
    # Check for control/format chars before stripping — reject "\nbad" rather
    # than silently absorbing the newline via strip().
    for ch in value:
        if unicodedata.category(ch).startswith("C"):
            return ("", f"{name} must not contain control characters (found U+{ord(ch):04X})")
    cleaned = value.strip()
    if not cleaned:
        return ("", f"{name} must not be empty")
    if len(cleaned) > max_length:
        return ("", f"{name} must be at most {max_length} characters")
    return (cleaned, None)


def _require_name(value: Any, name: str, *, max_length: int = _MAX_NAME_LENGTH) -> str:
    cleaned, err = sanitize_name(value, name, max_length=max_length)
    if err is not None:
        raise ValidationError(err)
    return cleaned


def _require_datetime(value: Any, name: str) -> None:
    if not isinstance(value, datetime):
        msg = f"{name} must be a datetime, got {type(value).__name__}"
        raise ValidationError(msg)


def validate_issue_id(value: Any, name: str = "issue_id") -> str:
    if not isinstance(value, str) or not value.strip():
        msg = f"{name} must be a non-empty string"
        raise ValidationError(msg)
    return value.strip()


def validate_scope_selector(resource_type: str, resource_name: str, namespace: str) -> tuple[str, str, str]:
    """Check the (resource_type, resource_name, namespace) triple used by bulk resolution."""
    return (
        _require_name(resource_type, "resource_type"),
        _require_name(resource_name, "resource_name"),
        _require_name(namespace, "namespace"),
    )


def validate_severity(value: str) -> str:
    if value not in SEVERITY_ORDER:
        msg = f"Invalid severity '{value}'. Valid severities: {', '.join(SEVERITY_ORDER)}"
        raise ValidationError(msg)
    return value


def validate_issue_type(value: str, issue_types: Collection[str]) -> str:
    if value not in issue_types:
        msg = f"Unknown issue type '{value}'. Valid types: {', '.join(sorted(issue_types))}"
        raise ValidationError(msg)
    return value


def validate_state(value: str) -> str:
    if value not in ISSUE_STATES:
        msg = f"Invalid state '{value}'. Valid states: {', '.join(sorted(ISSUE_STATES))}"
        raise ValidationError(msg)
    return value


def validate_links(links: list[LinkInput]) -> None:
    if not isinstance(links, list):
        msg = "links must be a list"
        raise ValidationError(msg)
    for i, link in enumerate(links):
        if not isinstance(link, LinkInput):
            msg = f"links[{i}] must be a LinkInput"
            raise ValidationError(msg)
        if not link.title or not link.title.strip():
            msg = f"links[{i}].title cannot be empty"
            raise ValidationError(msg)
        parsed = urlparse(link.url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            msg = f"links[{i}].url must be an absolute http(s) URL, got {link.url!r}"
            raise ValidationError(msg)


def validate_report(report: IssueReport, issue_types: Collection[str]) -> None:
    """Reject a report that cannot identify or describe a problem."""
    if not isinstance(report, IssueReport):
        msg = "report must be an IssueReport"
        raise ValidationError(msg)
    if not report.title or not report.title.strip():
        msg = "Title cannot be empty"
        raise ValidationError(msg)
    if len(report.title) > _MAX_TITLE_LENGTH:
        msg = f"Title must be at most {_MAX_TITLE_LENGTH} characters"
        raise ValidationError(msg)
    validate_severity(report.severity)
    validate_issue_type(report.issue_type, issue_types)
    _require_name(report.namespace, "namespace")
    if not isinstance(report.scope, ScopeInput):
        msg = "scope must be a ScopeInput"
        raise ValidationError(msg)
    _require_name(report.scope.resource_type, "scope.resource_type")
    _require_name(report.scope.resource_name, "scope.resource_name")
    if report.scope.resource_namespace:
        _require_name(report.scope.resource_namespace, "scope.resource_namespace")
    if report.state is not None:
        validate_state(report.state)
    if report.resolved_at is not None:
        _require_datetime(report.resolved_at, "resolved_at")
        if report.state != "RESOLVED":
            msg = "resolved_at may only accompany state RESOLVED"
            raise ValidationError(msg)
    if report.links is not None:
        validate_links(report.links)


def validate_update(changes: IssueUpdate, issue_types: Collection[str]) -> None:
    if not isinstance(changes, IssueUpdate):
        msg = "changes must be an IssueUpdate"
        raise ValidationError(msg)
    if changes.title is not UNSET:
        if not changes.title or not changes.title.strip():
            msg = "Title cannot be empty"
            raise ValidationError(msg)
        if len(changes.title) > _MAX_TITLE_LENGTH:
            msg = f"Title must be at most {_MAX_TITLE_LENGTH} characters"
            raise ValidationError(msg)
    if changes.description is not UNSET and not isinstance(changes.description, str):
        msg = "description must be a string"
        raise ValidationError(msg)
    if changes.severity is not UNSET:
        validate_severity(changes.severity)
    if changes.issue_type is not UNSET:
        validate_issue_type(changes.issue_type, issue_types)
    if changes.namespace is not UNSET:
        _require_name(changes.namespace, "namespace")
    if changes.state is not UNSET:
        validate_state(changes.state)
    if changes.resolved_at is not UNSET and changes.resolved_at is not None:
        _require_datetime(changes.resolved_at, "resolved_at")
    if changes.links is not UNSET:
        validate_links(changes.links)
    for key, value in changes.scope.present().items():
        _require_name(value, f"scope.{key}")


def validate_filters(filters: IssueFilters, issue_types: Collection[str]) -> IssueFilters:
    """Check enum-valued filters and normalize pagination. Returns a new IssueFilters."""
    if filters.severity is not None:
        validate_severity(filters.severity)
    if filters.issue_type is not None:
        validate_issue_type(filters.issue_type, issue_types)
    if filters.state is not None:
        validate_state(filters.state)
    limit = filters.limit if filters.limit > 0 else DEFAULT_PAGE_SIZE
    offset = max(filters.offset, 0)
    return IssueFilters(
        namespace=filters.namespace or None,
        severity=filters.severity,
        issue_type=filters.issue_type,
        state=filters.state,
        resource_type=filters.resource_type or None,
        resource_name=filters.resource_name or None,
        search=filters.search or None,
        limit=limit,
        offset=offset,
    )
