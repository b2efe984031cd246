"""CLI commands for the issue lifecycle: report, duplicate, show, list, update, resolve, delete."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import click

from kite.cli_common import echo_json, fail, get_db
from kite.core import Issue
from kite.errors import KiteError
from kite.types.core import ISSUE_STATES, SEVERITY_ORDER
from kite.types.inputs import UNSET, IssueFilters, IssueReport, IssueUpdate, LinkInput, ScopeInput, ScopeUpdate

F = TypeVar("F", bound=Callable[..., Any])

_SEVERITY_CHOICE = click.Choice(list(SEVERITY_ORDER))
_STATE_CHOICE = click.Choice(sorted(ISSUE_STATES))


def _parse_links(values: tuple[str, ...], *, as_json: bool) -> list[LinkInput]:
    links: list[LinkInput] = []
    for value in values:
        if "=" not in value:
            fail(f"Invalid link format: {value} (expected title=url)", as_json=as_json, code="validation_error")
        title, url = value.split("=", 1)
        links.append(LinkInput(title=title, url=url))
    return links


def _report_options(func: F) -> F:
    """Options shared by ``report`` and ``duplicate``: everything an IssueReport carries."""
    decorators = [
        click.argument("title"),
        click.option("--severity", "-s", type=_SEVERITY_CHOICE, default="major", help="Severity (default: major)"),
        click.option("--type", "issue_type", required=True, help="Issue type (build, test, release, dependency, pipeline)"),
        click.option("--namespace", "-n", required=True, help="Namespace that owns the issue"),
        click.option("--resource-type", required=True, help="Kind of the affected resource, e.g. pipelinerun"),
        click.option("--resource-name", required=True, help="Name of the affected resource"),
        click.option("--resource-namespace", default="", help="Namespace of the resource (default: --namespace)"),
        click.option("--description", "-d", default="", help="Description"),
        click.option("--link", "-l", "link", multiple=True, help="Link as title=url (repeatable)"),
        click.option("--state", type=_STATE_CHOICE, default=None, help="Explicit state (default: ACTIVE)"),
        click.option("--json", "as_json", is_flag=True, help="Output as JSON"),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


def _build_report(
    title: str,
    severity: str,
    issue_type: str,
    namespace: str,
    resource_type: str,
    resource_name: str,
    resource_namespace: str,
    description: str,
    link: tuple[str, ...],
    state: str | None,
    as_json: bool,
) -> IssueReport:
    return IssueReport(
        title=title,
        severity=severity,
        issue_type=issue_type,
        namespace=namespace,
        scope=ScopeInput(resource_type=resource_type, resource_name=resource_name, resource_namespace=resource_namespace),
        description=description,
        links=_parse_links(link, as_json=as_json) or None,
        state=state,  # type: ignore[arg-type]
    )


def _summary_line(issue: Issue) -> str:
    scope = issue.scope
    return f"{issue.id} [{issue.severity:<8}] {issue.state:<8} {issue.namespace}/{scope.resource_type}:{scope.resource_name} {issue.title}"


@click.command()
@_report_options
@click.option("--keep-links", is_flag=True, help="When the issue already exists, leave its links untouched")
def report(keep_links: bool, as_json: bool, **fields: Any) -> None:
    """Report a problem: create an issue, or update the one already recorded for it."""
    issue_report = _build_report(as_json=as_json, **fields)
    with get_db() as db:
        try:
            if keep_links:
                issue = db.create_issue(issue_report)
            else:
                issue = db.create_or_update_issue(issue_report)
        except KiteError as e:
            fail(e, as_json=as_json)
        if as_json:
            echo_json(issue.to_dict())
        else:
            verb = "Created" if issue.created_at == issue.updated_at else "Updated"
            click.echo(f"{verb} {issue.id}: {issue.title}")


@click.command()
@_report_options
def duplicate(as_json: bool, **fields: Any) -> None:
    """Show the issue a report would be merged into, if any."""
    issue_report = _build_report(as_json=as_json, **fields)
    with get_db() as db:
        try:
            issue = db.find_duplicate(issue_report)
        except KiteError as e:
            fail(e, as_json=as_json)
        if as_json:
            echo_json(issue.to_dict() if issue is not None else None)
        elif issue is None:
            click.echo("No matching issue")
        else:
            click.echo(_summary_line(issue))


@click.command()
@click.argument("issue_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def show(issue_id: str, as_json: bool) -> None:
    """Show issue details."""
    with get_db() as db:
        try:
            issue = db.get_issue(issue_id)
        except KiteError as e:
            fail(e, as_json=as_json)

        if as_json:
            echo_json(issue.to_dict())
            return

        click.echo(f"ID:        {issue.id}")
        click.echo(f"Title:     {issue.title}")
        click.echo(f"State:     {issue.state}")
        click.echo(f"Severity:  {issue.severity}")
        click.echo(f"Type:      {issue.issue_type}")
        click.echo(f"Namespace: {issue.namespace}")
        click.echo(f"Scope:     {issue.scope.resource_type}/{issue.scope.resource_name} (ns {issue.scope.resource_namespace})")
        if issue.instance:
            click.echo(f"Instance:  {issue.instance}")
        click.echo(f"Detected:  {issue.detected_at}")
        click.echo(f"Updated:   {issue.updated_at}")
        if issue.resolved_at:
            click.echo(f"Resolved:  {issue.resolved_at}")
        if issue.description:
            click.echo(f"\n--- Description ---\n{issue.description}")
        if issue.links:
            click.echo("\n--- Links ---")
            for link in issue.links:
                click.echo(f"  {link.title}: {link.url}")
        related = [rel.issue for rel in [*issue.related_from, *issue.related_to] if rel.issue is not None]
        if related:
            click.echo("\n--- Related ---")
            for other in related:
                click.echo(f"  {other.id} [{other.state}] {other.title}")


@click.command("list")
@click.option("--namespace", "-n", default=None, help="Filter by namespace")
@click.option("--severity", "-s", type=_SEVERITY_CHOICE, default=None, help="Filter by severity")
@click.option("--type", "issue_type", default=None, help="Filter by issue type")
@click.option("--state", type=_STATE_CHOICE, default=None, help="Filter by state")
@click.option("--resource-type", default=None, help="Filter by resource type")
@click.option("--resource-name", default=None, help="Filter by resource name")
@click.option("--search", "-q", default=None, help="Case-insensitive text in title or description")
@click.option("--limit", default=50, type=int, help="Max results (default 50)")
@click.option("--offset", default=0, type=int, help="Skip first N results")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def list_issues(
    namespace: str | None,
    severity: str | None,
    issue_type: str | None,
    state: str | None,
    resource_type: str | None,
    resource_name: str | None,
    search: str | None,
    limit: int,
    offset: int,
    as_json: bool,
) -> None:
    """List issues, most recently detected first."""
    filters = IssueFilters(
        namespace=namespace,
        severity=severity,
        issue_type=issue_type,
        state=state,
        resource_type=resource_type,
        resource_name=resource_name,
        search=search,
        limit=limit,
        offset=offset,
    )
    with get_db() as db:
        try:
            issues, total = db.find_all(filters)
        except KiteError as e:
            fail(e, as_json=as_json)

        if as_json:
            echo_json({"issues": [i.to_dict() for i in issues], "total": total})
            return

        for issue in issues:
            click.echo(_summary_line(issue))
        click.echo(f"\n{len(issues)} of {total} issues")


@click.command()
@click.argument("issue_id")
@click.option("--title", default=None, help="New title")
@click.option("--description", "-d", default=None, help="New description")
@click.option("--severity", "-s", type=_SEVERITY_CHOICE, default=None, help="New severity")
@click.option("--type", "issue_type", default=None, help="New issue type")
@click.option("--namespace", "-n", default=None, help="New namespace")
@click.option("--state", type=_STATE_CHOICE, default=None, help="New state")
@click.option("--resource-type", default=None, help="New scope resource type")
@click.option("--resource-name", default=None, help="New scope resource name")
@click.option("--resource-namespace", default=None, help="New scope resource namespace")
@click.option("--link", "-l", "link", multiple=True, help="Replace links; title=url (repeatable)")
@click.option("--clear-links", is_flag=True, help="Remove all links")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def update(
    issue_id: str,
    title: str | None,
    description: str | None,
    severity: str | None,
    issue_type: str | None,
    namespace: str | None,
    state: str | None,
    resource_type: str | None,
    resource_name: str | None,
    resource_namespace: str | None,
    link: tuple[str, ...],
    clear_links: bool,
    as_json: bool,
) -> None:
    """Update an issue; only the given options change."""
    if link and clear_links:
        fail("--link and --clear-links are mutually exclusive", as_json=as_json, code="validation_error")
    links: list[LinkInput] | Any = UNSET
    if clear_links:
        links = []
    elif link:
        links = _parse_links(link, as_json=as_json)

    def present(value: str | None) -> Any:
        return UNSET if value is None else value

    changes = IssueUpdate(
        title=present(title),
        description=present(description),
        severity=present(severity),
        issue_type=present(issue_type),
        namespace=present(namespace),
        state=present(state),
        links=links,
        scope=ScopeUpdate(
            resource_type=present(resource_type),
            resource_name=present(resource_name),
            resource_namespace=present(resource_namespace),
        ),
    )
    if changes.is_empty():
        fail("Nothing to update: pass at least one option", as_json=as_json, code="validation_error")
    with get_db() as db:
        try:
            issue = db.update_issue(issue_id, changes)
        except KiteError as e:
            fail(e, as_json=as_json)
        if as_json:
            echo_json(issue.to_dict())
        else:
            click.echo(f"Updated {issue.id}: {issue.title} [{issue.state}]")


@click.command()
@click.argument("resource_type")
@click.argument("resource_name")
@click.option("--namespace", "-n", required=True, help="Namespace whose issues are resolved")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def resolve(resource_type: str, resource_name: str, namespace: str, as_json: bool) -> None:
    """Resolve every active issue scoped to a resource."""
    with get_db() as db:
        try:
            count = db.resolve_by_scope(resource_type, resource_name, namespace)
        except KiteError as e:
            fail(e, as_json=as_json)
        if as_json:
            echo_json({"resolved": count})
        else:
            click.echo(f"Resolved {count} issue(s) for {resource_type}/{resource_name} in {namespace}")


@click.command()
@click.argument("issue_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def delete(issue_id: str, as_json: bool) -> None:
    """Delete an issue together with its links, relationships and scope."""
    with get_db() as db:
        try:
            db.delete_issue(issue_id)
        except KiteError as e:
            fail(e, as_json=as_json)
        if as_json:
            echo_json({"deleted": issue_id})
        else:
            click.echo(f"Deleted {issue_id}")


def register(cli: click.Group) -> None:
    """Register issue commands with the CLI group."""
    cli.add_command(report)
    cli.add_command(duplicate)
    cli.add_command(show)
    cli.add_command(list_issues)
    cli.add_command(update)
    cli.add_command(resolve)
    cli.add_command(delete)
