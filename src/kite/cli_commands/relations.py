"""CLI commands for the relationship graph: relate, unrelate."""

from __future__ import annotations

import click

from kite.cli_common import echo_json, fail, get_db
from kite.errors import KiteError


@click.command()
@click.argument("source_id")
@click.argument("target_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def relate(source_id: str, target_id: str, as_json: bool) -> None:
    """Record that two issues are related (in either direction)."""
    with get_db() as db:
        try:
            edge = db.add_related_issue(source_id, target_id)
        except KiteError as e:
            fail(e, as_json=as_json)
        if as_json:
            echo_json(edge.to_dict())
        else:
            click.echo(f"Related: {source_id} <-> {target_id}")


@click.command()
@click.argument("source_id")
@click.argument("target_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def unrelate(source_id: str, target_id: str, as_json: bool) -> None:
    """Remove the relationship between two issues."""
    with get_db() as db:
        try:
            db.remove_related_issue(source_id, target_id)
        except KiteError as e:
            fail(e, as_json=as_json)
        if as_json:
            echo_json({"status": "removed", "source_id": source_id, "target_id": target_id})
        else:
            click.echo(f"Removed relationship: {source_id} <-> {target_id}")


def register(cli: click.Group) -> None:
    """Register relationship commands with the CLI group."""
    cli.add_command(relate)
    cli.add_command(unrelate)
