"""CLI commands for admin: init, stats."""

from __future__ import annotations

from pathlib import Path

import click

from kite.cli_common import echo_json, get_db
from kite.core import (
    DB_FILENAME,
    DEFAULT_BUSY_TIMEOUT_MS,
    KITE_DIR_NAME,
    VALID_LOG_LEVELS,
    KiteDB,
    read_config,
    write_config,
)
from kite.types.core import SEVERITY_ORDER
from kite.types.inputs import IssueFilters


@click.command()
@click.option("--instance", default="", help="Tag recorded on every issue this deployment creates")
@click.option("--issue-type", "issue_types", multiple=True, help="Extra allowed issue type (repeatable)")
@click.option(
    "--log-level",
    type=click.Choice(sorted(VALID_LOG_LEVELS), case_sensitive=False),
    default="info",
    help="Level for .kite/kite.log (default: info)",
)
def init(instance: str, issue_types: tuple[str, ...], log_level: str) -> None:
    """Initialize .kite/ in the current directory."""
    cwd = Path.cwd()
    kite_dir = cwd / KITE_DIR_NAME

    if kite_dir.exists():
        click.echo(f"{KITE_DIR_NAME}/ already exists in {cwd}")
        # Still ensure DB is initialized
        config = read_config(kite_dir)
        db = KiteDB(kite_dir / DB_FILENAME, instance=config.get("instance", ""))
        db.initialize()
        db.close()
        return

    kite_dir.mkdir()
    config = {
        "instance": instance,
        "log_level": log_level.lower(),
        "issue_types": list(issue_types),
        "busy_timeout_ms": DEFAULT_BUSY_TIMEOUT_MS,
        "version": 1,
    }
    write_config(kite_dir, config)

    db = KiteDB(kite_dir / DB_FILENAME, instance=instance)
    db.initialize()
    db.close()

    click.echo(f"Initialized {KITE_DIR_NAME}/ in {cwd}")
    if instance:
        click.echo(f"  Instance: {instance}")
    click.echo(f"  Database: {kite_dir / DB_FILENAME}")


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def stats(as_json: bool) -> None:
    """Show row counts and active issues per severity."""
    with get_db() as db:
        counts = db.count_rows()
        active: dict[str, int] = {}
        for severity in reversed(SEVERITY_ORDER):
            _, active[severity] = db.find_all(IssueFilters(state="ACTIVE", severity=severity, limit=1))

        if as_json:
            echo_json({"rows": counts, "active_by_severity": active})
            return

        click.echo("Rows:")
        for name, count in counts.items():
            click.echo(f"  {name}: {count}")
        click.echo("\nActive by severity:")
        for severity, count in active.items():
            click.echo(f"  {severity}: {count}")


def register(cli: click.Group) -> None:
    """Register admin commands with the CLI group."""
    cli.add_command(init)
    cli.add_command(stats)
