"""CLI for the kite issue engine.

Convention-based: discovers .kite/ by walking up from cwd.

Usage:
    kite init --instance=prod-1                              # Initialize .kite/ in cwd
    kite report "Build failed" -n team-a -r pipelinerun:b-1  # Report (create or update)
    kite show <id>                                           # Show issue details
    kite list --namespace=team-a --state=ACTIVE              # List issues
    kite update <id> --severity=critical                     # Update issue
    kite resolve pipelinerun b-1 -n team-a                   # Resolve by scope
    kite delete <id>                                         # Delete issue
    kite relate <id> <other-id>                              # Relate two issues
    kite unrelate <id> <other-id>                            # Remove a relationship
    kite duplicate "Build failed" -n team-a -r ...           # Find the matching issue
    kite stats                                               # Row counts
"""

from __future__ import annotations

import click

from kite import __version__
from kite.cli_commands import admin, issues, relations


@click.group()
@click.version_option(version=__version__, prog_name="kite")
def cli() -> None:
    """Kite — issue deduplication and lifecycle engine."""


admin.register(cli)
issues.register(cli)
relations.register(cli)


if __name__ == "__main__":
    cli()
