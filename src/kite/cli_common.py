"""Shared CLI helpers.

Provides ``get_db()`` and ``fail()`` so that the main ``cli.py`` and the
``cli_commands/*.py`` modules can access them without circular imports.
"""

from __future__ import annotations

import json as json_mod
import sys
from typing import NoReturn

import click

from kite.core import KITE_DIR_NAME, KiteDB, find_kite_root, read_config
from kite.errors import KiteError
from kite.logging import setup_logging


def get_db() -> KiteDB:
    """Discover .kite/, switch on file logging and return an initialized KiteDB."""
    try:
        kite_dir = find_kite_root()
    except FileNotFoundError:
        click.echo(f"No {KITE_DIR_NAME}/ found. Run 'kite init' first.", err=True)
        sys.exit(1)
    config = read_config(kite_dir)
    setup_logging(kite_dir, level=config.get("log_level", "info"))
    try:
        return KiteDB.from_project(kite_dir.parent)
    except KiteError as e:
        fail(e, as_json=False)


def fail(error: KiteError | str, *, as_json: bool, code: str = "error") -> NoReturn:
    """Report *error* (plain text on stderr, or a JSON envelope on stdout) and exit 1."""
    if isinstance(error, KiteError):
        code = error.code
    if as_json:
        click.echo(json_mod.dumps({"error": str(error), "code": code}))
    else:
        click.echo(f"Error: {error}", err=True)
    sys.exit(1)


def echo_json(data: object) -> None:
    click.echo(json_mod.dumps(data, indent=2, default=str))
