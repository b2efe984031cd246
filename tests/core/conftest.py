"""Fixtures for core DB tests."""

from __future__ import annotations

from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from kite.core import KiteDB


@pytest.fixture
def open_db(tmp_path: Path) -> Generator[Callable[[], KiteDB], None, None]:
    """Factory opening further KiteDB handles on one shared database file.

    Each handle behaves like a separate engine process pointed at the same store.
    """
    path = tmp_path / "shared.db"
    opened: list[KiteDB] = []

    def factory() -> KiteDB:
        d = KiteDB(path, instance=f"replica-{len(opened)}")
        d.initialize()
        opened.append(d)
        return d

    yield factory
    for d in opened:
        d.close()
