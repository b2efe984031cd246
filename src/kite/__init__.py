"""Kite — issue deduplication and lifecycle engine with convention-based project discovery."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("kite-issues")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from kite.context import OperationContext
from kite.core import Issue, KiteDB

__all__ = ["Issue", "KiteDB", "OperationContext", "__version__"]
