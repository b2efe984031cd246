"""Error taxonomy for the kite engine.

Validation and conflict errors subclass ``ValueError`` and the not-found error
subclasses ``KeyError`` so callers that only know the builtin types still
catch them. Storage failures wrap the underlying ``sqlite3.Error`` via
``raise ... from exc`` and name the step that failed.
"""

from __future__ import annotations


class KiteError(Exception):
    """Base class for every error raised by the engine."""

    code = "error"


class ValidationError(KiteError, ValueError):
    """Report, update or filter input is missing or malformed."""

    code = "validation_error"


class ConflictError(KiteError, ValueError):
    """The requested change conflicts with existing records."""

    code = "conflict"


class IssueNotFoundError(KiteError, KeyError):
    code = "not_found"

    def __init__(self, issue_id: str) -> None:
        super().__init__(f"Issue not found: {issue_id}")
        self.issue_id = issue_id

    def __str__(self) -> str:
        # KeyError.__str__ reprs its argument; keep the plain message.
        return str(self.args[0])


class StorageError(KiteError):
    """The datastore rejected or failed a statement; the transaction was rolled back."""

    code = "storage_error"


class OperationAbortedError(StorageError):
    """The operation's context expired or was cancelled mid-flight."""

    code = "aborted"
