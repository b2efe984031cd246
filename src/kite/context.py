"""Execution context bounding a single engine operation.

The engine owns no timeout policy of its own; callers hand in an
``OperationContext`` and the engine aborts the in-flight SQLite statement once
the deadline passes or the cancel event is set. The surrounding transaction
then rolls back, so an abort never leaves partial writes behind.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field

from kite.errors import OperationAbortedError

# SQLite VM instructions between progress-handler callbacks.
PROGRESS_INTERVAL = 1000


@dataclass
class OperationContext:
    timeout: float | None = None
    cancel_event: threading.Event | None = None
    _deadline: float | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.timeout is not None:
            if self.timeout < 0:
                msg = f"timeout must be non-negative, got {self.timeout}"
                raise ValueError(msg)
            self._deadline = time.monotonic() + self.timeout

    @classmethod
    def with_timeout(cls, seconds: float) -> OperationContext:
        return cls(timeout=seconds)

    def cancel(self) -> None:
        if self.cancel_event is None:
            self.cancel_event = threading.Event()
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None when unbounded."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def should_abort(self) -> bool:
        return self.cancelled or self.expired

    def check(self, operation: str) -> None:
        """Raise OperationAbortedError if the operation may no longer run."""
        if self.cancelled:
            msg = f"{operation}: cancelled"
            raise OperationAbortedError(msg)
        if self.expired:
            msg = f"{operation}: deadline exceeded"
            raise OperationAbortedError(msg)
