from __future__ import annotations


class ValidationSkip(Exception):
    """
    Raised when an event carries nothing a task can act on.

    Not a failure: the task is reported as skipped and nothing is written.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class StoreError(RuntimeError):
    """Read or write against the document store failed."""


class WriteConflict(StoreError):
    """A conditional write lost the race: the document changed since it was read."""


class CriticalError(RuntimeError):
    """Failure outside task execution (client construction, dispatch setup)."""
