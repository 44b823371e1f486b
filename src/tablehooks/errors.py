from typing import Any


class TableHooksError(Exception):
    """Base exception for tablehooks errors."""


class EventRollback(TableHooksError):
    """Raised inside a store transaction to abort it.

    Raised when a post-hook cancels (``reason`` is the cancel reason) or
    when an operation ends in an error after writing (``response`` is the
    error to hand back). Only the transaction boundary in EventManager
    catches this; it never reaches callers.
    """

    def __init__(self, reason: str | None = None, response: Any = None) -> None:
        super().__init__(reason or "")
        self.reason = reason
        self.response = response
