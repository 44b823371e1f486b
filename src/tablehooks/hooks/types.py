"""Hook system types for tablehooks.

Defines the data structures exchanged between the EventManager and the
registered handlers:
- EventKind: the six lifecycle points a handler can subscribe to
- EventPriority: handler ordering within one lifecycle point
- CancellableEvent and its subclasses: per-emission mutable state
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, ClassVar

from sqlalchemy import Table


class EventKind(str, Enum):
    """Lifecycle point a handler is registered for."""

    PRE_INSERT = "pre-insert"
    POST_INSERT = "post-insert"
    PRE_UPDATE = "pre-update"
    POST_UPDATE = "post-update"
    PRE_DELETE = "pre-delete"
    POST_DELETE = "post-delete"


class EventPriority(IntEnum):
    """Handler priority. Lower values run first."""

    HIGHEST = 0
    HIGH = 1
    NORMAL = 2
    LOW = 3
    LOWEST = 4


@dataclass(eq=False)
class CancellableEvent:
    """Base for every lifecycle event.

    An event instance belongs to exactly one emission. Handlers may call
    cancel(); the flag is never cleared and later handlers still run.
    The first non-empty reason is kept: a later cancel() only supplies a
    reason when none was given yet.

    Attributes:
        table: The table the mutation targets
    """

    kind: ClassVar[EventKind]

    table: Table
    _cancelled: bool = field(default=False, init=False, repr=False)
    _cancel_reason: str | None = field(default=None, init=False, repr=False)

    def cancel(self, reason: str | None = None) -> None:
        self._cancelled = True
        if self._cancel_reason is None and reason:
            self._cancel_reason = reason

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def cancel_reason(self) -> str | None:
        return self._cancel_reason


@dataclass(eq=False)
class PreInsertEvent(CancellableEvent):
    """Before insert. ``data`` is the proposed row and may be modified."""

    kind: ClassVar[EventKind] = EventKind.PRE_INSERT

    data: dict[str, Any] = field(default_factory=dict)


@dataclass(eq=False)
class PostInsertEvent(CancellableEvent):
    """After insert. ``row`` is the row as persisted."""

    kind: ClassVar[EventKind] = EventKind.POST_INSERT

    row: dict[str, Any] = field(default_factory=dict)


@dataclass(eq=False)
class PreUpdateEvent(CancellableEvent):
    """Before update.

    Attributes:
        data: Proposed update payload (may be modified)
        row: The row as currently stored
    """

    kind: ClassVar[EventKind] = EventKind.PRE_UPDATE

    data: dict[str, Any] = field(default_factory=dict)
    row: dict[str, Any] = field(default_factory=dict)


@dataclass(eq=False)
class PostUpdateEvent(CancellableEvent):
    """After update.

    Attributes:
        row: The updated row
        old_row: Snapshot taken before the update
    """

    kind: ClassVar[EventKind] = EventKind.POST_UPDATE

    row: dict[str, Any] = field(default_factory=dict)
    old_row: dict[str, Any] = field(default_factory=dict)


@dataclass(eq=False)
class PreDeleteEvent(CancellableEvent):
    kind: ClassVar[EventKind] = EventKind.PRE_DELETE

    row: dict[str, Any] = field(default_factory=dict)


@dataclass(eq=False)
class PostDeleteEvent(CancellableEvent):
    kind: ClassVar[EventKind] = EventKind.POST_DELETE

    row: dict[str, Any] = field(default_factory=dict)


EVENT_CLASSES: dict[EventKind, type[CancellableEvent]] = {
    cls.kind: cls
    for cls in (
        PreInsertEvent,
        PostInsertEvent,
        PreUpdateEvent,
        PostUpdateEvent,
        PreDeleteEvent,
        PostDeleteEvent,
    )
}
