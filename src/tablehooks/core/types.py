"""Result type returned by every public mutation operation."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ResponseType(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Response(Generic[T]):
    """Tagged success/error result.

    Attributes:
        type: SUCCESS or ERROR
        data: The row (or rows) for a successful operation
        message: Human-readable error; None when a hook cancelled without a reason
        rollback_failed: Set when a compensating action could not undo the write
    """

    type: ResponseType
    data: T | None = None
    message: str | None = None
    rollback_failed: bool = False

    @classmethod
    def success(cls, data: T) -> "Response[T]":
        return cls(type=ResponseType.SUCCESS, data=data)

    @classmethod
    def error(
        cls, message: str | None = None, rollback_failed: bool = False
    ) -> "Response[T]":
        return cls(
            type=ResponseType.ERROR,
            message=message,
            rollback_failed=rollback_failed,
        )

    @property
    def ok(self) -> bool:
        return self.type is ResponseType.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        if self.ok:
            return {"type": self.type.value, "data": self.data}
        out: dict[str, Any] = {"type": self.type.value, "message": self.message}
        if self.rollback_failed:
            out["rollback_failed"] = True
        return out
