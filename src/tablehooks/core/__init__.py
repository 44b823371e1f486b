"""Core building blocks shared by the hook and persistence layers."""

from tablehooks.core.merge import ArrayStrategy, deep_merge, is_plain_mapping
from tablehooks.core.types import Response, ResponseType

__all__ = [
    "ArrayStrategy",
    "Response",
    "ResponseType",
    "deep_merge",
    "is_plain_mapping",
]
