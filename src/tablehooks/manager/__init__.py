"""Mutation orchestration - EventManager and its configuration."""

from tablehooks.manager.config import EventManagerConfig
from tablehooks.manager.service import (
    DELETE_FAILED,
    INSERT_FAILED,
    ROW_NOT_FOUND,
    UPDATE_FAILED,
    EventManager,
)

__all__ = [
    "DELETE_FAILED",
    "INSERT_FAILED",
    "ROW_NOT_FOUND",
    "UPDATE_FAILED",
    "EventManager",
    "EventManagerConfig",
]
