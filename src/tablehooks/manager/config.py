"""EventManager configuration."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields
from typing import Any

from tablehooks.core.merge import ArrayStrategy, deep_merge

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class EventManagerConfig:
    """Behaviour switches for an EventManager. Immutable once built.

    Attributes:
        merge_objects: Deep-merge update payloads into the stored row values
        array_strategy: How lists are combined while merging
        rollback_on_cancel: Undo the write when a post-hook cancels
    """

    merge_objects: bool = True
    array_strategy: ArrayStrategy = ArrayStrategy.UNION
    rollback_on_cancel: bool = True

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        for name in ("merge_objects", "rollback_on_cancel"):
            if not isinstance(getattr(self, name), bool):
                raise ValueError(f"{name} must be a bool, got {getattr(self, name)!r}")

        try:
            strategy = ArrayStrategy(self.array_strategy)
        except ValueError:
            allowed = ", ".join(s.value for s in ArrayStrategy)
            raise ValueError(
                f"array_strategy must be one of {allowed}, got {self.array_strategy!r}"
            ) from None
        object.__setattr__(self, "array_strategy", strategy)

    @classmethod
    def from_overrides(cls, overrides: Mapping[str, Any] | None = None) -> EventManagerConfig:
        """Build a config from the defaults deep-merged with ``overrides``.

        Raises:
            ValueError: For unknown keys or invalid values
        """
        if isinstance(overrides, cls):
            return overrides

        overrides = dict(overrides or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValueError(f"Unknown EventManager config option(s): {', '.join(unknown)}")

        merged = deep_merge(asdict(cls()), overrides, ArrayStrategy.REPLACE)
        return cls(**merged)

    @classmethod
    def from_env(cls, prefix: str = "TABLEHOOKS_") -> EventManagerConfig:
        """Create config from environment variables on top of the defaults.

        Reads {prefix}MERGE_OBJECTS, {prefix}ARRAY_STRATEGY and
        {prefix}ROLLBACK_ON_CANCEL. Unset variables keep their defaults.
        """
        overrides: dict[str, Any] = {}

        for name in ("merge_objects", "rollback_on_cancel"):
            raw = os.environ.get(f"{prefix}{name.upper()}")
            if raw is not None:
                overrides[name] = _parse_bool(f"{prefix}{name.upper()}", raw)

        strategy = os.environ.get(f"{prefix}ARRAY_STRATEGY")
        if strategy:
            overrides["array_strategy"] = strategy.strip().lower()

        return cls.from_overrides(overrides)

    def to_dict(self) -> dict[str, Any]:
        return {
            "merge_objects": self.merge_objects,
            "array_strategy": self.array_strategy.value,
            "rollback_on_cancel": self.rollback_on_cancel,
        }


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ValueError(f"{name} must be a boolean flag, got {raw!r}")
