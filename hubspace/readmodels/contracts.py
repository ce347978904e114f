"""Declarations for read models that are projected from change feed events."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Sequence, Tuple


ReadModelType = Literal["snapshot", "timeline", "aggregate"]


@dataclass(frozen=True)
class ReadModelContract:
    """What a projection consumes from the feed and how it can be rebuilt."""

    name: str
    domain: str
    consumed_events: Tuple[str, ...]
    replay_start_version: Optional[str]
    # How a delivered event is recognised as already applied.
    idempotency_key: str
    type: ReadModelType
    rebuild_strategy: Optional[str] = None

    def __post_init__(self) -> None:
        events: Sequence[str] = self.consumed_events
        if not events:
            raise ValueError(f"read model {self.name} consumes no events")
        object.__setattr__(self, "consumed_events", tuple(events))

    def handles(self, event_type: str) -> bool:
        return event_type in self.consumed_events


__all__ = ["ReadModelContract", "ReadModelType"]
