"""Versioned decoding of raw feed messages into canonical change events.

This is the only place that interprets feed payloads. Consumers work with
:class:`ChangeEvent` and never look at ``payload`` dictionaries themselves.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from hubspace.core.errors import InfrastructureError
from hubspace.domains.memberships.events import (
    MEMBERSHIPS_MEMBER_INSERTED,
    MEMBERSHIPS_MEMBER_REMOVED,
)


class ChangeType(str, enum.Enum):
    INSERT = "INSERT"
    REMOVE = "REMOVE"


@dataclass(frozen=True)
class ChangeEvent:
    event_id: str
    type: ChangeType
    hub_id: str
    user_id: str
    timestamp: datetime
    counts: bool = True

    @property
    def delta(self) -> int:
        if not self.counts:
            return 0
        return 1 if self.type is ChangeType.INSERT else -1


class MembershipPayloadV1(BaseModel):
    model_config = ConfigDict(extra="ignore")

    hub_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    occurred_at: datetime


class MembershipPayloadV2(MembershipPayloadV1):
    # Producers that know a row should not be counted send is_active=False.
    is_active: Optional[bool] = None


PAYLOAD_DECODERS: Dict[str, Type[MembershipPayloadV1]] = {
    "v1": MembershipPayloadV1,
    "v2": MembershipPayloadV2,
}

EVENT_TYPES: Dict[str, ChangeType] = {
    MEMBERSHIPS_MEMBER_INSERTED: ChangeType.INSERT,
    MEMBERSHIPS_MEMBER_REMOVED: ChangeType.REMOVE,
}


def decode_change_event(message) -> ChangeEvent:
    """Decode one feed message; any malformation is a batch-level failure."""
    change_type = EVENT_TYPES.get(message.event_type)
    if change_type is None:
        raise InfrastructureError(
            f"unsupported feed event type {message.event_type!r} (message {message.id})"
        )
    payload = dict(message.payload or {})
    version = payload.get("schema_version", "v1")
    decoder = PAYLOAD_DECODERS.get(version)
    if decoder is None:
        raise InfrastructureError(
            f"unsupported payload version {version!r} (message {message.id})"
        )
    try:
        data = decoder.model_validate(payload)
    except PydanticValidationError as exc:
        raise InfrastructureError(f"malformed feed payload (message {message.id})") from exc

    return ChangeEvent(
        event_id=message.external_id,
        type=change_type,
        hub_id=data.hub_id,
        user_id=data.user_id,
        timestamp=data.occurred_at,
        counts=getattr(data, "is_active", None) is not False,
    )


def decode_batch(messages: Iterable) -> List[ChangeEvent]:
    return [decode_change_event(message) for message in messages]


__all__ = [
    "ChangeEvent",
    "ChangeType",
    "EVENT_TYPES",
    "MembershipPayloadV1",
    "MembershipPayloadV2",
    "PAYLOAD_DECODERS",
    "decode_batch",
    "decode_change_event",
]
