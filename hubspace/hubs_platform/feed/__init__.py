"""Membership change feed: outbox model, staging helpers and decoding."""

from hubspace.hubs_platform.feed.decoding import (
    ChangeEvent,
    ChangeType,
    decode_batch,
    decode_change_event,
)
from hubspace.hubs_platform.feed.models import ChangeFeedMessage
from hubspace.hubs_platform.feed.services import enqueue, mark_sent

__all__ = [
    "ChangeEvent",
    "ChangeFeedMessage",
    "ChangeType",
    "decode_batch",
    "decode_change_event",
    "enqueue",
    "mark_sent",
]
