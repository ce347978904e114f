"""Staging and status helpers for the change feed."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from hubspace.core.clock import utcnow
from hubspace.extensions import db
from hubspace.hubs_platform.feed.models import ChangeFeedMessage

STATUS_PENDING = "pending"
STATUS_SENDING = "sending"
STATUS_SENT = "sent"
STATUS_RETRY = "retry"
STATUS_FAILED = "failed"


def enqueue(
    event_name: str,
    payload: dict,
    partition_key: str,
    available_at: Optional[datetime] = None,
    session=None,
) -> ChangeFeedMessage:
    """
    Stage an event in the feed. Caller commits alongside the write that produced it.
    """
    session = session or db.session
    now = utcnow()
    message = ChangeFeedMessage(
        event_type=event_name,
        payload=payload or {},
        partition_key=partition_key,
        available_at=available_at or now,
        created_at=now,
        status=STATUS_PENDING,
        attempts=0,
    )
    session.add(message)
    return message


def mark_sent(messages: Sequence[ChangeFeedMessage]) -> int:
    for message in messages:
        message.status = STATUS_SENT
        message.last_error = None
    return len(messages)

