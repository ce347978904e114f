"""Change feed batching and worker loop.

Delivery is at-least-once: a batch is handed to the handler as a unit, and if
the handler raises, every message in it is re-queued with backoff and will be
delivered again. Handlers must tolerate seeing the same message twice.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from hubspace.core.clock import utcnow
from hubspace.extensions import db
from hubspace.hubs_platform.feed.models import ChangeFeedMessage
from hubspace.hubs_platform.feed.services import (
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_RETRY,
    STATUS_SENDING,
    mark_sent,
)
from hubspace.hubs_platform.worker.config import FeedConfig

logger = logging.getLogger(__name__)

BatchHandler = Callable[[List[ChangeFeedMessage]], object]


def _compute_backoff_seconds(attempts: int, config: FeedConfig) -> float:
    """Exponential backoff based on attempt number (1-indexed)."""
    base = config.backoff_seconds
    factor = config.backoff_multiplier ** max(attempts - 1, 0)
    return base * factor


def claim_feed_batch(
    session,
    batch_size: int,
    max_batching_window: float = 0,
    now: Optional[datetime] = None,
    visibility_timeout: float = 60,
    event_types: Optional[Iterable[str]] = None,
) -> List[ChangeFeedMessage]:
    """
    Lock and return up to ``batch_size`` ready messages using SKIP LOCKED.

    A short batch is held back until its oldest message has waited
    ``max_batching_window`` seconds. Claimed rows move to 'sending' and are
    leased for ``visibility_timeout`` seconds; an expired lease is claimable again.
    """
    now = now or utcnow()
    query = session.query(ChangeFeedMessage).filter(
        ChangeFeedMessage.available_at <= now,
        ChangeFeedMessage.status.in_((STATUS_PENDING, STATUS_RETRY, STATUS_SENDING)),
    )
    if event_types is not None:
        query = query.filter(ChangeFeedMessage.event_type.in_(list(event_types)))
    messages = (
        query.order_by(ChangeFeedMessage.available_at, ChangeFeedMessage.id)
        .with_for_update(skip_locked=True)
        .limit(batch_size)
        .all()
    )
    if not messages:
        return []
    if len(messages) < batch_size:
        oldest = min(message.available_at for message in messages)
        if now - oldest < timedelta(seconds=max_batching_window):
            return []

    lease_until = now + timedelta(seconds=visibility_timeout)
    for message in messages:
        message.status = STATUS_SENDING
        message.attempts = (message.attempts or 0) + 1
        message.available_at = lease_until
    return messages


def _apply_failure_backoff(message: ChangeFeedMessage, exc: Exception, config: FeedConfig) -> None:
    attempts = message.attempts or 1
    delay_seconds = _compute_backoff_seconds(attempts, config)
    message.last_error = str(exc)
    message.available_at = utcnow() + timedelta(seconds=delay_seconds)

    if attempts >= config.max_attempts:
        message.status = STATUS_FAILED
    else:
        message.status = STATUS_RETRY


def requeue_batch(messages: Sequence[ChangeFeedMessage], exc: Exception, config: FeedConfig) -> None:
    for message in messages:
        _apply_failure_backoff(message, exc, config)


def process_feed_batch(
    handler: BatchHandler,
    config: FeedConfig,
    session=None,
    now: Optional[datetime] = None,
    event_types: Optional[Iterable[str]] = None,
) -> int:
    """
    Claim one batch and hand it to ``handler``.
    Returns the number of messages acknowledged (0 when nothing was ready or the batch failed).
    """
    session = session or db.session
    try:
        messages = claim_feed_batch(
            session,
            batch_size=config.batch_size,
            max_batching_window=config.max_batching_window_seconds,
            now=now,
            visibility_timeout=config.visibility_timeout_seconds,
            event_types=event_types,
        )
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Database error while claiming feed batch")
        return 0
    if not messages:
        return 0

    try:
        handler(messages)
    except Exception as exc:
        session.rollback()
        logger.exception("Feed batch of %s messages failed; scheduling redelivery", len(messages))
        try:
            requeue_batch(messages, exc, config)
            session.commit()
        except SQLAlchemyError:
            # Lease expiry will redeliver the batch.
            session.rollback()
            logger.exception("Database error while re-queueing failed feed batch")
        return 0

    try:
        acknowledged = mark_sent(messages)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Database error while acknowledging feed batch")
        return 0
    return acknowledged


def run_feed_worker(
    handler: BatchHandler,
    config: Optional[FeedConfig] = None,
    event_types: Optional[Iterable[str]] = None,
    max_iterations: Optional[int] = None,
) -> None:
    """Run the feed loop until interrupted."""
    cfg = config or FeedConfig.from_env()

    logger.info(
        "Starting change feed worker (batch_size=%s, window=%ss, poll_interval=%ss, max_attempts=%s, backoff=%ss x%s)",
        cfg.batch_size,
        cfg.max_batching_window_seconds,
        cfg.poll_interval,
        cfg.max_attempts,
        cfg.backoff_seconds,
        cfg.backoff_multiplier,
    )

    iterations = 0
    try:
        while max_iterations is None or iterations < max_iterations:
            iterations += 1
            processed = process_feed_batch(handler, cfg, event_types=event_types)
            if processed == 0:
                time.sleep(cfg.poll_interval)
            else:
                time.sleep(min(0.1, cfg.poll_interval))
    except KeyboardInterrupt:
        logger.info("Feed worker stopped by user")


__all__ = [
    "BatchHandler",
    "claim_feed_batch",
    "process_feed_batch",
    "requeue_batch",
    "run_feed_worker",
]
