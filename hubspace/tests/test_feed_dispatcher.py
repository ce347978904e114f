from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import Query

from hubspace.core.clock import utcnow
from hubspace.extensions import db
from hubspace.hubs_platform.feed.models import ChangeFeedMessage
from hubspace.hubs_platform.feed.services import (
    STATUS_FAILED,
    STATUS_RETRY,
    STATUS_SENDING,
    STATUS_SENT,
    enqueue,
)
from hubspace.hubs_platform.worker import dispatcher
from hubspace.hubs_platform.worker.config import FeedConfig

pytestmark = pytest.mark.integration


def _config(**overrides) -> FeedConfig:
    defaults = {
        "batch_size": 5,
        "max_batching_window_seconds": 0,
        "poll_interval": 0,
        "max_attempts": 2,
        "backoff_seconds": 3,
        "backoff_multiplier": 2,
        "visibility_timeout_seconds": 60,
    }
    defaults.update(overrides)
    return FeedConfig(**defaults)


def _enqueue(event_type: str = "memberships.member.inserted", available_at: datetime | None = None) -> ChangeFeedMessage:
    msg = enqueue(
        event_type,
        {"hub_id": "h1", "user_id": "u1", "occurred_at": "2026-03-01T12:00:00"},
        partition_key="h1",
        available_at=available_at or utcnow() - timedelta(seconds=1),
    )
    db.session.commit()
    return msg


def test_successful_batch_marks_sent_and_increments_attempts(app):
    msg = _enqueue()
    seen: list[list[int]] = []

    processed = dispatcher.process_feed_batch(lambda batch: seen.append([m.id for m in batch]), _config())

    db.session.refresh(msg)
    assert processed == 1
    assert seen == [[msg.id]]
    assert msg.status == STATUS_SENT
    assert msg.attempts == 1
    assert msg.last_error is None
    assert db.session.query(ChangeFeedMessage).filter(ChangeFeedMessage.status != STATUS_SENT).count() == 0


def test_claim_uses_skip_locked_and_reserves_once(app, monkeypatch):
    first = _enqueue()
    second = _enqueue(event_type="memberships.member.removed")

    skip_locked_flags: list[bool | None] = []
    original_with_for_update = Query.with_for_update

    def _wrapped_with_for_update(self, *args, **kwargs):
        skip_locked_flags.append(kwargs.get("skip_locked"))
        return original_with_for_update(self, *args, **kwargs)

    monkeypatch.setattr(Query, "with_for_update", _wrapped_with_for_update)

    claimed = dispatcher.claim_feed_batch(db.session, batch_size=1)
    db.session.commit()
    assert [m.id for m in claimed] == [first.id]
    assert claimed[0].status == STATUS_SENDING

    claimed_second = dispatcher.claim_feed_batch(db.session, batch_size=2)
    db.session.commit()
    assert [m.id for m in claimed_second] == [second.id]
    assert True in skip_locked_flags


def test_short_batch_waits_for_batching_window(app):
    now = utcnow()
    msg = _enqueue(available_at=now - timedelta(seconds=2))

    held = dispatcher.claim_feed_batch(db.session, batch_size=10, max_batching_window=5, now=now)
    assert held == []

    later = now + timedelta(seconds=4)
    released = dispatcher.claim_feed_batch(db.session, batch_size=10, max_batching_window=5, now=later)
    assert [m.id for m in released] == [msg.id]


def test_full_batch_is_released_immediately(app):
    now = utcnow()
    for _ in range(3):
        _enqueue(available_at=now)

    claimed = dispatcher.claim_feed_batch(db.session, batch_size=3, max_batching_window=300, now=now)
    assert len(claimed) == 3


def test_event_type_filter(app):
    _enqueue(event_type="hubs.hub.renamed")
    wanted = _enqueue()

    claimed = dispatcher.claim_feed_batch(
        db.session, batch_size=5, event_types=["memberships.member.inserted"]
    )
    assert [m.id for m in claimed] == [wanted.id]


def test_expired_lease_is_claimed_again(app):
    now = utcnow()
    msg = _enqueue(available_at=now - timedelta(seconds=1))

    dispatcher.claim_feed_batch(db.session, batch_size=1, now=now, visibility_timeout=30)
    db.session.commit()
    assert dispatcher.claim_feed_batch(db.session, batch_size=1, now=now + timedelta(seconds=10)) == []

    reclaimed = dispatcher.claim_feed_batch(db.session, batch_size=1, now=now + timedelta(seconds=31))
    db.session.commit()
    assert [m.id for m in reclaimed] == [msg.id]
    assert reclaimed[0].attempts == 2


def test_failed_batch_is_requeued_whole_with_backoff(app):
    first = _enqueue()
    second = _enqueue()
    cfg = _config(max_attempts=2, backoff_seconds=4, backoff_multiplier=2)

    def _fail(_):
        raise RuntimeError("boom")

    start = utcnow()
    assert dispatcher.process_feed_batch(_fail, cfg) == 0
    for msg in (first, second):
        db.session.refresh(msg)
        assert msg.attempts == 1
        assert msg.status == STATUS_RETRY
        assert msg.available_at >= start + timedelta(seconds=cfg.backoff_seconds)
        assert msg.last_error == "boom"
    first_available = first.available_at

    # Make available again to trigger the final attempt
    for msg in (first, second):
        msg.available_at = utcnow() - timedelta(seconds=1)
    db.session.commit()

    dispatcher.process_feed_batch(_fail, cfg)
    db.session.refresh(first)
    assert first.attempts == 2
    assert first.status == STATUS_FAILED
    assert first.available_at >= first_available


def test_sent_message_is_not_delivered_twice(app):
    msg = _enqueue()
    delivered: list[int] = []

    dispatcher.process_feed_batch(lambda batch: delivered.extend(m.id for m in batch), _config())

    def _should_not_run(_):
        raise AssertionError("duplicate delivery attempted")

    assert dispatcher.process_feed_batch(_should_not_run, _config()) == 0
    db.session.refresh(msg)
    assert delivered == [msg.id]
    assert msg.status == STATUS_SENT


def test_run_feed_worker_stops_after_max_iterations(app, monkeypatch):
    _enqueue()
    monkeypatch.setattr(dispatcher.time, "sleep", lambda _: None)
    batches: list[int] = []

    dispatcher.run_feed_worker(lambda batch: batches.append(len(batch)), _config(), max_iterations=3)

    assert batches == [1]
