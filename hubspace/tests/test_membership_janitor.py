from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from hubspace.core.errors import InfrastructureError, NotFoundError
from hubspace.core.telemetry import InMemoryMetricsSink
from hubspace.domains.memberships.events import MEMBERSHIPS_MEMBER_REMOVED
from hubspace.domains.memberships.models import Membership
from hubspace.domains.memberships.repository import (
    MembershipFilter,
    SqlMembershipStore,
    decode_cursor,
    encode_cursor,
)
from hubspace.domains.memberships.tasks import (
    JanitorConfig,
    StaleMembershipJanitor,
    cleanup_stale_memberships,
    run_cleanup_schedule,
)
from hubspace.domains.memberships.tasks.cleanup_stale_memberships import (
    METRIC_DELETE_FAILURES,
    METRIC_INCOMPLETE_RUNS,
    METRIC_MEMBERS_REMOVED,
    METRIC_RUN_FAILURES,
)
from hubspace.extensions import db
from hubspace.hubs_platform.feed.models import ChangeFeedMessage

NOW = datetime(2026, 3, 1, 12, 0, 0)
STALE = NOW - timedelta(hours=1)


class FakeMembershipStore:
    """Keyset-paged in-memory store mirroring the SQL store's contract."""

    def __init__(self, rows=(), fail_reads_on_page=None, fail_deletes=()):
        self.rows = {(m.hub_id, m.user_id): m for m in rows}
        self.fail_reads_on_page = fail_reads_on_page
        self.fail_deletes = set(fail_deletes)
        self.reads = 0
        self.deleted: list[tuple[str, str]] = []

    def page_scan(self, filter, page_size, cursor=None):
        self.reads += 1
        if self.fail_reads_on_page == self.reads:
            raise InfrastructureError("scan throttled")
        keys = sorted(
            key
            for key, m in self.rows.items()
            if filter.last_seen_before is None or m.last_seen < filter.last_seen_before
        )
        if cursor:
            after = decode_cursor(cursor)
            keys = [key for key in keys if key > after]
        page = [self.rows[key] for key in keys[:page_size]]
        next_cursor = None
        if len(keys) > page_size:
            next_cursor = encode_cursor(page[-1].hub_id, page[-1].user_id)
        return page, next_cursor

    def delete(self, hub_id, user_id, *, condition_exists=True, last_seen_before=None):
        if (hub_id, user_id) in self.fail_deletes:
            raise NotFoundError("not a member")
        self.rows.pop((hub_id, user_id))
        self.deleted.append((hub_id, user_id))
        return True


def _stale_rows(count: int, hubs: int = 3):
    return [
        Membership(hub_id=f"h{i % hubs}", user_id=f"u{i:03d}", joined_at=STALE, last_seen=STALE)
        for i in range(count)
    ]


def _janitor(store, sink=None, sleeps=None, **config):
    return StaleMembershipJanitor(
        store,
        JanitorConfig(**config),
        clock=lambda: NOW,
        sleep=(sleeps.append if sleeps is not None else lambda _: None),
        metrics=sink if sink is not None else InMemoryMetricsSink(),
    )


@pytest.mark.unit
def test_sixty_stale_rows_are_removed_in_three_pages_with_pauses():
    store = FakeMembershipStore(_stale_rows(60))
    sink = InMemoryMetricsSink()
    sleeps: list[float] = []

    report = _janitor(store, sink, sleeps, page_size=25, page_pause_seconds=0.1).run()

    assert report.page_sizes == [25, 25, 10]
    assert report.members_removed == 60
    assert report.hubs_affected == 3
    assert report.complete is True
    assert sleeps == [0.1, 0.1]
    assert store.rows == {}
    assert sink.value(METRIC_MEMBERS_REMOVED) == 60


@pytest.mark.unit
def test_fresh_memberships_are_kept():
    fresh = Membership(hub_id="h1", user_id="active", joined_at=NOW, last_seen=NOW - timedelta(minutes=5))
    store = FakeMembershipStore(_stale_rows(2) + [fresh])

    report = _janitor(store).run()

    assert report.members_removed == 2
    assert ("h1", "active") in store.rows


@pytest.mark.unit
def test_safety_valve_stops_run_and_reports_incomplete():
    store = FakeMembershipStore(_stale_rows(60))
    sink = InMemoryMetricsSink()

    report = _janitor(store, sink, page_size=10, max_pages=2).run()

    assert report.pages_scanned == 2
    assert report.members_removed == 20
    assert report.complete is False
    assert sink.value(METRIC_INCOMPLETE_RUNS) == 1
    assert len(store.rows) == 40


@pytest.mark.unit
def test_full_last_page_within_page_limit_is_complete():
    store = FakeMembershipStore(_stale_rows(50))
    sink = InMemoryMetricsSink()

    report = _janitor(store, sink, page_size=25, max_pages=2).run()

    assert report.page_sizes == [25, 25]
    assert report.complete is True
    assert store.reads == 2
    assert sink.value(METRIC_INCOMPLETE_RUNS) == 0


@pytest.mark.unit
def test_read_failure_propagates_and_keeps_earlier_deletes():
    store = FakeMembershipStore(_stale_rows(60), fail_reads_on_page=2)
    sink = InMemoryMetricsSink()

    with pytest.raises(InfrastructureError):
        _janitor(store, sink, page_size=25).run()

    assert len(store.deleted) == 25
    assert sink.value(METRIC_RUN_FAILURES) == 1
    assert sink.value(METRIC_MEMBERS_REMOVED) == 25


@pytest.mark.unit
def test_per_row_delete_failure_is_counted_and_skipped():
    rows = _stale_rows(5)
    store = FakeMembershipStore(rows, fail_deletes={(rows[1].hub_id, rows[1].user_id)})
    sink = InMemoryMetricsSink()

    report = _janitor(store, sink).run()

    assert report.members_removed == 4
    assert report.delete_failures == 1
    assert sink.value(METRIC_DELETE_FAILURES) == 1


@pytest.mark.unit
def test_no_stale_rows_reports_zero():
    report = _janitor(FakeMembershipStore()).run()

    assert report.members_removed == 0
    assert report.pages_scanned == 1
    assert report.hubs_affected == 0


@pytest.mark.integration
def test_sql_cleanup_deletes_stale_rows_and_feeds_removes(make_membership):
    for i in range(7):
        make_membership("h1" if i % 2 else "h2", f"u{i}", last_seen=STALE)
    make_membership("h1", "fresh", last_seen=NOW)

    janitor = StaleMembershipJanitor(
        SqlMembershipStore(),
        JanitorConfig(page_size=3, page_pause_seconds=0),
        clock=lambda: NOW,
        sleep=lambda _: None,
        metrics=InMemoryMetricsSink(),
    )
    report = janitor.run()

    assert report.members_removed == 7
    assert report.page_sizes == [3, 3, 1]
    assert report.hubs_affected == 2
    remaining = db.session.query(Membership).all()
    assert [(m.hub_id, m.user_id) for m in remaining] == [("h1", "fresh")]
    removes = db.session.query(ChangeFeedMessage).filter_by(event_type=MEMBERSHIPS_MEMBER_REMOVED).count()
    assert removes == 7


@pytest.mark.integration
def test_sql_delete_skips_row_refreshed_after_scan(make_membership):
    make_membership("h1", "u1", last_seen=STALE)
    store = SqlMembershipStore()

    cutoff = NOW - timedelta(minutes=20)
    items, _ = store.page_scan(MembershipFilter(last_seen_before=cutoff), page_size=10)
    assert len(items) == 1

    membership = db.session.get(Membership, ("h1", "u1"))
    membership.last_seen = NOW
    db.session.commit()

    with pytest.raises(NotFoundError):
        store.delete("h1", "u1", condition_exists=True, last_seen_before=cutoff)
    assert db.session.get(Membership, ("h1", "u1")) is not None


@pytest.mark.integration
def test_cleanup_entrypoint_and_schedule_use_fresh_runs(app, make_membership):
    make_membership("h1", "u1", last_seen=datetime(2000, 1, 1))
    report = cleanup_stale_memberships(JanitorConfig(page_pause_seconds=0))
    assert report.members_removed == 1

    sleeps: list[float] = []
    runs = run_cleanup_schedule(
        interval_seconds=30,
        config_factory=lambda: JanitorConfig(page_pause_seconds=0),
        sleep=sleeps.append,
        max_runs=2,
    )
    assert runs == 2
    assert sleeps == [30]


@pytest.mark.integration
def test_sql_scan_ends_on_an_exactly_full_page(make_membership):
    for i in range(6):
        make_membership("h1", f"u{i}", last_seen=STALE)

    janitor = StaleMembershipJanitor(
        SqlMembershipStore(),
        JanitorConfig(page_size=3, page_pause_seconds=0, max_pages=2),
        clock=lambda: NOW,
        sleep=lambda _: None,
        metrics=InMemoryMetricsSink(),
    )
    report = janitor.run()

    assert report.page_sizes == [3, 3]
    assert report.members_removed == 6
    assert report.complete is True
