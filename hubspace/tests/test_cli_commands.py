from __future__ import annotations

from datetime import datetime

import pytest

from hubspace.domains.memberships import services as membership_services
from hubspace.extensions import db

pytestmark = pytest.mark.integration


def test_feed_once_then_reconcile(app, make_hub, monkeypatch):
    monkeypatch.setenv("FEED_MAX_BATCHING_WINDOW_SECONDS", "0")
    hub = make_hub("h1", member_count=0)
    membership_services.add_member("h1", "u1")
    runner = app.test_cli_runner()

    result = runner.invoke(args=["process-membership-feed", "--once"])
    assert result.exit_code == 0, result.output
    assert "Acknowledged 1 feed messages" in result.output
    db.session.refresh(hub)
    assert hub.member_count == 1

    result = runner.invoke(args=["reconcile-member-counts"])
    assert result.exit_code == 0, result.output
    assert "Reconciled 1 hubs" in result.output


def test_cleanup_command_reports_removals(app, make_membership):
    make_membership("h1", "u1", last_seen=datetime(2000, 1, 1))
    result = app.test_cli_runner().invoke(
        args=["cleanup-memberships"], env={"MEMBERSHIP_CLEANUP_PAGE_PAUSE_SECONDS": "0"}
    )

    assert result.exit_code == 0, result.output
    assert "Removed 1 members from 1 hubs" in result.output


def test_prune_applied_events(app):
    result = app.test_cli_runner().invoke(args=["prune-applied-events", "--days", "1"])
    assert result.exit_code == 0, result.output
    assert "Pruned 0 ledger rows" in result.output
