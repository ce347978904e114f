"""Operational CLI commands.

Usage:
    flask cleanup-memberships                 # One cleanup pass over stale memberships
    flask process-membership-feed --once      # Drain one member-count batch
    flask reconcile-member-counts             # Recount every hub from memberships
    flask prune-applied-events --days 7       # Drop old idempotency ledger rows
"""

from __future__ import annotations

from datetime import timedelta

import click
from flask.cli import with_appcontext

from hubspace.core.clock import utcnow
from hubspace.core.errors import InfrastructureError


@click.command("cleanup-memberships")
@click.option("--timeout-minutes", type=int, default=None, help="Override heartbeat timeout")
@with_appcontext
def cleanup_memberships_command(timeout_minutes: int | None):
    """Remove memberships whose last heartbeat is older than the timeout."""
    from hubspace.domains.memberships.tasks import JanitorConfig, cleanup_stale_memberships

    config = JanitorConfig.from_env()
    if timeout_minutes is not None:
        config = JanitorConfig(
            heartbeat_timeout_minutes=timeout_minutes,
            page_size=config.page_size,
            max_pages=config.max_pages,
            page_pause_seconds=config.page_pause_seconds,
        )
    try:
        report = cleanup_stale_memberships(config)
    except InfrastructureError as exc:
        raise click.ClickException(f"Cleanup failed: {exc}") from exc
    click.echo(
        f"Removed {report.members_removed} members from {report.hubs_affected} hubs "
        f"({report.pages_scanned} pages, {report.delete_failures} failures)"
    )
    if not report.complete:
        click.echo("Stopped at the page limit; remaining memberships are left for the next run.", err=True)


@click.command("process-membership-feed")
@click.option("--once", is_flag=True, help="Process a single batch and exit")
@with_appcontext
def process_membership_feed_command(once: bool):
    """Fold membership change events into hub member counts."""
    from hubspace.hubs_platform.worker.config import FeedConfig
    from hubspace.hubs_platform.worker.dispatcher import process_feed_batch, run_feed_worker
    from hubspace.readmodels.member_count import (
        MEMBER_COUNT_CONTRACT,
        build_member_count_aggregator,
    )

    aggregator = build_member_count_aggregator()
    config = FeedConfig.from_env()
    if once:
        processed = process_feed_batch(
            aggregator, config, event_types=MEMBER_COUNT_CONTRACT.consumed_events
        )
        click.echo(f"Acknowledged {processed} feed messages")
        return
    run_feed_worker(aggregator, config, event_types=MEMBER_COUNT_CONTRACT.consumed_events)


@click.command("reconcile-member-counts")
@with_appcontext
def reconcile_member_counts_command():
    """Overwrite member_count on every hub with the live membership count."""
    from hubspace.readmodels.member_count import reconcile_member_counts

    updated = reconcile_member_counts()
    click.echo(f"Reconciled {updated} hubs")


@click.command("prune-applied-events")
@click.option("--days", type=int, default=7, show_default=True, help="Keep ledger rows newer than this")
@with_appcontext
def prune_applied_events_command(days: int):
    """Drop applied-event ledger rows older than the redelivery horizon."""
    from hubspace.readmodels.member_count import SqlAppliedEventLedger

    removed = SqlAppliedEventLedger().prune(utcnow() - timedelta(days=days))
    click.echo(f"Pruned {removed} ledger rows")


def register_commands(app):
    """Register CLI commands with the app."""
    app.cli.add_command(cleanup_memberships_command)
    app.cli.add_command(process_membership_feed_command)
    app.cli.add_command(reconcile_member_counts_command)
    app.cli.add_command(prune_applied_events_command)
