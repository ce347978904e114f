"""CLI entrypoints for the change feed worker and the cleanup scheduler."""

from __future__ import annotations

import logging
import os

from hubspace import create_app
from hubspace.domains.memberships.tasks import run_cleanup_schedule
from hubspace.hubs_platform.worker.config import FeedConfig
from hubspace.hubs_platform.worker.dispatcher import run_feed_worker
from hubspace.readmodels.member_count import MEMBER_COUNT_CONTRACT, build_member_count_aggregator


def main() -> None:
    logging.basicConfig(level=os.environ.get("WORKER_LOGLEVEL", "INFO"))
    env = os.environ.get("APP_ENV", "development")
    app = create_app(env)
    with app.app_context():
        run_feed_worker(
            build_member_count_aggregator(),
            FeedConfig.from_env(),
            event_types=MEMBER_COUNT_CONTRACT.consumed_events,
        )


def scheduler_main() -> None:
    logging.basicConfig(level=os.environ.get("WORKER_LOGLEVEL", "INFO"))
    env = os.environ.get("APP_ENV", "development")
    interval = float(os.environ.get("MEMBERSHIP_CLEANUP_INTERVAL_SECONDS", "3600"))
    app = create_app(env)
    with app.app_context():
        run_cleanup_schedule(interval_seconds=interval)


if __name__ == "__main__":
    main()
