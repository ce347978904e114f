"""Scheduled eviction of memberships whose heartbeat has expired.

The task only deletes membership rows. Each delete produces a REMOVE message on
the change feed and the count aggregator adjusts ``member_count`` from there,
so a failed cleanup run can never leave a hub count half-updated.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Mapping, Optional, Set

from hubspace.core.clock import Clock, utcnow
from hubspace.core.errors import InfrastructureError, MembershipError
from hubspace.core.telemetry import MetricsSink, emit_safely, metrics_sink
from hubspace.domains.memberships.models import Membership
from hubspace.domains.memberships.repository import (
    MembershipFilter,
    MembershipStore,
    SqlMembershipStore,
)
from hubspace.domains.memberships.tasks.config import JanitorConfig

logger = logging.getLogger(__name__)

METRIC_MEMBERS_REMOVED = "membership_cleanup.members_removed"
METRIC_DELETE_FAILURES = "membership_cleanup.delete_failures"
METRIC_INCOMPLETE_RUNS = "membership_cleanup.incomplete_runs"
METRIC_RUN_FAILURES = "membership_cleanup.run_failures"


@dataclass
class JanitorReport:
    cutoff: datetime
    members_removed: int = 0
    delete_failures: int = 0
    pages_scanned: int = 0
    page_sizes: List[int] = field(default_factory=list)
    hub_ids: Set[str] = field(default_factory=set)
    # False when the max-pages safety valve stopped the run early.
    complete: bool = True

    @property
    def hubs_affected(self) -> int:
        return len(self.hub_ids)

    def as_dict(self) -> Dict[str, object]:
        return {
            "cutoff": self.cutoff.isoformat(),
            "members_removed": self.members_removed,
            "hubs_affected": self.hubs_affected,
            "delete_failures": self.delete_failures,
            "pages_scanned": self.pages_scanned,
            "complete": self.complete,
        }


class StaleMembershipJanitor:
    """One stateless cleanup run; construct a fresh instance per scheduled tick."""

    def __init__(
        self,
        memberships: MembershipStore,
        config: Optional[JanitorConfig] = None,
        *,
        clock: Clock = utcnow,
        sleep: Callable[[float], None] = time.sleep,
        metrics: Optional[MetricsSink] = None,
        dimensions: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._memberships = memberships
        self._config = config or JanitorConfig()
        self._clock = clock
        self._sleep = sleep
        self._metrics = metrics if metrics is not None else metrics_sink
        self._dimensions = dict(dimensions or {"service": "membership-cleanup"})

    def run(self) -> JanitorReport:
        cfg = self._config
        cutoff = self._clock() - timedelta(minutes=cfg.heartbeat_timeout_minutes)
        report = JanitorReport(cutoff=cutoff)
        stale = MembershipFilter(last_seen_before=cutoff)
        logger.info("Cleaning up memberships inactive since before %s", cutoff.isoformat())

        cursor: Optional[str] = None
        try:
            while True:
                if report.pages_scanned >= cfg.max_pages:
                    report.complete = False
                    logger.warning(
                        "Membership cleanup stopped after %s pages with more pages remaining",
                        report.pages_scanned,
                    )
                    break
                if report.pages_scanned:
                    self._sleep(cfg.page_pause_seconds)

                items, cursor = self._read_page(stale, cursor, report)
                report.pages_scanned += 1
                report.page_sizes.append(len(items))
                logger.info(
                    "Cleanup page #%s: found %s inactive memberships",
                    report.pages_scanned,
                    len(items),
                )
                self._remove_page(items, cutoff, report)

                if cursor is None:
                    break
        finally:
            # A failed scan still reports what earlier pages removed.
            self._emit(report)

        if report.members_removed:
            logger.info(
                "Cleanup complete. Removed %s inactive members from %s hubs.",
                report.members_removed,
                report.hubs_affected,
            )
        else:
            logger.info("Cleanup complete. No inactive members removed.")
        return report

    def _read_page(self, stale: MembershipFilter, cursor: Optional[str], report: JanitorReport):
        try:
            return self._memberships.page_scan(stale, self._config.page_size, cursor)
        except Exception as exc:
            # Earlier pages stay deleted; the run fails so the scheduler alarms.
            logger.exception("Cleanup scan #%s failed", report.pages_scanned + 1)
            emit_safely(self._metrics, METRIC_RUN_FAILURES, 1, self._dimensions)
            if isinstance(exc, InfrastructureError):
                raise
            raise InfrastructureError(
                f"membership scan failed on page {report.pages_scanned + 1}"
            ) from exc

    def _remove_page(self, items: List[Membership], cutoff: datetime, report: JanitorReport) -> None:
        for membership in items:
            hub_id, user_id = membership.hub_id, membership.user_id
            try:
                # Re-check staleness in the delete so a fresh heartbeat wins the race.
                self._memberships.delete(
                    hub_id, user_id, condition_exists=True, last_seen_before=cutoff
                )
            except MembershipError as exc:
                report.delete_failures += 1
                logger.warning(
                    "Skipped removal of member %s from hub %s: %s", user_id, hub_id, exc
                )
                continue
            except Exception:
                report.delete_failures += 1
                logger.exception("Failed to remove member %s from hub %s", user_id, hub_id)
                continue
            report.members_removed += 1
            report.hub_ids.add(hub_id)
            logger.debug(
                "Removed inactive member %s from hub %s (last seen %s)",
                user_id,
                hub_id,
                membership.last_seen,
            )

    def _emit(self, report: JanitorReport) -> None:
        emit_safely(self._metrics, METRIC_MEMBERS_REMOVED, report.members_removed, self._dimensions)
        if report.delete_failures:
            emit_safely(self._metrics, METRIC_DELETE_FAILURES, report.delete_failures, self._dimensions)
        if not report.complete:
            emit_safely(self._metrics, METRIC_INCOMPLETE_RUNS, 1, self._dimensions)


def cleanup_stale_memberships(
    config: Optional[JanitorConfig] = None,
    *,
    metrics: Optional[MetricsSink] = None,
    dimensions: Optional[Mapping[str, str]] = None,
) -> JanitorReport:
    """Run one cleanup pass against the SQL store."""
    janitor = StaleMembershipJanitor(
        SqlMembershipStore(),
        config or JanitorConfig.from_env(),
        metrics=metrics,
        dimensions=dimensions,
    )
    return janitor.run()


def run_cleanup_schedule(
    interval_seconds: float = 3600,
    config_factory: Callable[[], JanitorConfig] = JanitorConfig.from_env,
    sleep: Callable[[float], None] = time.sleep,
    max_runs: Optional[int] = None,
) -> int:
    """
    Invoke a fresh cleanup run every ``interval_seconds``; nothing carries over between runs.
    Returns the number of runs attempted.
    """
    runs = 0
    try:
        while max_runs is None or runs < max_runs:
            runs += 1
            try:
                report = cleanup_stale_memberships(config_factory())
                logger.info("Scheduled cleanup finished: %s", report.as_dict())
            except InfrastructureError:
                logger.exception("Scheduled cleanup run failed")
            if max_runs is None or runs < max_runs:
                sleep(interval_seconds)
    except KeyboardInterrupt:
        logger.info("Cleanup scheduler stopped by user")
    return runs


__all__ = [
    "JanitorReport",
    "StaleMembershipJanitor",
    "cleanup_stale_memberships",
    "run_cleanup_schedule",
]
