"""Hub member-count aggregator.

Consumes change-feed batches and folds them into ``Hub.member_count``:

1. decode the whole batch through the versioned decoder (a decode failure
   fails the batch so the feed redelivers it),
2. group events per hub and drop events the ledger has already applied,
3. coalesce each hub's events into one net delta and apply it with a single
   atomic add, committed together with the ledger rows,
4. isolate per-hub failures (hub gone, concurrent apply): they are logged and
   counted, and every other hub in the batch is still attempted. A store
   outage fails the whole batch instead so the feed redelivers it.
"""

from __future__ import annotations

import logging
import os
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from hubspace.core.errors import InfrastructureError, NotFoundError, TransientStoreError
from hubspace.core.telemetry import MetricsSink, emit_safely, metrics_sink
from hubspace.domains.hubs.repository import HubCounter, SqlHubCounter
from hubspace.domains.memberships.events import (
    CURRENT_PAYLOAD_VERSION,
    MEMBERSHIPS_MEMBER_INSERTED,
    MEMBERSHIPS_MEMBER_REMOVED,
)
from hubspace.hubs_platform.feed.decoding import ChangeEvent, decode_batch
from hubspace.readmodels.contracts import ReadModelContract
from hubspace.readmodels.member_count.ledger import AppliedEventLedger, SqlAppliedEventLedger

logger = logging.getLogger(__name__)

MEMBER_COUNT_FIELD = "member_count"

METRIC_HUB_UPDATE_SUCCESSES = "member_count.hub_update.successes"
METRIC_HUB_UPDATE_FAILURES = "member_count.hub_update.failures"
METRIC_BATCH_FAILURES = "member_count.batch.failures"

MEMBER_COUNT_CONTRACT = ReadModelContract(
    name="hub_member_count",
    domain="hubs",
    consumed_events=(MEMBERSHIPS_MEMBER_INSERTED, MEMBERSHIPS_MEMBER_REMOVED),
    replay_start_version=CURRENT_PAYLOAD_VERSION,
    idempotency_key="event_type:feed_message_id",
    type="aggregate",
    rebuild_strategy="full recount from memberships_membership (reconcile_member_counts)",
)


@dataclass
class AggregatorConfig:
    service_name: str = "member-count-aggregator"
    environment: str = "dev"

    @classmethod
    def from_env(cls) -> "AggregatorConfig":
        return cls(
            service_name=os.environ.get("MEMBER_COUNT_SERVICE_NAME", "member-count-aggregator"),
            environment=os.environ.get("STAGE", "dev"),
        )

    @property
    def dimensions(self) -> Dict[str, str]:
        return {"service": self.service_name, "environment": self.environment}


@dataclass
class AggregationReport:
    events_received: int = 0
    events_skipped: int = 0
    events_duplicate: int = 0
    hubs_updated: int = 0
    hub_failures: int = 0
    net_deltas: Dict[str, int] = field(default_factory=dict)
    failed_hubs: List[str] = field(default_factory=list)


def coalesce(events: Iterable[ChangeEvent]) -> "OrderedDict[str, int]":
    """Sum signed deltas per hub, keeping first-seen hub order."""
    totals: "OrderedDict[str, int]" = OrderedDict()
    for event in events:
        totals[event.hub_id] = totals.get(event.hub_id, 0) + event.delta
    return totals


class CountAggregator:
    """Sole writer of ``Hub.member_count``."""

    def __init__(
        self,
        counter: HubCounter,
        ledger: AppliedEventLedger,
        *,
        metrics: Optional[MetricsSink] = None,
        config: Optional[AggregatorConfig] = None,
    ) -> None:
        self._counter = counter
        self._ledger = ledger
        self._metrics = metrics if metrics is not None else metrics_sink
        self._config = config or AggregatorConfig()

    def __call__(self, messages) -> AggregationReport:
        return self.handle_batch(messages)

    def handle_batch(self, messages) -> AggregationReport:
        messages = [m for m in messages if MEMBER_COUNT_CONTRACT.handles(m.event_type)]
        logger.info("Processing %s change feed records", len(messages))
        try:
            events = decode_batch(messages)
        except InfrastructureError:
            logger.exception("Change feed batch could not be decoded")
            self._emit(METRIC_BATCH_FAILURES, 1)
            raise

        report = AggregationReport(events_received=len(events))
        for hub_id, hub_events in self._group_by_hub(events).items():
            self._apply_hub(hub_id, hub_events, report)

        if report.hubs_updated:
            self._emit(METRIC_HUB_UPDATE_SUCCESSES, report.hubs_updated)
        if report.hub_failures:
            self._emit(METRIC_HUB_UPDATE_FAILURES, report.hub_failures)
        logger.info(
            "Change feed batch complete. Updated %s hubs, %s failures, %s duplicate events.",
            report.hubs_updated,
            report.hub_failures,
            report.events_duplicate,
        )
        return report

    @staticmethod
    def _group_by_hub(events: List[ChangeEvent]) -> "OrderedDict[str, List[ChangeEvent]]":
        grouped: "OrderedDict[str, List[ChangeEvent]]" = OrderedDict()
        seen: set = set()
        for event in events:
            if event.event_id in seen:
                continue
            seen.add(event.event_id)
            grouped.setdefault(event.hub_id, []).append(event)
        return grouped

    def _apply_hub(self, hub_id: str, hub_events: List[ChangeEvent], report: AggregationReport) -> None:
        try:
            fresh_ids = self._ledger.unapplied(hub_id, [event.event_id for event in hub_events])
            pending = [event for event in hub_events if event.event_id in fresh_ids]
            report.events_duplicate += len(hub_events) - len(pending)
            report.events_skipped += sum(1 for event in pending if not event.counts)

            delta = coalesce(pending).get(hub_id, 0)
            if pending:
                self._ledger.record(hub_id, pending)
            if delta:
                self._counter.atomic_add(hub_id, MEMBER_COUNT_FIELD, delta, condition_exists=True)
            self._ledger.commit()
        except (NotFoundError, TransientStoreError) as exc:
            self._ledger.rollback()
            report.hub_failures += 1
            report.failed_hubs.append(hub_id)
            logger.warning("Failed to update hub %s member count: %s", hub_id, exc)
            return
        except Exception:
            # Store outage: fail the batch so the feed redelivers it; the ledger skips hubs already applied.
            self._ledger.rollback()
            logger.exception("Store failure while updating hub %s member count", hub_id)
            self._emit(METRIC_BATCH_FAILURES, 1)
            raise

        if delta:
            report.hubs_updated += 1
            report.net_deltas[hub_id] = delta
            logger.info("Updated hub %s member count by %s", hub_id, delta)

    def _emit(self, name: str, value: float) -> None:
        emit_safely(self._metrics, name, value, self._config.dimensions)


def build_member_count_aggregator(
    session=None,
    *,
    metrics: Optional[MetricsSink] = None,
    config: Optional[AggregatorConfig] = None,
) -> CountAggregator:
    """Aggregator wired to the SQL hub counter and ledger on one session."""
    return CountAggregator(
        SqlHubCounter(session),
        SqlAppliedEventLedger(session),
        metrics=metrics,
        config=config or AggregatorConfig.from_env(),
    )


__all__ = [
    "AggregationReport",
    "AggregatorConfig",
    "CountAggregator",
    "MEMBER_COUNT_CONTRACT",
    "MEMBER_COUNT_FIELD",
    "build_member_count_aggregator",
    "coalesce",
]
