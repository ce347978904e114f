"""Applied-event ledgers: the unit of work around each hub's count update.

A ledger answers which events of a hub have not been applied yet, records the
ones being applied, and commits that record together with the hub increment.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional, Protocol, Sequence, Set

from sqlalchemy.exc import IntegrityError

from hubspace.core.clock import utcnow
from hubspace.core.errors import TransientStoreError
from hubspace.core.utils.db import store_operation
from hubspace.extensions import db
from hubspace.hubs_platform.feed.decoding import ChangeEvent
from hubspace.readmodels.member_count.models import AppliedChangeEvent


class AppliedEventLedger(Protocol):
    def unapplied(self, hub_id: str, event_ids: Sequence[str]) -> Set[str]:
        ...

    def record(self, hub_id: str, events: Sequence[ChangeEvent]) -> None:
        ...

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...


class SqlAppliedEventLedger:
    """Ledger rows share the session (and transaction) of the hub counter."""

    def __init__(self, session=None):
        self._session = session or db.session

    def unapplied(self, hub_id: str, event_ids: Sequence[str]) -> Set[str]:
        if not event_ids:
            return set()
        with store_operation(self._session, "applied event lookup"):
            applied = {
                key
                for (key,) in self._session.query(AppliedChangeEvent.event_key).filter(
                    AppliedChangeEvent.event_key.in_(list(event_ids))
                )
            }
        return set(event_ids) - applied

    def record(self, hub_id: str, events: Sequence[ChangeEvent]) -> None:
        now = utcnow()
        with store_operation(self._session, "applied event record"):
            for event in events:
                self._session.add(
                    AppliedChangeEvent(
                        event_key=event.event_id,
                        hub_id=hub_id,
                        delta=event.delta,
                        applied_at=now,
                    )
                )
            # Surface a concurrent duplicate before the counter update is committed.
            try:
                self._session.flush()
            except IntegrityError as exc:
                self._session.rollback()
                raise TransientStoreError(
                    f"hub {hub_id} events were applied by another worker"
                ) from exc

    def commit(self) -> None:
        with store_operation(self._session, "applied event commit"):
            self._session.commit()

    def rollback(self) -> None:
        self._session.rollback()

    def prune(self, older_than: datetime) -> int:
        """Drop ledger rows past the redelivery horizon; returns rows removed."""
        removed = (
            self._session.query(AppliedChangeEvent)
            .filter(AppliedChangeEvent.applied_at < older_than)
            .delete(synchronize_session=False)
        )
        self._session.commit()
        return removed


class InMemoryAppliedEventLedger:
    """Process-local ledger for tests and single-process tooling."""

    def __init__(self) -> None:
        self.applied: Dict[str, str] = {}
        self._staged: Dict[str, str] = {}

    def unapplied(self, hub_id: str, event_ids: Sequence[str]) -> Set[str]:
        return {event_id for event_id in event_ids if event_id not in self.applied}

    def record(self, hub_id: str, events: Sequence[ChangeEvent]) -> None:
        for event in events:
            self._staged[event.event_id] = hub_id

    def commit(self) -> None:
        self.applied.update(self._staged)
        self._staged.clear()

    def rollback(self) -> None:
        self._staged.clear()


__all__ = ["AppliedEventLedger", "InMemoryAppliedEventLedger", "SqlAppliedEventLedger"]
