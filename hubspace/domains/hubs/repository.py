"""Hub aggregate store, split into two narrow capabilities.

``HubReader`` is what the join path needs. ``HubCounter`` is the only way to
change ``member_count`` and is handed exclusively to the count aggregator.
"""

from __future__ import annotations

from typing import Optional, Protocol

from sqlalchemy import case, update

from hubspace.core.errors import NotFoundError, ValidationError
from hubspace.core.utils.db import store_operation
from hubspace.domains.hubs.models import Hub
from hubspace.extensions import db

COUNTER_FIELDS = frozenset({"member_count"})


class HubReader(Protocol):
    def get(self, hub_id: str) -> Optional[Hub]:
        ...


class HubCounter(Protocol):
    def atomic_add(
        self, hub_id: str, field: str, delta: int, *, condition_exists: bool = True
    ) -> None:
        ...


class SqlHubReader:
    """Read-only hub lookups."""

    def __init__(self, session=None):
        self._session = session or db.session

    def get(self, hub_id: str) -> Optional[Hub]:
        with store_operation(self._session, "hub lookup"):
            return self._session.get(Hub, hub_id)


class SqlHubCounter:
    """Add-without-read updates on hub counter columns.

    Never commits; the caller owns the transaction so the increment can be
    committed together with its bookkeeping rows.
    """

    def __init__(self, session=None):
        self._session = session or db.session

    def _column(self, field: str):
        if field not in COUNTER_FIELDS:
            raise ValidationError(f"{field} is not a counter field")
        return getattr(Hub, field)

    def atomic_add(
        self, hub_id: str, field: str, delta: int, *, condition_exists: bool = True
    ) -> None:
        column = self._column(field)
        # Single UPDATE; the database applies the delta to whatever value is current.
        incremented = column + delta
        stmt = (
            update(Hub)
            .where(Hub.hub_id == hub_id)
            .values({field: case((incremented < 0, 0), else_=incremented)})
            .execution_options(synchronize_session=False)
        )
        with store_operation(self._session, "hub counter update"):
            result = self._session.execute(stmt)
            if result.rowcount == 0 and condition_exists:
                raise NotFoundError("hub not found", code="hub_not_found")

    def overwrite_all(self, field: str, value_expr) -> int:
        """Set ``field`` on every hub from a (correlated) SQL expression in one statement."""
        self._column(field)
        stmt = update(Hub).values({field: value_expr}).execution_options(synchronize_session=False)
        return self._session.execute(stmt).rowcount


__all__ = ["COUNTER_FIELDS", "HubCounter", "HubReader", "SqlHubCounter", "SqlHubReader"]
