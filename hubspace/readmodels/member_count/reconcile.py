"""Full recount of ``Hub.member_count`` from the membership table.

Repair tool for drift (for example after a feed message ended up ``failed``).
Run it while the feed worker is paused: deltas applied concurrently with the
recount would be counted twice.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select

from hubspace.domains.hubs.models import Hub
from hubspace.domains.hubs.repository import SqlHubCounter
from hubspace.domains.memberships.models import Membership
from hubspace.extensions import db

logger = logging.getLogger(__name__)


def reconcile_member_counts(session=None) -> int:
    """Overwrite every hub's member_count with its membership row count; returns hubs touched."""
    session = session or db.session
    member_rows = (
        select(func.count())
        .select_from(Membership)
        .where(Membership.hub_id == Hub.hub_id)
        .correlate(Hub)
        .scalar_subquery()
    )
    try:
        updated = SqlHubCounter(session).overwrite_all("member_count", member_rows)
        session.commit()
    except Exception:
        session.rollback()
        logger.exception("Member count reconciliation failed")
        raise
    logger.info("Reconciled member_count on %s hubs", updated)
    return updated


__all__ = ["reconcile_member_counts"]
