"""Membership services: self-join and self-leave.

Neither path touches ``Hub.member_count``; the store stages a change-feed
message with each write and the count aggregator reconciles the count.
"""

from __future__ import annotations

import logging
from typing import Optional

from hubspace.core.clock import Clock, utcnow
from hubspace.core.errors import ConflictError, NotFoundError, StateError
from hubspace.core.utils.validation import require_non_blank
from hubspace.domains.hubs.eligibility import JoinEligibilityPolicy, PublicHubsOnlyPolicy
from hubspace.domains.hubs.repository import HubReader, SqlHubReader
from hubspace.domains.memberships.models import Membership
from hubspace.domains.memberships.repository import MembershipStore, SqlMembershipStore

logger = logging.getLogger(__name__)


class JoinHandler:
    def __init__(
        self,
        memberships: MembershipStore,
        hubs: HubReader,
        policy: Optional[JoinEligibilityPolicy] = None,
        clock: Clock = utcnow,
    ) -> None:
        self._memberships = memberships
        self._hubs = hubs
        self._policy = policy or PublicHubsOnlyPolicy()
        self._clock = clock

    def __call__(self, hub_id: str, identity: str) -> Membership:
        hub_id = require_non_blank(hub_id, "Hub ID")
        user_id = require_non_blank(identity, "Identity")

        hub = self._hubs.get(hub_id)
        if hub is None:
            raise NotFoundError("hub not found", code="hub_not_found")
        if not hub.is_active:
            raise StateError("hub is not active", code="hub_inactive")
        self._policy.check(hub, user_id)

        if self._memberships.get(hub_id, user_id) is not None:
            raise ConflictError("already a member", code="already_a_member")

        now = self._clock()
        # The conditional put still guards the window between the check above and the write.
        membership = self._memberships.put(
            Membership(hub_id=hub_id, user_id=user_id, joined_at=now, last_seen=now),
            condition_not_exists=True,
        )
        logger.info("User %s joined hub %s", user_id, hub_id)
        return membership


class LeaveHandler:
    def __init__(self, memberships: MembershipStore) -> None:
        self._memberships = memberships

    def __call__(self, hub_id: str, identity: str) -> bool:
        hub_id = require_non_blank(hub_id, "Hub ID")
        user_id = require_non_blank(identity, "Identity")

        if self._memberships.get(hub_id, user_id) is None:
            raise NotFoundError("not a member", code="not_a_member")
        # Conditional delete: a concurrent leave or cleanup eviction surfaces as NotFoundError.
        self._memberships.delete(hub_id, user_id, condition_exists=True)
        logger.info("User %s left hub %s", user_id, hub_id)
        return True


def add_member(
    hub_id: str,
    identity: str,
    *,
    policy: Optional[JoinEligibilityPolicy] = None,
    clock: Clock = utcnow,
) -> Membership:
    handler = JoinHandler(SqlMembershipStore(), SqlHubReader(), policy=policy, clock=clock)
    return handler(hub_id, identity)


def remove_member(hub_id: str, identity: str) -> bool:
    return LeaveHandler(SqlMembershipStore())(hub_id, identity)


def get_membership(hub_id: str, identity: str) -> Optional[Membership]:
    return SqlMembershipStore().get(
        require_non_blank(hub_id, "Hub ID"), require_non_blank(identity, "Identity")
    )


__all__ = ["JoinHandler", "LeaveHandler", "add_member", "get_membership", "remove_member"]
