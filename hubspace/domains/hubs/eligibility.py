"""Pluggable self-join eligibility checks."""

from __future__ import annotations

from typing import Iterable, Optional, Protocol, Set, Tuple

from hubspace.core.errors import StateError
from hubspace.domains.hubs.models import Hub


class JoinEligibilityPolicy(Protocol):
    def check(self, hub: Hub, user_id: str) -> None:
        """Raise ``StateError`` when ``user_id`` may not self-join ``hub``."""
        ...


class PublicHubsOnlyPolicy:
    """Base policy: anyone may join a public hub, nobody may self-join any other."""

    def check(self, hub: Hub, user_id: str) -> None:
        if not hub.is_public:
            raise StateError(
                "cannot join private hub without invitation",
                code="join_not_permitted",
            )


class AllowListPolicy:
    """Admit listed (hub_id, user_id) pairs, defer everything else to ``base``.

    Stand-in for an invitation list until invitations are stored.
    """

    def __init__(
        self,
        allowed: Iterable[Tuple[str, str]],
        base: Optional[JoinEligibilityPolicy] = None,
    ) -> None:
        self._allowed: Set[Tuple[str, str]] = set(allowed)
        self._base = base or PublicHubsOnlyPolicy()

    def check(self, hub: Hub, user_id: str) -> None:
        if (hub.hub_id, user_id) in self._allowed:
            return
        self._base.check(hub, user_id)


__all__ = ["AllowListPolicy", "JoinEligibilityPolicy", "PublicHubsOnlyPolicy"]
