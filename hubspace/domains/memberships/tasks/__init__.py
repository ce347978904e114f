"""Membership background tasks."""

from hubspace.domains.memberships.tasks.cleanup_stale_memberships import (
    JanitorReport,
    StaleMembershipJanitor,
    cleanup_stale_memberships,
    run_cleanup_schedule,
)
from hubspace.domains.memberships.tasks.config import JanitorConfig

__all__ = [
    "JanitorConfig",
    "JanitorReport",
    "StaleMembershipJanitor",
    "cleanup_stale_memberships",
    "run_cleanup_schedule",
]
