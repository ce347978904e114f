"""Memberships domain event catalog."""

from __future__ import annotations

MEMBERSHIPS_MEMBER_INSERTED = "memberships.member.inserted"
MEMBERSHIPS_MEMBER_REMOVED = "memberships.member.removed"

# Version written by the membership store; older versions remain decodable.
CURRENT_PAYLOAD_VERSION = "v2"

EVENT_CATALOG = {
    MEMBERSHIPS_MEMBER_INSERTED: {
        "version": CURRENT_PAYLOAD_VERSION,
        "payload": {
            "schema_version": "str",
            "hub_id": "str",
            "user_id": "str",
            "occurred_at": "datetime",
            "is_active": "bool?",
        },
    },
    MEMBERSHIPS_MEMBER_REMOVED: {
        "version": CURRENT_PAYLOAD_VERSION,
        "payload": {
            "schema_version": "str",
            "hub_id": "str",
            "user_id": "str",
            "occurred_at": "datetime",
            "is_active": "bool?",
        },
    },
}

__all__ = [
    "CURRENT_PAYLOAD_VERSION",
    "EVENT_CATALOG",
    "MEMBERSHIPS_MEMBER_INSERTED",
    "MEMBERSHIPS_MEMBER_REMOVED",
]
