"""Membership store: conditional point writes and cursor-paginated scans.

Every committed insert or delete stages exactly one change-feed message in the
same transaction, so the feed mirrors the table without a separate producer.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Protocol, Tuple

from sqlalchemy import and_, delete, insert, or_
from sqlalchemy.exc import IntegrityError

from hubspace.core.clock import utcnow
from hubspace.core.errors import ConflictError, NotFoundError, ValidationError
from hubspace.core.utils.db import store_operation
from hubspace.domains.memberships.events import (
    CURRENT_PAYLOAD_VERSION,
    MEMBERSHIPS_MEMBER_INSERTED,
    MEMBERSHIPS_MEMBER_REMOVED,
)
from hubspace.domains.memberships.models import Membership
from hubspace.extensions import db
from hubspace.hubs_platform.feed.services import enqueue as enqueue_feed


@dataclass(frozen=True)
class MembershipFilter:
    last_seen_before: Optional[datetime] = None
    hub_id: Optional[str] = None


class MembershipStore(Protocol):
    def get(self, hub_id: str, user_id: str) -> Optional[Membership]:
        ...

    def put(self, membership: Membership, *, condition_not_exists: bool = True) -> Membership:
        ...

    def delete(
        self,
        hub_id: str,
        user_id: str,
        *,
        condition_exists: bool = True,
        last_seen_before: Optional[datetime] = None,
    ) -> bool:
        ...

    def page_scan(
        self,
        filter: MembershipFilter,
        page_size: int,
        cursor: Optional[str] = None,
    ) -> Tuple[List[Membership], Optional[str]]:
        ...


def encode_cursor(hub_id: str, user_id: str) -> str:
    raw = json.dumps([hub_id, user_id], separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_cursor(cursor: str) -> Tuple[str, str]:
    try:
        hub_id, user_id = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")))
    except (binascii.Error, ValueError, TypeError, UnicodeError) as exc:
        raise ValidationError("invalid pagination cursor") from exc
    if not isinstance(hub_id, str) or not isinstance(user_id, str):
        raise ValidationError("invalid pagination cursor")
    return hub_id, user_id


def _change_payload(hub_id: str, user_id: str, occurred_at: datetime) -> dict:
    return {
        "schema_version": CURRENT_PAYLOAD_VERSION,
        "hub_id": hub_id,
        "user_id": user_id,
        "occurred_at": occurred_at.isoformat(),
        "is_active": True,
    }


class SqlMembershipStore:
    """SQLAlchemy-backed membership store; each mutation is its own transaction."""

    def __init__(self, session=None):
        self._session = session or db.session

    def get(self, hub_id: str, user_id: str) -> Optional[Membership]:
        with store_operation(self._session, "membership lookup"):
            return self._session.get(Membership, (hub_id, user_id))

    def put(self, membership: Membership, *, condition_not_exists: bool = True) -> Membership:
        values = {
            "hub_id": membership.hub_id,
            "user_id": membership.user_id,
            "joined_at": membership.joined_at or utcnow(),
            "last_seen": membership.last_seen or membership.joined_at or utcnow(),
        }
        with store_operation(self._session, "membership put"):
            if not condition_not_exists:
                existing = self._session.get(Membership, (membership.hub_id, membership.user_id))
                if existing is not None:
                    existing.last_seen = values["last_seen"]
                    self._session.commit()
                    return existing
            try:
                # Core INSERT so the primary key is the condition, whatever the identity map holds.
                self._session.execute(insert(Membership).values(**values))
            except IntegrityError as exc:
                self._session.rollback()
                raise ConflictError("already a member", code="already_a_member") from exc
            enqueue_feed(
                MEMBERSHIPS_MEMBER_INSERTED,
                _change_payload(values["hub_id"], values["user_id"], values["joined_at"]),
                partition_key=values["hub_id"],
                session=self._session,
            )
            self._session.commit()
        return Membership(**values)

    def delete(
        self,
        hub_id: str,
        user_id: str,
        *,
        condition_exists: bool = True,
        last_seen_before: Optional[datetime] = None,
    ) -> bool:
        """Delete one membership; returns False only for an unconditional miss."""
        clauses = [Membership.hub_id == hub_id, Membership.user_id == user_id]
        if last_seen_before is not None:
            clauses.append(Membership.last_seen < last_seen_before)
        with store_operation(self._session, "membership delete"):
            result = self._session.execute(
                delete(Membership)
                .where(*clauses)
                .execution_options(synchronize_session="evaluate")
            )
            if result.rowcount == 0:
                self._session.rollback()
                if condition_exists:
                    raise NotFoundError("not a member", code="not_a_member")
                return False
            enqueue_feed(
                MEMBERSHIPS_MEMBER_REMOVED,
                _change_payload(hub_id, user_id, utcnow()),
                partition_key=hub_id,
                session=self._session,
            )
            self._session.commit()
        return True

    def page_scan(
        self,
        filter: MembershipFilter,
        page_size: int,
        cursor: Optional[str] = None,
    ) -> Tuple[List[Membership], Optional[str]]:
        """Keyset page over (hub_id, user_id); deletions never shift later pages."""
        if page_size <= 0:
            raise ValidationError("page size must be positive")
        after = decode_cursor(cursor) if cursor else None
        with store_operation(self._session, "membership page scan"):
            query = self._session.query(Membership)
            if filter.last_seen_before is not None:
                query = query.filter(Membership.last_seen < filter.last_seen_before)
            if filter.hub_id is not None:
                query = query.filter(Membership.hub_id == filter.hub_id)
            if after is not None:
                query = query.filter(
                    or_(
                        Membership.hub_id > after[0],
                        and_(Membership.hub_id == after[0], Membership.user_id > after[1]),
                    )
                )
            items = (
                query.order_by(Membership.hub_id, Membership.user_id)
                .limit(page_size + 1)
                .all()
            )
        next_cursor = None
        # The extra row only tells us another page exists.
        if len(items) > page_size:
            items = items[:page_size]
            last = items[-1]
            next_cursor = encode_cursor(last.hub_id, last.user_id)
        return items, next_cursor


__all__ = [
    "MembershipFilter",
    "MembershipStore",
    "SqlMembershipStore",
    "decode_cursor",
    "encode_cursor",
]
