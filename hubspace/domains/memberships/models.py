"""Membership model keyed by (hub_id, user_id)."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column

from hubspace.core.clock import utcnow
from hubspace.extensions import db


class Membership(db.Model):
    __tablename__ = "memberships_membership"
    __table_args__ = (
        db.Index("ix_memberships_membership_last_seen", "last_seen"),
        db.Index("ix_memberships_membership_user", "user_id"),
    )

    # No FK to hubs_hub: a hub may be deleted while memberships are still draining.
    hub_id: Mapped[str] = mapped_column(db.String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(db.String(128), primary_key=True)
    joined_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    last_seen: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "hub_id": self.hub_id,
            "user_id": self.user_id,
            "joined_at": self.joined_at.isoformat(),
            "last_seen": self.last_seen.isoformat(),
        }
