"""Change feed message model (transactional outbox of membership writes)."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column

from hubspace.core.clock import utcnow
from hubspace.extensions import db


class ChangeFeedMessage(db.Model):
    __tablename__ = "platform_change_feed"
    __table_args__ = (
        db.Index("ix_platform_change_feed_status_available_at", "status", "available_at"),
        db.Index("ix_platform_change_feed_partition_key", "partition_key", "id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    event_type: Mapped[str] = mapped_column(db.String(128), nullable=False, index=True)
    partition_key: Mapped[str] = mapped_column(db.String(64), nullable=False)
    payload: Mapped[dict] = mapped_column(db.JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(db.String(32), nullable=False, default="pending")
    attempts: Mapped[int] = mapped_column(default=0)
    available_at: Mapped[datetime] = mapped_column(default=utcnow)
    last_error: Mapped[str | None] = mapped_column(db.Text)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)

    @property
    def external_id(self) -> str:
        return f"{self.event_type}:{self.id}"
