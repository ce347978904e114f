"""Bookkeeping for change events already folded into hub member counts."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column

from hubspace.core.clock import utcnow
from hubspace.extensions import db


class AppliedChangeEvent(db.Model):
    __tablename__ = "readmodel_member_count_applied_event"
    __table_args__ = (
        db.Index("ix_readmodel_member_count_applied_event_applied_at", "applied_at"),
        db.Index("ix_readmodel_member_count_applied_event_hub", "hub_id"),
    )

    # "<event_type>:<feed message id>", stable across redeliveries.
    event_key: Mapped[str] = mapped_column(db.String(255), primary_key=True)
    hub_id: Mapped[str] = mapped_column(db.String(64), nullable=False)
    delta: Mapped[int] = mapped_column(nullable=False, default=0)
    applied_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
