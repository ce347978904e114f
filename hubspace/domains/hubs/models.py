"""Hub aggregate model with prefixed table."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column

from hubspace.core.clock import utcnow
from hubspace.extensions import db

HUB_TYPE_PUBLIC = "PUBLIC"
HUB_TYPE_PRIVATE = "PRIVATE"


class Hub(db.Model):
    __tablename__ = "hubs_hub"
    __table_args__ = (
        db.CheckConstraint("member_count >= 0", name="ck_hubs_hub_member_count_non_negative"),
        db.Index("ix_hubs_hub_type_active", "hub_type", "is_active"),
    )

    hub_id: Mapped[str] = mapped_column(db.String(64), primary_key=True)
    name: Mapped[str] = mapped_column(db.String(255), nullable=False)
    hub_type: Mapped[str] = mapped_column(db.String(16), nullable=False, default=HUB_TYPE_PUBLIC)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    # Display-only; written exclusively by the member-count aggregator.
    member_count: Mapped[int] = mapped_column(default=0, nullable=False)
    created_by: Mapped[str | None] = mapped_column(db.String(128))
    created_at: Mapped[datetime] = mapped_column(default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow)

    @property
    def is_public(self) -> bool:
        return self.hub_type == HUB_TYPE_PUBLIC
