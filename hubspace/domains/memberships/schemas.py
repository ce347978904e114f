"""Membership DTOs."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class MembershipResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    hub_id: str
    user_id: str
    joined_at: datetime
    last_seen: datetime
