from __future__ import annotations
from pydantic import BaseModel
from uuid import UUID
from datetime import datetime


class NotificationPublic(BaseModel):
    id: UUID
    partner_id: str
    kind: str
    payload: dict
    created_at: datetime
    dispatched_at: datetime | None = None

    model_config = {"from_attributes": True}
