# app/schemas/notification.py
from pydantic import BaseModel
from datetime import datetime
from typing import Any, Dict, Literal

from app.schemas.common import PaginatedResponse

class AdminNotification(BaseModel):
    id: int
    subject: str
    body: str
    meta: Dict[str, Any] | None = None
    status: Literal["UNREAD", "READ"]
    created_at: datetime

    class Config:
        from_attributes = True

class PaginatedAdminNotifications(PaginatedResponse[AdminNotification]):
    pass
