# classhub/models/notification.py
from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class NotificationRecord(BaseModel):
    id: str                # RowKey
    message: str
    createdAt: datetime
    read: bool = False
    link: Optional[str] = None
    type: str = "generic"

    @classmethod
    def from_entity(cls, entity: dict) -> "NotificationRecord":
        return cls(
            id=entity["RowKey"],
            message=entity.get("message", ""),
            createdAt=entity["createdAt"],
            read=entity.get("read", False),
            link=entity.get("link") or None,
            type=entity.get("type", "generic"),
        )
