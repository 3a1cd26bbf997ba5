# classhub/models/queue_message.py
from typing import Any, Dict, Optional
from pydantic import BaseModel


class QueueMessage(BaseModel):
    type: str
    data: Dict[str, Any] = {}
    message: Optional[str] = None
    link: Optional[str] = None
