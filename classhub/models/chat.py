# classhub/models/chat.py
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, field_validator


class Role(str, Enum):
    USER = "user"
    MODEL = "model"


class ChatMessage(BaseModel):
    role: Role
    content: str

    @field_validator("role", mode="before")
    @classmethod
    def _bot_is_model(cls, value):
        # the chat widgets label assistant turns "bot"
        if value == "bot":
            return Role.MODEL
        return value


class ChatRequest(BaseModel):
    prompt: str
    history: List[ChatMessage] = []


class ChatReply(BaseModel):
    reply: str


class AdminContact(BaseModel):
    name: str
    email: str
    whatsapp: Optional[str] = None
