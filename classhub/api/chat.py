# classhub/api/chat.py
from fastapi import APIRouter, Depends

from classhub.api.deps import get_general_assistant, get_resources_assistant
from classhub.models.chat import ChatReply, ChatRequest
from classhub.services.chat_assistant import ChatAssistant

router = APIRouter(prefix="/chat", tags=["chat"])


@router.post("/assistant", response_model=ChatReply)
async def general_chat(body: ChatRequest, assistant: ChatAssistant = Depends(get_general_assistant)):
    """Home page assistant. The client keeps the transcript and sends it back each turn."""
    reply = await assistant.reply(body.prompt, body.history)
    return ChatReply(reply=reply)


@router.post("/resources", response_model=ChatReply)
async def resources_chat(body: ChatRequest, assistant: ChatAssistant = Depends(get_resources_assistant)):
    reply = await assistant.reply(body.prompt, body.history)
    return ChatReply(reply=reply)
