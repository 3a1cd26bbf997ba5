# classhub/api/deps.py
from functools import lru_cache

from starlette.requests import HTTPConnection

from classhub.infra.table_client import NotificationStore
from classhub.services.chat_assistant import (
    ChatAssistant,
    OpenAIGenerationBackend,
    build_general_assistant,
    build_resources_assistant,
)
from classhub.services.error_channel import ErrorChannel


def get_notification_store(conn: HTTPConnection) -> NotificationStore:
    return conn.app.state.notification_store


def get_error_channel(conn: HTTPConnection) -> ErrorChannel:
    """Process-wide channel for errors raised outside a client session."""
    return conn.app.state.error_channel


@lru_cache
def _backend() -> OpenAIGenerationBackend:
    return OpenAIGenerationBackend()


def get_general_assistant() -> ChatAssistant:
    return build_general_assistant(_backend())


def get_resources_assistant() -> ChatAssistant:
    return build_resources_assistant(_backend())
