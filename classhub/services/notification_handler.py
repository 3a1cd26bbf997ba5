# classhub/services/notification_handler.py
import logging
from typing import Optional, Tuple

from classhub.infra.errors import PermissionDeniedError
from classhub.infra.table_client import NotificationStore
from classhub.models.notification import NotificationRecord
from classhub.models.permission_error import Operation, PermissionErrorEvent
from classhub.models.queue_message import QueueMessage
from classhub.services.error_channel import ErrorChannel

LOGGER = logging.getLogger(__name__)


def render_notification(msg: QueueMessage) -> Tuple[str, Optional[str]]:
    """
    Text and link for a notification coming from the queue.
    Expected shape:
      {
        "type": "new_project",
        "data": {"id": "...", "title": "...", "author": "..."}
      }
    """
    data = msg.data
    doc_id = data.get("id", "")

    # map types to texts
    if msg.type == "new_project":
        message = f'New project added: "{data.get("title", "")}" by {data.get("author", "someone")}'
        link = f"/projects#{doc_id}"
    elif msg.type == "new_event":
        message = f"New {data.get('kind', 'event')}: {data.get('title', '')}"
        link = f"/events#{doc_id}"
    elif msg.type == "new_resource":
        message = f"New resource added in {data.get('category', 'Resources')}: {data.get('title', '')}"
        link = f"/resources#{doc_id}"
    else:
        message = msg.message or "You have a new notification."
        link = msg.link

    return message, link


async def process_notification(
    payload: dict,
    store: NotificationStore,
    channel: ErrorChannel,
) -> Optional[NotificationRecord]:
    """
    Persist a queued notification. Open feeds pick it up through their
    live query. A denied write is reported on the channel, not raised.
    """
    msg = QueueMessage.model_validate(payload)
    message, link = render_notification(msg)

    try:
        record = await store.insert(message=message, type=msg.type, link=link)
    except PermissionDeniedError:
        channel.emit(PermissionErrorEvent(
            path=store.table_name,
            operation=Operation.CREATE,
            request_resource_data={"message": message, "type": msg.type, "link": link, "read": False},
        ))
        return None

    LOGGER.info("Stored notification %s (%s)", record.id, record.type)
    return record
