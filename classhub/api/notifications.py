# classhub/api/notifications.py
import asyncio
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from classhub.api.deps import get_error_channel, get_notification_store
from classhub.infra.errors import NotificationNotFoundError, PermissionDeniedError, StoreError
from classhub.infra.servicebus_consumer import consumer_status
from classhub.infra.table_client import FEED_LIMIT, NotificationStore
from classhub.models.notification import NotificationRecord
from classhub.models.permission_error import Operation, PermissionErrorEvent
from classhub.models.queue_message import QueueMessage
from classhub.security.jwt_utils import get_current_user
from classhub.services.error_channel import ErrorChannel
from classhub.services.notification_handler import process_notification

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _list_denied(store: NotificationStore) -> PermissionErrorEvent:
    return PermissionErrorEvent(path=store.table_name, operation=Operation.LIST)


def _update_denied(store: NotificationStore, notification_id: str) -> PermissionErrorEvent:
    return PermissionErrorEvent(
        path=store.record_path(notification_id),
        operation=Operation.UPDATE,
        request_resource_data={"read": True},
    )


def _raise_for(exc: StoreError, channel: ErrorChannel, event: PermissionErrorEvent):
    if isinstance(exc, PermissionDeniedError):
        channel.emit(event)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    if isinstance(exc, NotificationNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    raise HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail="Notification storage unavailable",
    )


@router.get("", response_model=List[NotificationRecord])
async def list_notifications(
    request: Request,
    limit: int = Query(FEED_LIMIT, ge=1, le=FEED_LIMIT),
    store: NotificationStore = Depends(get_notification_store),
    channel: ErrorChannel = Depends(get_error_channel),
):
    """
    Newest notifications first. Requires a signed-in user.
    """
    get_current_user(request.headers.get("Authorization", ""))
    try:
        return await store.query_latest(limit)
    except StoreError as e:
        _raise_for(e, channel, _list_denied(store))


@router.get("/unread-count")
async def unread_count(
    request: Request,
    store: NotificationStore = Depends(get_notification_store),
    channel: ErrorChannel = Depends(get_error_channel),
):
    """
    Counts the unread notifications in the feed window.
    """
    get_current_user(request.headers.get("Authorization", ""))
    try:
        notis = await store.query_latest(FEED_LIMIT)
    except StoreError as e:
        _raise_for(e, channel, _list_denied(store))

    return {"count": sum(1 for n in notis if not n.read)}


@router.post("/mark-read/{notification_id}")
async def mark_notification_as_read(
    notification_id: str,
    request: Request,
    store: NotificationStore = Depends(get_notification_store),
    channel: ErrorChannel = Depends(get_error_channel),
):
    get_current_user(request.headers.get("Authorization", ""))
    try:
        await store.mark_read(notification_id)
    except StoreError as e:
        _raise_for(e, channel, _update_denied(store, notification_id))

    return {"ok": True}


@router.post("/mark-all-read")
async def mark_all_as_read(
    request: Request,
    store: NotificationStore = Depends(get_notification_store),
    channel: ErrorChannel = Depends(get_error_channel),
):
    """
    Marks every unread notification in the feed window as read.
    Each update is independent; the response lists the ones that failed.
    """
    get_current_user(request.headers.get("Authorization", ""))
    try:
        notis = await store.query_latest(FEED_LIMIT)
    except StoreError as e:
        _raise_for(e, channel, _list_denied(store))

    unread = [n.id for n in notis if not n.read]
    results = await asyncio.gather(
        *(store.mark_read(i) for i in unread),
        return_exceptions=True,
    )

    marked, failed = [], []
    for notification_id, result in zip(unread, results):
        if result is None:
            marked.append(notification_id)
        elif isinstance(result, PermissionDeniedError):
            channel.emit(_update_denied(store, notification_id))
            failed.append(notification_id)
        elif isinstance(result, StoreError):
            LOGGER.error("Could not mark %s as read: %s", notification_id, result)
            failed.append(notification_id)
        else:
            raise result

    return {"ok": not failed, "marked": marked, "failed": failed}


# =========================
# DEV-ONLY: /notifications/dev-send
# Publish an arbitrary notification straight to the store for testing,
# bypassing Service Bus. Requires a JWT.
# =========================

@router.post("/dev-send")
async def dev_send(
    body: QueueMessage,
    request: Request,
    store: NotificationStore = Depends(get_notification_store),
    channel: ErrorChannel = Depends(get_error_channel),
):
    """
    Runs a queue message through the same handler as the consumer
    (new_project, new_event, new_resource or free text).
    """
    get_current_user(request.headers.get("Authorization", ""))

    record = await process_notification(body.model_dump(), store, channel)
    if record is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return {"ok": True, "notification": record}


# =========================
# Service Bus consumer diagnostics
# =========================
@router.get("/debug/consumer-status")
async def debug_consumer_status():
    """
    Consumer state:
    - startedAt: when it started
    - lastMessageAt: last processed message
    - lastError: last error seen, if any
    - queue: queue name
    - hasConnectionString: whether a connection string is configured
    """
    return consumer_status()
