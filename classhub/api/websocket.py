# classhub/api/websocket.py
import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status

from classhub.api.deps import get_notification_store
from classhub.infra.table_client import NotificationStore
from classhub.models.session import SessionState
from classhub.security.session import SessionObserver
from classhub.services.error_channel import ErrorChannel
from classhub.services.notification_feed import NotificationFeed
from classhub.services.permission_presenter import PermissionErrorPresenter

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


def snapshot_message(feed: NotificationFeed) -> dict:
    return {
        "type": "snapshot",
        "notifications": [n.model_dump(mode="json") for n in feed.notifications],
        "unreadCount": feed.unread_count,
    }


def session_message(state: Optional[SessionState]) -> dict:
    return {
        "type": "session",
        "authenticated": state is not None,
        "userId": state.user_id if state else None,
        "isAdmin": state.is_admin if state else False,
    }


async def _pump(websocket: WebSocket, outbox: asyncio.Queue):
    while True:
        message = await outbox.get()
        await websocket.send_json(message)


async def _dispatch(message, session: SessionObserver, feed: NotificationFeed, outbox: asyncio.Queue):
    if not isinstance(message, dict):
        outbox.put_nowait({"type": "error", "detail": "Expected a JSON object"})
        return
    action = message.get("action")
    if action == "signIn":
        await session.sign_in(message.get("token", ""))
    elif action == "signOut":
        await session.sign_out()
    elif action == "markAsRead":
        await feed.mark_as_read(str(message.get("id", "")))
    elif action == "markAllAsRead":
        await feed.mark_all_as_read()
    else:
        outbox.put_nowait({"type": "error", "detail": f"Unknown action: {action}"})


@router.websocket("/ws/notifications")
async def websocket_notifications(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    store: NotificationStore = Depends(get_notification_store),
):
    """
    Live notification feed for one browser tab.
    The frontend connects with:
      ws://localhost:8001/ws/notifications?token=JWT_HERE
    or connects anonymously and sends {"action": "signIn", "token": ...}.
    """
    await websocket.accept()

    # everything below belongs to this connection only
    outbox: asyncio.Queue = asyncio.Queue()
    channel = ErrorChannel()
    presenter = PermissionErrorPresenter(notify=lambda toast: outbox.put_nowait(
        {"type": "toast", **toast.model_dump()}
    ))
    presenter.mount(channel)

    session = SessionObserver()
    feed = NotificationFeed(store, channel, on_change=lambda _: outbox.put_nowait(snapshot_message(feed)))

    async def on_header(state: Optional[SessionState]):
        outbox.put_nowait(session_message(state))

    stop_header = session.subscribe(on_header)
    stop_feed = feed.bind(session)
    sender = asyncio.create_task(_pump(websocket, outbox))

    try:
        if token:
            await session.sign_in(token)
        while True:
            message = await websocket.receive_json()
            await _dispatch(message, session, feed, outbox)
    except WebSocketDisconnect:
        pass
    except HTTPException as exc:
        LOGGER.info("Closing notification socket: %s", exc.detail)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
    finally:
        stop_header()
        stop_feed()
        feed.close()
        presenter.unmount()
        sender.cancel()
        await asyncio.gather(sender, return_exceptions=True)
