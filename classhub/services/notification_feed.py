# classhub/services/notification_feed.py
import asyncio
import logging
from typing import Callable, List, Optional

from classhub.infra.errors import PermissionDeniedError, StoreError
from classhub.infra.table_client import FEED_LIMIT, LiveQuery, NotificationStore
from classhub.models.notification import NotificationRecord
from classhub.models.permission_error import Operation, PermissionErrorEvent
from classhub.models.session import SessionState
from classhub.security.session import SessionObserver
from classhub.services.error_channel import ErrorChannel

LOGGER = logging.getLogger(__name__)

FeedListener = Callable[[List[NotificationRecord]], None]


class NotificationFeed:
    """
    The newest notifications for one client session.

    The list is replaced as a whole on every delivery, is unique by id,
    sorted by createdAt descending and never longer than `limit`.
    Permission failures go to the ErrorChannel instead of the caller.
    """

    def __init__(
        self,
        store: NotificationStore,
        channel: ErrorChannel,
        limit: int = FEED_LIMIT,
        on_change: Optional[FeedListener] = None,
    ):
        self._store = store
        self._channel = channel
        self.limit = limit
        self._records: List[NotificationRecord] = []
        self._live: Optional[LiveQuery] = None
        self._active = False
        self._listeners: List[FeedListener] = []
        if on_change is not None:
            self._listeners.append(on_change)

    @property
    def notifications(self) -> List[NotificationRecord]:
        return list(self._records)

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self._records if not n.read)

    @property
    def subscribed(self) -> bool:
        return self._live is not None and not self._live.closed

    def add_listener(self, listener: FeedListener):
        self._listeners.append(listener)

    # --- session gating -------------------------------------------------

    def bind(self, session: SessionObserver) -> Callable[[], None]:
        """Open and close the subscription as the session signs in and out."""
        return session.subscribe(self.on_session_change)

    async def on_session_change(self, state: Optional[SessionState]):
        if state is None:
            self.close()
            return
        self._active = True
        if not self.subscribed:
            await self.subscribe(self.limit)

    # --- subscription ---------------------------------------------------

    async def subscribe(self, limit: int = FEED_LIMIT) -> LiveQuery:
        self.limit = limit
        self._active = True
        if self._live is not None:
            self._live.close()
            self._live = None
        live = await self._store.watch(self._on_snapshot, self._on_error, limit=limit)
        # close() may have run while the first query was in flight
        if not self._active:
            live.close()
            return live
        self._live = live
        return live

    def close(self):
        """Close the subscription and clear the feed. Safe to call twice."""
        self._active = False
        if self._live is not None:
            self._live.close()
            self._live = None
        if self._records:
            self._replace([])

    def _on_snapshot(self, records: List[NotificationRecord]):
        if not self._active:
            return
        seen = set()
        unique = []
        for record in records:
            if record.id in seen:
                continue
            seen.add(record.id)
            unique.append(record)
        unique.sort(key=lambda r: r.createdAt, reverse=True)
        self._replace(unique[: self.limit])

    def _on_error(self, exc: StoreError):
        if isinstance(exc, PermissionDeniedError):
            self._replace([])
            self._channel.emit(PermissionErrorEvent(
                path=self._store.table_name,
                operation=Operation.LIST,
            ))
            return
        LOGGER.error("Notification subscription failed: %s", exc)

    def _replace(self, records: List[NotificationRecord]):
        self._records = records
        snapshot = self.notifications
        for listener in list(self._listeners):
            listener(snapshot)

    # --- mutations ------------------------------------------------------

    async def mark_as_read(self, notification_id: str):
        if not self._active:
            return
        current = next((n for n in self._records if n.id == notification_id), None)
        if current is not None and current.read:
            return

        try:
            await self._store.mark_read(notification_id)
        except PermissionDeniedError:
            self._channel.emit(PermissionErrorEvent(
                path=self._store.record_path(notification_id),
                operation=Operation.UPDATE,
                request_resource_data={"read": True},
            ))
            return
        except StoreError as exc:
            LOGGER.error("Could not mark %s as read: %s", notification_id, exc)
            return

        # confirmed by the store, the live query will agree on its next delivery
        if any(n.id == notification_id and not n.read for n in self._records):
            self._replace([
                n.model_copy(update={"read": True}) if n.id == notification_id else n
                for n in self._records
            ])

    async def mark_all_as_read(self):
        """Best effort: every unread record is updated on its own."""
        if not self._active:
            return
        unread = [n.id for n in self._records if not n.read]
        await asyncio.gather(*(self.mark_as_read(i) for i in unread))
