# classhub/infra/table_client.py
import asyncio
import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional, Set

from azure.core.exceptions import (
    AzureError,
    ClientAuthenticationError,
    HttpResponseError,
    ResourceNotFoundError,
)
from azure.data.tables import UpdateMode
from azure.data.tables.aio import TableClient

from classhub.infra.errors import (
    NotificationNotFoundError,
    PermissionDeniedError,
    StoreError,
)
from classhub.models.notification import NotificationRecord

LOGGER = logging.getLogger(__name__)

TABLE_NAME = os.getenv("TABLE_NAME", "notifications")
CONN_STR = os.getenv("AZURE_STORAGE_CONNECTION_STRING")

# Azure error codes for requests the credentials may not perform
_AUTHORIZATION_CODES = {
    "AuthorizationFailure",
    "AuthorizationPermissionMismatch",
    "AuthenticationFailed",
    "InsufficientAccountPermissions",
}

FEED_LIMIT = 10

_MAX_TICKS = 10**19 - 1


def reverse_row_key(created_at: datetime) -> str:
    """
    RowKey that sorts newest first. Table Storage returns a partition in
    RowKey order, so the first `limit` rows are the newest ones.
    """
    ticks = int(created_at.timestamp() * 1_000_000)
    return f"{_MAX_TICKS - ticks:019d}-{uuid.uuid4().hex[:8]}"


def get_table_client(table_name: str) -> TableClient:
    if not CONN_STR:
        raise RuntimeError("AZURE_STORAGE_CONNECTION_STRING is not set")
    return TableClient.from_connection_string(conn_str=CONN_STR, table_name=table_name)


def classify_error(exc: Exception) -> StoreError:
    """Map an Azure SDK failure onto the StoreError hierarchy."""
    if isinstance(exc, ClientAuthenticationError):
        return PermissionDeniedError(str(exc))
    if isinstance(exc, ResourceNotFoundError):
        return NotificationNotFoundError(str(exc))
    if isinstance(exc, HttpResponseError):
        if exc.status_code in (401, 403) or getattr(exc, "error_code", None) in _AUTHORIZATION_CODES:
            return PermissionDeniedError(str(exc))
    return StoreError(str(exc))


class LiveQuery:
    """
    Live view over the newest notifications.

    Delivers the whole ordered list to on_next on open and after every
    write made through the store. A failed delivery goes to on_error and
    closes the query.
    """

    def __init__(
        self,
        store: "NotificationStore",
        limit: int,
        on_next: Callable[[List[NotificationRecord]], None],
        on_error: Callable[[StoreError], None],
    ):
        self._store = store
        self.limit = limit
        self._on_next = on_next
        self._on_error = on_error
        self._lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()
        self.closed = False

    async def refresh(self):
        # one delivery at a time so a slow query never overwrites a newer one
        async with self._lock:
            if self.closed:
                return
            try:
                records = await self._store.query_latest(self.limit)
            except StoreError as exc:
                self.close()
                self._on_error(exc)
                return
            if not self.closed:
                self._on_next(records)

    def invalidate(self):
        if self.closed:
            return
        task = asyncio.get_running_loop().create_task(self.refresh())
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Live query delivery failed", exc_info=exc)

    def close(self):
        if self.closed:
            return
        self.closed = True
        self._store._detach(self)
        for task in list(self._tasks):
            if task is not asyncio.current_task():
                task.cancel()


class NotificationStore:
    """
    Notifications kept in one Table Storage partition named after the table.
    RowKey is the notification id, built by reverse_row_key.
    """

    def __init__(self, table_client: Optional[TableClient] = None, table_name: str = TABLE_NAME):
        self._client = table_client
        self.table_name = table_name
        self._live: Set[LiveQuery] = set()

    @property
    def client(self) -> TableClient:
        if self._client is None:
            self._client = get_table_client(self.table_name)
        return self._client

    def record_path(self, notification_id: str) -> str:
        return f"{self.table_name}/{notification_id}"

    async def query_latest(self, limit: int = FEED_LIMIT) -> List[NotificationRecord]:
        """
        Newest notifications first, at most `limit`.
        Reads only the first `limit` rows of the partition (see reverse_row_key).
        """
        records: List[NotificationRecord] = []
        try:
            entities = self.client.query_entities(
                query_filter="PartitionKey eq @pk",
                parameters={"pk": self.table_name},
                results_per_page=limit,
            )
            async for entity in entities:
                records.append(NotificationRecord.from_entity(entity))
                if len(records) >= limit:
                    break
        except AzureError as exc:
            raise classify_error(exc) from exc

        # rows created in the same microsecond tie on the key prefix
        records.sort(key=lambda r: r.createdAt, reverse=True)
        return records

    async def insert(self, message: str, type: str, link: Optional[str] = None) -> NotificationRecord:
        created_at = datetime.now(timezone.utc)
        entity = {
            "PartitionKey": self.table_name,
            "RowKey": reverse_row_key(created_at),
            "message": message,
            "type": type,
            "link": link or "",
            "read": False,
            "createdAt": created_at.isoformat(),
        }
        try:
            await self.client.create_entity(entity=entity)
        except AzureError as exc:
            raise classify_error(exc) from exc

        self._changed()
        return NotificationRecord.from_entity(entity)

    async def mark_read(self, notification_id: str):
        # MERGE only touches the fields we send
        entity = {
            "PartitionKey": self.table_name,
            "RowKey": notification_id,
            "read": True,
        }
        try:
            await self.client.update_entity(entity=entity, mode=UpdateMode.MERGE)
        except AzureError as exc:
            raise classify_error(exc) from exc

        self._changed()

    async def watch(
        self,
        on_next: Callable[[List[NotificationRecord]], None],
        on_error: Callable[[StoreError], None],
        limit: int = FEED_LIMIT,
    ) -> LiveQuery:
        live = LiveQuery(self, limit, on_next, on_error)
        self._live.add(live)
        try:
            await live.refresh()
        except BaseException:
            live.close()
            raise
        return live

    def _changed(self):
        for live in list(self._live):
            live.invalidate()

    def _detach(self, live: LiveQuery):
        self._live.discard(live)

    async def close(self):
        for live in list(self._live):
            live.close()
        if self._client is not None:
            await self._client.close()
            self._client = None
