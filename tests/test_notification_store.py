"""Tests for NotificationStore and its live queries."""

import asyncio
from datetime import timedelta

import pytest
from azure.core.exceptions import HttpResponseError
from azure.data.tables import UpdateMode

from classhub.infra.errors import NotificationNotFoundError, PermissionDeniedError, StoreError
from classhub.infra.table_client import NotificationStore, classify_error, reverse_row_key

from conftest import BASE_TIME, FakeTableClient, make_entity


@pytest.mark.asyncio
async def test_query_latest_orders_newest_first_and_caps(store) -> None:
    records = await store.query_latest(2)

    assert [r.id for r in records] == ["n1", "n2"]


@pytest.mark.asyncio
async def test_query_latest_reads_only_the_newest_rows() -> None:
    entities = [
        make_entity(reverse_row_key(BASE_TIME + timedelta(minutes=i)), minutes=i, message=f"m{i}")
        for i in range(15)
    ]
    table = FakeTableClient(entities)
    records = await NotificationStore(table_client=table).query_latest()

    assert len(records) == 10
    assert records[0].message == "m14"
    assert [r.createdAt for r in records] == sorted((r.createdAt for r in records), reverse=True)
    assert table.rows_read == 10


def test_reverse_row_key_sorts_newest_first() -> None:
    older = reverse_row_key(BASE_TIME)
    newer = reverse_row_key(BASE_TIME + timedelta(microseconds=1))

    assert newer < older
    assert len(newer) == len(older)


@pytest.mark.asyncio
async def test_inserted_rows_use_reverse_keys(store, table) -> None:
    first = await store.insert("first", "custom")
    await asyncio.sleep(0.001)
    second = await store.insert("second", "custom")

    records = await store.query_latest(2)

    assert [r.id for r in records] == [second.id, first.id]
    assert second.id < first.id


@pytest.mark.asyncio
async def test_mark_read_sends_partial_merge(store, table) -> None:
    await store.mark_read("n1")

    entity, mode = table.updates[0]
    assert entity == {"PartitionKey": "notifications", "RowKey": "n1", "read": True}
    assert mode == UpdateMode.MERGE
    assert table.entities["n1"]["message"] == "Notification n1"


@pytest.mark.asyncio
async def test_denied_operations_raise_permission_denied(store, table) -> None:
    table.deny = {"query", "update", "create"}

    with pytest.raises(PermissionDeniedError):
        await store.query_latest()
    with pytest.raises(PermissionDeniedError):
        await store.mark_read("n1")
    with pytest.raises(PermissionDeniedError):
        await store.insert("hello", "custom")


@pytest.mark.asyncio
async def test_mark_read_missing_row(store) -> None:
    with pytest.raises(NotificationNotFoundError):
        await store.mark_read("missing")


def test_classify_error_by_status_and_code() -> None:
    forbidden = HttpResponseError(message="forbidden")
    forbidden.status_code = 403
    by_code = HttpResponseError(message="nope")
    by_code.error_code = "AuthorizationPermissionMismatch"
    throttled = HttpResponseError(message="busy")
    throttled.status_code = 503

    assert isinstance(classify_error(forbidden), PermissionDeniedError)
    assert isinstance(classify_error(by_code), PermissionDeniedError)
    failure = classify_error(throttled)
    assert type(failure) is StoreError


@pytest.mark.asyncio
async def test_insert_assigns_id_and_timestamp(store, table) -> None:
    record = await store.insert("New resource added in Project Ideas: Bots", "new_resource", "/resources#r1")

    assert record.id in table.entities
    assert record.read is False
    assert record.createdAt.tzinfo is not None
    assert store.record_path(record.id) == f"notifications/{record.id}"


@pytest.mark.asyncio
async def test_watch_delivers_on_open_and_after_writes(store) -> None:
    deliveries = []
    live = await store.watch(deliveries.append, pytest.fail)

    assert [r.id for r in deliveries[0]] == ["n1", "n2", "n3"]

    await store.insert("fresh", "custom")
    await asyncio.sleep(0)
    await live.refresh()

    assert deliveries[-1][0].message == "fresh"
    assert len(deliveries[-1]) == 4
    live.close()


@pytest.mark.asyncio
async def test_watch_error_closes_query(store, table) -> None:
    table.deny = {"query"}
    errors = []

    live = await store.watch(pytest.fail, errors.append)

    assert len(errors) == 1
    assert isinstance(errors[0], PermissionDeniedError)
    assert live.closed


@pytest.mark.asyncio
async def test_close_is_idempotent_and_stops_deliveries(store) -> None:
    deliveries = []
    live = await store.watch(deliveries.append, pytest.fail)

    live.close()
    live.close()
    await store.mark_read("n1")
    await live.refresh()

    assert len(deliveries) == 1


@pytest.mark.asyncio
async def test_store_close_closes_client(store, table) -> None:
    live = await store.watch(lambda _: None, pytest.fail)

    await store.close()

    assert live.closed
    assert table.closed


@pytest.mark.asyncio
async def test_cancelled_watch_is_detached(store, table) -> None:
    table.query_delay = 0.05

    opening = asyncio.ensure_future(store.watch(pytest.fail, pytest.fail))
    await asyncio.sleep(0.01)
    opening.cancel()
    with pytest.raises(asyncio.CancelledError):
        await opening

    assert store._live == set()
