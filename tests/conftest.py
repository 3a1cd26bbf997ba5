"""Shared fixtures: an in-memory stand-in for the async Azure table client."""

import asyncio
import os
from datetime import datetime, timedelta, timezone

os.environ["JWT_SECRET"] = "test-secret"
os.environ["JWT_ALG"] = "HS256"
os.environ.setdefault("APP_ENV", "production")

import jwt
import pytest
from azure.core.exceptions import ClientAuthenticationError, ResourceNotFoundError

from classhub.infra.table_client import NotificationStore
from classhub.services.error_channel import ErrorChannel

BASE_TIME = datetime(2020, 1, 6, 12, 0, tzinfo=timezone.utc)


class FakeTableClient:
    """
    Implements the subset of azure.data.tables.aio.TableClient the code uses.
    Like Table Storage, queries return rows in RowKey order.
    """

    def __init__(self, entities=None):
        self.entities = {e["RowKey"]: dict(e) for e in (entities or [])}
        self.deny = set()
        self.updates = []
        self.closed = False
        self.rows_read = 0
        self.query_delay = 0.0

    def _check(self, operation):
        if operation in self.deny:
            raise ClientAuthenticationError(f"{operation} denied")

    def query_entities(self, query_filter, parameters=None, **kwargs):
        parameters = parameters or {}

        async def _iterate():
            if self.query_delay:
                await asyncio.sleep(self.query_delay)
            self._check("query")
            for row_key in sorted(self.entities):
                entity = self.entities[row_key]
                if "pk" in parameters and entity.get("PartitionKey") != parameters["pk"]:
                    continue
                if "email" in parameters and entity.get("email") != parameters["email"]:
                    continue
                self.rows_read += 1
                yield dict(entity)

        return _iterate()

    async def create_entity(self, entity, **kwargs):
        self._check("create")
        self.entities[entity["RowKey"]] = dict(entity)

    async def update_entity(self, entity, mode=None, **kwargs):
        self._check("update")
        if entity["RowKey"] not in self.entities:
            raise ResourceNotFoundError("The specified resource does not exist.")
        self.updates.append((dict(entity), mode))
        self.entities[entity["RowKey"]].update(entity)

    async def close(self):
        self.closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()


def make_entity(row_key, minutes=0, read=False, message=None, type="new_event"):
    return {
        "PartitionKey": "notifications",
        "RowKey": row_key,
        "message": message or f"Notification {row_key}",
        "type": type,
        "link": f"/events#{row_key}",
        "read": read,
        "createdAt": (BASE_TIME + timedelta(minutes=minutes)).isoformat(),
    }


def make_token(sub="student-1", **claims):
    return jwt.encode({"sub": sub, **claims}, "test-secret", algorithm="HS256")


@pytest.fixture
def table():
    # row keys sort newest first, as reverse_row_key does
    return FakeTableClient([
        make_entity("n1", minutes=3),
        make_entity("n2", minutes=2, read=True),
        make_entity("n3", minutes=1),
    ])


@pytest.fixture
def store(table):
    return NotificationStore(table_client=table)


@pytest.fixture
def channel():
    return ErrorChannel()
