"""
Shared fixtures: an in-memory stand-in for the subset of the motor API the engine uses
"""
import asyncio
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from pymongo.errors import BulkWriteError, DuplicateKeyError

from mongostream.config.manager import TransferOptions
from mongostream.core.database import StoreConnection


def make_docs(count: int, start: int = 1) -> List[Dict[str, Any]]:
    return [{"_id": i, "value": f"doc-{i}"} for i in range(start, start + count)]


class FakeCursor:
    """Pre-materialised cursor; Exception items are raised from next()"""

    def __init__(self, items: List[Any], die_on_error: bool = False):
        self._items = items
        self._position = 0
        self._die_on_error = die_on_error
        self.alive = True
        self.closed = False

    async def next(self):
        if not self.alive or self._position >= len(self._items):
            self.alive = False
            raise StopAsyncIteration
        item = self._items[self._position]
        self._position += 1
        if isinstance(item, Exception):
            if self._die_on_error:
                self.alive = False
            raise item
        return dict(item)

    async def close(self):
        self.closed = True
        self.alive = False


class FakeCommandCursor:

    def __init__(self, items):
        self._items = items

    async def to_list(self, length=None):
        return list(self._items)


class FakeCollection:

    def __init__(self, database: "FakeDatabase", name: str):
        self.database = database
        self.name = name
        self.docs: Dict[Any, Dict[str, Any]] = {}
        self.indexes: List[Dict[str, Any]] = [{"name": "_id_", "key": {"_id": 1}, "v": 2}]

        # injected failures
        self.read_errors: Dict[int, Exception] = {}
        self.die_on_read_error = False
        self.find_error: Optional[Exception] = None
        self.find_one_error: Optional[Exception] = None
        self.count_error: Optional[Exception] = None
        self.insert_error: Optional[Exception] = None
        self.insert_delay = 0.0

        # observations
        self.find_calls: List[Dict[str, Any]] = []
        self.insert_many_calls: List[Dict[str, Any]] = []
        self.insert_one_calls = 0
        self.cursors: List[FakeCursor] = []

    def seed(self, docs):
        for doc in docs:
            self.docs[doc["_id"]] = dict(doc)
        return self

    def sorted_docs(self, descending: bool = False):
        return sorted(self.docs.values(), key=lambda d: d["_id"], reverse=descending)

    def _matches(self, doc, query) -> bool:
        if not query:
            return True
        condition = query["_id"]
        if isinstance(condition, dict):
            return doc["_id"] > condition["$gt"]
        return doc["_id"] == condition

    def _select(self, query, sort=None):
        descending = bool(sort) and sort[0][1] == -1
        return [d for d in self.sorted_docs(descending) if self._matches(d, query)]

    def find(self, query=None, sort=None, batch_size=None, projection=None):
        self.find_calls.append({"filter": query, "sort": sort, "batch_size": batch_size})
        items: List[Any] = list(self._select(query, sort))
        if self.find_error is not None:
            items = [self.find_error]
        for position in sorted(self.read_errors):
            items.insert(position, self.read_errors[position])
        cursor = FakeCursor(items, die_on_error=self.die_on_read_error or self.find_error is not None)
        self.cursors.append(cursor)
        return cursor

    async def find_one(self, query=None, projection=None, sort=None):
        if self.find_one_error is not None:
            raise self.find_one_error
        matched = self._select(query, sort)
        if not matched:
            return None
        if projection:
            return {key: matched[0][key] for key in projection if key in matched[0]}
        return dict(matched[0])

    async def count_documents(self, query):
        if self.count_error is not None:
            raise self.count_error
        return len(self._select(query))

    async def estimated_document_count(self):
        if self.count_error is not None:
            raise self.count_error
        return len(self.docs)

    async def insert_one(self, doc):
        self.insert_one_calls += 1
        if self.insert_error is not None:
            raise self.insert_error
        if doc["_id"] in self.docs:
            raise DuplicateKeyError("E11000 duplicate key error", 11000)
        self.docs[doc["_id"]] = dict(doc)
        return SimpleNamespace(inserted_id=doc["_id"])

    async def insert_many(self, docs, ordered=True):
        client = self.database.client
        self.insert_many_calls.append({"ids": [d["_id"] for d in docs], "ordered": ordered})
        client.in_flight += 1
        client.max_in_flight = max(client.max_in_flight, client.in_flight)
        try:
            await asyncio.sleep(self.insert_delay)
            if self.insert_error is not None:
                raise self.insert_error

            write_errors = []
            inserted = []
            for index, doc in enumerate(docs):
                if doc["_id"] in self.docs:
                    write_errors.append({"index": index, "code": 11000, "errmsg": "E11000 duplicate key error"})
                    if ordered:
                        break
                    continue
                self.docs[doc["_id"]] = dict(doc)
                inserted.append(doc["_id"])

            if write_errors:
                raise BulkWriteError({"writeErrors": write_errors, "nInserted": len(inserted),
                                      "writeConcernErrors": [], "upserted": [],
                                      "nUpserted": 0, "nMatched": 0, "nModified": 0, "nRemoved": 0})
            return SimpleNamespace(inserted_ids=inserted)
        finally:
            client.in_flight -= 1

    def list_indexes(self):
        return FakeCommandCursor(self.indexes)

    async def create_index(self, keys, name=None, **options):
        if any(idx["name"] == name for idx in self.indexes):
            return name
        self.indexes.append({"name": name, "key": dict(keys), **options})
        return name


class FakeDatabase:

    def __init__(self, client: "FakeClient", name: str):
        self.client = client
        self.name = name
        self.collections: Dict[str, FakeCollection] = {}
        self.list_error: Optional[Exception] = None

    def __getitem__(self, name) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(self, name)
        return self.collections[name]

    async def list_collection_names(self, filter=None):
        if self.list_error is not None:
            raise self.list_error
        return [name for name in self.collections if not name.startswith("system.")]


class FakeAdmin:

    def __init__(self):
        self.ping_error: Optional[Exception] = None

    async def command(self, name):
        if self.ping_error is not None:
            raise self.ping_error
        return {"ok": 1}


class FakeClient:

    def __init__(self):
        self.databases: Dict[str, FakeDatabase] = {}
        self.admin = FakeAdmin()
        self.closed = False
        self.in_flight = 0
        self.max_in_flight = 0

    def __getitem__(self, name) -> FakeDatabase:
        if name not in self.databases:
            self.databases[name] = FakeDatabase(self, name)
        return self.databases[name]

    def close(self):
        self.closed = True


@pytest.fixture
def source_client():
    return FakeClient()


@pytest.fixture
def destination_client():
    return FakeClient()


@pytest.fixture
def source(source_client):
    return StoreConnection("mongodb://source", "app", label="source", client=source_client)


@pytest.fixture
def destination(destination_client):
    return StoreConnection("mongodb://destination", "app", label="destination", client=destination_client)


@pytest.fixture
def make_options():
    def _make(**overrides):
        values = {
            "source_uri": "mongodb://source",
            "destination_uri": "mongodb://destination",
            "database": "app",
        }
        values.update(overrides)
        return TransferOptions(**values)
    return _make
