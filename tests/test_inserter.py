import asyncio
import logging

import pytest
from pymongo.errors import AutoReconnect

from mongostream.transfer.inserter import BoundedInserter
from tests.conftest import make_docs

LOGGER = "mongostream.transfer.inserter"


@pytest.fixture
def collection(destination_client):
    return destination_client["app"]["users"]


def batches_of(docs, size):
    return [docs[i:i + size] for i in range(0, len(docs), size)]


@pytest.mark.asyncio
async def test_permits_bound_in_flight_inserts(collection, destination_client):
    collection.insert_delay = 0.01
    inserter = BoundedInserter(collection, "app.users", concurrency=2)

    for batch in batches_of(make_docs(60), 10):
        await inserter.submit(batch)
        assert inserter.in_flight <= 2
    await inserter.join()

    assert destination_client.max_in_flight == 2
    assert len(collection.docs) == 60
    assert inserter.batches_submitted == 6
    assert inserter.documents_submitted == 60
    assert inserter.in_flight == 0


@pytest.mark.asyncio
async def test_single_permit_serialises_batches(collection, destination_client):
    collection.insert_delay = 0.005
    inserter = BoundedInserter(collection, "app.users", concurrency=1, ordered=True)

    for batch in batches_of(make_docs(30), 10):
        await inserter.submit(batch)
    await inserter.join()

    assert destination_client.max_in_flight == 1
    assert [call["ids"][0] for call in collection.insert_many_calls] == [1, 11, 21]
    assert all(call["ordered"] for call in collection.insert_many_calls)


@pytest.mark.asyncio
async def test_unordered_flag_is_passed(collection):
    inserter = BoundedInserter(collection, "app.users", concurrency=4, ordered=False)
    await inserter.submit(make_docs(5))
    await inserter.join()
    assert collection.insert_many_calls[0]["ordered"] is False


@pytest.mark.asyncio
async def test_failed_batch_releases_permit_and_is_not_raised(collection):
    collection.insert_error = AutoReconnect("connection reset")
    inserter = BoundedInserter(collection, "app.users", concurrency=1)

    for batch in batches_of(make_docs(30), 10):
        await asyncio.wait_for(inserter.submit(batch), timeout=1)
    await inserter.join()

    assert inserter.errors == 3
    assert inserter.metrics.failed_operations == 3
    assert inserter.metrics.documents_failed == 30
    assert collection.docs == {}


@pytest.mark.asyncio
async def test_duplicates_counted_from_bulk_write_error(collection):
    collection.seed(make_docs(5))
    inserter = BoundedInserter(collection, "app.users", concurrency=1, ordered=False)

    await inserter.submit(make_docs(10))
    await inserter.join()

    summary = inserter.metrics.summary()
    assert summary["documents_inserted"] == 5
    assert summary["duplicates"] == 5
    assert summary["documents_failed"] == 0
    assert inserter.errors == 1
    assert len(collection.docs) == 10


@pytest.mark.asyncio
async def test_ordered_batch_stops_at_first_duplicate(collection):
    collection.seed([{"_id": 3}])
    inserter = BoundedInserter(collection, "app.users", concurrency=1, ordered=True)

    await inserter.insert_many(make_docs(5))

    assert sorted(collection.docs) == [1, 2, 3]
    assert inserter.metrics.documents_inserted == 2


@pytest.mark.asyncio
async def test_insert_error_level_follows_verbosity(collection, caplog):
    caplog.set_level(logging.DEBUG, logger=LOGGER)
    collection.insert_error = AutoReconnect("connection reset")

    quiet = BoundedInserter(collection, "app.users", concurrency=1, verbose=False)
    await quiet.insert_many(make_docs(2))
    loud = BoundedInserter(collection, "app.users", concurrency=1, verbose=True)
    await loud.insert_many(make_docs(2))

    levels = [r.levelno for r in caplog.records if "Got error with insert" in r.getMessage()]
    assert levels == [logging.DEBUG, logging.ERROR]


@pytest.mark.asyncio
async def test_insert_one_returns_id_or_none(collection):
    inserter = BoundedInserter(collection, "app.users", concurrency=1)

    assert await inserter.insert_one({"_id": 7, "name": "a"}) == 7
    assert await inserter.insert_one({"_id": 7, "name": "b"}) is None

    assert collection.docs[7]["name"] == "a"
    assert inserter.errors == 1
    assert inserter.metrics.duplicates == 1


@pytest.mark.asyncio
async def test_join_without_submissions(collection):
    inserter = BoundedInserter(collection, "app.users", concurrency=3)
    await inserter.join()
    assert inserter.errors == 0


def test_concurrency_must_be_positive(collection):
    with pytest.raises(ValueError):
        BoundedInserter(collection, "app.users", concurrency=0)


@pytest.mark.asyncio
async def test_cancel_stops_running_inserts(collection, destination_client):
    collection.insert_delay = 5
    inserter = BoundedInserter(collection, "app.users", concurrency=2)

    for batch in batches_of(make_docs(20), 10):
        await inserter.submit(batch)
    await asyncio.sleep(0)

    assert inserter.cancel() == 2
    await inserter.join()

    assert inserter.in_flight == 0
    assert inserter.errors == 0
    assert destination_client.in_flight == 0
    assert collection.docs == {}
