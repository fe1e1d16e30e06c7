"""
Core Database Access
Connection handles and the document source used by every transfer
"""
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError
from bson.errors import BSONError

from ..errors import ConnectError, ExtractError, SizingError

logger = logging.getLogger(__name__)

APP_NAME = "mongostream"

ID_SORT_ASCENDING = [("_id", 1)]
ID_SORT_DESCENDING = [("_id", -1)]
ID_PROJECTION = {"_id": 1}


class StoreConnection:
    """
    Handle on one deployment and one logical database

    The motor client pools its sockets, so a single handle is shared by every
    concurrent task. Rename targets only apply to the destination handle.
    """

    def __init__(self, uri: str, database_name: str,
                 rename_db: Optional[str] = None,
                 rename_collection: Optional[str] = None,
                 label: str = "store",
                 client: Optional[Any] = None):
        self.uri = uri
        self.database_name = database_name
        self.rename_db = rename_db
        self.rename_collection = rename_collection
        self.label = label
        self.client = client
        self.is_connected = False

    @property
    def effective_database_name(self) -> str:
        return self.rename_db or self.database_name

    @property
    def database(self):
        if self.client is None:
            raise ConnectError(f"{self.label} is not connected")
        return self.client[self.effective_database_name]

    async def connect(self) -> "StoreConnection":
        """Create the client (unless one was injected) and ping the server"""
        try:
            logger.info(f"Connecting to {self.label}...")
            if self.client is None:
                self.client = AsyncIOMotorClient(
                    self.uri,
                    appname=APP_NAME,
                    readConcernLevel="local"
                )
            await self.client.admin.command('ping')
        except PyMongoError as e:
            raise ConnectError(f"Failed to connect to {self.label}: {e}") from e

        self.is_connected = True
        logger.info(f"✅ Connected to {self.label}")
        return self

    async def disconnect(self):
        if self.client is not None:
            self.client.close()
            self.is_connected = False
            logger.info(f"Disconnected from {self.label}")

    def collection_name(self, name: str) -> str:
        return self.rename_collection or name

    def collection(self, name: str):
        """Motor collection for ``name`` with rename targets applied"""
        return self.database[self.collection_name(name)]

    def namespace(self, name: str) -> str:
        return f"{self.effective_database_name}.{self.collection_name(name)}"

    async def list_collections(self) -> List[str]:
        """Names of all user collections in the database"""
        try:
            names = await self.database.list_collection_names(
                filter={"name": {"$regex": r"^(?!system\.)"}}
            )
        except PyMongoError as e:
            raise ConnectError(f"Failed to list collections in {self.effective_database_name}: {e}") from e
        logger.debug(f"{self.label}: found collections {names}")
        return sorted(names)


class DocumentSource:
    """Reads one collection in ascending _id order"""

    def __init__(self, connection: StoreConnection, collection_name: str):
        self.connection = connection
        self.collection_name = collection_name
        self.namespace = connection.namespace(collection_name)

    @property
    def collection(self):
        return self.connection.collection(self.collection_name)

    @staticmethod
    def build_filter(after: Optional[Any] = None) -> Dict[str, Any]:
        if after is None:
            return {}
        return {"_id": {"$gt": after}}

    async def count(self, after: Optional[Any] = None) -> int:
        """Fast estimate for the whole collection, exact count past a marker"""
        try:
            if after is None:
                logger.info(f"{self.namespace}: Counting all docs in collection")
                return await self.collection.estimated_document_count()
            logger.info(f"{self.namespace}: Calculating docs past marker {after}")
            return await self.collection.count_documents(self.build_filter(after))
        except PyMongoError as e:
            raise SizingError(self.namespace, f"count failed: {e}") from e

    async def max_identity(self) -> Optional[Any]:
        """Largest _id stored, or None when empty or the lookup fails"""
        logger.info(f"{self.namespace}: Getting newest doc")
        try:
            doc = await self.collection.find_one(
                {}, projection=ID_PROJECTION, sort=ID_SORT_DESCENDING
            )
        except PyMongoError as e:
            logger.error(f"{self.namespace}: Error finding newest doc: {e}")
            return None

        if doc is None:
            logger.info(f"{self.namespace}: Collection is empty")
            return None

        logger.info(f"{self.namespace}: Found newest doc with id: {doc['_id']}")
        return doc["_id"]

    async def contains(self, identity: Any) -> bool:
        """Whether a document with this _id exists; driver errors propagate"""
        doc = await self.collection.find_one({"_id": identity}, projection=ID_PROJECTION)
        return doc is not None

    def open_cursor(self, after: Optional[Any] = None, batch_size: Optional[int] = None):
        query = self.build_filter(after)
        find_kwargs = {"sort": ID_SORT_ASCENDING}
        if batch_size:
            find_kwargs["batch_size"] = batch_size
        try:
            return self.collection.find(query, **find_kwargs)
        except PyMongoError as e:
            raise SizingError(self.namespace, f"could not open cursor: {e}") from e

    async def documents(self, after: Optional[Any] = None,
                        batch_size: Optional[int] = None) -> AsyncIterator[Dict[str, Any]]:
        """
        Yield documents in ascending _id order, strictly after ``after``

        A document that fails to decode is logged and skipped. Iteration ends
        when the cursor is exhausted or the server has closed it. The query is
        only sent on the first fetch, so a driver error there means the cursor
        could not be opened and raises SizingError.
        """
        cursor = self.open_cursor(after, batch_size)
        skipped = 0
        opened = False
        try:
            while True:
                try:
                    doc = await self._next_document(cursor, opened)
                except StopAsyncIteration:
                    break
                except ExtractError as e:
                    opened = True
                    skipped += 1
                    logger.error(f"{self.namespace}: {e}")
                    if not cursor.alive:
                        logger.error(f"{self.namespace}: Cursor closed by server, stopping read")
                        break
                    continue
                opened = True
                yield doc
        finally:
            await _close_cursor(cursor)
            if skipped:
                logger.warning(f"{self.namespace}: Skipped {skipped} unreadable docs")

    async def _next_document(self, cursor, opened: bool) -> Dict[str, Any]:
        try:
            return await cursor.next()
        except BSONError as e:
            raise ExtractError(f"Caught error getting next doc: {e}") from e
        except PyMongoError as e:
            if not opened:
                raise SizingError(self.namespace, f"could not open cursor: {e}") from e
            raise ExtractError(f"Caught error getting next doc: {e}") from e


async def _close_cursor(cursor):
    try:
        await cursor.close()
    except PyMongoError as e:
        logger.debug(f"Error closing cursor: {e}")
