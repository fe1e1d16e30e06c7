"""
Index Copy
Recreates source indexes on the destination collection before streaming
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict

from pymongo.errors import PyMongoError

from ..core.database import StoreConnection

logger = logging.getLogger(__name__)

COPIED_INDEX_OPTIONS = ("unique", "sparse", "expireAfterSeconds", "partialFilterExpression", "collation")


@dataclass
class IndexCopyResult:
    created: int = 0
    skipped: int = 0
    failed: int = 0


class IndexCopier:

    def __init__(self, source: StoreConnection, destination: StoreConnection, collection: str):
        self.source_collection = source.collection(collection)
        self.destination_collection = destination.collection(collection)
        self.namespace = f"{source.database_name}.{collection}"

    async def copy(self) -> IndexCopyResult:
        """Create every non-_id source index missing on the destination"""
        result = IndexCopyResult()

        source_indexes = await self.source_collection.list_indexes().to_list(length=None)
        existing = await self.destination_collection.list_indexes().to_list(length=None)
        existing_names = {idx["name"] for idx in existing}

        logger.info(f"{self.namespace}: Found {len(source_indexes)} indexes in source collection")

        for index_info in source_indexes:
            name = index_info["name"]
            if name == "_id_" or name in existing_names:
                result.skipped += 1
                logger.debug(f"{self.namespace}: Skipping index {name}")
                continue

            try:
                await self.destination_collection.create_index(
                    list(index_info["key"].items()),
                    name=name,
                    **_index_options(index_info)
                )
            except PyMongoError as e:
                result.failed += 1
                logger.warning(f"{self.namespace}: Failed to create index {name}: {e}")
                continue

            result.created += 1
            logger.info(f"{self.namespace}: Created index {name} on {list(index_info['key'].keys())}")

        logger.info(f"{self.namespace}: Index copy completed: {result.created} created, "
                    f"{result.skipped} skipped, {result.failed} failed")
        return result


def _index_options(index_info: Dict[str, Any]) -> Dict[str, Any]:
    return {key: index_info[key] for key in COPIED_INDEX_OPTIONS if key in index_info}
