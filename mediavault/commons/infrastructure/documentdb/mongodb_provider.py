"""MongoDB implementation of document database."""

import time
from typing import Any

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ReturnDocument

from mediavault.commons.infrastructure.blob.base import HealthStatus
from mediavault.commons.infrastructure.documentdb.base import DocumentDBBase


def _to_mongo(document: dict[str, Any]) -> dict[str, Any]:
    """Store the domain 'id' as MongoDB's '_id'."""
    doc = document.copy()
    if "id" in doc:
        doc["_id"] = doc.pop("id")
    return doc


def _from_mongo(document: dict[str, Any] | None) -> dict[str, Any] | None:
    """Restore 'id' from '_id' for domain model compatibility."""
    if document is None:
        return None
    doc = dict(document)
    doc["id"] = str(doc.pop("_id"))
    return doc


class MongoDBDocumentDB(DocumentDBBase):
    """MongoDB implementation of document database.

    Uses Motor for async operations. Documents are keyed by the string
    UUID the domain models generate.
    """

    def __init__(
        self,
        connection_string: str,
        database_name: str,
    ) -> None:
        self._client: AsyncIOMotorClient[dict[str, Any]] = AsyncIOMotorClient(
            connection_string
        )
        self._db: AsyncIOMotorDatabase[dict[str, Any]] = self._client[database_name]
        self._database_name = database_name

    async def insert(
        self,
        collection: str,
        document: dict[str, Any],
    ) -> str:
        result = await self._db[collection].insert_one(_to_mongo(document))
        return str(result.inserted_id)

    async def insert_many(
        self,
        collection: str,
        documents: list[dict[str, Any]],
    ) -> list[str]:
        if not documents:
            return []
        result = await self._db[collection].insert_many(
            [_to_mongo(d) for d in documents]
        )
        return [str(id_) for id_ in result.inserted_ids]

    async def find_by_id(
        self,
        collection: str,
        document_id: str,
    ) -> dict[str, Any] | None:
        doc = await self._db[collection].find_one({"_id": document_id})
        return _from_mongo(doc)

    async def find(
        self,
        collection: str,
        filters: dict[str, Any],
        skip: int = 0,
        limit: int = 100,
        sort: list[tuple[str, int]] | None = None,
    ) -> list[dict[str, Any]]:
        cursor = self._db[collection].find(_to_mongo(filters))
        if sort:
            cursor = cursor.sort(sort)
        cursor = cursor.skip(skip).limit(limit)

        results: list[dict[str, Any]] = []
        async for doc in cursor:
            restored = _from_mongo(doc)
            if restored is not None:
                results.append(restored)
        return results

    async def find_one(
        self,
        collection: str,
        filters: dict[str, Any],
    ) -> dict[str, Any] | None:
        doc = await self._db[collection].find_one(_to_mongo(filters))
        return _from_mongo(doc)

    async def find_one_and_update(
        self,
        collection: str,
        filters: dict[str, Any],
        updates: dict[str, Any],
        sort: list[tuple[str, int]] | None = None,
    ) -> dict[str, Any] | None:
        doc = await self._db[collection].find_one_and_update(
            _to_mongo(filters),
            {"$set": updates},
            sort=sort,
            return_document=ReturnDocument.AFTER,
        )
        return _from_mongo(doc)

    async def add_to_set(
        self,
        collection: str,
        document_id: str,
        field: str,
        value: Any,
        updates: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        operation: dict[str, Any] = {"$addToSet": {field: value}}
        if updates:
            operation["$set"] = updates
        doc = await self._db[collection].find_one_and_update(
            {"_id": document_id},
            operation,
            return_document=ReturnDocument.AFTER,
        )
        return _from_mongo(doc)

    async def update(
        self,
        collection: str,
        document_id: str,
        updates: dict[str, Any],
    ) -> bool:
        update_doc = updates.copy()
        update_doc.pop("id", None)
        result = await self._db[collection].update_one(
            {"_id": document_id},
            {"$set": update_doc},
        )
        return bool(result.matched_count > 0)

    async def delete(
        self,
        collection: str,
        document_id: str,
    ) -> bool:
        result = await self._db[collection].delete_one({"_id": document_id})
        return bool(result.deleted_count > 0)

    async def delete_many(
        self,
        collection: str,
        filters: dict[str, Any],
    ) -> int:
        result = await self._db[collection].delete_many(_to_mongo(filters))
        return int(result.deleted_count)

    async def count(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
    ) -> int:
        if filters:
            return int(await self._db[collection].count_documents(_to_mongo(filters)))
        return int(await self._db[collection].estimated_document_count())

    async def create_index(
        self,
        collection: str,
        fields: list[tuple[str, int]],
        unique: bool = False,
        name: str | None = None,
    ) -> str:
        index_name = await self._db[collection].create_index(
            fields,
            unique=unique,
            name=name,
        )
        return str(index_name)

    async def health_check(self) -> HealthStatus:
        start = time.perf_counter()
        try:
            await self._client.admin.command("ping")
        except Exception as e:
            return HealthStatus(
                healthy=False,
                latency_ms=(time.perf_counter() - start) * 1000,
                message=f"MongoDB health check failed: {e}",
                details={"database": self._database_name, "error": str(e)},
            )
        return HealthStatus(
            healthy=True,
            latency_ms=(time.perf_counter() - start) * 1000,
            message="MongoDB is healthy",
            details={"database": self._database_name},
        )

    async def close(self) -> None:
        """Close the client connection."""
        self._client.close()
