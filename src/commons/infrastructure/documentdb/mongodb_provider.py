"""MongoDB implementation of document database."""

import re
import time
from collections.abc import Sequence
from typing import Any

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from src.commons.infrastructure.blob.base import HealthStatus
from src.commons.infrastructure.documentdb.base import REVISION_FIELD, DocumentDBBase
from src.commons.infrastructure.documentdb.predicates import (
    AnyOf,
    Filter,
    FilterOperator,
    Predicate,
    SortField,
)


def _mongo_field(name: str) -> str:
    return "_id" if name == "id" else name


def compile_predicate(predicate: Predicate) -> dict[str, Any]:
    """Translate one predicate into a Mongo filter clause."""
    field = _mongo_field(predicate.field)
    op = predicate.operator
    value = predicate.value

    if op == FilterOperator.EQ:
        return {field: value}
    if op == FilterOperator.GTE:
        return {field: {"$gte": value}}
    if op == FilterOperator.LTE:
        return {field: {"$lte": value}}
    if op == FilterOperator.IN:
        return {field: {"$in": list(value)}}
    if op == FilterOperator.RANGE:
        low, high = value
        bounds: dict[str, Any] = {}
        if low is not None:
            bounds["$gte"] = low
        if high is not None:
            bounds["$lte"] = high
        return {field: bounds} if bounds else {}
    if op == FilterOperator.CONTAINS:
        # User text is matched literally, never as a pattern
        return {field: {"$regex": re.escape(value), "$options": "i"}}
    raise ValueError(f"Unsupported operator: {op}")


def compile_filters(filters: Sequence[Filter]) -> dict[str, Any]:
    """Translate a conjunction of filters into a single Mongo filter."""
    clauses: list[dict[str, Any]] = []
    for item in filters:
        if isinstance(item, AnyOf):
            if not item.predicates:
                # empty disjunction never matches
                clauses.append({"_id": {"$in": []}})
                continue
            clauses.append({"$or": [compile_predicate(p) for p in item.predicates]})
        else:
            clause = compile_predicate(item)
            if clause:
                clauses.append(clause)

    if not clauses:
        return {}
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def compile_sort(sort: Sequence[SortField]) -> list[tuple[str, int]]:
    return [
        (_mongo_field(s.field), DESCENDING if s.descending else ASCENDING)
        for s in sort
    ]


def compile_projection(
    fields: Sequence[str] | None,
    exclude_fields: Sequence[str] | None,
) -> dict[str, int] | None:
    if fields:
        projection = {"_id": 1}
        projection.update({_mongo_field(f): 1 for f in fields if f != "id"})
        return projection
    if exclude_fields:
        return {_mongo_field(f): 0 for f in exclude_fields if f != "id"} or None
    return None


def _to_domain(doc: dict[str, Any]) -> dict[str, Any]:
    """Restore the domain 'id' field from Mongo's '_id'."""
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return doc


class MongoDBDocumentDB(DocumentDBBase):
    """MongoDB implementation of document database.

    Uses Motor for async operations. The domain ``id`` is stored as Mongo's
    ``_id`` so lookups by id hit the primary index.
    """

    def __init__(
        self,
        connection_string: str,
        database_name: str,
    ) -> None:
        """Initialize MongoDB client.

        Args:
            connection_string: MongoDB connection URI.
            database_name: Name of the database to use.
        """
        self._client: AsyncIOMotorClient[dict[str, Any]] = AsyncIOMotorClient(
            connection_string,
            tz_aware=True,
        )
        self._db: AsyncIOMotorDatabase[dict[str, Any]] = self._client[database_name]
        self._database_name = database_name

    async def insert(
        self,
        collection: str,
        document: dict[str, Any],
    ) -> str:
        doc = document.copy()
        if "id" in doc:
            doc["_id"] = doc.pop("id")

        result = await self._db[collection].insert_one(doc)
        return str(result.inserted_id)

    async def find_by_id(
        self,
        collection: str,
        document_id: str,
    ) -> dict[str, Any] | None:
        doc = await self._db[collection].find_one({"_id": document_id})
        return _to_domain(doc) if doc else None

    async def find(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        skip: int = 0,
        limit: int = 100,
        sort: Sequence[SortField] | None = None,
        fields: Sequence[str] | None = None,
        exclude_fields: Sequence[str] | None = None,
    ) -> list[dict[str, Any]]:
        cursor = self._db[collection].find(
            compile_filters(filters),
            projection=compile_projection(fields, exclude_fields),
        )
        if sort:
            cursor = cursor.sort(compile_sort(sort))
        cursor = cursor.skip(skip).limit(limit)

        return [_to_domain(doc) async for doc in cursor]

    async def count(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
    ) -> int:
        count = await self._db[collection].count_documents(compile_filters(filters))
        return int(count)

    async def update(
        self,
        collection: str,
        document_id: str,
        updates: dict[str, Any],
        expected_revision: int | None = None,
    ) -> bool:
        update_doc = {k: v for k, v in updates.items() if k not in ("id", "_id")}
        query: dict[str, Any] = {"_id": document_id}
        operation: dict[str, Any] = {}

        if expected_revision is not None:
            update_doc.pop(REVISION_FIELD, None)
            query[REVISION_FIELD] = expected_revision
            operation["$inc"] = {REVISION_FIELD: 1}
        if update_doc:
            operation["$set"] = update_doc
        if not operation:
            return await self.find_by_id(collection, document_id) is not None

        result = await self._db[collection].update_one(query, operation)
        return bool(result.matched_count > 0)

    async def increment(
        self,
        collection: str,
        document_id: str,
        field: str,
        amount: int = 1,
    ) -> dict[str, Any] | None:
        doc = await self._db[collection].find_one_and_update(
            {"_id": document_id},
            {"$inc": {field: amount}},
            return_document=ReturnDocument.AFTER,
        )
        return _to_domain(doc) if doc else None

    async def add_to_set(
        self,
        collection: str,
        document_id: str,
        field: str,
        value: Any,
    ) -> bool:
        result = await self._db[collection].update_one(
            {"_id": document_id},
            {"$addToSet": {field: value}},
        )
        return bool(result.matched_count > 0)

    async def pull(
        self,
        collection: str,
        document_id: str,
        field: str,
        value: Any,
    ) -> bool:
        result = await self._db[collection].update_one(
            {"_id": document_id},
            {"$pull": {field: value}},
        )
        return bool(result.matched_count > 0)

    async def delete(
        self,
        collection: str,
        document_id: str,
    ) -> bool:
        result = await self._db[collection].delete_one({"_id": document_id})
        return bool(result.deleted_count > 0)

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
        self._client.close()
