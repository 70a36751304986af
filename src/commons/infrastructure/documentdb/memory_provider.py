"""In-process document store evaluating predicates in Python."""

import copy
import time
from collections.abc import Sequence
from typing import Any

from src.commons.infrastructure.blob.base import HealthStatus
from src.commons.infrastructure.documentdb.base import REVISION_FIELD, DocumentDBBase
from src.commons.infrastructure.documentdb.predicates import (
    AnyOf,
    Filter,
    FilterOperator,
    Predicate,
    SortField,
)


class DuplicateKeyError(Exception):
    """Raised when inserting a document whose id already exists."""

    def __init__(self, collection: str, document_id: str) -> None:
        self.collection = collection
        self.document_id = document_id
        super().__init__(f"Duplicate id in {collection}: {document_id}")


def matches_predicate(document: dict[str, Any], predicate: Predicate) -> bool:
    """Evaluate one predicate with the same semantics as the Mongo provider."""
    actual = document.get(predicate.field)
    op = predicate.operator
    value = predicate.value

    if op == FilterOperator.EQ:
        if isinstance(actual, list):
            return value in actual
        return bool(actual == value)
    if op == FilterOperator.IN:
        wanted = set(value)
        if isinstance(actual, list):
            return any(item in wanted for item in actual)
        return actual in wanted
    if op == FilterOperator.CONTAINS:
        return isinstance(actual, str) and value.casefold() in actual.casefold()

    if op == FilterOperator.RANGE:
        low, high = value
    elif op == FilterOperator.GTE:
        low, high = value, None
    elif op == FilterOperator.LTE:
        low, high = None, value
    else:
        raise ValueError(f"Unsupported operator: {op}")

    if low is None and high is None:
        return True
    if actual is None:
        return False
    if low is not None and actual < low:
        return False
    return not (high is not None and actual > high)


def matches(document: dict[str, Any], filters: Sequence[Filter]) -> bool:
    for item in filters:
        if isinstance(item, AnyOf):
            if not any(matches_predicate(document, p) for p in item.predicates):
                return False
        elif not matches_predicate(document, item):
            return False
    return True


def _sorted(
    documents: list[dict[str, Any]], sort: Sequence[SortField]
) -> list[dict[str, Any]]:
    result = list(documents)
    # Stable sorts applied from the least significant key
    for key in reversed(sort):
        result.sort(
            key=lambda d, f=key.field: (d.get(f) is not None, d.get(f)),
            reverse=key.descending,
        )
    return result


def _project(
    document: dict[str, Any],
    fields: Sequence[str] | None,
    exclude_fields: Sequence[str] | None,
) -> dict[str, Any]:
    if fields:
        keep = {"id", *fields}
        return {k: v for k, v in document.items() if k in keep}
    if exclude_fields:
        drop = set(exclude_fields) - {"id"}
        return {k: v for k, v in document.items() if k not in drop}
    return document


class InMemoryDocumentDB(DocumentDBBase):
    """Dictionary-backed document store for local development and tests.

    Every method completes without yielding to the event loop, so each call
    is atomic with respect to other coroutines, like a single-document write
    in Mongo.
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(name, {})

    async def insert(
        self,
        collection: str,
        document: dict[str, Any],
    ) -> str:
        docs = self._collection(collection)
        doc_id = str(document["id"])
        if doc_id in docs:
            raise DuplicateKeyError(collection, doc_id)
        docs[doc_id] = copy.deepcopy(document)
        return doc_id

    async def find_by_id(
        self,
        collection: str,
        document_id: str,
    ) -> dict[str, Any] | None:
        doc = self._collection(collection).get(document_id)
        return copy.deepcopy(doc) if doc is not None else None

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
        found = [
            doc for doc in self._collection(collection).values() if matches(doc, filters)
        ]
        if sort:
            found = _sorted(found, sort)
        window = found[skip : skip + limit]
        return [
            _project(copy.deepcopy(doc), fields, exclude_fields) for doc in window
        ]

    async def count(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
    ) -> int:
        return sum(
            1 for doc in self._collection(collection).values() if matches(doc, filters)
        )

    async def update(
        self,
        collection: str,
        document_id: str,
        updates: dict[str, Any],
        expected_revision: int | None = None,
    ) -> bool:
        doc = self._collection(collection).get(document_id)
        if doc is None:
            return False
        changes = {k: v for k, v in updates.items() if k != "id"}
        if expected_revision is not None:
            if doc.get(REVISION_FIELD) != expected_revision:
                return False
            changes[REVISION_FIELD] = expected_revision + 1
        doc.update(copy.deepcopy(changes))
        return True

    async def increment(
        self,
        collection: str,
        document_id: str,
        field: str,
        amount: int = 1,
    ) -> dict[str, Any] | None:
        doc = self._collection(collection).get(document_id)
        if doc is None:
            return None
        doc[field] = doc.get(field, 0) + amount
        return copy.deepcopy(doc)

    async def add_to_set(
        self,
        collection: str,
        document_id: str,
        field: str,
        value: Any,
    ) -> bool:
        doc = self._collection(collection).get(document_id)
        if doc is None:
            return False
        items = doc.setdefault(field, [])
        if value not in items:
            items.append(value)
        return True

    async def pull(
        self,
        collection: str,
        document_id: str,
        field: str,
        value: Any,
    ) -> bool:
        doc = self._collection(collection).get(document_id)
        if doc is None:
            return False
        doc[field] = [item for item in doc.get(field, []) if item != value]
        return True

    async def delete(
        self,
        collection: str,
        document_id: str,
    ) -> bool:
        return self._collection(collection).pop(document_id, None) is not None

    async def health_check(self) -> HealthStatus:
        start = time.perf_counter()
        return HealthStatus(
            healthy=True,
            latency_ms=(time.perf_counter() - start) * 1000,
            message="In-memory document store",
            details={"collections": str(len(self._collections))},
        )
