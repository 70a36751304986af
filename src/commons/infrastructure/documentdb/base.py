"""Abstract base class for document database operations."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from src.commons.infrastructure.blob.base import HealthStatus
from src.commons.infrastructure.documentdb.predicates import Filter, SortField

REVISION_FIELD = "revision"


class DocumentDBBase(ABC):
    """Abstract base class for document database operations.

    Documents are plain dicts keyed by a string ``id``. Queries are
    expressed with the typed predicates from
    :mod:`src.commons.infrastructure.documentdb.predicates`; every filter in
    a sequence must hold (conjunction).
    """

    @abstractmethod
    async def insert(
        self,
        collection: str,
        document: dict[str, Any],
    ) -> str:
        """Insert a document.

        Args:
            collection: Collection name.
            document: Document to insert. Its ``id`` becomes the primary key.

        Returns:
            The document ID.
        """

    @abstractmethod
    async def find_by_id(
        self,
        collection: str,
        document_id: str,
    ) -> dict[str, Any] | None:
        """Find a document by ID.

        Returns:
            Document if found, None otherwise.
        """

    @abstractmethod
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
        """Find documents matching every filter.

        Args:
            collection: Collection name.
            filters: Predicates that must all hold.
            skip: Number of documents to skip.
            limit: Maximum documents to return.
            sort: Ordered sort keys. Order among equal keys is unspecified.
            fields: Projection; only these fields (plus ``id``) are returned.
            exclude_fields: Fields to drop. Ignored when ``fields`` is set.

        Returns:
            List of matching documents.
        """

    @abstractmethod
    async def count(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
    ) -> int:
        """Count documents matching every filter."""

    @abstractmethod
    async def update(
        self,
        collection: str,
        document_id: str,
        updates: dict[str, Any],
        expected_revision: int | None = None,
    ) -> bool:
        """Set fields on a document.

        When ``expected_revision`` is given the write only applies if the
        stored ``revision`` still equals it, and the revision is bumped by
        one in the same atomic operation.

        Returns:
            True if a document was updated, False if none matched.
        """

    @abstractmethod
    async def increment(
        self,
        collection: str,
        document_id: str,
        field: str,
        amount: int = 1,
    ) -> dict[str, Any] | None:
        """Atomically add ``amount`` to a numeric field.

        Returns:
            The document after the increment, or None if not found.
        """

    @abstractmethod
    async def add_to_set(
        self,
        collection: str,
        document_id: str,
        field: str,
        value: Any,
    ) -> bool:
        """Append ``value`` to a list field unless already present.

        Returns:
            True if the document exists, whether or not it changed.
        """

    @abstractmethod
    async def pull(
        self,
        collection: str,
        document_id: str,
        field: str,
        value: Any,
    ) -> bool:
        """Remove every occurrence of ``value`` from a list field.

        Returns:
            True if the document exists, whether or not it changed.
        """

    @abstractmethod
    async def delete(
        self,
        collection: str,
        document_id: str,
    ) -> bool:
        """Delete a document.

        Returns:
            True if deleted, False if not found.
        """

    @abstractmethod
    async def health_check(self) -> HealthStatus:
        """Check service health."""

    async def close(self) -> None:  # noqa: B027
        """Release client resources."""
