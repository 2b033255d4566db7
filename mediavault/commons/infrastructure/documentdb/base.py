"""Abstract base class for document database operations.

This is the persistence boundary of the core: every table the pipeline
touches (assets, renditions, jobs, backups, policies, servers, activity
log, upload sessions) is a collection accessed through these calls.
Filters use MongoDB query syntax ($in, $lt, $gte, $ne, ...).
"""

from abc import ABC, abstractmethod
from typing import Any

from mediavault.commons.infrastructure.blob.base import HealthStatus


class DocumentDBBase(ABC):
    """Abstract base class for document database operations."""

    @abstractmethod
    async def insert(
        self,
        collection: str,
        document: dict[str, Any],
    ) -> str:
        """Insert a document.

        Args:
            collection: Collection name.
            document: Document to insert. Its 'id' becomes the primary key.

        Returns:
            Document ID.
        """

    @abstractmethod
    async def insert_many(
        self,
        collection: str,
        documents: list[dict[str, Any]],
    ) -> list[str]:
        """Insert multiple documents and return their IDs."""

    @abstractmethod
    async def find_by_id(
        self,
        collection: str,
        document_id: str,
    ) -> dict[str, Any] | None:
        """Find a document by ID."""

    @abstractmethod
    async def find(
        self,
        collection: str,
        filters: dict[str, Any],
        skip: int = 0,
        limit: int = 100,
        sort: list[tuple[str, int]] | None = None,
    ) -> list[dict[str, Any]]:
        """Find documents matching filters.

        Args:
            collection: Collection name.
            filters: Query filters.
            skip: Number of documents to skip.
            limit: Maximum documents to return (0 for no limit).
            sort: Sort specification [(field, direction)], 1 ascending,
                -1 descending.

        Returns:
            List of matching documents.
        """

    @abstractmethod
    async def find_one(
        self,
        collection: str,
        filters: dict[str, Any],
    ) -> dict[str, Any] | None:
        """Find the first document matching filters."""

    @abstractmethod
    async def find_one_and_update(
        self,
        collection: str,
        filters: dict[str, Any],
        updates: dict[str, Any],
        sort: list[tuple[str, int]] | None = None,
    ) -> dict[str, Any] | None:
        """Atomically update the first matching document.

        Used to claim work: two runners racing on the same filter never
        both receive the same document.

        Returns:
            The document after the update, or None if nothing matched.
        """

    @abstractmethod
    async def add_to_set(
        self,
        collection: str,
        document_id: str,
        field: str,
        value: Any,
        updates: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Atomically add a value to an array field if absent.

        Args:
            collection: Collection name.
            document_id: Document ID.
            field: Array field name.
            value: Value to add.
            updates: Optional extra fields to set in the same write.

        Returns:
            The document after the update, or None if not found.
        """

    @abstractmethod
    async def update(
        self,
        collection: str,
        document_id: str,
        updates: dict[str, Any],
    ) -> bool:
        """Set fields on one document.

        Returns:
            True if the document exists, False otherwise.
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
    async def delete_many(
        self,
        collection: str,
        filters: dict[str, Any],
    ) -> int:
        """Delete every matching document and return the count."""

    @abstractmethod
    async def count(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
    ) -> int:
        """Count documents matching filters."""

    @abstractmethod
    async def create_index(
        self,
        collection: str,
        fields: list[tuple[str, int]],
        unique: bool = False,
        name: str | None = None,
    ) -> str:
        """Create an index on the collection and return its name."""

    @abstractmethod
    async def health_check(self) -> HealthStatus:
        """Check service health."""
