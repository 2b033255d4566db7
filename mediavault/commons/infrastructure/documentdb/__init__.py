"""Document database abstractions and implementations."""

from mediavault.commons.infrastructure.documentdb.base import DocumentDBBase
from mediavault.commons.infrastructure.documentdb.mongodb_provider import MongoDBDocumentDB

__all__ = [
    # Base classes
    "DocumentDBBase",
    # Implementations
    "MongoDBDocumentDB",
]
