"""Document database abstractions and implementations."""

from src.commons.infrastructure.documentdb.base import REVISION_FIELD, DocumentDBBase
from src.commons.infrastructure.documentdb.memory_provider import (
    DuplicateKeyError,
    InMemoryDocumentDB,
)
from src.commons.infrastructure.documentdb.mongodb_provider import MongoDBDocumentDB
from src.commons.infrastructure.documentdb.predicates import (
    AnyOf,
    Filter,
    FilterOperator,
    Predicate,
    SortField,
    any_in,
    between,
    contains,
    eq,
    is_unsatisfiable,
)

__all__ = [
    # Base classes
    "DocumentDBBase",
    "REVISION_FIELD",
    # Implementations
    "MongoDBDocumentDB",
    "InMemoryDocumentDB",
    "DuplicateKeyError",
    # Predicates
    "AnyOf",
    "Filter",
    "FilterOperator",
    "Predicate",
    "SortField",
    "any_in",
    "between",
    "contains",
    "eq",
    "is_unsatisfiable",
]
