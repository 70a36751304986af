"""DTOs for catalog listing and search."""

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from src.commons.infrastructure.documentdb.predicates import (
    AnyOf,
    Filter,
    SortField,
    contains,
)

NEWEST_FIRST = (SortField("created_at", descending=True),)


@dataclass(frozen=True)
class QuerySpec:
    """Typed form of a list request, parsed once from raw parameters."""

    filters: tuple[Filter, ...] = ()
    search: str | None = None
    sort: tuple[SortField, ...] = NEWEST_FIRST
    page: int = 1
    page_size: int = 12
    fields: tuple[str, ...] | None = None

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.page_size

    def predicates(self) -> tuple[Filter, ...]:
        """All filters, with the search term as one more conjunct."""
        if not self.search:
            return self.filters
        return (
            *self.filters,
            AnyOf((contains("title", self.search), contains("description", self.search))),
        )


class VideoPage(BaseModel):
    """One page of list results plus the size of the full match set."""

    model_config = ConfigDict(populate_by_name=True)

    items: list[dict[str, Any]] = Field(description="Projected video records")
    total: int = Field(ge=0, description="Matches before pagination")
    page: int = Field(ge=1)
    page_size: int = Field(ge=1, serialization_alias="pageSize")
    total_pages: int = Field(ge=0, serialization_alias="totalPages")


class SuggestionItem(BaseModel):
    """Compact search-as-you-type entry."""

    id: str
    title: str
    thumbnail_key: str | None = None
    views: int = 0
