"""Catalog list engine: raw parameters to a sorted, projected page."""

import asyncio
import math
import re
from collections.abc import Mapping
from datetime import UTC, date, datetime, time, timedelta
from typing import Any

from src.application.dtos.query import NEWEST_FIRST, QuerySpec, VideoPage
from src.commons.infrastructure.documentdb.base import REVISION_FIELD, DocumentDBBase
from src.commons.infrastructure.documentdb.predicates import (
    Filter,
    FilterOperator,
    Predicate,
    SortField,
    any_in,
    between,
    eq,
    is_unsatisfiable,
)
from src.commons.settings.models import QuerySettings, Settings
from src.commons.telemetry import get_logger
from src.domain.exceptions import InvalidParameterError
from src.domain.models.video import VideoTag

SORT_PRESETS: dict[str, tuple[SortField, ...]] = {
    "popular": (SortField("views", descending=True),),
    "newest": NEWEST_FIRST,
    "oldest": (SortField("created_at"),),
    "mostLiked": (SortField("like_count", descending=True),),
    "leastLiked": (SortField("like_count"),),
}

# Client spellings accepted in raw sort/fields expressions
FIELD_ALIASES = {
    "_id": "id",
    "createdAt": "created_at",
    "likes": "like_count",
    "dislikes": "dislike_count",
    "channel": "channel_id",
    "duration": "duration_seconds",
    "thumbnail": "thumbnail_key",
    "videoUrl": "file_key",
}

SORTABLE_FIELDS = frozenset(
    {"views", "created_at", "like_count", "dislike_count", "title", "duration_seconds"}
)

PROJECTABLE_FIELDS = frozenset(
    {
        "id",
        "title",
        "description",
        "tags",
        "channel_id",
        "file_key",
        "thumbnail_key",
        "duration_seconds",
        "views",
        "likes",
        "dislikes",
        "like_count",
        "dislike_count",
        "created_at",
    }
)

# field -> parser for `field=value` and `field[op]=value` filters
FILTERABLE_FIELDS = {
    "channel_id": str,
    "views": int,
    "like_count": int,
    "dislike_count": int,
    "duration_seconds": float,
}

TRENDING_FIELDS = ("title", "thumbnail_key", "views", "channel_id", "created_at")
TRENDING_SORT = (
    SortField("views", descending=True),
    SortField("created_at", descending=True),
)

_BRACKET_PARAM = re.compile(r"^(?P<field>\w+)\[(?P<op>\w+)\]$")
_RESERVED_PARAMS = frozenset(
    {"page", "limit", "sort", "fields", "search", "tags", "dateRange", "viewsRange"}
)


def _text(value: Any) -> str:
    if isinstance(value, list | tuple):
        return ",".join(str(v) for v in value)
    return str(value)


def _split(value: Any) -> list[str]:
    return [part.strip() for part in _text(value).split(",") if part.strip()]


class _Parser:
    """Collects parse decisions for one request under one strictness mode."""

    def __init__(self, settings: QuerySettings) -> None:
        self.settings = settings
        self.strict = settings.strict_parameters

    def reject(self, parameter: str, value: Any, reason: str) -> None:
        """Raise in strict mode; in lenient mode the caller drops the value."""
        if self.strict:
            raise InvalidParameterError(parameter, value, reason)

    def positive_int(self, parameter: str, value: Any, default: int) -> int:
        if value is None or _text(value).strip() == "":
            return default
        try:
            return int(_text(value).strip())
        except ValueError:
            self.reject(parameter, value, "expected an integer")
            return default

    def tags(self, value: Any) -> Filter | None:
        requested = _split(value)
        allowed = VideoTag.values()
        unknown = [t for t in requested if t not in allowed]
        if unknown:
            self.reject("tags", value, f"unknown tags {unknown}")
            requested = [t for t in requested if t in allowed]
        return any_in("tags", requested) if requested else None

    def _bounds(self, parameter: str, value: Any) -> tuple[str, str] | None:
        parts = _text(value).split(",")
        if len(parts) > 2:
            self.reject(parameter, value, "expected 'low,high'")
            return None
        low = parts[0].strip()
        high = parts[1].strip() if len(parts) == 2 else ""
        return low, high

    def views_range(self, value: Any) -> Filter | None:
        bounds = self._bounds("viewsRange", value)
        if bounds is None:
            return None
        parsed: list[int | None] = []
        for side in bounds:
            if side == "":
                parsed.append(None)
                continue
            try:
                parsed.append(int(side))
            except ValueError:
                self.reject("viewsRange", value, f"'{side}' is not a number")
                parsed.append(None)
        low, high = parsed
        if low is None and high is None:
            return None
        return between("views", low, high)

    def _datetime(self, raw: str, *, end_of_day: bool) -> datetime:
        if len(raw) == 10:
            day = date.fromisoformat(raw)
            moment = datetime.combine(day, time.min, tzinfo=UTC)
            if end_of_day:
                moment += timedelta(days=1) - timedelta(microseconds=1)
            return moment
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed

    def date_range(self, value: Any) -> Filter | None:
        bounds = self._bounds("dateRange", value)
        if bounds is None:
            return None
        parsed: list[datetime | None] = []
        for side, end_of_day in zip(bounds, (False, True), strict=True):
            if side == "":
                parsed.append(None)
                continue
            try:
                parsed.append(self._datetime(side, end_of_day=end_of_day))
            except ValueError:
                self.reject("dateRange", value, f"'{side}' is not an ISO date")
                parsed.append(None)
        low, high = parsed
        if low is None and high is None:
            return None
        return between("created_at", low, high)

    def sort(self, value: Any) -> tuple[SortField, ...]:
        raw = _text(value).strip() if value is not None else ""
        if not raw:
            return NEWEST_FIRST
        if raw in SORT_PRESETS:
            return SORT_PRESETS[raw]

        keys: list[SortField] = []
        for token in _split(raw):
            descending = token.startswith("-")
            name = token.lstrip("-+")
            name = FIELD_ALIASES.get(name, name)
            if name not in SORTABLE_FIELDS:
                self.reject("sort", value, f"cannot sort by '{token}'")
                return NEWEST_FIRST
            keys.append(SortField(name, descending=descending))
        return tuple(keys) or NEWEST_FIRST

    def fields(self, value: Any) -> tuple[str, ...] | None:
        if value is None:
            return None
        selected: list[str] = []
        for token in _split(value):
            name = FIELD_ALIASES.get(token, token)
            if name not in PROJECTABLE_FIELDS:
                self.reject("fields", value, f"unknown field '{token}'")
                continue
            if name not in selected:
                selected.append(name)
        return tuple(selected) or None

    def field_filter(self, key: str, value: Any) -> Filter | None:
        match = _BRACKET_PARAM.match(key)
        name, op = (match["field"], match["op"]) if match else (key, "eq")
        name = FIELD_ALIASES.get(name, name)
        if name not in FILTERABLE_FIELDS:
            # unrelated query parameters are not filters
            if match:
                self.reject(key, value, f"cannot filter on '{name}'")
            return None
        try:
            operator = FilterOperator(op)
        except ValueError:
            self.reject(key, value, f"unsupported operator '{op}'")
            return None
        if operator not in (FilterOperator.EQ, FilterOperator.GTE, FilterOperator.LTE):
            self.reject(key, value, f"unsupported operator '{op}'")
            return None
        try:
            typed = FILTERABLE_FIELDS[name](_text(value).strip())
        except ValueError:
            self.reject(key, value, "wrong value type")
            return None
        if operator == FilterOperator.EQ:
            return eq(name, typed)
        return Predicate(name, operator, typed)


def parse_query_spec(
    raw_params: Mapping[str, Any],
    settings: QuerySettings | None = None,
) -> QuerySpec:
    """Parse flat client parameters into a QuerySpec.

    Recognized parameters: ``tags``, ``search``, ``dateRange``,
    ``viewsRange``, ``sort``, ``fields``, ``page``, ``limit``, plus
    ``<field>=value`` / ``<field>[gte|lte|eq]=value`` on a few numeric and
    reference fields. Page is floored at 1; limit is clamped to
    ``[1, max_page_size]``.

    Raises:
        InvalidParameterError: On a malformed value, unless
            ``settings.strict_parameters`` is off, in which case the value
            is dropped.
    """
    settings = settings or QuerySettings()
    parser = _Parser(settings)

    filters: list[Filter] = []
    for key, value in raw_params.items():
        if key in _RESERVED_PARAMS:
            continue
        predicate = parser.field_filter(key, value)
        if predicate is not None:
            filters.append(predicate)

    for name, build in (
        ("tags", parser.tags),
        ("dateRange", parser.date_range),
        ("viewsRange", parser.views_range),
    ):
        if raw_params.get(name) is not None:
            predicate = build(raw_params[name])
            if predicate is not None:
                filters.append(predicate)

    search = _text(raw_params.get("search") or "").strip() or None

    page = max(1, parser.positive_int("page", raw_params.get("page"), 1))
    limit = parser.positive_int(
        "limit", raw_params.get("limit"), settings.default_page_size
    )
    limit = min(max(1, limit), settings.max_page_size)

    return QuerySpec(
        filters=tuple(filters),
        search=search,
        sort=parser.sort(raw_params.get("sort")),
        page=page,
        page_size=limit,
        fields=parser.fields(raw_params.get("fields")),
    )


class VideoQueryService:
    """Runs list queries against the video catalog.

    The total is counted with exactly the predicates used for the page, so
    it never depends on ``page`` or ``limit``. Order among records with
    equal sort keys is whatever the store returns and may differ between
    calls.
    """

    def __init__(
        self,
        document_db: DocumentDBBase,
        settings: Settings,
    ) -> None:
        self._document_db = document_db
        self._query_settings = settings.query
        self._videos_collection = settings.document_db.collections.videos
        self._logger = get_logger(__name__)

    def parse(self, raw_params: Mapping[str, Any]) -> QuerySpec:
        return parse_query_spec(raw_params, self._query_settings)

    async def build_page(self, raw_params: Mapping[str, Any]) -> VideoPage:
        """Parse raw list parameters and return the requested page."""
        return await self.execute(self.parse(raw_params))

    async def execute(self, spec: QuerySpec) -> VideoPage:
        predicates = spec.predicates()

        if any(isinstance(p, Predicate) and is_unsatisfiable(p) for p in predicates):
            total, items = 0, []
        else:
            total, items = await asyncio.gather(
                self._document_db.count(self._videos_collection, predicates),
                self._document_db.find(
                    self._videos_collection,
                    predicates,
                    skip=spec.skip,
                    limit=spec.page_size,
                    sort=spec.sort,
                    fields=spec.fields,
                    exclude_fields=None if spec.fields else [REVISION_FIELD],
                ),
            )

        self._logger.debug(
            "Catalog page built",
            extra={
                "filter_count": len(predicates),
                "page": spec.page,
                "page_size": spec.page_size,
                "total": total,
                "returned": len(items),
            },
        )
        return VideoPage(
            items=items,
            total=total,
            page=spec.page,
            page_size=spec.page_size,
            total_pages=math.ceil(total / spec.page_size),
        )

    async def trending(self) -> VideoPage:
        """Most viewed videos, newest first among equals, reduced fields."""
        return await self.execute(
            QuerySpec(
                sort=TRENDING_SORT,
                page_size=self._query_settings.trending_limit,
                fields=TRENDING_FIELDS,
            )
        )

    async def by_tag(
        self,
        tag: str,
        page: int = 1,
        limit: int | None = None,
    ) -> VideoPage:
        """Newest videos carrying one tag.

        Raises:
            InvalidParameterError: If the tag is not in the vocabulary.
        """
        if tag not in VideoTag.values():
            raise InvalidParameterError("tag", tag, "unknown tag")
        size = limit or self._query_settings.default_page_size
        return await self.execute(
            QuerySpec(
                filters=(any_in("tags", [tag]),),
                page=max(1, page),
                page_size=min(max(1, size), self._query_settings.max_page_size),
            )
        )
