"""
List/search query pipeline.

`run_list_query` is the browse entrypoint:
1. build the active-only attribute predicate (city/state),
2. geo branch (lat AND lng given): radius query against the store, nearest first,
   each record annotated with its one-decimal `distance` in km,
   non-geo branch: descending sort by `sortBy`,
3. offset/limit pagination,
4. `total` counted under the same predicate (see `geo_total_mode`).

`run_search` is the keyword variant: mandatory keyword, rating-descending, capped.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Literal, Sequence, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from immidir.core.geo import distance_km
from immidir.domain.errors import InvalidArgument
from immidir.domain.models import Resource, resolve_field
from immidir.store.base import RadiusFilter, RecordFilter, ResourceStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

GeoTotalMode = Literal["radius", "predicate"]


class ListFilters(BaseModel):
    """Browse parameters; every field is optional."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    city: str | None = None
    state: str | None = None
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)
    radius_km: float = Field(default=50, gt=0)
    limit: int = Field(default=50, ge=1)
    page: int = Field(default=1, ge=1)
    sort_by: str = "rating"

    def near(self) -> RadiusFilter | None:
        # Only one coordinate supplied means no geo query at all.
        if self.lat is None or self.lng is None:
            if self.lat is not None or self.lng is not None:
                logger.debug("Ignoring partial coordinates lat=%s lng=%s", self.lat, self.lng)
            return None
        return RadiusFilter(lat=self.lat, lon=self.lng, radius_km=self.radius_km)

    def where(self) -> RecordFilter:
        return RecordFilter(city=self.city or None, state=self.state or None)


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class ResourcePage(BaseModel):
    data: list[dict[str, Any]]
    pagination: Pagination


def paginate(items: Sequence[T], *, page: int, limit: int) -> list[T]:
    start = (page - 1) * limit
    return list(items[start : start + limit])


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if total else 0


def sort_descending(records: list[Resource], model: type[Resource], sort_by: str) -> list[Resource]:
    """Stable descending sort on `sort_by`; records lacking a value go last."""
    field = resolve_field(model, sort_by)
    if field is None:
        raise InvalidArgument(f"Cannot sort {model.__name__} by unknown field '{sort_by}'")
    present = [r for r in records if getattr(r, field) is not None]
    missing = [r for r in records if getattr(r, field) is None]
    try:
        present.sort(key=lambda r: getattr(r, field), reverse=True)
    except TypeError as exc:
        raise InvalidArgument(f"Cannot sort {model.__name__} by '{sort_by}': values are not comparable") from exc
    return present + missing


def with_distance(record: Resource, lat: float, lng: float) -> dict[str, Any]:
    data = record.to_public()
    data["distance"] = round(distance_km(lat, lng, record.location.lat, record.location.lon), 1)
    return data


def run_list_query(
    store: ResourceStore[Any],
    model: type[Resource],
    filters: ListFilters,
    *,
    geo_total_mode: GeoTotalMode = "radius",
) -> ResourcePage:
    where = filters.where()
    near = filters.near()

    if near is not None:
        matches = store.query(where, near)
        window = paginate(matches, page=filters.page, limit=filters.limit)
        data = [with_distance(r, near.lat, near.lon) for r in window]
        total = len(matches) if geo_total_mode == "radius" else store.count(where)
    else:
        matches = sort_descending(store.query(where), model, filters.sort_by)
        data = [r.to_public() for r in paginate(matches, page=filters.page, limit=filters.limit)]
        total = len(matches)

    logger.debug(
        "%s list: geo=%s page=%d limit=%d returned=%d total=%d",
        model.__name__,
        near is not None,
        filters.page,
        filters.limit,
        len(data),
        total,
    )
    return ResourcePage(
        data=data,
        pagination=Pagination(
            page=filters.page,
            limit=filters.limit,
            total=total,
            pages=page_count(total, filters.limit),
        ),
    )


def run_search(store: ResourceStore[Any], model: type[Resource], keyword: str | None, *, limit: int) -> list[Resource]:
    keyword = (keyword or "").strip()
    if not keyword:
        raise InvalidArgument("Search query is required")
    if limit < 1:
        raise InvalidArgument("limit must be >= 1")
    matches = sort_descending(store.query(RecordFilter(keyword=keyword)), model, "rating")
    return matches[:limit]
