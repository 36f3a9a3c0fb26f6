"""
Resource directory service.

One generic implementation of list/search/get/create/update/delete for every
registered resource kind. Store failures are logged and surfaced as
`StoreFailure`; directory errors propagate unchanged. Nothing is retried here.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Mapping

from pydantic import ValidationError as PydanticValidationError

from immidir.config.settings import Settings
from immidir.directory.query import ListFilters, ResourcePage, run_list_query, run_search
from immidir.directory.registry import ResourceKind, ResourceRegistry
from immidir.domain.errors import DirectoryError, InvalidArgument, StoreFailure
from immidir.domain.models import Resource

logger = logging.getLogger(__name__)


@contextmanager
def _store_call(kind: ResourceKind, operation: str) -> Iterator[None]:
    try:
        yield
    except DirectoryError:
        raise
    except Exception as exc:
        logger.error("Store failure during %s on %s: %s", operation, kind.key, exc)
        raise StoreFailure(f"Error {operation} {kind.label}: {exc}") from exc


class ResourceDirectory:
    def __init__(self, registry: ResourceRegistry, settings: Settings):
        self._registry = registry
        self._settings = settings

    @property
    def registry(self) -> ResourceRegistry:
        return self._registry

    def kind(self, key: str) -> ResourceKind:
        return self._registry.get(key)

    def kinds(self) -> list[dict[str, Any]]:
        return [k.describe() for k in self._registry]

    def _filters(self, filters: ListFilters | Mapping[str, Any] | None) -> ListFilters:
        if isinstance(filters, ListFilters):
            return filters
        q = self._settings.query
        raw = {
            "radius_km": q.default_radius_km,
            "limit": q.default_limit,
            "page": q.default_page,
            "sort_by": q.default_sort_by,
        }
        # Drop explicit None so defaults still apply (e.g. unset CLI flags).
        supplied = {k: v for k, v in (filters or {}).items() if v is not None}
        try:
            parsed = ListFilters.model_validate(supplied)
        except PydanticValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg')}" for e in exc.errors()
            )
            raise InvalidArgument(f"Invalid list filters: {problems}") from exc
        return parsed.model_copy(update={k: v for k, v in raw.items() if k not in parsed.model_fields_set})

    def list(self, kind: str, filters: ListFilters | Mapping[str, Any] | None = None) -> ResourcePage:
        k = self.kind(kind)
        parsed = self._filters(filters)
        with _store_call(k, "fetching"):
            return run_list_query(k.store, k.model, parsed, geo_total_mode=self._settings.query.geo_total_mode)

    def search(self, kind: str, keyword: str | None, limit: int | None = None) -> list[Resource]:
        k = self.kind(kind)
        cap = limit if limit is not None else self._settings.query.search_limit_default
        with _store_call(k, "searching"):
            return run_search(k.store, k.model, keyword, limit=cap)

    def get(self, kind: str, record_id: str) -> Resource:
        k = self.kind(kind)
        with _store_call(k, "fetching"):
            return k.store.get(record_id)

    def create(self, kind: str, fields: Mapping[str, Any]) -> Resource:
        k = self.kind(kind)
        with _store_call(k, "creating"):
            record_id = k.store.insert(fields)
            record = k.store.get(record_id)
        logger.info("%s created: %s (%s)", k.label, record.id, record.name)
        return record

    def update(self, kind: str, record_id: str, fields: Mapping[str, Any]) -> Resource:
        k = self.kind(kind)
        with _store_call(k, "updating"):
            record = k.store.update(record_id, fields)
        logger.info("%s updated: %s", k.label, record_id)
        return record

    def delete(self, kind: str, record_id: str) -> Resource:
        """Soft delete: the record stays retrievable by id with `isActive=false`."""
        k = self.kind(kind)
        with _store_call(k, "deleting"):
            record = k.store.soft_delete(record_id)
        logger.info("%s deleted: %s", k.label, record_id)
        return record
