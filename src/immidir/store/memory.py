"""
In-memory record store.

Concurrency model: the record map is copy-on-write. Writers serialize on a single
lock, build a new dict and swap the reference; readers grab the current reference
without locking, so reads never wait on writes.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime
from typing import Any, Callable, Generic, Mapping

from pydantic import ValidationError as PydanticValidationError

from immidir.core.spatial_index import SpatialGridIndex
from immidir.core.time import ensure_utc, utc_now
from immidir.domain.errors import NotFound, ValidationError
from immidir.domain.models import SYSTEM_FIELDS, canonical_fields
from immidir.store.base import R, RadiusFilter, RecordFilter

logger = logging.getLogger(__name__)


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    # Nested mappings (address, contact, location) merge key by key; anything else is replaced.
    merged: dict[str, Any] = dict(base)
    for key, override_value in override.items():
        if isinstance(override_value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _deep_merge(dict(merged[key]), override_value)
            continue
        merged[key] = override_value
    return merged


class InMemoryResourceStore(Generic[R]):
    """Store for one resource kind, validated against `model`."""

    def __init__(
        self,
        model: type[R],
        *,
        clock: Callable[[], datetime] = utc_now,
        index_cell_size_deg: float = 0.5,
    ):
        self._model = model
        self._clock = clock
        self._cell_size = index_cell_size_deg
        self._records: dict[str, R] = {}
        self._write_lock = threading.Lock()
        self._index: tuple[dict[str, R], SpatialGridIndex[R]] | None = None

    @property
    def model(self) -> type[R]:
        return self._model

    def __len__(self) -> int:
        return len(self._records)

    def _label(self) -> str:
        return self._model.__name__

    def _validate(self, payload: Mapping[str, Any]) -> R:
        try:
            return self._model.model_validate(payload)
        except PydanticValidationError as exc:
            raise ValidationError.from_pydantic(self._label(), exc, self._model) from exc

    def _user_fields(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        if not isinstance(fields, Mapping):
            raise ValidationError(f"Invalid {self._label()}: expected an object", ["__root__"])
        data = canonical_fields(self._model, fields)
        return {k: v for k, v in data.items() if k not in SYSTEM_FIELDS}

    def _now(self, previous: datetime | None = None) -> datetime:
        now = ensure_utc(self._clock())
        # updatedAt must never move backwards, even if the clock does.
        if previous is not None and now < previous:
            return previous
        return now

    def _commit(self, records: dict[str, R]) -> None:
        """Publish a new snapshot. Subclasses persist before delegating here."""
        self._records = records

    def _lookup(self, record_id: str) -> R:
        record = self._records.get(record_id)
        if record is None:
            raise NotFound(self._label(), record_id)
        return record

    def insert(self, fields: Mapping[str, Any]) -> str:
        data = self._user_fields(fields)
        record = self._validate(data)
        with self._write_lock:
            now = self._now()
            record_id = uuid.uuid4().hex
            record = record.model_copy(update={"id": record_id, "created_at": now, "updated_at": now})
            records = dict(self._records)
            records[record_id] = record
            self._commit(records)
        logger.debug("Inserted %s %s", self._label(), record_id)
        return record_id

    def get(self, record_id: str) -> R:
        return self._lookup(record_id)

    def _replace(self, record_id: str, changes: Callable[[R], Mapping[str, Any]]) -> R:
        with self._write_lock:
            current = self._lookup(record_id)
            merged = _deep_merge(current.model_dump(), changes(current))
            record = self._validate(merged)
            record = record.model_copy(
                update={
                    "id": current.id,
                    "created_at": current.created_at,
                    "updated_at": self._now(current.updated_at),
                }
            )
            records = dict(self._records)
            records[record_id] = record
            self._commit(records)
        return record

    def update(self, record_id: str, fields: Mapping[str, Any]) -> R:
        data = self._user_fields(fields)
        return self._replace(record_id, lambda _: data)

    def soft_delete(self, record_id: str) -> R:
        return self._replace(record_id, lambda _: {"is_active": False})

    def _spatial_index(self, snapshot: dict[str, R]) -> SpatialGridIndex[R]:
        cached = self._index
        if cached is not None and cached[0] is snapshot:
            return cached[1]
        index = SpatialGridIndex(
            snapshot.values(),
            get_latlon=lambda r: (r.location.lat, r.location.lon),
            cell_size_deg=self._cell_size,
        )
        self._index = (snapshot, index)
        return index

    def query(self, where: RecordFilter, near: RadiusFilter | None = None) -> list[R]:
        snapshot = self._records
        if near is None:
            return [r for r in snapshot.values() if r.is_active and where.matches(r)]
        hits = self._spatial_index(snapshot).query_within(lat=near.lat, lon=near.lon, radius_km=near.radius_km)
        return [r for r, _ in hits if r.is_active and where.matches(r)]

    def count(self, where: RecordFilter, near: RadiusFilter | None = None) -> int:
        return len(self.query(where, near))

    def clear(self) -> None:
        with self._write_lock:
            self._commit({})

