"""
Seed catalog loader.

The catalog is a local JSON file (default: `data/seed/resources.json`) mapping a
kind key to a list of wire-format records. Seeding goes through the directory's
validated `create`, so catalog records obey the same rules as API input.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Protocol

from pydantic import ValidationError as PydanticValidationError

from immidir.core.env import resolve_project_path
from immidir.core.geo import GeoPoint
from immidir.directory.registry import ResourceKind
from immidir.directory.service import ResourceDirectory
from immidir.domain.errors import ValidationError
from immidir.domain.models import SYSTEM_FIELDS, Address, canonical_fields

logger = logging.getLogger(__name__)


class Geocoder(Protocol):
    def geocode(self, text: str) -> GeoPoint | None: ...


def load_catalog(path: str | Path) -> dict[str, list[dict[str, Any]]]:
    """Load the seed catalog JSON (`{kind: [record, ...]}`)."""
    resolved = resolve_project_path(path)
    payload = json.loads(resolved.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"Invalid catalog root in {resolved}; expected an object keyed by kind.")
    out: dict[str, list[dict[str, Any]]] = {}
    for kind, records in payload.items():
        if not isinstance(records, list):
            raise ValueError(f"Catalog entry '{kind}' must be a list of records.")
        out[str(kind)] = [r for r in records if isinstance(r, dict)]
    return out


def _needs_coordinates(record: Mapping[str, Any]) -> bool:
    location = record.get("location")
    coords = location.get("coordinates") if isinstance(location, Mapping) else None
    return not coords or [float(c) for c in coords] == [0.0, 0.0]


def _with_geocoded_location(record: dict[str, Any], geocoder: Geocoder) -> dict[str, Any]:
    address = record.get("address")
    if not isinstance(address, dict) or not _needs_coordinates(record):
        return record
    text = Address.model_validate(address).one_line()
    point = geocoder.geocode(text) if text else None
    if point is None:
        logger.warning("Could not geocode %r for %s", text, record.get("name"))
        return record
    return {**record, "location": {"type": "Point", "coordinates": [point.lon, point.lat]}}


def _check_record(kind: ResourceKind, record: Any) -> None:
    if not isinstance(record, Mapping):
        raise ValidationError(f"Invalid {kind.label}: expected an object", ["__root__"])
    data = {k: v for k, v in canonical_fields(kind.model, record).items() if k not in SYSTEM_FIELDS}
    try:
        kind.model.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError.from_pydantic(kind.label, exc, kind.model) from exc


def seed_directory(
    directory: ResourceDirectory,
    catalog: Mapping[str, list[dict[str, Any]]],
    *,
    reset: bool = True,
    geocoder: Geocoder | None = None,
) -> dict[str, int]:
    """Insert catalog records kind by kind; returns the number seeded per kind.

    Every record is validated before any store is cleared, so a bad catalog
    leaves the existing records in place.
    """
    staged: list[tuple[ResourceKind, list[dict[str, Any]]]] = []
    for key, records in catalog.items():
        kind = directory.kind(key)
        checked: list[dict[str, Any]] = []
        for record in records:
            _check_record(kind, record)
            if geocoder is not None:
                record = _with_geocoded_location(record, geocoder)
            checked.append(record)
        staged.append((kind, checked))

    counts: dict[str, int] = {}
    for kind, records in staged:
        if reset:
            kind.store.clear()
        for record in records:
            directory.create(kind.key, record)
        counts[kind.key] = len(records)
        logger.info("Seeded %d %s records", len(records), kind.label)
    return counts
