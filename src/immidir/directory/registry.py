"""
Resource type registry.

Maps a kind key (`consulate`, `lawyer`, `surgeon`, `shelter`, `ice-resource`) to
its validation model and the store holding its records. The query pipeline and
CRUD operations are written once and parameterized by a registry lookup, so a new
kind only needs a model and a `register()` call.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterator

from immidir.config.settings import Settings
from immidir.core.env import resolve_project_path
from immidir.core.time import utc_now
from immidir.domain.errors import InvalidArgument
from immidir.domain.models import (
    CivilSurgeon,
    Consulate,
    IceResource,
    Lawyer,
    Resource,
    Shelter,
    enum_choices,
    wire_name,
)
from immidir.store.base import ResourceStore
from immidir.store.json_file import JsonFileResourceStore
from immidir.store.memory import InMemoryResourceStore

DEFAULT_KINDS: tuple[tuple[str, type[Resource]], ...] = (
    ("Consulate", Consulate),
    ("Lawyer", Lawyer),
    ("Civil Surgeon", CivilSurgeon),
    ("Shelter", Shelter),
    ("ICE Resource", IceResource),
)


@dataclass(frozen=True)
class ResourceKind:
    key: str
    label: str
    model: type[Resource]
    store: ResourceStore[Any]

    @property
    def required_fields(self) -> list[str]:
        return [wire_name(self.model, n) for n, f in self.model.model_fields.items() if f.is_required()]

    @property
    def enum_fields(self) -> dict[str, tuple[str, ...]]:
        return enum_choices(self.model)

    def describe(self) -> dict[str, Any]:
        return {
            "kind": self.key,
            "label": self.label,
            "required": self.required_fields,
            "enums": {k: list(v) for k, v in self.enum_fields.items()},
        }


class ResourceRegistry:
    def __init__(self) -> None:
        self._kinds: dict[str, ResourceKind] = {}

    def register(self, label: str, model: type[Resource], store: ResourceStore[Any]) -> ResourceKind:
        key = model.kind
        if key in self._kinds:
            raise ValueError(f"Resource kind already registered: {key}")
        kind = ResourceKind(key=key, label=label, model=model, store=store)
        self._kinds[key] = kind
        return kind

    def get(self, key: str) -> ResourceKind:
        """Resolve a kind key; accepts any case and the plural route form (`ice-resources`)."""
        normalized = (key or "").strip().lower()
        kind = self._kinds.get(normalized)
        if kind is None and normalized.endswith("s"):
            kind = self._kinds.get(normalized[:-1])
        if kind is None:
            known = ", ".join(self._kinds)
            raise InvalidArgument(f"Unknown resource kind '{key}' (expected one of: {known})")
        return kind

    def keys(self) -> list[str]:
        return list(self._kinds)

    def __iter__(self) -> Iterator[ResourceKind]:
        return iter(self._kinds.values())

    def __len__(self) -> int:
        return len(self._kinds)


def build_registry(settings: Settings, *, clock: Callable[[], datetime] = utc_now) -> ResourceRegistry:
    """Register the five built-in kinds over the configured store backend."""
    registry = ResourceRegistry()
    cell_size = settings.store.index_cell_size_deg
    for label, model in DEFAULT_KINDS:
        store: ResourceStore[Any]
        if settings.store.backend == "json":
            path = resolve_project_path(settings.store.dir) / f"{model.kind}.json"
            store = JsonFileResourceStore(model, path, clock=clock, index_cell_size_deg=cell_size)
        else:
            store = InMemoryResourceStore(model, clock=clock, index_cell_size_deg=cell_size)
        registry.register(label, model, store)
    return registry
