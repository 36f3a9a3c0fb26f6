"""
JSON-file record store.

Same semantics as `InMemoryResourceStore`, plus one JSON file per kind. Each
write serializes the next snapshot to a temp file and atomically replaces the
store file BEFORE the in-memory snapshot is published, so a failed write leaves
both disk and memory unchanged.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from immidir.domain.errors import StoreFailure
from immidir.store.base import R
from immidir.store.memory import InMemoryResourceStore

logger = logging.getLogger(__name__)


class JsonFileResourceStore(InMemoryResourceStore[R]):
    def __init__(self, model: type[R], path: Path, **kwargs: Any):
        super().__init__(model, **kwargs)
        self._path = path
        self._adapter = TypeAdapter(list[model])  # type: ignore[valid-type]
        self._records = self._read()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, R]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
            records = self._adapter.validate_python(payload)
        except (OSError, ValueError, PydanticValidationError) as exc:
            raise StoreFailure(f"Cannot load {self._label()} store from {self._path}: {exc}") from exc
        logger.debug("Loaded %d %s records from %s", len(records), self._label(), self._path)
        return {r.id: r for r in records if r.id}

    def _commit(self, records: dict[str, R]) -> None:
        payload = [r.model_dump(mode="json", by_alias=True) for r in records.values()]
        tmp = self._path.with_suffix(".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
            tmp.replace(self._path)
        except OSError as exc:
            raise StoreFailure(f"Cannot write {self._label()} store to {self._path}: {exc}") from exc
        super()._commit(records)
