"""
Error taxonomy for the resource directory.

Every failure surfaced by the directory API is a `DirectoryError`; presentation
layers (the CLI) map the subclasses onto exit codes / error bodies.
"""

from __future__ import annotations

from typing import Any, Iterable

from pydantic import BaseModel, ValidationError as PydanticValidationError

from immidir.domain.models import wire_path


class DirectoryError(Exception):
    """Base class for all directory failures."""

    code = "DIRECTORY_ERROR"

    def as_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": str(self)}


class ValidationError(DirectoryError):
    """Record input violates a required-field, type, enum or range rule."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, fields: Iterable[str] = ()):
        super().__init__(message)
        self.fields: list[str] = list(dict.fromkeys(fields))

    def as_dict(self) -> dict[str, Any]:
        return {**super().as_dict(), "fields": list(self.fields)}

    @classmethod
    def from_pydantic(
        cls,
        label: str,
        exc: PydanticValidationError,
        model: type[BaseModel] | None = None,
    ) -> "ValidationError":
        """Translate a pydantic error; with `model`, paths use its wire names."""
        fields: list[str] = []
        problems: list[str] = []
        for err in exc.errors():
            path = wire_path(model, err.get("loc", ())) or "__root__"
            fields.append(path)
            problems.append(f"{path}: {err.get('msg')}")
        return cls(f"Invalid {label}: " + "; ".join(problems), fields)


class NotFound(DirectoryError):
    """No record with the requested id exists for the kind."""

    code = "NOT_FOUND"

    def __init__(self, label: str, record_id: str):
        super().__init__(f"{label} not found: {record_id}")
        self.label = label
        self.record_id = record_id


class InvalidArgument(DirectoryError):
    """A query parameter is missing or malformed (e.g. search without keyword)."""

    code = "INVALID_ARGUMENT"


class StoreFailure(DirectoryError):
    """The backing store failed; not caller-correctable."""

    code = "STORE_FAILURE"
